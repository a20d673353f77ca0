"""Error taxonomy for verification runs.

Navigation, interaction and assertion errors are contained at the test case
boundary. Driver errors invalidate the session they occurred on. Publish
errors never change the outcome of a run.
"""


class VerificationError(Exception):
    """Base class for all errors raised by the verifier."""


class NavigationError(VerificationError):
    """Target unreachable, load timeout or error status on navigation."""

    def __init__(self, url: str, cause: str) -> None:
        self.url = url
        self.cause = cause
        super().__init__(cause)

    def __str__(self) -> str:
        return f"NavigationError: {self.cause}"


class InteractionError(VerificationError):
    """Expected element or control not found or not actionable."""

    def __init__(self, selector: str, cause: str) -> None:
        self.selector = selector
        self.cause = cause
        super().__init__(cause)

    def __str__(self) -> str:
        return f"InteractionError: {self.selector}: {self.cause}"


class AssertionFailure(VerificationError):
    """Expected outcome not observed."""

    def __str__(self) -> str:
        return f"AssertionFailure: {self.args[0] if self.args else ''}"


class DriverError(VerificationError):
    """The automation driver itself malfunctioned."""

    def __str__(self) -> str:
        return f"DriverError: {self.args[0] if self.args else ''}"


class PublishError(VerificationError):
    """Notification dispatch failed."""


class ScenarioError(VerificationError):
    """Scenario file could not be parsed or validated."""


class ManifestNotFoundError(VerificationError):
    """Raised when a driver or notifier plugin is not registered."""
