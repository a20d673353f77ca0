"""Test case contract and the context a case runs in."""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field

from browser_verifier.errors import AssertionFailure
from browser_verifier.models.config import Credential, RunSettings, Target
from browser_verifier.models.outcome import Outcome
from browser_verifier.screenshots import ScreenshotArchiver
from browser_verifier.session import BrowserSession


@dataclass(kw_only=True)
class CaseContext:
    """Everything a test case may touch while it runs.

    One context exists per browser session; ``active_role`` tracks which
    credential the session is currently logged in with.
    """

    session: BrowserSession
    target: Target
    credentials: Mapping[str, Credential]
    settings: RunSettings
    archiver: ScreenshotArchiver | None = None
    active_role: str | None = None
    screenshots: list[str] = field(default_factory=list)

    def credential(self, role: str) -> Credential:
        """Return the credential for ``role``.

        Raises:
            AssertionFailure: If no credential was configured for the role

        """
        try:
            return self.credentials[role]
        except KeyError:
            raise AssertionFailure(f"no credential configured for role '{role}'") from None


@dataclass(frozen=True, kw_only=True)
class TestCase(ABC):
    """A named, idempotent unit of interaction with an expected outcome.

    ``run`` may raise any verification error; the pipeline converts it into
    a ``Failed`` outcome so nothing escapes the case boundary.
    """

    __test__ = False

    name: str
    category: str = "functional"
    depends_on: Sequence[str] = ()
    timeout: float | None = None

    @abstractmethod
    async def run(self, context: CaseContext) -> Outcome:
        """Execute the case against the session in ``context``."""


@dataclass(frozen=True, kw_only=True)
class FunctionCase(TestCase):
    """Adapts a plain coroutine function into a test case."""

    func: Callable[[CaseContext], Awaitable[Outcome]]

    async def run(self, context: CaseContext) -> Outcome:
        return await self.func(context)


async def poll_until(
    predicate: Callable[[], Awaitable[bool]],
    timeout: float,
    poll_interval: float = 0.1,
) -> bool:
    """Evaluate ``predicate`` until it holds or ``timeout`` seconds elapse."""
    deadline = asyncio.get_running_loop().time() + timeout

    while True:
        if await predicate():
            return True

        if asyncio.get_running_loop().time() >= deadline:
            return False

        await asyncio.sleep(poll_interval)
