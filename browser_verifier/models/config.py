"""Run configuration: targets, credentials and browser session options."""

from collections.abc import Mapping, Sequence
from typing import Literal

from pydantic import Field, SecretStr, field_validator

from browser_verifier.models.base import Model

type DialogAction = Literal["accept", "dismiss"]
type WaitPolicy = Literal["load", "domcontentloaded", "networkidle", "commit"]
type ScreenshotPolicy = Literal["on_failure", "always", "never"]


class PageCapability(Model):
    """A page the target must serve, optionally behind a role."""

    name: str = Field(..., description="Human-readable section name")
    path: str = Field(..., description="Path relative to the target base URL")
    selector: str | None = Field(
        default=None, description="Selector that must exist once the page loaded"
    )
    role: str | None = Field(
        default=None, description="Role that must be logged in to view the page"
    )


class ApiCapability(Model):
    """An HTTP endpoint the target must expose."""

    name: str
    path: str
    method: Literal["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD"] = "GET"
    expected_status: Sequence[int] = Field(default=(200,))
    role: str | None = None
    requires_auth: bool = Field(
        default=False,
        description="Anonymous requests must be rejected with 401/403",
    )


class FormCapability(Model):
    """A form that must accept a submission."""

    name: str
    path: str
    fields: Mapping[str, str] = Field(default_factory=dict)
    submit_selector: str = "button[type=submit]"
    success_selector: str | None = None
    role: str | None = None


class LoginForm(Model):
    """Selectors and success criteria for the target's login form."""

    path: str = "/login.html"
    username_selector: str = "#username"
    password_selector: str = "#password"
    submit_selector: str = "#loginBtn"
    success_url_patterns: Sequence[str] = Field(
        default=("dashboard", "admin", "employee", "index.html")
    )
    success_selector: str | None = None
    logout_selector: str | None = None
    logout_path: str | None = None


class Capabilities(Model):
    """Capabilities the target is expected to expose."""

    home_path: str = "/"
    health_path: str | None = "/api/health"
    login: LoginForm | None = Field(default_factory=LoginForm)
    pages: Sequence[PageCapability] = Field(default_factory=list)
    api: Sequence[ApiCapability] = Field(default_factory=list)
    forms: Sequence[FormCapability] = Field(default_factory=list)
    security_headers: Sequence[str] = Field(
        default=("x-content-type-options", "x-frame-options")
    )


class Target(Model):
    """A web application under verification."""

    name: str
    base_url: str
    capabilities: Capabilities = Field(default_factory=Capabilities)
    browser: str | None = Field(
        default=None, description="Browser the target is verified with, when several are"
    )

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("base_url must be an http(s) URL")
        return value.rstrip("/")

    def url(self, path: str) -> str:
        """Resolve a path against the base URL; absolute URLs pass through."""
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    @property
    def label(self) -> str:
        """Display name, suffixed with the browser in cross-browser runs."""
        if self.browser is None:
            return self.name
        return f"{self.name} [{self.browser}]"

    def for_browser(self, browser: str) -> "Target":
        return self.model_copy(update={"browser": browser})


class Credential(Model):
    """Login identifier and secret for one role inside the target."""

    role: str
    username: str
    password: SecretStr

    def __str__(self) -> str:
        return f"Credential(role={self.role})"


class Viewport(Model):
    """Browser viewport dimensions."""

    width: int = Field(default=1366, gt=0)
    height: int = Field(default=768, gt=0)


class Geolocation(Model):
    """Simulated device position reported to the page."""

    latitude: float = Field(default=25.0330, ge=-90, le=90)
    longitude: float = Field(default=121.5654, ge=-180, le=180)
    accuracy: float = Field(default=10, ge=0)


class DialogPolicy(Model):
    """How native dialogs raised by the page are resolved."""

    confirm: DialogAction = "accept"
    alert: DialogAction = "dismiss"
    prompt: DialogAction = "accept"
    beforeunload: DialogAction = "accept"

    def action_for(self, dialog_type: str) -> DialogAction:
        """Return the configured action, accepting unknown dialog types."""
        return getattr(self, dialog_type, "accept")


class SessionConfig(Model):
    """Options recognised by ``BrowserSession.open``."""

    viewport: Viewport = Field(default_factory=Viewport)
    simulated_geolocation: Geolocation | None = Field(default_factory=Geolocation)
    granted_permissions: frozenset[str] = Field(
        default=frozenset({"geolocation"})
    )
    user_agent: str | None = None
    default_timeout_ms: int = Field(default=30_000, gt=0)
    dialog_policy: DialogPolicy = Field(default_factory=DialogPolicy)


class RunSettings(Model):
    """Pipeline-wide execution settings."""

    case_timeout: float = Field(default=60.0, gt=0, description="Seconds per case")
    screenshot_policy: ScreenshotPolicy = "on_failure"
    diagnostics_capacity: int = Field(default=10_000, gt=0)
    wait_policy: WaitPolicy = "load"
    load_time_warn_ms: int = Field(default=3_000, gt=0)
    load_time_fail_ms: int = Field(default=10_000, gt=0)
    session: SessionConfig = Field(default_factory=SessionConfig)
