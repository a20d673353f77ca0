"""Declarative scenario steps and the test case that runs them.

Steps are loaded from scenario files. Each step performs one interaction or
assertion and raises a verification error when it does not hold.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Annotated, Any, Literal

from pydantic import Field

from browser_verifier.cases.base import CaseContext, TestCase, poll_until
from browser_verifier.errors import AssertionFailure, NavigationError
from browser_verifier.models.base import Model
from browser_verifier.models.config import LoginForm, WaitPolicy
from browser_verifier.models.outcome import Outcome, Passed

log = logging.getLogger(__name__)


def login_form(context: CaseContext) -> LoginForm:
    if (form := context.target.capabilities.login) is None:
        raise AssertionFailure("target declares no login form")
    return form


async def is_authenticated(context: CaseContext, form: LoginForm) -> bool:
    """Whether the page looks like an authenticated area."""
    url = context.session.current_url
    if form.success_selector and await context.session.has_selector(
        form.success_selector
    ):
        return True
    login_url = context.target.url(form.path)
    if url.split("?")[0] == login_url:
        return False
    return any(pattern in url for pattern in form.success_url_patterns)


async def login(context: CaseContext, role: str) -> str:
    """Log in as ``role`` through the target's login form.

    Returns:
        The URL reached after logging in

    Raises:
        NavigationError: If the login page cannot be loaded
        InteractionError: If the form controls are missing
        AssertionFailure: If no authenticated area is reached in time

    """
    form = login_form(context)
    credential = context.credential(role)
    session = context.session

    if context.active_role is not None:
        await logout(context)

    await session.navigate(context.target.url(form.path), context.settings.wait_policy)
    await session.fill(form.username_selector, credential.username)
    await session.fill(form.password_selector, credential.password.get_secret_value())
    await session.click(form.submit_selector)

    reached = await poll_until(
        lambda: is_authenticated(context, form),
        timeout=session.timeout_ms / 1000,
    )
    if not reached:
        raise AssertionFailure(
            f"login as '{role}' did not reach an authenticated area "
            f"(url={session.current_url})"
        )

    context.active_role = role
    log.info("Logged in as %s: %s", role, session.current_url.split("?")[0])
    return session.current_url


async def ensure_role(context: CaseContext, role: str | None) -> None:
    """Make sure the session is logged in as ``role`` (None: anonymous)."""
    if role is None:
        if context.active_role is not None:
            await logout(context)
        return
    if context.active_role != role:
        await login(context, role)


async def logout(context: CaseContext) -> None:
    """Leave the authenticated area and drop cookies and storage."""
    form = context.target.capabilities.login
    session = context.session
    if form is not None and form.logout_selector:
        if await session.has_selector(form.logout_selector):
            await session.click(form.logout_selector)
    elif form is not None and form.logout_path:
        await session.navigate(context.target.url(form.logout_path))
    await session.reset_state()
    context.active_role = None


class NavigateStep(Model):
    """Load a page, failing on error statuses."""

    action: Literal["navigate"] = "navigate"
    path: str
    wait: WaitPolicy | None = None

    async def execute(self, context: CaseContext) -> str:
        result = await context.session.navigate(
            context.target.url(self.path), self.wait or context.settings.wait_policy
        )
        return f"{self.path} -> {result.status} in {result.duration_ms}ms"


class FillStep(Model):
    """Type a value into an input."""

    action: Literal["fill"] = "fill"
    selector: str
    value: str

    async def execute(self, context: CaseContext) -> str:
        await context.session.fill(self.selector, self.value)
        return f"filled {self.selector}"


class ClickStep(Model):
    """Click an element."""

    action: Literal["click"] = "click"
    selector: str

    async def execute(self, context: CaseContext) -> str:
        await context.session.click(self.selector)
        return f"clicked {self.selector}"


class WaitForStep(Model):
    """Wait for an element to appear."""

    action: Literal["wait_for"] = "wait_for"
    selector: str
    timeout_ms: int | None = None

    async def execute(self, context: CaseContext) -> str:
        if not await context.session.wait_for_selector(self.selector, self.timeout_ms):
            raise AssertionFailure(f"{self.selector} did not appear")
        return f"{self.selector} appeared"


class AssertUrlStep(Model):
    """Wait until the current URL contains a fragment."""

    action: Literal["assert_url"] = "assert_url"
    contains: str
    timeout_ms: int = 5_000

    async def execute(self, context: CaseContext) -> str:
        session = context.session

        async def matches() -> bool:
            return self.contains in session.current_url

        if not await poll_until(matches, timeout=self.timeout_ms / 1000):
            raise AssertionFailure(
                f"url {session.current_url} does not contain '{self.contains}'"
            )
        return f"url contains {self.contains}"


class AssertSelectorStep(Model):
    """Assert an element is present, or absent."""

    action: Literal["assert_selector"] = "assert_selector"
    selector: str
    present: bool = True

    async def execute(self, context: CaseContext) -> str:
        found = await context.session.has_selector(self.selector)
        if found != self.present:
            state = "missing" if self.present else "unexpectedly present"
            raise AssertionFailure(f"{self.selector} {state}")
        return f"{self.selector} {'present' if found else 'absent'}"


class AssertTextStep(Model):
    """Assert an element's text contains a fragment."""

    action: Literal["assert_text"] = "assert_text"
    selector: str
    contains: str

    async def execute(self, context: CaseContext) -> str:
        text = await context.session.text_content(self.selector)
        if text is None:
            raise AssertionFailure(f"{self.selector} missing")
        if self.contains not in text:
            raise AssertionFailure(f"{self.selector} text does not contain '{self.contains}'")
        return f"{self.selector} contains {self.contains}"


class AssertTitleStep(Model):
    """Assert the document title contains a fragment."""

    action: Literal["assert_title"] = "assert_title"
    contains: str

    async def execute(self, context: CaseContext) -> str:
        title = await context.session.title()
        if self.contains not in title:
            raise AssertionFailure(f"title '{title}' does not contain '{self.contains}'")
        return f"title contains {self.contains}"


class EvaluateStep(Model):
    """Evaluate a script, optionally comparing its result."""

    action: Literal["evaluate"] = "evaluate"
    script: str
    expect: Any = None

    async def execute(self, context: CaseContext) -> str:
        value = await context.session.evaluate(self.script)
        if self.expect is not None and value != self.expect:
            raise AssertionFailure(f"script returned {value!r}, expected {self.expect!r}")
        return f"evaluated to {value!r}"


class RequestStep(Model):
    """Call an HTTP endpoint through the browser's network stack."""

    action: Literal["request"] = "request"
    path: str
    method: str = "GET"
    body: Any = None
    expect_status: Sequence[int] = (200,)

    async def execute(self, context: CaseContext) -> str:
        url = context.target.url(self.path)
        response = await context.session.request(self.method, url, data=self.body)
        if response.status not in self.expect_status:
            if response.status >= 500:
                raise NavigationError(url, str(response.status))
            raise AssertionFailure(
                f"{self.method} {self.path} returned {response.status}, "
                f"expected {list(self.expect_status)}"
            )
        return f"{self.method} {self.path} -> {response.status}"


class LoginStep(Model):
    """Log in with the credential configured for a role."""

    action: Literal["login"] = "login"
    role: str

    async def execute(self, context: CaseContext) -> str:
        url = await login(context, self.role)
        return f"logged in as {self.role} at {url}"


class LogoutStep(Model):
    """Log out and clear browser state."""

    action: Literal["logout"] = "logout"

    async def execute(self, context: CaseContext) -> str:
        await logout(context)
        return "logged out"


class ScreenshotStep(Model):
    """Capture an explicitly requested screenshot."""

    action: Literal["screenshot"] = "screenshot"
    label: str

    async def execute(self, context: CaseContext) -> str:
        if context.archiver is None:
            return "screenshots disabled"
        reference = await context.archiver.capture(context.session, self.label)
        if reference is None:
            return f"screenshot {self.label} missing"
        context.screenshots.append(reference)
        return f"screenshot {reference}"


class ViewportStep(Model):
    """Resize the viewport."""

    action: Literal["set_viewport"] = "set_viewport"
    width: int = Field(gt=0)
    height: int = Field(gt=0)

    async def execute(self, context: CaseContext) -> str:
        await context.session.set_viewport(self.width, self.height)
        return f"viewport {self.width}x{self.height}"


Step = Annotated[
    NavigateStep
    | FillStep
    | ClickStep
    | WaitForStep
    | AssertUrlStep
    | AssertSelectorStep
    | AssertTextStep
    | AssertTitleStep
    | EvaluateStep
    | RequestStep
    | LoginStep
    | LogoutStep
    | ScreenshotStep
    | ViewportStep,
    Field(discriminator="action"),
]


@dataclass(frozen=True, kw_only=True)
class StepCase(TestCase):
    """Runs a list of declarative steps in order; the first failing step fails it."""

    steps: Sequence[Any]
    role: str | None = None

    async def run(self, context: CaseContext) -> Outcome:
        if self.role is not None:
            await ensure_role(context, self.role)
        details = [await step.execute(context) for step in self.steps]
        return Passed("; ".join(details))
