"""Built-in test cases parameterised by role, page, endpoint and form.

``default_stages`` turns a target's declared capabilities and the configured
credentials into the standard verification stages.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from urllib.parse import quote

from browser_verifier.cases.base import CaseContext, TestCase, poll_until
from browser_verifier.cases.steps import ensure_role, is_authenticated, login, login_form, logout
from browser_verifier.errors import AssertionFailure, NavigationError
from browser_verifier.models.config import (
    ApiCapability,
    Credential,
    FormCapability,
    PageCapability,
    Target,
)
from browser_verifier.models.outcome import Failed, Outcome, Passed, Warned
from browser_verifier.pipeline import Stage

log = logging.getLogger(__name__)

SQL_INJECTION_PAYLOAD = "admin' OR '1'='1' --"
XSS_MARKER_SCRIPT = "<script>window.__verifierMarker=1</script>"
OVERFLOW_SCRIPT = (
    "() => document.documentElement.scrollWidth <= window.innerWidth + 1"
)
RESPONSIVE_VIEWPORTS: Sequence[tuple[str, int, int]] = (
    ("desktop", 1920, 1080),
    ("tablet", 768, 1024),
    ("mobile", 375, 667),
)


def login_case_name(role: str) -> str:
    return f"login as {role}"


@dataclass(frozen=True, kw_only=True)
class PageReachableCase(TestCase):
    """The page at ``path`` loads with a successful status."""

    path: str

    async def run(self, context: CaseContext) -> Outcome:
        await ensure_role(context, None)
        result = await context.session.navigate(
            context.target.url(self.path), context.settings.wait_policy
        )
        title = await context.session.title()
        return Passed(f"HTTP {result.status} in {result.duration_ms}ms, title={title!r}")


@dataclass(frozen=True, kw_only=True)
class EndpointStatusCase(TestCase):
    """An HTTP endpoint answers with one of the expected statuses.

    Server errors are reported as navigation errors so they read the same
    as a page failing to load.
    """

    path: str
    method: str = "GET"
    expected_status: Sequence[int] = (200,)
    role: str | None = None

    async def run(self, context: CaseContext) -> Outcome:
        if self.role is not None:
            await ensure_role(context, self.role)
        url = context.target.url(self.path)
        response = await context.session.request(self.method, url)
        if response.status in self.expected_status:
            return Passed(f"{self.method} {self.path} -> {response.status}")
        if response.status >= 500:
            raise NavigationError(url, str(response.status))
        return Failed(
            f"{self.method} {self.path} returned {response.status}, "
            f"expected {list(self.expected_status)}"
        )


@dataclass(frozen=True, kw_only=True)
class LoginCase(TestCase):
    """Logging in as ``role`` reaches an authenticated area."""

    role: str

    async def run(self, context: CaseContext) -> Outcome:
        url = await login(context, self.role)
        return Passed(f"authenticated as {self.role} at {url}")


@dataclass(frozen=True, kw_only=True)
class LogoutCase(TestCase):
    """Logging out returns the session to an anonymous state."""

    role: str

    async def run(self, context: CaseContext) -> Outcome:
        await ensure_role(context, self.role)
        await logout(context)
        form = login_form(context)
        await context.session.navigate(context.target.url(form.path))
        if await is_authenticated(context, form):
            return Failed("session still authenticated after logout")
        return Passed("logged out")


@dataclass(frozen=True, kw_only=True)
class PageCheckCase(TestCase):
    """A section page loads and exposes its expected element."""

    page: PageCapability

    async def run(self, context: CaseContext) -> Outcome:
        await ensure_role(context, self.page.role)
        session = context.session
        result = await session.navigate(
            context.target.url(self.page.path), context.settings.wait_policy
        )
        if self.page.selector and not await session.wait_for_selector(
            self.page.selector
        ):
            raise AssertionFailure(f"{self.page.selector} not found on {self.page.path}")
        return Passed(f"{self.page.path} -> {result.status} in {result.duration_ms}ms")


@dataclass(frozen=True, kw_only=True)
class FormSubmitCase(TestCase):
    """A form accepts a submission and shows its success state."""

    form: FormCapability

    async def run(self, context: CaseContext) -> Outcome:
        await ensure_role(context, self.form.role)
        session = context.session
        await session.navigate(
            context.target.url(self.form.path), context.settings.wait_policy
        )
        for selector, value in self.form.fields.items():
            await session.fill(selector, value)
        await session.click(self.form.submit_selector)
        if self.form.success_selector is None:
            return Passed(f"submitted {len(self.form.fields)} field(s)")
        if not await session.wait_for_selector(self.form.success_selector):
            raise AssertionFailure(
                f"{self.form.success_selector} not shown after submitting {self.form.name}"
            )
        return Passed(f"submitted {self.form.name}")


@dataclass(frozen=True, kw_only=True)
class AnonymousAccessRejectedCase(TestCase):
    """A protected endpoint rejects anonymous requests."""

    path: str
    method: str = "GET"

    async def run(self, context: CaseContext) -> Outcome:
        await ensure_role(context, None)
        await context.session.reset_state()
        response = await context.session.request(
            self.method, context.target.url(self.path)
        )
        if response.status in (401, 403):
            return Passed(f"anonymous {self.method} {self.path} -> {response.status}")
        return Failed(
            f"anonymous {self.method} {self.path} returned {response.status}, "
            "expected 401 or 403"
        )


@dataclass(frozen=True, kw_only=True)
class SqlInjectionLoginCase(TestCase):
    """A classic SQL injection payload does not authenticate."""

    async def run(self, context: CaseContext) -> Outcome:
        await ensure_role(context, None)
        form = login_form(context)
        session = context.session
        await session.navigate(context.target.url(form.path), context.settings.wait_policy)
        await session.fill(form.username_selector, SQL_INJECTION_PAYLOAD)
        await session.fill(form.password_selector, SQL_INJECTION_PAYLOAD)
        await session.click(form.submit_selector)

        breached = await poll_until(
            lambda: is_authenticated(context, form), timeout=2.0
        )
        if breached:
            await logout(context)
            return Failed(f"injection payload authenticated (url={session.current_url})")
        return Passed("injection payload rejected")


@dataclass(frozen=True, kw_only=True)
class ReflectedScriptCase(TestCase):
    """Script passed in the query string is not executed by the page."""

    path: str = "/"

    async def run(self, context: CaseContext) -> Outcome:
        session = context.session
        url = f"{context.target.url(self.path)}?q={quote(XSS_MARKER_SCRIPT)}"
        await session.navigate(url, context.settings.wait_policy)
        executed = await session.evaluate("() => window.__verifierMarker === 1")
        if executed:
            return Failed("reflected script executed")
        return Passed("reflected script not executed")


@dataclass(frozen=True, kw_only=True)
class SecurityHeadersCase(TestCase):
    """Responses carry the expected security headers."""

    path: str = "/"
    headers: Sequence[str] = ()

    async def run(self, context: CaseContext) -> Outcome:
        response = await context.session.request("GET", context.target.url(self.path))
        present = {name.lower() for name in response.headers}
        missing = [name for name in self.headers if name.lower() not in present]
        if missing:
            return Warned(f"missing security headers: {', '.join(missing)}")
        return Passed(f"{len(self.headers)} security header(s) present")


@dataclass(frozen=True, kw_only=True)
class LoadTimeCase(TestCase):
    """The page loads within the configured time budget."""

    path: str = "/"

    async def run(self, context: CaseContext) -> Outcome:
        settings = context.settings
        result = await context.session.navigate(
            context.target.url(self.path), settings.wait_policy
        )
        elapsed = result.duration_ms
        if elapsed > settings.load_time_fail_ms:
            return Failed(f"slow load: {elapsed}ms exceeds {settings.load_time_fail_ms}ms")
        if elapsed > settings.load_time_warn_ms:
            return Warned(f"slow load: {elapsed}ms exceeds {settings.load_time_warn_ms}ms")
        return Passed(f"loaded in {elapsed}ms")


@dataclass(frozen=True, kw_only=True)
class ResponsiveLayoutCase(TestCase):
    """The page renders without horizontal overflow at a given viewport."""

    path: str = "/"
    width: int
    height: int

    async def run(self, context: CaseContext) -> Outcome:
        session = context.session
        default = session.config.viewport
        await session.set_viewport(self.width, self.height)
        try:
            await session.navigate(context.target.url(self.path), context.settings.wait_policy)
            fits = await session.evaluate(OVERFLOW_SCRIPT)
        finally:
            await session.set_viewport(default.width, default.height)
        if not fits:
            return Warned(f"horizontal overflow at {self.width}x{self.height}")
        return Passed(f"fits {self.width}x{self.height}")


def capability_case_name(kind: str, name: str, role: str | None) -> str:
    """Case name for a capability; the role keeps per-role checks distinct."""
    if role is None:
        return f"{kind} {name}"
    return f"{kind} {name} as {role}"


def _role_dependency(role: str | None, roles: Mapping[str, Credential]) -> Sequence[str]:
    if role is not None and role in roles:
        return (login_case_name(role),)
    return ()


def default_stages(target: Target, credentials: Mapping[str, Credential]) -> Sequence[Stage]:
    """Build the standard verification stages for ``target``.

    Stages: connectivity, authentication, navigation, api, forms, security,
    performance and responsive. Empty stages are omitted.
    """
    capabilities = target.capabilities
    login_form_declared = capabilities.login is not None

    connectivity: list[TestCase] = [
        PageReachableCase(name="home page reachable", path=capabilities.home_path)
    ]
    if capabilities.health_path:
        connectivity.append(
            EndpointStatusCase(name="health endpoint", path=capabilities.health_path)
        )
    if login_form_declared:
        connectivity.append(
            PageReachableCase(name="login page reachable", path=capabilities.login.path)
        )

    authentication: list[TestCase] = []
    if login_form_declared:
        for role in credentials:
            authentication.append(LoginCase(name=login_case_name(role), role=role))
        for role in credentials:
            authentication.append(
                LogoutCase(
                    name=f"logout as {role}",
                    role=role,
                    depends_on=(login_case_name(role),),
                )
            )

    navigation: list[TestCase] = [
        PageCheckCase(
            name=capability_case_name("page", page.name, page.role),
            page=page,
            depends_on=_role_dependency(page.role, credentials),
        )
        for page in capabilities.pages
    ]

    api: list[TestCase] = [
        EndpointStatusCase(
            name=capability_case_name("api", endpoint.name, endpoint.role),
            path=endpoint.path,
            method=endpoint.method,
            expected_status=endpoint.expected_status,
            role=endpoint.role,
            depends_on=_role_dependency(endpoint.role, credentials),
        )
        for endpoint in capabilities.api
    ]

    forms: list[TestCase] = [
        FormSubmitCase(
            name=capability_case_name("form", form.name, form.role),
            form=form,
            depends_on=_role_dependency(form.role, credentials),
        )
        for form in capabilities.forms
    ]

    security: list[TestCase] = [
        AnonymousAccessRejectedCase(
            name=f"anonymous {endpoint.name} rejected",
            category="security",
            path=endpoint.path,
            method=endpoint.method,
        )
        for endpoint in capabilities.api
        if endpoint.requires_auth
    ]
    if login_form_declared:
        security.append(
            SqlInjectionLoginCase(name="sql injection login rejected", category="security")
        )
    security.append(
        ReflectedScriptCase(
            name="reflected script not executed",
            category="security",
            path=capabilities.home_path,
        )
    )
    if capabilities.security_headers:
        security.append(
            SecurityHeadersCase(
                name="security headers present",
                category="security",
                path=capabilities.home_path,
                headers=capabilities.security_headers,
            )
        )

    performance: list[TestCase] = [
        LoadTimeCase(
            name="home page load time",
            category="performance",
            path=capabilities.home_path,
        )
    ]

    responsive: list[TestCase] = [
        ResponsiveLayoutCase(
            name=f"{label} layout",
            category="responsive",
            path=capabilities.home_path,
            width=width,
            height=height,
        )
        for label, width, height in RESPONSIVE_VIEWPORTS
    ]

    stages = [
        Stage(name="connectivity", cases=connectivity),
        Stage(name="authentication", cases=authentication),
        Stage(name="navigation", cases=navigation),
        Stage(name="api", cases=api),
        Stage(name="forms", cases=forms),
        Stage(name="security", cases=security, required=False),
        Stage(name="performance", cases=performance, required=False),
        Stage(name="responsive", cases=responsive, required=False),
    ]
    return [stage for stage in stages if stage.cases]
