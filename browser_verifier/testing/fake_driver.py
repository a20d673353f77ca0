"""In-memory browser driver serving a scripted site, for tests."""

import asyncio
import inspect
from collections import defaultdict
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from yarl import URL

from browser_verifier.cases.builtin import OVERFLOW_SCRIPT
from browser_verifier.drivers.base import (
    BrowserDriver,
    ConsoleMessage,
    DriverDialog,
    DriverPage,
    EventHandler,
    HttpResponse,
    NetworkResponse,
    PageError,
    PageEvent,
)
from browser_verifier.errors import DriverError, InteractionError, NavigationError
from browser_verifier.models.config import SessionConfig, WaitPolicy

type ClickAction = Callable[["FakePage"], Awaitable[None] | None]

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake"


@dataclass(frozen=True, kw_only=True)
class FakeRoute:
    """What the fake site serves at one path."""

    status: int = 200
    title: str = ""
    selectors: Mapping[str, str] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)
    body: str = ""
    requires_auth: bool = False
    delay: float = 0.0
    console: Sequence[ConsoleMessage] = ()
    errors: Sequence[PageError] = ()
    dialogs: Sequence[tuple[str, str]] = ()


@dataclass(kw_only=True)
class FakeSite:
    """A scripted web application with a login form."""

    routes: dict[str, FakeRoute] = field(default_factory=dict)
    accounts: dict[str, str] = field(default_factory=dict)
    username_selector: str = "#username"
    password_selector: str = "#password"
    login_submit: str = "#loginBtn"
    login_path: str = "/login.html"
    login_redirect: str = "/dashboard.html"
    scripts: dict[str, Any] = field(default_factory=dict)
    actions: dict[str, ClickAction] = field(default_factory=dict)
    unreachable: bool = False
    crash_paths: set[str] = field(default_factory=set)

    def route(self, path: str) -> FakeRoute:
        return self.routes.get(path, FakeRoute(status=404, title="Not Found"))


class FakeDialog(DriverDialog):
    """Dialog recording how it was resolved."""

    def __init__(self, dialog_type: str, message: str, default_value: str = "") -> None:
        self._type = dialog_type
        self._message = message
        self._default_value = default_value
        self.resolution: str | None = None
        self.prompt_text: str | None = None

    @property
    def type(self) -> str:
        return self._type

    @property
    def message(self) -> str:
        return self._message

    @property
    def default_value(self) -> str:
        return self._default_value

    async def accept(self, prompt_text: str | None = None) -> None:
        self.resolution = "accept"
        self.prompt_text = prompt_text

    async def dismiss(self) -> None:
        self.resolution = "dismiss"


@dataclass(kw_only=True)
class FakePage(DriverPage):
    """Page navigating the fake site; state lives in plain attributes."""

    site: FakeSite
    config: SessionConfig
    current: str = "about:blank"
    visible: dict[str, str] = field(default_factory=dict)
    values: dict[str, str] = field(default_factory=dict)
    authenticated: bool = False
    viewport: tuple[int, int] = (0, 0)
    closed: bool = False
    crashed: bool = False
    visits: list[str] = field(default_factory=list)
    dialogs: list[FakeDialog] = field(default_factory=list)
    listeners: dict[str, list[EventHandler]] = field(
        default_factory=lambda: defaultdict(list)
    )

    def __post_init__(self) -> None:
        self.viewport = (self.config.viewport.width, self.config.viewport.height)

    @property
    def url(self) -> str:
        return self.current

    async def goto(
        self, url: str, *, wait_until: WaitPolicy, timeout_ms: int
    ) -> HttpResponse | None:
        self._check()
        if self.site.unreachable:
            raise NavigationError(url, "net::ERR_CONNECTION_REFUSED")

        path = URL(url).path
        if path in self.site.crash_paths:
            self.crashed = True
            raise DriverError("Target page, context or browser has been closed")

        route = self.site.route(path)
        if route.delay:
            await asyncio.sleep(route.delay)

        if route.requires_auth and not self.authenticated:
            path = self.site.login_path
            url = str(URL(url).with_path(path).with_query(None))
            route = self.site.route(path)

        self.current = url
        self.visits.append(path)
        self.visible = dict(route.selectors)
        await self.emit(
            "response",
            NetworkResponse(
                url=url, method="GET", status=route.status, latency_ms=route.delay * 1000
            ),
        )
        for message in route.console:
            await self.emit("console", message)
        for error in route.errors:
            await self.emit("pageerror", error)
        for dialog_type, message in route.dialogs:
            await self.raise_dialog(dialog_type, message)
        return HttpResponse(
            url=url, status=route.status, headers=dict(route.headers), text=route.body
        )

    async def fill(self, selector: str, value: str, *, timeout_ms: int) -> None:
        self._check()
        if selector not in self.visible:
            raise InteractionError(selector, f"Timeout {timeout_ms}ms exceeded")
        self.values[selector] = value

    async def click(self, selector: str, *, timeout_ms: int) -> None:
        self._check()
        if selector not in self.visible:
            raise InteractionError(selector, f"Timeout {timeout_ms}ms exceeded")
        if selector == self.site.login_submit:
            await self._submit_login()
        if action := self.site.actions.get(selector):
            result = action(self)
            if inspect.isawaitable(result):
                await result

    async def wait_for_selector(self, selector: str, *, timeout_ms: int) -> bool:
        self._check()
        return selector in self.visible

    async def text_content(self, selector: str) -> str | None:
        self._check()
        return self.visible.get(selector)

    async def title(self) -> str:
        self._check()
        return self.site.route(URL(self.current).path).title

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        self._check()
        value = self.site.scripts.get(script)
        return value(self) if callable(value) else value

    async def screenshot(self, *, full_page: bool = True) -> bytes:
        self._check()
        return PNG_BYTES

    async def fetch(
        self,
        url: str,
        *,
        method: str = "GET",
        data: Any = None,
        headers: Mapping[str, str] | None = None,
        timeout_ms: int,
    ) -> HttpResponse:
        self._check()
        if self.site.unreachable:
            raise NavigationError(url, "net::ERR_CONNECTION_REFUSED")
        route = self.site.route(URL(url).path)
        status = 401 if route.requires_auth and not self.authenticated else route.status
        await self.emit(
            "response", NetworkResponse(url=url, method=method, status=status)
        )
        return HttpResponse(
            url=url, status=status, headers=dict(route.headers), text=route.body
        )

    async def set_viewport(self, width: int, height: int) -> None:
        self._check()
        self.viewport = (width, height)

    async def clear_state(self) -> None:
        self._check()
        self.authenticated = False
        self.values.clear()

    def on(self, event: PageEvent, handler: EventHandler) -> None:
        self.listeners[event].append(handler)

    def remove_listener(self, event: PageEvent, handler: EventHandler) -> None:
        if handler in self.listeners[event]:
            self.listeners[event].remove(handler)

    async def close(self) -> None:
        self.closed = True

    async def emit(self, event: PageEvent, payload: Any) -> None:
        """Deliver ``payload`` to every handler subscribed to ``event``."""
        for handler in list(self.listeners[event]):
            result = handler(payload)
            if inspect.isawaitable(result):
                await result

    async def raise_dialog(
        self, dialog_type: str, message: str, default_value: str = ""
    ) -> FakeDialog:
        dialog = FakeDialog(dialog_type, message, default_value)
        self.dialogs.append(dialog)
        await self.emit("dialog", dialog)
        return dialog

    async def _submit_login(self) -> None:
        username = self.values.get(self.site.username_selector)
        password = self.values.get(self.site.password_selector)
        if username is None or self.site.accounts.get(username) != password:
            self.visible["#error"] = "Invalid credentials"
            return
        self.authenticated = True
        redirect = URL(self.current).with_path(self.site.login_redirect).with_query(None)
        await self.goto(str(redirect), wait_until="load", timeout_ms=0)

    def _check(self) -> None:
        if self.crashed:
            raise DriverError("Target page, context or browser has been closed")
        if self.closed:
            raise DriverError("page has been closed")


@dataclass(kw_only=True)
class FakeDriver(BrowserDriver):
    """Driver handing out ``FakePage`` instances for one site."""

    site: FakeSite = field(default_factory=FakeSite)
    fail_new_page: bool = False
    pages: list[FakePage] = field(default_factory=list)

    async def new_page(self, config: SessionConfig) -> FakePage:
        if self.fail_new_page:
            raise DriverError("browser has been closed")
        page = FakePage(site=self.site, config=config)
        self.pages.append(page)
        return page


def demo_site(**accounts: str) -> FakeSite:
    """A healthy site with a login form, dashboard and health endpoint."""
    secure_headers = {"X-Content-Type-Options": "nosniff", "X-Frame-Options": "DENY"}
    return FakeSite(
        accounts=dict(accounts),
        routes={
            "/": FakeRoute(
                title="Home", selectors={"h1": "Welcome"}, headers=secure_headers
            ),
            "/api/health": FakeRoute(body='{"status": "ok"}'),
            "/login.html": FakeRoute(
                title="Login",
                selectors={"#username": "", "#password": "", "#loginBtn": "Login"},
            ),
            "/dashboard.html": FakeRoute(
                title="Dashboard",
                selectors={"#welcome": "Hello", "#logoutBtn": "Logout"},
                requires_auth=True,
            ),
        },
        scripts={OVERFLOW_SCRIPT: True},
    )
