"""Playwright driver implementation."""

import logging
from collections.abc import AsyncGenerator, Callable, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from playwright.async_api import Browser, BrowserContext, Page, async_playwright
from playwright.async_api import ConsoleMessage as PWConsoleMessage
from playwright.async_api import Dialog as PWDialog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Response as PWResponse
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

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
from browser_verifier.drivers.playwright.config import PlaywrightConfig
from browser_verifier.errors import (
    AssertionFailure,
    DriverError,
    InteractionError,
    NavigationError,
)
from browser_verifier.models.config import SessionConfig, WaitPolicy

log = logging.getLogger(__name__)

CLOSED_MARKERS = (
    "has been closed",
    "target closed",
    "browser closed",
    "connection closed",
)

CLEAR_STORAGE_SCRIPT = "() => { localStorage.clear(); sessionStorage.clear(); }"


def is_closed_error(exc: BaseException) -> bool:
    """Whether a Playwright error means the page or browser is gone."""
    message = str(exc).lower()
    return any(marker in message for marker in CLOSED_MARKERS)


def first_line(exc: BaseException) -> str:
    """Playwright messages carry a call log; keep the headline only."""
    text = str(exc).strip()
    return text.splitlines()[0] if text else type(exc).__name__


class PlaywrightDialog(DriverDialog):
    """Adapter exposing a Playwright dialog through the neutral interface."""

    def __init__(self, dialog: PWDialog) -> None:
        self._dialog = dialog

    @property
    def type(self) -> str:
        return self._dialog.type

    @property
    def message(self) -> str:
        return self._dialog.message

    @property
    def default_value(self) -> str:
        return self._dialog.default_value

    async def accept(self, prompt_text: str | None = None) -> None:
        await self._dialog.accept(prompt_text)

    async def dismiss(self) -> None:
        await self._dialog.dismiss()


def _console(message: PWConsoleMessage) -> ConsoleMessage:
    return ConsoleMessage(
        level=message.type,
        text=message.text,
        location=dict(message.location or {}),
    )


def _response(response: PWResponse) -> NetworkResponse:
    timing = response.request.timing
    latency = timing.get("responseStart", -1)
    return NetworkResponse(
        url=response.url,
        method=response.request.method,
        status=response.status,
        latency_ms=latency if latency >= 0 else None,
    )


def _page_error(error: PlaywrightError) -> PageError:
    return PageError(message=error.message, stack=error.stack)


EVENT_ADAPTERS: Mapping[str, Callable[[Any], Any]] = {
    "console": _console,
    "response": _response,
    "pageerror": _page_error,
    "dialog": PlaywrightDialog,
}


@dataclass(kw_only=True)
class PlaywrightPage(DriverPage):
    """A Playwright page owning its browser context."""

    page: Page
    context: BrowserContext
    _listeners: dict[tuple[str, EventHandler], Callable[[Any], Any]] = field(
        default_factory=dict, repr=False
    )

    @property
    def url(self) -> str:
        return self.page.url

    async def goto(
        self, url: str, *, wait_until: WaitPolicy, timeout_ms: int
    ) -> HttpResponse | None:
        try:
            response = await self.page.goto(
                url, wait_until=wait_until, timeout=timeout_ms
            )
        except PlaywrightTimeoutError as exc:
            raise NavigationError(url, f"timeout after {timeout_ms}ms") from exc
        except PlaywrightError as exc:
            if is_closed_error(exc):
                raise DriverError(first_line(exc)) from exc
            raise NavigationError(url, first_line(exc)) from exc

        if response is None:
            return None
        return HttpResponse(
            url=response.url,
            status=response.status,
            headers=await response.all_headers(),
        )

    async def fill(self, selector: str, value: str, *, timeout_ms: int) -> None:
        try:
            await self.page.fill(selector, value, timeout=timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise InteractionError(selector, "not found or not editable") from exc
        except PlaywrightError as exc:
            self._raise_for(selector, exc)

    async def click(self, selector: str, *, timeout_ms: int) -> None:
        try:
            await self.page.click(selector, timeout=timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise InteractionError(selector, "not found or not clickable") from exc
        except PlaywrightError as exc:
            self._raise_for(selector, exc)

    async def wait_for_selector(self, selector: str, *, timeout_ms: int) -> bool:
        try:
            await self.page.wait_for_selector(
                selector, state="attached", timeout=timeout_ms
            )
        except PlaywrightTimeoutError:
            return False
        except PlaywrightError as exc:
            self._raise_for(selector, exc)
        return True

    async def text_content(self, selector: str) -> str | None:
        locator = self.page.locator(selector)
        try:
            if await locator.count() == 0:
                return None
            return await locator.first.text_content()
        except PlaywrightError as exc:
            self._raise_for(selector, exc)

    async def title(self) -> str:
        try:
            return await self.page.title()
        except PlaywrightError as exc:
            raise DriverError(first_line(exc)) from exc

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        try:
            return await self.page.evaluate(script, arg)
        except PlaywrightError as exc:
            if is_closed_error(exc):
                raise DriverError(first_line(exc)) from exc
            raise AssertionFailure(f"script error: {first_line(exc)}") from exc

    async def screenshot(self, *, full_page: bool = True) -> bytes:
        try:
            return await self.page.screenshot(full_page=full_page)
        except PlaywrightError as exc:
            raise DriverError(first_line(exc)) from exc

    async def fetch(
        self,
        url: str,
        *,
        method: str = "GET",
        data: Any = None,
        headers: Mapping[str, str] | None = None,
        timeout_ms: int,
    ) -> HttpResponse:
        try:
            response = await self.page.request.fetch(
                url,
                method=method,
                data=data,
                headers=dict(headers or {}),
                timeout=timeout_ms,
                fail_on_status_code=False,
            )
            try:
                text = await response.text()
            finally:
                await response.dispose()
        except PlaywrightTimeoutError as exc:
            raise NavigationError(url, f"timeout after {timeout_ms}ms") from exc
        except PlaywrightError as exc:
            if is_closed_error(exc):
                raise DriverError(first_line(exc)) from exc
            raise NavigationError(url, first_line(exc)) from exc

        return HttpResponse(
            url=response.url,
            status=response.status,
            headers=response.headers,
            text=text,
        )

    async def set_viewport(self, width: int, height: int) -> None:
        try:
            await self.page.set_viewport_size({"width": width, "height": height})
        except PlaywrightError as exc:
            raise DriverError(first_line(exc)) from exc

    async def clear_state(self) -> None:
        try:
            await self.context.clear_cookies()
            if self.page.url.startswith("http"):
                await self.page.evaluate(CLEAR_STORAGE_SCRIPT)
        except PlaywrightError as exc:
            raise DriverError(first_line(exc)) from exc

    def on(self, event: PageEvent, handler: EventHandler) -> None:
        adapt = EVENT_ADAPTERS[event]

        def listener(payload: Any) -> Any:
            return handler(adapt(payload))

        self._listeners[(event, handler)] = listener
        self.page.on(event, listener)

    def remove_listener(self, event: PageEvent, handler: EventHandler) -> None:
        if (listener := self._listeners.pop((event, handler), None)) is not None:
            self.page.remove_listener(event, listener)

    async def close(self) -> None:
        self._listeners.clear()
        try:
            await self.context.close()
        except PlaywrightError as exc:
            raise DriverError(first_line(exc)) from exc

    def _raise_for(self, selector: str, exc: PlaywrightError) -> Any:
        if is_closed_error(exc):
            raise DriverError(first_line(exc)) from exc
        raise InteractionError(selector, first_line(exc)) from exc


@dataclass(frozen=True, kw_only=True)
class PlaywrightDriver(BrowserDriver):
    """Browser driver backed by Playwright."""

    config: PlaywrightConfig
    browser: Browser = field(repr=False)

    @classmethod
    @asynccontextmanager
    async def from_config(
        cls, config: PlaywrightConfig
    ) -> AsyncGenerator["PlaywrightDriver", None]:
        """Launch the configured browser with managed lifecycle."""
        async with async_playwright() as playwright:
            launcher = getattr(playwright, config.browser)
            log.info(
                "Launching browser: browser=%s, headless=%s, channel=%s",
                config.browser,
                config.headless,
                config.channel,
            )
            try:
                browser = await launcher.launch(
                    headless=config.headless,
                    slow_mo=config.slow_mo_ms,
                    args=list(config.launch_args),
                    channel=config.channel,
                )
            except PlaywrightError as exc:
                raise DriverError(f"Failed to launch browser: {first_line(exc)}") from exc
            try:
                yield cls(config=config, browser=browser)
            finally:
                await browser.close()
                log.info("Browser closed")

    async def new_page(self, config: SessionConfig) -> DriverPage:
        """Open a page in a fresh context configured from ``config``."""
        geolocation = config.simulated_geolocation
        try:
            context = await self.browser.new_context(
                viewport={
                    "width": config.viewport.width,
                    "height": config.viewport.height,
                },
                geolocation=(
                    geolocation.model_dump() if geolocation is not None else None
                ),
                permissions=sorted(config.granted_permissions),
                user_agent=config.user_agent,
            )
            context.set_default_timeout(config.default_timeout_ms)
            page = await context.new_page()
        except PlaywrightError as exc:
            raise DriverError(f"Failed to open page: {first_line(exc)}") from exc

        return PlaywrightPage(page=page, context=context)
