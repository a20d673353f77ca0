"""Browser session lifecycle: navigation, interaction and dialog policy."""

import asyncio
import logging
import time
from collections.abc import AsyncGenerator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from browser_verifier.drivers.base import (
    BrowserDriver,
    DriverDialog,
    DriverPage,
    EventHandler,
    HttpResponse,
    PageEvent,
)
from browser_verifier.errors import DriverError, NavigationError
from browser_verifier.models.config import DialogAction, SessionConfig, WaitPolicy

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class NavigationResult:
    """Outcome of a successful navigation."""

    url: str
    final_url: str
    status: int | None
    duration_ms: int


@dataclass(frozen=True, kw_only=True)
class HandledDialog:
    """A native dialog resolved by the session's dialog policy."""

    type: str
    message: str
    action: DialogAction


@dataclass(kw_only=True)
class BrowserSession:
    """One live automation handle over a driver page.

    Sessions are acquired with ``BrowserSession.open`` which guarantees the
    page is closed on every exit path. At most one navigation runs at a time.
    """

    page: DriverPage
    config: SessionConfig
    handled_dialogs: list[HandledDialog] = field(default_factory=list)
    _navigation_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)
    _closed: bool = field(default=False, repr=False)

    @classmethod
    @asynccontextmanager
    async def open(
        cls, driver: BrowserDriver, config: SessionConfig
    ) -> AsyncGenerator["BrowserSession", None]:
        """Open a session with the dialog policy installed."""
        page = await driver.new_page(config)
        session = cls(page=page, config=config)
        page.on("dialog", session._resolve_dialog)
        log.debug("Session opened: viewport=%s", config.viewport)
        try:
            yield session
        finally:
            await session.close()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def current_url(self) -> str:
        self._ensure_open()
        return self.page.url

    @property
    def timeout_ms(self) -> int:
        return self.config.default_timeout_ms

    async def navigate(
        self, url: str, wait_policy: WaitPolicy = "load"
    ) -> NavigationResult:
        """Navigate to ``url`` and wait according to ``wait_policy``.

        Raises:
            NavigationError: On timeout, aborted load or an error status
            DriverError: If the session is unusable

        """
        self._ensure_open()
        async with self._navigation_lock:
            started = time.perf_counter()
            response = await self.page.goto(
                url, wait_until=wait_policy, timeout_ms=self.timeout_ms
            )
            duration_ms = int((time.perf_counter() - started) * 1000)

        status = response.status if response is not None else None
        if status is not None and status >= 400:
            raise NavigationError(url, str(status))

        log.debug("Navigated to %s: status=%s in %dms", url, status, duration_ms)
        return NavigationResult(
            url=url,
            final_url=self.page.url,
            status=status,
            duration_ms=duration_ms,
        )

    async def fill(self, selector: str, value: str) -> None:
        self._ensure_open()
        await self.page.fill(selector, value, timeout_ms=self.timeout_ms)

    async def click(self, selector: str) -> None:
        self._ensure_open()
        await self.page.click(selector, timeout_ms=self.timeout_ms)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        self._ensure_open()
        return await self.page.evaluate(script, arg)

    async def screenshot(self, *, full_page: bool = True) -> bytes:
        self._ensure_open()
        return await self.page.screenshot(full_page=full_page)

    async def wait_for_selector(
        self, selector: str, timeout_ms: int | None = None
    ) -> bool:
        self._ensure_open()
        return await self.page.wait_for_selector(
            selector, timeout_ms=timeout_ms or self.timeout_ms
        )

    async def has_selector(self, selector: str) -> bool:
        """Check for an element without waiting."""
        self._ensure_open()
        return await self.page.text_content(selector) is not None

    async def text_content(self, selector: str) -> str | None:
        self._ensure_open()
        return await self.page.text_content(selector)

    async def title(self) -> str:
        self._ensure_open()
        return await self.page.title()

    async def request(
        self,
        method: str,
        url: str,
        *,
        data: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> HttpResponse:
        """Issue an HTTP request through the page's network stack."""
        self._ensure_open()
        return await self.page.fetch(
            url,
            method=method,
            data=data,
            headers=headers,
            timeout_ms=self.timeout_ms,
        )

    async def set_viewport(self, width: int, height: int) -> None:
        self._ensure_open()
        await self.page.set_viewport(width, height)

    async def reset_state(self) -> None:
        """Forget cookies and storage, logging out of the target."""
        self._ensure_open()
        await self.page.clear_state()

    def subscribe(self, event: PageEvent, handler: EventHandler) -> None:
        self._ensure_open()
        self.page.on(event, handler)

    def unsubscribe(self, event: PageEvent, handler: EventHandler) -> None:
        self.page.remove_listener(event, handler)

    async def close(self) -> None:
        """Tear down the dialog policy and close the page. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self.page.remove_listener("dialog", self._resolve_dialog)
        try:
            await self.page.close()
        except DriverError as exc:
            log.warning("Page did not close cleanly: %s", exc)
        log.debug("Session closed")

    async def _resolve_dialog(self, dialog: DriverDialog) -> None:
        action = self.config.dialog_policy.action_for(dialog.type)
        log.info(
            "Auto-resolving %s dialog with %s: %s", dialog.type, action, dialog.message
        )
        self.handled_dialogs.append(
            HandledDialog(type=dialog.type, message=dialog.message, action=action)
        )
        if action == "accept":
            prompt_text = dialog.default_value if dialog.type == "prompt" else None
            await dialog.accept(prompt_text)
        else:
            await dialog.dismiss()

    def _ensure_open(self) -> None:
        if self._closed:
            raise DriverError("session is closed")
