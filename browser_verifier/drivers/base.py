"""Abstract browser automation driver.

A driver launches a browser and hands out pages. Any driver implementing
this capability set is substitutable: the session layer only talks to
``BrowserDriver`` and ``DriverPage``, and only consumes the neutral event
payloads defined here.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from browser_verifier.models.config import SessionConfig, WaitPolicy

type PageEvent = Literal["console", "response", "pageerror", "dialog"]
type EventHandler = Callable[[Any], Awaitable[None] | None]


@dataclass(frozen=True, kw_only=True)
class ConsoleMessage:
    """A console call made by the page."""

    level: str
    text: str
    location: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, kw_only=True)
class NetworkResponse:
    """A response received by the page."""

    url: str
    method: str
    status: int
    latency_ms: float | None = None


@dataclass(frozen=True, kw_only=True)
class PageError:
    """An uncaught exception thrown by page scripts."""

    message: str
    stack: str | None = None


@dataclass(frozen=True, kw_only=True)
class HttpResponse:
    """Response of a request issued through the page's network stack."""

    url: str
    status: int
    headers: Mapping[str, str] = field(default_factory=dict)
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class DriverDialog(ABC):
    """A native dialog (alert, confirm, prompt, beforeunload) awaiting action."""

    @property
    @abstractmethod
    def type(self) -> str:
        """Dialog type as reported by the browser."""

    @property
    @abstractmethod
    def message(self) -> str:
        """Text shown by the dialog."""

    @property
    @abstractmethod
    def default_value(self) -> str:
        """Default prompt value, empty for other dialog types."""

    @abstractmethod
    async def accept(self, prompt_text: str | None = None) -> None:
        """Accept the dialog, optionally answering a prompt."""

    @abstractmethod
    async def dismiss(self) -> None:
        """Dismiss the dialog."""


class DriverPage(ABC):
    """One automated page with its own browser context."""

    @property
    @abstractmethod
    def url(self) -> str:
        """URL currently loaded in the page."""

    @abstractmethod
    async def goto(
        self, url: str, *, wait_until: WaitPolicy, timeout_ms: int
    ) -> HttpResponse | None:
        """Navigate to ``url``.

        Returns:
            The main resource response, or None when the navigation did not
            produce one (same-document navigation, about:blank).

        Raises:
            NavigationError: On timeout or aborted navigation
            DriverError: If the page or browser is no longer usable

        """

    @abstractmethod
    async def fill(self, selector: str, value: str, *, timeout_ms: int) -> None:
        """Fill an input. Raises InteractionError if it cannot be found."""

    @abstractmethod
    async def click(self, selector: str, *, timeout_ms: int) -> None:
        """Click an element. Raises InteractionError if it cannot be found."""

    @abstractmethod
    async def wait_for_selector(self, selector: str, *, timeout_ms: int) -> bool:
        """Wait for ``selector`` to be attached; return False on timeout."""

    @abstractmethod
    async def text_content(self, selector: str) -> str | None:
        """Text of the first matching element, None when nothing matches."""

    @abstractmethod
    async def title(self) -> str:
        """Document title."""

    @abstractmethod
    async def evaluate(self, script: str, arg: Any = None) -> Any:
        """Evaluate a script expression in the page and return its value."""

    @abstractmethod
    async def screenshot(self, *, full_page: bool = True) -> bytes:
        """Capture the page as PNG bytes."""

    @abstractmethod
    async def fetch(
        self,
        url: str,
        *,
        method: str = "GET",
        data: Any = None,
        headers: Mapping[str, str] | None = None,
        timeout_ms: int,
    ) -> HttpResponse:
        """Issue an HTTP request sharing the page's cookies."""

    @abstractmethod
    async def set_viewport(self, width: int, height: int) -> None:
        """Resize the viewport."""

    @abstractmethod
    async def clear_state(self) -> None:
        """Drop cookies and web storage so the page is anonymous again."""

    @abstractmethod
    def on(self, event: PageEvent, handler: EventHandler) -> None:
        """Subscribe ``handler`` to a page event."""

    @abstractmethod
    def remove_listener(self, event: PageEvent, handler: EventHandler) -> None:
        """Unsubscribe a handler previously passed to ``on``."""

    @abstractmethod
    async def close(self) -> None:
        """Close the page and its browser context."""


class BrowserDriver(ABC):
    """A launched browser able to open isolated pages."""

    @abstractmethod
    async def new_page(self, config: SessionConfig) -> DriverPage:
        """Open a page in a fresh context configured from ``config``.

        Raises:
            DriverError: If the browser cannot create a new context

        """
