"""Diagnostics collection for browser sessions.

The collector buffers console messages, network responses and uncaught
script errors as ``DiagnosticEvent`` records. Each session owns its own
collector; events are attributed to a test case by timestamp.
"""

import logging
import time
from collections import deque
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from browser_verifier.drivers.base import ConsoleMessage, NetworkResponse, PageError
from browser_verifier.models.result import DiagnosticEvent, DiagnosticKind
from browser_verifier.session import BrowserSession

log = logging.getLogger(__name__)

DEFAULT_CAPACITY = 10_000


@dataclass(frozen=True, kw_only=True)
class DiagnosticCounts:
    """Summary of noteworthy diagnostics."""

    console_errors: int = 0
    failed_responses: int = 0
    server_errors: int = 0
    uncaught_errors: int = 0


@dataclass(kw_only=True)
class DiagnosticsCollector:
    """Bounded, append-only buffer of events observed on one session."""

    capacity: int = DEFAULT_CAPACITY
    clock: Callable[[], float] = time.time
    _events: deque[DiagnosticEvent] = field(init=False, repr=False)
    _session: BrowserSession | None = field(default=None, init=False, repr=False)
    _dropped: int = field(default=0, init=False)

    def __post_init__(self) -> None:
        self._events = deque(maxlen=self.capacity)

    @property
    def dropped(self) -> int:
        """Number of events evicted because the buffer was full."""
        return self._dropped

    def attach(self, session: BrowserSession) -> None:
        """Subscribe to the session's console, response and error events."""
        if self._session is not None:
            raise RuntimeError("Collector is already attached to a session")
        session.subscribe("console", self._on_console)
        session.subscribe("response", self._on_response)
        session.subscribe("pageerror", self._on_page_error)
        self._session = session

    def detach(self, session: BrowserSession) -> None:
        """Unsubscribe from ``session``; buffered events are kept."""
        if self._session is not session:
            return
        session.unsubscribe("console", self._on_console)
        session.unsubscribe("response", self._on_response)
        session.unsubscribe("pageerror", self._on_page_error)
        self._session = None

    def events(
        self, since: float | None = None, until: float | None = None
    ) -> Sequence[DiagnosticEvent]:
        """Return buffered events captured in ``[since, until]``, oldest first."""
        return [
            event
            for event in self._events
            if (since is None or event.timestamp >= since)
            and (until is None or event.timestamp <= until)
        ]

    def counts(self) -> DiagnosticCounts:
        console_errors = failed = server_errors = uncaught = 0
        for event in self._events:
            if event.kind == "console" and event.payload.get("level") == "error":
                console_errors += 1
            elif event.kind == "network":
                status = event.payload.get("status", 0)
                if status >= 400:
                    failed += 1
                if status >= 500:
                    server_errors += 1
            elif event.kind == "error":
                uncaught += 1
        return DiagnosticCounts(
            console_errors=console_errors,
            failed_responses=failed,
            server_errors=server_errors,
            uncaught_errors=uncaught,
        )

    def record(self, kind: DiagnosticKind, payload: dict[str, object]) -> None:
        """Append an event stamped with the collector's clock."""
        if len(self._events) == self._events.maxlen:
            self._dropped += 1
        self._events.append(
            DiagnosticEvent(kind=kind, timestamp=self.clock(), payload=payload)
        )

    def _on_console(self, message: ConsoleMessage) -> None:
        self.record(
            "console",
            {
                "level": message.level,
                "text": message.text,
                "location": dict(message.location),
            },
        )

    def _on_response(self, response: NetworkResponse) -> None:
        self.record(
            "network",
            {
                "url": response.url,
                "method": response.method,
                "status": response.status,
                "latency_ms": response.latency_ms,
            },
        )

    def _on_page_error(self, error: PageError) -> None:
        log.debug("Uncaught page error: %s", error.message)
        self.record("error", {"message": error.message, "stack": error.stack})
