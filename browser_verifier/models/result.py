"""Models for test execution results and the aggregated run report."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from browser_verifier.models.outcome import Outcome

type DiagnosticKind = Literal["console", "network", "error"]
type RunStatus = Literal["READY", "NEEDS_ATTENTION", "CRITICAL"]


@dataclass(frozen=True, kw_only=True)
class DiagnosticEvent:
    """A signal observed in the browser, not asserted by any test case."""

    kind: DiagnosticKind
    timestamp: float
    payload: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, kw_only=True)
class TestEntry:
    """Result of a single test case execution.

    Holds only the execution outcome; the enclosing stage carries context.
    """

    __test__ = False

    name: str
    category: str
    outcome: Outcome
    duration_ms: int
    screenshot_ref: str | None = None
    diagnostics: Sequence[DiagnosticEvent] = ()

    @property
    def status(self) -> str:
        return self.outcome.status


@dataclass(frozen=True, kw_only=True)
class StageResult:
    """Ordered entries for one stage, one per declared test case."""

    name: str
    required: bool
    entries: Sequence[TestEntry]

    def count(self, status: str) -> int:
        return sum(1 for entry in self.entries if entry.status == status)

    @property
    def pass_rate(self) -> float:
        if not self.entries:
            return 0.0
        return round(100 * self.count("passed") / len(self.entries), 2)


@dataclass(frozen=True, kw_only=True)
class RunSummary:
    """Counts, score and status of a run."""

    total: int
    passed: int
    failed: int
    warned: int
    not_run: int
    score: float
    status: RunStatus


@dataclass(frozen=True, kw_only=True)
class RunReport:
    """Terminal artifact of one run against one target."""

    timestamp: datetime
    target_name: str
    target_url: str
    summary: RunSummary
    stages: Sequence[StageResult]
    recommendations: Sequence[str]
    browser: str | None = None

    @property
    def screenshots(self) -> Sequence[str]:
        return [
            entry.screenshot_ref
            for stage in self.stages
            for entry in stage.entries
            if entry.screenshot_ref
        ]

    @property
    def diagnostics(self) -> Sequence[DiagnosticEvent]:
        return [
            event
            for stage in self.stages
            for entry in stage.entries
            for event in entry.diagnostics
        ]

    def failures(self) -> Sequence[tuple[str, TestEntry]]:
        """Return ``(stage name, entry)`` for every failed entry in order."""
        return [
            (stage.name, entry)
            for stage in self.stages
            for entry in stage.entries
            if entry.status == "failed"
        ]
