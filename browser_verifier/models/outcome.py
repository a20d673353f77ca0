"""Outcomes a test case can record."""

from dataclasses import dataclass
from typing import ClassVar, Literal

type OutcomeStatus = Literal["passed", "failed", "warned", "not_run"]

DEPENDENCY_SKIP_REASON = "skipped: dependency failed"
CANCELLED_REASON = "not run: run cancelled"
TIMEOUT_REASON = "timeout"


@dataclass(frozen=True)
class Passed:
    """The expected outcome was observed."""

    details: str = ""
    status: ClassVar[OutcomeStatus] = "passed"

    @property
    def message(self) -> str:
        return self.details


@dataclass(frozen=True)
class Failed:
    """The expected outcome was not observed."""

    reason: str
    status: ClassVar[OutcomeStatus] = "failed"

    @property
    def message(self) -> str:
        return self.reason


@dataclass(frozen=True)
class Warned:
    """Outcome worth attention that does not fail the case."""

    reason: str
    status: ClassVar[OutcomeStatus] = "warned"

    @property
    def message(self) -> str:
        return self.reason


@dataclass(frozen=True)
class NotRun:
    """The run ended before the case was reached."""

    reason: str = CANCELLED_REASON
    status: ClassVar[OutcomeStatus] = "not_run"

    @property
    def message(self) -> str:
        return self.reason


type Outcome = Passed | Failed | Warned | NotRun
