"""Staged test pipeline with per-test isolation."""

import asyncio
import logging
import time
from collections.abc import Callable, Mapping, Sequence
from contextlib import AbstractAsyncContextManager, AsyncExitStack
from dataclasses import dataclass, field
from enum import StrEnum

from browser_verifier.cases.base import CaseContext, TestCase
from browser_verifier.diagnostics import DiagnosticsCollector
from browser_verifier.errors import DriverError, VerificationError
from browser_verifier.models.config import Credential, RunSettings, Target
from browser_verifier.models.outcome import (
    CANCELLED_REASON,
    DEPENDENCY_SKIP_REASON,
    TIMEOUT_REASON,
    Failed,
    NotRun,
    Outcome,
    Warned,
)
from browser_verifier.models.result import StageResult, TestEntry
from browser_verifier.redaction import Redactor
from browser_verifier.screenshots import ScreenshotArchiver
from browser_verifier.session import BrowserSession

log = logging.getLogger(__name__)

type SessionFactory = Callable[[], AbstractAsyncContextManager[BrowserSession]]


class PipelineState(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"


class StageState(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"


@dataclass(frozen=True, kw_only=True)
class Stage:
    """An ordered group of test cases forming one verification phase."""

    name: str
    cases: Sequence[TestCase]
    required: bool = True


@dataclass(kw_only=True)
class _ActiveSession:
    scope: AsyncExitStack
    context: CaseContext
    collector: DiagnosticsCollector


@dataclass(kw_only=True)
class StagePipeline:
    """Runs stages sequentially on one browser session at a time.

    Every declared test case records exactly one outcome. Failures are
    isolated per case; a driver failure fails the rest of its stage and the
    next stage starts on a fresh session. ``cancel`` takes effect between
    cases and marks everything not yet started as not run.
    """

    stages: Sequence[Stage]
    session_factory: SessionFactory
    target: Target
    credentials: Mapping[str, Credential] = field(default_factory=dict)
    settings: RunSettings = field(default_factory=RunSettings)
    archiver: ScreenshotArchiver | None = None
    on_stage_complete: Callable[[StageResult], None] | None = None
    clock: Callable[[], float] = time.time
    state: PipelineState = field(default=PipelineState.PENDING, init=False)
    stage_states: dict[str, StageState] = field(default_factory=dict, init=False)
    _outcomes: dict[str, Outcome] = field(default_factory=dict, init=False)
    _cancelled: asyncio.Event = field(default_factory=asyncio.Event, init=False)
    _active: _ActiveSession | None = field(default=None, init=False, repr=False)
    _redactor: Redactor = field(init=False, repr=False)

    def __post_init__(self) -> None:
        seen_stages: set[str] = set()
        seen_cases: set[str] = set()
        for stage in self.stages:
            if stage.name in seen_stages:
                raise ValueError(f"Duplicate stage name: {stage.name}")
            seen_stages.add(stage.name)
            for case in stage.cases:
                if case.name in seen_cases:
                    raise ValueError(f"Duplicate test case name: {case.name}")
                missing = [dep for dep in case.depends_on if dep not in seen_cases]
                if missing:
                    raise ValueError(
                        f"Test case '{case.name}' depends on undeclared or later "
                        f"cases: {missing}"
                    )
                seen_cases.add(case.name)
        self.stage_states = {stage.name: StageState.PENDING for stage in self.stages}
        self._redactor = Redactor.for_credentials(self.credentials)

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Stop before the next test case starts."""
        if not self._cancelled.is_set():
            log.warning("Run cancellation requested for %s", self.target.name)
            self._cancelled.set()

    async def run(self) -> Sequence[StageResult]:
        """Execute all stages and return one StageResult per stage.

        Returns:
            Stage results in declaration order

        """
        if self.state is not PipelineState.PENDING:
            raise RuntimeError("Pipeline has already been run")

        self.state = PipelineState.RUNNING
        results: list[StageResult] = []
        try:
            for stage in self.stages:
                result = await self._run_stage(stage)
                results.append(result)
                if self.on_stage_complete is not None:
                    self.on_stage_complete(result)
        finally:
            await self._release_session()
            self.state = PipelineState.COMPLETED

        return results

    async def _run_stage(self, stage: Stage) -> StageResult:
        self.stage_states[stage.name] = StageState.RUNNING
        log.info("Stage %s: running %d case(s)", stage.name, len(stage.cases))

        entries: list[TestEntry] = []
        cases = list(stage.cases)
        for index, case in enumerate(cases):
            if self._cancelled.is_set():
                entries.extend(
                    self._static_entry(rest, NotRun(CANCELLED_REASON))
                    for rest in cases[index:]
                )
                break

            if self._has_failed_dependency(case):
                log.info("Case %s skipped: dependency failed", case.name)
                entries.append(
                    self._static_entry(case, Warned(DEPENDENCY_SKIP_REASON))
                )
                self._outcomes[case.name] = entries[-1].outcome
                continue

            try:
                active = await self._acquire_session()
            except DriverError as exc:
                log.error("Could not open browser session: %s", exc)
                entries.extend(
                    self._static_entry(rest, Failed(str(exc))) for rest in cases[index:]
                )
                break
            except Exception as exc:
                log.exception("Could not open browser session")
                reason = f"{type(exc).__name__}: {exc}"
                entries.extend(
                    self._static_entry(rest, Failed(reason)) for rest in cases[index:]
                )
                break

            entry, driver_failed = await self._run_case(case, active)
            entries.append(entry)
            self._outcomes[case.name] = entry.outcome
            if driver_failed:
                log.error(
                    "Session unusable after %s, failing rest of stage %s",
                    case.name,
                    stage.name,
                )
                entries.extend(
                    self._static_entry(rest, Failed(entry.outcome.message))
                    for rest in cases[index + 1 :]
                )
                await self._release_session()
                break

        for entry in entries:
            self._outcomes[entry.name] = entry.outcome
        self.stage_states[stage.name] = StageState.DONE

        return StageResult(name=stage.name, required=stage.required, entries=entries)

    async def _run_case(
        self, case: TestCase, active: _ActiveSession
    ) -> tuple[TestEntry, bool]:
        """Run one case and convert whatever happens into exactly one outcome."""
        context = active.context
        context.screenshots.clear()
        timeout = case.timeout or self.settings.case_timeout
        driver_failed = False
        started_at = self.clock()
        started = time.perf_counter()

        try:
            async with asyncio.timeout(timeout):
                outcome = await case.run(context)
        except TimeoutError:
            outcome = Failed(TIMEOUT_REASON)
        except DriverError as exc:
            outcome = Failed(str(exc))
            driver_failed = True
        except VerificationError as exc:
            outcome = Failed(str(exc))
        except Exception as exc:
            log.exception("Unexpected error in case %s", case.name)
            outcome = Failed(f"{type(exc).__name__}: {exc}")

        duration_ms = int((time.perf_counter() - started) * 1000)
        outcome = self._redactor.outcome(outcome)

        screenshot_ref = await self._screenshot(case, outcome, context, driver_failed)
        if screenshot_ref is None and context.screenshots:
            screenshot_ref = context.screenshots[-1]

        diagnostics = self._redactor.events(
            active.collector.events(since=started_at, until=self.clock())
        )

        log.info(
            "Case %s: %s (%dms)%s",
            case.name,
            outcome.status,
            duration_ms,
            f" - {outcome.message}" if outcome.message else "",
        )
        entry = TestEntry(
            name=case.name,
            category=case.category,
            outcome=outcome,
            duration_ms=duration_ms,
            screenshot_ref=screenshot_ref,
            diagnostics=diagnostics,
        )
        return entry, driver_failed

    async def _screenshot(
        self,
        case: TestCase,
        outcome: Outcome,
        context: CaseContext,
        driver_failed: bool,
    ) -> str | None:
        if self.archiver is None or driver_failed:
            return None
        policy = self.settings.screenshot_policy
        if policy == "always" or (policy == "on_failure" and outcome.status == "failed"):
            return await self.archiver.capture(
                context.session, f"{self.target.name}-{case.name}"
            )
        return None

    def _has_failed_dependency(self, case: TestCase) -> bool:
        return any(
            self._outcomes[dep].status != "passed" for dep in case.depends_on
        )

    def _static_entry(self, case: TestCase, outcome: Outcome) -> TestEntry:
        return TestEntry(
            name=case.name,
            category=case.category,
            outcome=self._redactor.outcome(outcome),
            duration_ms=0,
        )

    async def _acquire_session(self) -> _ActiveSession:
        if self._active is not None:
            return self._active

        scope = AsyncExitStack()
        try:
            session = await scope.enter_async_context(self.session_factory())
        except BaseException:
            await scope.aclose()
            raise
        collector = DiagnosticsCollector(
            capacity=self.settings.diagnostics_capacity, clock=self.clock
        )
        collector.attach(session)
        scope.callback(collector.detach, session)

        context = CaseContext(
            session=session,
            target=self.target,
            credentials=self.credentials,
            settings=self.settings,
            archiver=self.archiver,
        )
        self._active = _ActiveSession(scope=scope, context=context, collector=collector)
        return self._active

    async def _release_session(self) -> None:
        if self._active is None:
            return
        active, self._active = self._active, None
        await active.scope.aclose()
