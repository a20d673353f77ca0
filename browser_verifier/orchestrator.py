"""Orchestrator running verification pipelines for one or more targets."""

import asyncio
import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from browser_verifier.aggregator import ResultAggregator
from browser_verifier.drivers.base import BrowserDriver
from browser_verifier.models.config import Credential, RunSettings, Target
from browser_verifier.models.outcome import Failed, NotRun
from browser_verifier.models.result import RunReport, StageResult, TestEntry
from browser_verifier.notifiers.base import NotificationChannel
from browser_verifier.pipeline import Stage, StagePipeline
from browser_verifier.redaction import Redactor
from browser_verifier.report import ReportEmitter, ReportPaths
from browser_verifier.screenshots import ScreenshotArchiver, slugify
from browser_verifier.session import BrowserSession

log = logging.getLogger(__name__)

type StagesFactory = Callable[[Target], Sequence[Stage]]

ERROR_STAGE = "orchestration"


@dataclass(frozen=True, kw_only=True)
class TargetResult:
    """Report of one target together with where it was written."""

    target: Target
    report: RunReport
    paths: ReportPaths | None = None
    published: bool | None = None


def error_report(
    target: Target,
    error: BaseException,
    *,
    completed: Sequence[StageResult] = (),
    pending: Sequence[Stage] = (),
    redactor: Redactor | None = None,
) -> RunReport:
    """Build a CRITICAL report for a target whose run could not complete.

    ``completed`` stages are kept as they are. Every case of a ``pending``
    stage is reported as not run, so the report still lists each declared
    case.
    """
    reason = f"{type(error).__name__}: {error}"
    if redactor is not None:
        reason = redactor.text(reason)
    not_run = [
        StageResult(
            name=stage.name,
            required=stage.required,
            entries=[
                TestEntry(
                    name=case.name,
                    category=case.category,
                    outcome=NotRun(f"not run: {reason}"),
                    duration_ms=0,
                )
                for case in stage.cases
            ],
        )
        for stage in pending
    ]
    entry = TestEntry(
        name="verification run",
        category="functional",
        outcome=Failed(reason),
        duration_ms=0,
    )
    stage = StageResult(name=ERROR_STAGE, required=True, entries=[entry])
    return ResultAggregator().aggregate(target, [*completed, *not_run, stage])


@dataclass(kw_only=True)
class Orchestrator:
    """Runs one pipeline per target on a shared browser driver.

    Every target gets its own session, diagnostics collector, screenshot
    archiver and aggregator; reports are written to
    ``<output_dir>/<target>/``, or ``<output_dir>/<target>/<browser>/`` for
    targets bound to one of ``browser_drivers``.
    """

    driver: BrowserDriver
    output_dir: Path
    browser_drivers: Mapping[str, BrowserDriver] = field(default_factory=dict)
    credentials: Mapping[str, Credential] = field(default_factory=dict)
    settings: RunSettings = field(default_factory=RunSettings)
    emitter: ReportEmitter = field(default_factory=ReportEmitter)
    channel: NotificationChannel | None = None
    notify_target: str | None = None
    _pipelines: list[StagePipeline] = field(default_factory=list, init=False)
    _cancelled: bool = field(default=False, init=False)

    def cancel(self) -> None:
        """Cancel every running pipeline and any that has not started yet."""
        self._cancelled = True
        for pipeline in self._pipelines:
            pipeline.cancel()

    async def run_targets(
        self, targets: Sequence[Target], stages_for: StagesFactory
    ) -> Sequence[TargetResult]:
        """Verify all ``targets`` concurrently.

        Args:
            targets: Web applications to verify
            stages_for: Builds the stages to run against a target

        Returns:
            One result per target, in the order of ``targets``

        """
        if not targets:
            log.info("No targets provided")
            return []

        log.info("Verifying %d target(s)...", len(targets))
        tasks = [self._verify(target, stages_for) for target in targets]

        results = await asyncio.gather(*tasks, return_exceptions=True)
        log.info("Verification completed")

        final_results: list[TargetResult] = []
        for target, result in zip(targets, results, strict=True):
            if isinstance(result, TargetResult):
                final_results.append(result)
            elif isinstance(result, Exception):
                log.error(
                    "Verification of %s failed: %s", target.label, result, exc_info=result
                )
                final_results.append(
                    await self._emit_error(target, error_report(target, result))
                )
            else:
                raise result

        return final_results

    def target_directory(self, target: Target) -> Path:
        directory = self.output_dir / slugify(target.name)
        if target.browser is not None:
            directory = directory / slugify(target.browser)
        return directory

    def driver_for(self, target: Target) -> BrowserDriver:
        if target.browser is None:
            return self.driver
        try:
            return self.browser_drivers[target.browser]
        except KeyError:
            raise ValueError(
                f"No driver launched for browser '{target.browser}'"
            ) from None

    async def _verify(self, target: Target, stages_for: StagesFactory) -> TargetResult:
        """Run the pipeline for one target and emit its report."""
        driver = self.driver_for(target)
        stages = stages_for(target)
        directory = self.target_directory(target)
        aggregator = ResultAggregator()
        pipeline = StagePipeline(
            stages=stages,
            session_factory=lambda: BrowserSession.open(driver, self.settings.session),
            target=target,
            credentials=self.credentials,
            settings=self.settings,
            archiver=ScreenshotArchiver(directory=directory / "screenshots"),
            on_stage_complete=aggregator.add_stage,
        )
        self._pipelines.append(pipeline)
        if self._cancelled:
            pipeline.cancel()

        log.info(
            "Verifying %s at %s (%d stage(s))", target.label, target.base_url, len(stages)
        )
        try:
            await pipeline.run()
        except Exception as exc:
            log.error("Pipeline for %s aborted: %s", target.label, exc, exc_info=exc)
            done = {stage.name for stage in aggregator.stages}
            report = error_report(
                target,
                exc,
                completed=aggregator.stages,
                pending=[stage for stage in stages if stage.name not in done],
                redactor=Redactor.for_credentials(self.credentials),
            )
            return await self._emit_error(target, report)

        report = aggregator.aggregate(target)
        log.info(
            "Target %s: %s, score %.2f",
            target.label,
            report.summary.status,
            report.summary.score,
        )
        return await self._emit(target, report)

    async def _emit(self, target: Target, report: RunReport) -> TargetResult:
        rendered = self.emitter.render(report)
        paths = await self.emitter.write(rendered, self.target_directory(target))

        published = None
        if self.channel is not None and self.notify_target:
            published = await self.emitter.publish(
                rendered, self.channel, self.notify_target
            )

        return TargetResult(target=target, report=report, paths=paths, published=published)

    async def _emit_error(self, target: Target, report: RunReport) -> TargetResult:
        try:
            return await self._emit(target, report)
        except OSError as exc:
            log.error("Report for %s could not be written: %s", target.label, exc)
            return TargetResult(target=target, report=report)
