"""Render, persist and publish run reports.

The structured form is the single source of truth: the narrative and the
notification summary are derived from it and never from the report object.
"""

import asyncio
import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiohttp

from browser_verifier.errors import PublishError
from browser_verifier.models.result import DiagnosticEvent, RunReport, TestEntry
from browser_verifier.notifiers.base import NotificationChannel

log = logging.getLogger(__name__)

STATUS_SYMBOLS = {
    "passed": "✅",
    "failed": "❌",
    "warned": "⚠️",
    "not_run": "⏹️",
}

TOP_FAILURES = 5


@dataclass(frozen=True, kw_only=True)
class RenderedReport:
    """Machine-readable and human-readable renderings of one report."""

    structured: Mapping[str, Any]
    narrative: str


@dataclass(frozen=True, kw_only=True)
class ReportPaths:
    structured: Path
    narrative: Path


def _iso(timestamp: float | datetime) -> str:
    if isinstance(timestamp, datetime):
        return timestamp.isoformat()
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def _diagnostic(event: DiagnosticEvent) -> dict[str, Any]:
    return {
        "kind": event.kind,
        "timestamp": _iso(event.timestamp),
        "payload": dict(event.payload),
    }


def _test(entry: TestEntry) -> dict[str, Any]:
    return {
        "name": entry.name,
        "outcome": entry.status,
        "durationMs": entry.duration_ms,
        "screenshotRef": entry.screenshot_ref,
        "diagnostics": [_diagnostic(event) for event in entry.diagnostics],
    }


def _extensions(report: RunReport) -> dict[str, Any]:
    target: dict[str, Any] = {"name": report.target_name, "url": report.target_url}
    if report.browser is not None:
        target["browser"] = report.browser
    return {
        "target": target,
        "summary": {"warned": report.summary.warned, "notRun": report.summary.not_run},
        "stages": [
            {
                "name": stage.name,
                "required": stage.required,
                "passRate": stage.pass_rate,
                "tests": [
                    {
                        "name": entry.name,
                        "category": entry.category,
                        "message": entry.outcome.message,
                    }
                    for entry in stage.entries
                ],
            }
            for stage in report.stages
        ],
    }


def to_structured(report: RunReport) -> dict[str, Any]:
    """Serialize a report into the stable wire format.

    The four fixed top-level keys and the objects under them carry exactly the
    fixed fields. Everything else lives under ``extensions``, which mirrors
    the stage and test order of ``stages``.
    """
    summary = report.summary
    return {
        "timestamp": _iso(report.timestamp),
        "summary": {
            "total": summary.total,
            "passed": summary.passed,
            "failed": summary.failed,
            "score": summary.score,
            "status": summary.status,
        },
        "stages": [
            {
                "name": stage.name,
                "tests": [_test(entry) for entry in stage.entries],
            }
            for stage in report.stages
        ],
        "recommendations": list(report.recommendations),
        "extensions": _extensions(report),
    }


def merged_view(structured: Mapping[str, Any]) -> dict[str, Any]:
    """Fold ``extensions`` back into the fixed objects for rendering."""
    extensions = structured["extensions"]
    stages = [
        {
            **stage,
            "required": extra["required"],
            "passRate": extra["passRate"],
            "tests": [
                {**test, **test_extra}
                for test, test_extra in zip(stage["tests"], extra["tests"], strict=True)
            ],
        }
        for stage, extra in zip(structured["stages"], extensions["stages"], strict=True)
    ]
    return {
        **structured,
        "summary": {**structured["summary"], **extensions["summary"]},
        "stages": stages,
        "target": extensions["target"],
    }


def _target_label(target: Mapping[str, Any]) -> str:
    if browser := target.get("browser"):
        return f"{target['name']} [{browser}]"
    return target["name"]


def top_failures(structured: Mapping[str, Any], limit: int = TOP_FAILURES) -> Sequence[str]:
    """First ``limit`` failures as ``stage / test: message`` lines."""
    failures = [
        f"{stage['name']} / {test['name']}: {test['message']}"
        for stage in merged_view(structured)["stages"]
        for test in stage["tests"]
        if test["outcome"] == "failed"
    ]
    return failures[:limit]


def to_narrative(structured: Mapping[str, Any]) -> str:
    """Render the structured report as a Markdown document."""
    view = merged_view(structured)
    summary = view["summary"]
    target = view["target"]
    lines = [
        f"# Verification report: {_target_label(target)}",
        "",
        f"- Target: {target['url']}",
        f"- Generated: {structured['timestamp']}",
        f"- Status: **{summary['status']}**",
        f"- Score: {summary['score']:.2f} / 100",
        (
            f"- Cases: {summary['total']} total, {summary['passed']} passed, "
            f"{summary['failed']} failed, {summary['warned']} warned, "
            f"{summary['notRun']} not run"
        ),
        "",
        "## Stages",
    ]

    for stage in view["stages"]:
        required = "required" if stage["required"] else "optional"
        lines += [
            "",
            f"### {stage['name']} ({required}, {stage['passRate']:.1f}% passed)",
            "",
            "| | Test | Outcome | Duration | Details |",
            "|---|---|---|---|---|",
        ]
        for test in stage["tests"]:
            symbol = STATUS_SYMBOLS.get(test["outcome"], "?")
            details = test["message"].replace("|", "\\|")
            if test["screenshotRef"]:
                details += f" (screenshot: `{test['screenshotRef']}`)"
            lines.append(
                f"| {symbol} | {test['name']} | {test['outcome']} | "
                f"{test['durationMs']}ms | {details} |"
            )
        noisy = [
            (test["name"], event)
            for test in stage["tests"]
            for event in test["diagnostics"]
            if _noteworthy(event)
        ]
        if noisy:
            lines += ["", "Diagnostics:", ""]
            lines += [f"- {name}: {_describe(event)}" for name, event in noisy]

    lines += ["", "## Recommendations", ""]
    lines += [f"{index}. {text}" for index, text in enumerate(structured["recommendations"], 1)]
    return "\n".join(lines) + "\n"


def _noteworthy(event: Mapping[str, Any]) -> bool:
    payload = event["payload"]
    if event["kind"] == "error":
        return True
    if event["kind"] == "console":
        return payload.get("level") in ("error", "warning")
    return (payload.get("status") or 0) >= 400


def _describe(event: Mapping[str, Any]) -> str:
    payload = event["payload"]
    match event["kind"]:
        case "console":
            return f"console {payload.get('level')}: {payload.get('text')}"
        case "network":
            return f"HTTP {payload.get('status')} {payload.get('method')} {payload.get('url')}"
        case _:
            return f"uncaught error: {payload.get('message')}"


def summary_text(structured: Mapping[str, Any]) -> str:
    """Condensed notification text: target, score, status and top failures."""
    view = merged_view(structured)
    summary = view["summary"]
    target = view["target"]
    lines = [
        f"Verification {summary['status']}: {_target_label(target)} ({target['url']})",
        (
            f"Score {summary['score']:.2f}/100 - {summary['passed']}/{summary['total']} "
            f"passed, {summary['failed']} failed, {summary['warned']} warned"
        ),
    ]
    if failures := top_failures(structured):
        lines.append("Top failures:")
        lines += [f"- {failure}" for failure in failures]
    return "\n".join(lines)


@dataclass(frozen=True, kw_only=True)
class ReportEmitter:
    """Renders reports, writes them to disk and publishes summaries."""

    def render(self, report: RunReport) -> RenderedReport:
        structured = to_structured(report)
        return RenderedReport(structured=structured, narrative=to_narrative(structured))

    async def write(self, rendered: RenderedReport, output_dir: Path) -> ReportPaths:
        """Persist both renderings under ``output_dir``."""
        paths = ReportPaths(
            structured=output_dir / "report.json",
            narrative=output_dir / "report.md",
        )
        await asyncio.to_thread(self._write, rendered, paths)
        log.info("Report written: %s", paths.structured)
        return paths

    async def publish(
        self,
        rendered: RenderedReport,
        channel: NotificationChannel,
        target: str,
    ) -> bool:
        """Send the condensed summary; failures are logged, never raised."""
        text = summary_text(rendered.structured)
        try:
            delivered = await channel.publish(text, target)
        except (PublishError, aiohttp.ClientError, TimeoutError) as exc:
            log.warning("Publishing report summary failed: %s", exc)
            return False
        except Exception:
            log.warning("Publishing report summary failed", exc_info=True)
            return False
        if not delivered:
            log.warning("Notification channel did not accept the report summary")
        return delivered

    def _write(self, rendered: RenderedReport, paths: ReportPaths) -> None:
        paths.structured.parent.mkdir(parents=True, exist_ok=True)
        paths.structured.write_text(
            json.dumps(rendered.structured, indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        paths.narrative.write_text(rendered.narrative, encoding="utf-8")
