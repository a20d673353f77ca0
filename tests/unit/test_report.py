"""Tests for report rendering, writing and publishing."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import aiohttp
import pytest

from browser_verifier.errors import PublishError
from browser_verifier.models.outcome import Failed, NotRun, Passed, Warned
from browser_verifier.models.result import (
    DiagnosticEvent,
    RunReport,
    RunSummary,
    StageResult,
    TestEntry,
)
from browser_verifier.notifiers.base import NotificationChannel
from browser_verifier.report import (
    ReportEmitter,
    summary_text,
    to_narrative,
    to_structured,
    top_failures,
)


@pytest.fixture
def report() -> RunReport:
    """A report with one passed, one failed, one warned and one unrun case."""
    error_event = DiagnosticEvent(
        kind="error",
        timestamp=datetime(2099, 1, 1, 12, 0, 1, tzinfo=timezone.utc).timestamp(),
        payload={"message": "TypeError: x is undefined", "stack": None},
    )
    return RunReport(
        timestamp=datetime(2099, 1, 1, 12, 0, tzinfo=timezone.utc),
        target_name="app.test",
        target_url="http://app.test",
        summary=RunSummary(
            total=4, passed=1, failed=1, warned=1, not_run=1, score=25.0, status="CRITICAL"
        ),
        stages=[
            StageResult(
                name="authentication",
                required=True,
                entries=[
                    TestEntry(
                        name="login as admin",
                        category="functional",
                        outcome=Passed("authenticated"),
                        duration_ms=120,
                    ),
                    TestEntry(
                        name="page dashboard",
                        category="functional",
                        outcome=Failed("InteractionError: #menu: not | visible"),
                        duration_ms=300,
                        screenshot_ref="app-test-page-dashboard-1.png",
                        diagnostics=[error_event],
                    ),
                ],
            ),
            StageResult(
                name="security",
                required=False,
                entries=[
                    TestEntry(
                        name="security headers present",
                        category="security",
                        outcome=Warned("missing security headers: x-frame-options"),
                        duration_ms=10,
                    ),
                    TestEntry(
                        name="reflected script not executed",
                        category="security",
                        outcome=NotRun(),
                        duration_ms=0,
                    ),
                ],
            ),
        ],
        recommendations=["UI contract: keep selectors stable.", "Overall: fix things."],
    )


class TestStructured:
    """Tests for the structured wire format."""

    def test_key_order_is_fixed(self, report: RunReport) -> None:
        structured = to_structured(report)

        assert list(structured) == [
            "timestamp",
            "summary",
            "stages",
            "recommendations",
            "extensions",
        ]
        assert list(structured["summary"]) == [
            "total",
            "passed",
            "failed",
            "score",
            "status",
        ]
        assert list(structured["stages"][0]) == ["name", "tests"]
        assert list(structured["stages"][0]["tests"][0]) == [
            "name",
            "outcome",
            "durationMs",
            "screenshotRef",
            "diagnostics",
        ]

    def test_serializes_entries(self, report: RunReport) -> None:
        structured = to_structured(report)

        failed = structured["stages"][0]["tests"][1]
        assert structured["timestamp"] == "2099-01-01T12:00:00+00:00"
        assert failed["outcome"] == "failed"
        assert failed["screenshotRef"] == "app-test-page-dashboard-1.png"
        assert failed["diagnostics"] == [
            {
                "kind": "error",
                "timestamp": "2099-01-01T12:00:01+00:00",
                "payload": {"message": "TypeError: x is undefined", "stack": None},
            }
        ]
        assert structured["stages"][1]["tests"][1]["outcome"] == "not_run"
        assert structured["extensions"]["summary"]["notRun"] == 1

    def test_is_json_serializable(self, report: RunReport) -> None:
        assert json.loads(json.dumps(to_structured(report)))["summary"]["score"] == 25.0


class TestNarrative:
    """Tests for the Markdown narrative."""

    def test_renders_summary_and_tables(self, report: RunReport) -> None:
        narrative = to_narrative(to_structured(report))

        assert narrative.startswith("# Verification report: app.test\n")
        assert "- Status: **CRITICAL**" in narrative
        assert "- Score: 25.00 / 100" in narrative
        assert "### authentication (required, 50.0% passed)" in narrative
        assert "InteractionError: #menu: not \\| visible" in narrative
        assert "(screenshot: `app-test-page-dashboard-1.png`)" in narrative
        assert "- page dashboard: uncaught error: TypeError: x is undefined" in narrative
        assert "1. UI contract: keep selectors stable." in narrative

    def test_summary_text_lists_top_failures(self, report: RunReport) -> None:
        structured = to_structured(report)

        text = summary_text(structured)

        assert text.splitlines()[0] == "Verification CRITICAL: app.test (http://app.test)"
        assert "- authentication / page dashboard: InteractionError" in text
        assert top_failures(structured) == [
            "authentication / page dashboard: InteractionError: #menu: not | visible"
        ]


class TestEmitter:
    """Tests for ReportEmitter."""

    async def test_writes_both_renderings(self, report: RunReport, tmp_path: Path) -> None:
        emitter = ReportEmitter()
        rendered = emitter.render(report)

        paths = await emitter.write(rendered, tmp_path / "app-test")

        assert json.loads(paths.structured.read_text()) == rendered.structured
        assert paths.narrative.read_text() == rendered.narrative
        assert paths.narrative.name == "report.md"

    async def test_publish_sends_summary(self, report: RunReport) -> None:
        channel = Mock(spec=NotificationChannel)
        channel.publish = AsyncMock(return_value=True)
        emitter = ReportEmitter()
        rendered = emitter.render(report)

        assert await emitter.publish(rendered, channel, "-100123")

        text, target = channel.publish.call_args.args
        assert target == "-100123"
        assert text == summary_text(rendered.structured)

    @pytest.mark.parametrize(
        "error",
        [
            PublishError("Telegram API error: 400 chat not found"),
            aiohttp.ClientConnectionError("refused"),
            TimeoutError(),
            RuntimeError("channel crashed"),
        ],
    )
    async def test_publish_failures_are_swallowed(
        self,
        report: RunReport,
        error: Exception,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        channel = Mock(spec=NotificationChannel)
        channel.publish = AsyncMock(side_effect=error)
        emitter = ReportEmitter()

        with caplog.at_level(logging.WARNING):
            delivered = await emitter.publish(emitter.render(report), channel, "chat")

        assert delivered is False
        assert "Publishing report summary failed" in caplog.text
