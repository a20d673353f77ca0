"""Reduce stage results into a scored, classified run report."""

import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

from browser_verifier.models.config import Target
from browser_verifier.models.outcome import DEPENDENCY_SKIP_REASON, TIMEOUT_REASON
from browser_verifier.models.result import (
    RunReport,
    RunStatus,
    RunSummary,
    StageResult,
    TestEntry,
)

log = logging.getLogger(__name__)

CRITICAL_SCORE = 60.0
SECURITY_PASS_RATE = 80.0
SECURITY_CATEGORY = "security"


@dataclass(frozen=True, kw_only=True)
class RemediationRule:
    """Maps failure reasons matching ``pattern`` to one suggestion."""

    pattern: re.Pattern[str]
    suggestion: str
    statuses: frozenset[str] = frozenset({"failed"})

    def matches(self, entry: TestEntry) -> bool:
        return entry.status in self.statuses and bool(
            self.pattern.search(entry.outcome.message)
        )


REMEDIATION_RULES: Sequence[RemediationRule] = (
    RemediationRule(
        pattern=re.compile(r"NavigationError: (net::|timeout|.*refused|.*ERR_)", re.I),
        suggestion=(
            "Connectivity: the target could not be reached reliably; check the "
            "deployment URL, DNS, TLS and that the server process is running."
        ),
    ),
    RemediationRule(
        pattern=re.compile(r"NavigationError: 5\d\d"),
        suggestion=(
            "Server errors: endpoints answered with 5xx; inspect the server logs "
            "for the failing routes."
        ),
    ),
    RemediationRule(
        pattern=re.compile(r"NavigationError: 4\d\d"),
        suggestion=(
            "Missing routes: pages answered with 4xx; verify routing and that "
            "static assets are deployed."
        ),
    ),
    RemediationRule(
        pattern=re.compile(rf"^{TIMEOUT_REASON}$"),
        suggestion=(
            "Performance: test cases timed out; profile slow pages and raise the "
            "case timeout only if the delay is expected."
        ),
    ),
    RemediationRule(
        pattern=re.compile(r"InteractionError"),
        suggestion=(
            "UI contract: expected controls were missing or not actionable; keep "
            "selectors stable or update the scenario."
        ),
    ),
    RemediationRule(
        pattern=re.compile(r"login as .* did not reach|no credential configured"),
        suggestion=(
            "Authentication: logins did not reach an authenticated area; verify "
            "the credentials and the post-login redirect."
        ),
    ),
    RemediationRule(
        pattern=re.compile(re.escape(DEPENDENCY_SKIP_REASON)),
        suggestion=(
            "Prerequisites: some checks were skipped because a case they depend "
            "on failed; fix the prerequisite first."
        ),
        statuses=frozenset({"warned"}),
    ),
    RemediationRule(
        pattern=re.compile(r"DriverError"),
        suggestion=(
            "Browser: the automation driver failed; check browser installation "
            "and available memory on the verification host."
        ),
    ),
    RemediationRule(
        pattern=re.compile(r"anonymous .* returned|injection payload|reflected script"),
        suggestion=(
            "Security: protections are missing; enforce authentication on APIs "
            "and sanitise user input."
        ),
    ),
    RemediationRule(
        pattern=re.compile(r"missing security headers"),
        suggestion=(
            "Security headers: add X-Content-Type-Options and X-Frame-Options "
            "(for example with a helmet-style middleware)."
        ),
        statuses=frozenset({"warned", "failed"}),
    ),
    RemediationRule(
        pattern=re.compile(r"slow load"),
        suggestion=(
            "Performance: pages load slowly; enable compression and caching of "
            "static assets."
        ),
        statuses=frozenset({"warned", "failed"}),
    ),
    RemediationRule(
        pattern=re.compile(r"horizontal overflow"),
        suggestion="Responsive design: layouts overflow on small viewports.",
        statuses=frozenset({"warned"}),
    ),
)


def compute_score(passed: int, total: int) -> float:
    """Percentage of passed cases, two decimals; 0 for an empty run."""
    if total == 0:
        return 0.0
    return round(100 * passed / total, 2)


def security_pass_rate(stages: Sequence[StageResult]) -> float | None:
    """Pass rate of security-category cases, None when there are none."""
    entries = [
        entry
        for stage in stages
        for entry in stage.entries
        if entry.category == SECURITY_CATEGORY
    ]
    if not entries:
        return None
    passed = sum(1 for entry in entries if entry.status == "passed")
    return 100 * passed / len(entries)


def classify(score: float, stages: Sequence[StageResult]) -> RunStatus:
    """Classify a run.

    CRITICAL below a score of 60. READY when no required stage has a failed
    case and security checks pass at least 80 % of the time. Everything else
    needs attention.
    """
    if score < CRITICAL_SCORE:
        return "CRITICAL"
    required_clean = all(
        stage.count("failed") == 0 for stage in stages if stage.required
    )
    security = security_pass_rate(stages)
    security_ok = security is None or security >= SECURITY_PASS_RATE
    if required_clean and security_ok:
        return "READY"
    return "NEEDS_ATTENTION"


def diagnostic_suggestions(stages: Sequence[StageResult]) -> Sequence[str]:
    """Suggestions derived from collected diagnostics rather than outcomes."""
    events = [
        event for stage in stages for entry in stage.entries for event in entry.diagnostics
    ]
    suggestions = []
    if any(e.kind == "error" for e in events):
        suggestions.append(
            "Client scripts: uncaught script errors were observed; check the "
            "browser console output attached to the affected cases."
        )
    elif any(e.kind == "console" and e.payload.get("level") == "error" for e in events):
        suggestions.append(
            "Client scripts: console errors were logged during the run."
        )
    if any(e.kind == "network" and (e.payload.get("status") or 0) >= 500 for e in events):
        suggestions.append(
            "Network: background requests returned 5xx responses during the run."
        )
    return suggestions


def overall_suggestion(score: float) -> str:
    if score >= 85:
        return "Overall: the system performs well; keep monitoring and improve incrementally."
    if score >= 70:
        return "Overall: core functions work; schedule the improvements above by priority."
    return "Overall: multiple problems found; plan a comprehensive fix before deploying."


def recommend(stages: Sequence[StageResult], score: float) -> Sequence[str]:
    """Best-effort remediation suggestions, in rule order, without duplicates."""
    entries = [entry for stage in stages for entry in stage.entries]
    suggestions: list[str] = []
    for rule in REMEDIATION_RULES:
        if any(rule.matches(entry) for entry in entries):
            suggestions.append(rule.suggestion)
    suggestions.extend(diagnostic_suggestions(stages))
    suggestions.append(overall_suggestion(score))
    return suggestions


@dataclass(kw_only=True)
class ResultAggregator:
    """Accumulates completed stages and builds the run report.

    The aggregator is the only writer of the accumulated stage list; stages
    are added only after they completed.
    """

    clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)
    _stages: list[StageResult] = field(default_factory=list, init=False)

    @property
    def stages(self) -> Sequence[StageResult]:
        return tuple(self._stages)

    def add_stage(self, stage: StageResult) -> None:
        log.info(
            "Stage %s completed: %d passed, %d failed, %d warned (%.1f%%)",
            stage.name,
            stage.count("passed"),
            stage.count("failed"),
            stage.count("warned"),
            stage.pass_rate,
        )
        self._stages.append(stage)

    def aggregate(
        self, target: Target, stages: Sequence[StageResult] | None = None
    ) -> RunReport:
        """Build the report from ``stages`` or from the accumulated stages."""
        stages = tuple(self._stages if stages is None else stages)
        entries = [entry for stage in stages for entry in stage.entries]
        passed = sum(1 for entry in entries if entry.status == "passed")
        score = compute_score(passed, len(entries))
        summary = RunSummary(
            total=len(entries),
            passed=passed,
            failed=sum(1 for entry in entries if entry.status == "failed"),
            warned=sum(1 for entry in entries if entry.status == "warned"),
            not_run=sum(1 for entry in entries if entry.status == "not_run"),
            score=score,
            status=classify(score, stages),
        )
        return RunReport(
            timestamp=self.clock(),
            target_name=target.name,
            target_url=target.base_url,
            summary=summary,
            stages=stages,
            recommendations=recommend(stages, score),
            browser=target.browser,
        )
