"""CLI entry point for browser verification runs."""

import argparse
import asyncio
import json
import logging
import os
import signal
import sys
from collections.abc import Mapping, Sequence
from contextlib import AsyncExitStack
from pathlib import Path
from typing import Any

from yarl import URL

from browser_verifier.drivers.base import BrowserDriver
from browser_verifier.manifest import load_driver_manifest, load_notifier_manifest
from browser_verifier.models.config import Capabilities, Credential, RunSettings, Target
from browser_verifier.orchestrator import Orchestrator, TargetResult
from browser_verifier.report import STATUS_SYMBOLS
from browser_verifier.scenario_loader import ScenarioDefinition, build_stages, load_scenario

CREDENTIALS_ENV = "BROWSER_VERIFIER_CREDENTIALS"
NOTIFIER_CONFIG_ENV = "BROWSER_VERIFIER_NOTIFIER_CONFIG"


def log_results_summary(log: logging.Logger, results: Sequence[TargetResult]) -> None:
    """Log a formatted summary of every target's test cases."""
    log.info("=" * 80)
    log.info("Verification Results Summary:")
    log.info("=" * 80)

    for result in results:
        summary = result.report.summary
        log.info(
            "%s (%s): %s, score %.2f",
            result.target.label,
            result.target.base_url,
            summary.status,
            summary.score,
        )
        for stage in result.report.stages:
            for entry in stage.entries:
                symbol = STATUS_SYMBOLS.get(entry.status, "?")
                log.info(
                    "%s %s / %s: %s (%dms)",
                    symbol,
                    stage.name,
                    entry.name,
                    entry.status,
                    entry.duration_ms,
                )
                if entry.status != "passed" and entry.outcome.message:
                    log.info("  Message: %s", entry.outcome.message)
        if result.paths:
            log.info("  Report: %s", result.paths.structured)


def parse_credentials(raw: str) -> Mapping[str, Credential]:
    """Parse ``{"role": {"username": ..., "password": ...}}`` JSON."""
    data = json.loads(raw or "{}")
    if not isinstance(data, dict):
        raise ValueError("Credentials must be a JSON object keyed by role")
    return {
        role: Credential(role=role, **values) for role, values in data.items()
    }


def target_from_url(url: str, capabilities: Capabilities | None = None) -> Target:
    """Build a target named after the URL's host and port."""
    parsed = URL(url)
    name = parsed.host or url
    if parsed.explicit_port is not None:
        name = f"{name}:{parsed.explicit_port}"
    return Target(name=name, base_url=url, capabilities=capabilities or Capabilities())


def format_output(results: Sequence[TargetResult]) -> dict[str, Any]:
    """Format target results for JSON output."""
    targets = [
        {
            "target": result.target.name,
            "url": result.target.base_url,
            "browser": result.target.browser,
            "status": result.report.summary.status,
            "score": result.report.summary.score,
            "total": result.report.summary.total,
            "passed": result.report.summary.passed,
            "failed": result.report.summary.failed,
            "report": str(result.paths.structured) if result.paths else None,
            "published": result.published,
        }
        for result in results
    ]
    return {
        "total": len(targets),
        "ready": sum(1 for t in targets if t["status"] == "READY"),
        "targets": targets,
    }


async def run(
    target_urls: Sequence[str],
    credentials_json: str,
    output_dir: Path,
    scenario_path: Path | None = None,
    driver_key: str = "playwright",
    driver_config_json: str | None = None,
    notifier_key: str | None = None,
    notifier_config_json: str | None = None,
    notify_target: str | None = None,
    browsers: Sequence[str] = (),
) -> int:
    """Verify every target and return the exit code.

    With ``browsers``, one driver is launched per browser and every target
    is verified once in each of them.
    """
    log = logging.getLogger("browser_verifier")

    credentials = parse_credentials(credentials_json)
    log.info("Configured roles: %s", ", ".join(credentials) or "none")

    scenario: ScenarioDefinition | None = None
    if scenario_path is not None:
        log.info("Loading scenario: %s", scenario_path)
        scenario = await load_scenario(scenario_path)

    capabilities = scenario.capabilities if scenario else None
    settings = (scenario.settings if scenario else None) or RunSettings()
    targets = [target_from_url(url, capabilities) for url in target_urls]
    browsers = list(dict.fromkeys(browsers))
    if browsers:
        targets = [
            target.for_browser(browser) for target in targets for browser in browsers
        ]

    log.info("Loading driver: %s", driver_key)
    driver_manifest = load_driver_manifest(driver_key)
    driver_config = driver_manifest.parse_config(driver_config_json)

    async with AsyncExitStack() as stack:
        channel = None
        if notifier_key:
            log.info("Loading notifier: %s", notifier_key)
            notifier_manifest = load_notifier_manifest(notifier_key)
            notifier_config = notifier_manifest.parse_config(notifier_config_json)
            channel = await stack.enter_async_context(
                notifier_manifest.factory(notifier_config)
            )

        browser_drivers: dict[str, BrowserDriver] = {}
        for browser in browsers:
            log.info("Launching browser: %s", browser)
            config = driver_manifest.config_cls.model_validate(
                {**driver_config.model_dump(), "browser": browser}
            )
            browser_drivers[browser] = await stack.enter_async_context(
                driver_manifest.factory(config)
            )
        if browsers:
            driver = browser_drivers[browsers[0]]
        else:
            driver = await stack.enter_async_context(
                driver_manifest.factory(driver_config)
            )
        orchestrator = Orchestrator(
            driver=driver,
            browser_drivers=browser_drivers,
            output_dir=output_dir,
            credentials=credentials,
            settings=settings,
            channel=channel,
            notify_target=notify_target,
        )

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, orchestrator.cancel)
        try:
            results = await orchestrator.run_targets(
                targets, lambda target: build_stages(scenario, target, credentials)
            )
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)

    log_results_summary(log, results)

    output = format_output(results)
    print(json.dumps(output, indent=2))

    all_ready = bool(results) and all(
        result.report.summary.status == "READY" for result in results
    )
    return 0 if all_ready else 1


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Verify web applications by driving a real browser"
    )
    parser.add_argument(
        "--target-url",
        action="append",
        required=True,
        help="Base URL of a target application (repeat for several targets)",
    )
    parser.add_argument(
        "--credentials",
        default=os.environ.get(CREDENTIALS_ENV, "{}"),
        help=(
            'JSON credentials keyed by role: {"admin": {"username": ..., '
            f'"password": ...}}}} (default: ${CREDENTIALS_ENV})'
        ),
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        required=True,
        help="Directory receiving reports and screenshots",
    )
    parser.add_argument(
        "--scenario",
        type=Path,
        default=None,
        help="YAML scenario with capabilities, settings and scripted stages",
    )
    parser.add_argument(
        "--driver",
        default="playwright",
        help="Browser driver key (default: playwright)",
    )
    parser.add_argument(
        "--driver-config",
        default=None,
        help="JSON configuration for the driver",
    )
    parser.add_argument(
        "--browser",
        action="append",
        default=[],
        help="Browser to verify in, overriding the driver config (repeat for several)",
    )
    parser.add_argument(
        "--notifier",
        default=None,
        help="Notification channel key (telegram, webhook)",
    )
    parser.add_argument(
        "--notifier-config",
        default=os.environ.get(NOTIFIER_CONFIG_ENV),
        help=f"JSON configuration for the notifier (default: ${NOTIFIER_CONFIG_ENV})",
    )
    parser.add_argument(
        "--notify-target",
        default=None,
        help="Chat, room or channel identifier receiving the summary",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    exit_code = asyncio.run(
        run(
            target_urls=args.target_url,
            credentials_json=args.credentials,
            output_dir=args.output_dir,
            scenario_path=args.scenario,
            driver_key=args.driver,
            driver_config_json=args.driver_config,
            notifier_key=args.notifier,
            notifier_config_json=args.notifier_config,
            notify_target=args.notify_target,
            browsers=args.browser,
        )
    )
    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    main()
