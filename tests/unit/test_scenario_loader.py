"""Tests for scenario loading."""

from collections.abc import Mapping
from pathlib import Path

import pytest

from browser_verifier.cases.steps import StepCase
from browser_verifier.errors import ScenarioError
from browser_verifier.models.config import Credential, Target
from browser_verifier.scenario_loader import build_stages, load_scenario

SCENARIO = """
version: "1.0"
capabilities:
  health_path: null
  pages:
    - name: employees
      path: /employees.html
      selector: "#employee-table"
      role: admin
settings:
  case_timeout: 30
  screenshot_policy: always
stages:
  - name: authentication
    tests:
      - name: dashboard greeting
        role: admin
        depends_on: ["login as admin"]
        steps:
          - action: navigate
            path: /dashboard.html
          - action: assert_text
            selector: "#welcome"
            contains: Hello
  - name: leave requests
    required: false
    tests:
      - name: submit leave
        timeout: 10
        steps:
          - action: navigate
            path: /leave.html
          - action: fill
            selector: "#days"
            value: "2"
          - action: click
            selector: "#submit"
"""


class TestLoadScenario:
    """Tests for load_scenario function."""

    __test__ = True

    async def test_loads_valid_yaml(self, tmp_path: Path) -> None:
        """Loads and parses a valid scenario file."""
        path = tmp_path / "scenario.yaml"
        path.write_text(SCENARIO)

        scenario = await load_scenario(path)

        assert scenario.version == "1.0"
        assert scenario.include_builtin
        assert scenario.capabilities is not None
        assert scenario.capabilities.health_path is None
        assert scenario.capabilities.pages[0].role == "admin"
        assert scenario.settings is not None
        assert scenario.settings.screenshot_policy == "always"
        assert [s.name for s in scenario.stages] == ["authentication", "leave requests"]
        steps = scenario.stages[1].tests[0].steps
        assert [step.action for step in steps] == ["navigate", "fill", "click"]

    async def test_raises_for_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match="Scenario file not found"):
            await load_scenario(tmp_path / "missing.yaml")

    async def test_raises_for_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "scenario.yaml"
        path.write_text("invalid: yaml: content: [")

        with pytest.raises(ScenarioError, match="Invalid YAML"):
            await load_scenario(path)

    async def test_raises_for_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "scenario.yaml"
        path.write_text("")

        with pytest.raises(ScenarioError, match="Empty scenario file"):
            await load_scenario(path)

    async def test_raises_for_unknown_step_action(self, tmp_path: Path) -> None:
        path = tmp_path / "scenario.yaml"
        path.write_text(
            """
version: "1.0"
stages:
  - name: s
    tests:
      - name: t
        steps:
          - action: teleport
"""
        )

        with pytest.raises(ScenarioError, match="Invalid scenario schema"):
            await load_scenario(path)

    async def test_raises_for_case_without_steps(self, tmp_path: Path) -> None:
        path = tmp_path / "scenario.yaml"
        path.write_text(
            """
version: "1.0"
stages:
  - name: s
    tests:
      - name: t
        steps: []
"""
        )

        with pytest.raises(ScenarioError, match="Invalid scenario schema"):
            await load_scenario(path)


class TestBuildStages:
    """Tests for build_stages function."""

    async def test_merges_scripted_stages_into_builtin(
        self, tmp_path: Path, credentials: Mapping[str, Credential]
    ) -> None:
        """Scripted cases join built-in stages of the same name."""
        path = tmp_path / "scenario.yaml"
        path.write_text(SCENARIO)
        scenario = await load_scenario(path)
        target = Target(
            name="app", base_url="http://app.test", capabilities=scenario.capabilities
        )

        stages = {stage.name: stage for stage in build_stages(scenario, target, credentials)}

        authentication = [case.name for case in stages["authentication"].cases]
        assert authentication == ["login as admin", "logout as admin", "dashboard greeting"]
        assert [case.name for case in stages["navigation"].cases] == [
            "page employees as admin"
        ]
        leave = stages["leave requests"]
        assert not leave.required
        case = leave.cases[0]
        assert isinstance(case, StepCase)
        assert case.timeout == 10
        assert len(case.steps) == 3
        assert list(stages)[-1] == "leave requests"

    async def test_without_builtin_stages(
        self, tmp_path: Path, target: Target, credentials: Mapping[str, Credential]
    ) -> None:
        path = tmp_path / "scenario.yaml"
        path.write_text(SCENARIO.replace('version: "1.0"', 'version: "1.0"\ninclude_builtin: false'))
        scenario = await load_scenario(path)

        stages = build_stages(scenario, target, credentials)

        assert [stage.name for stage in stages] == ["authentication", "leave requests"]

    def test_without_scenario_uses_defaults(
        self, target: Target, credentials: Mapping[str, Credential]
    ) -> None:
        stages = build_stages(None, target, credentials)

        assert stages[0].name == "connectivity"
