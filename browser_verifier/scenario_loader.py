"""Loading of YAML scenario files into pipeline stages."""

import asyncio
from collections.abc import Mapping, Sequence
from pathlib import Path

import yaml
from pydantic import Field, ValidationError

from browser_verifier.cases.builtin import default_stages
from browser_verifier.cases.steps import Step, StepCase
from browser_verifier.errors import ScenarioError
from browser_verifier.models.base import Model
from browser_verifier.models.config import Capabilities, Credential, RunSettings, Target
from browser_verifier.pipeline import Stage


class CaseDefinition(Model):
    """A scripted test case made of declarative steps."""

    name: str = Field(..., description="Unique test case name")
    category: str = "functional"
    depends_on: Sequence[str] = Field(default_factory=list)
    timeout: float | None = Field(default=None, gt=0, description="Seconds")
    role: str | None = Field(
        default=None, description="Role to log in as before the first step"
    )
    steps: Sequence[Step] = Field(..., min_length=1)


class StageDefinition(Model):
    """A stage of scripted test cases."""

    name: str
    required: bool = True
    tests: Sequence[CaseDefinition] = Field(default_factory=list)


class ScenarioDefinition(Model):
    """Complete scenario loaded from a YAML file."""

    version: str = Field(..., description="Scenario schema version")
    capabilities: Capabilities | None = Field(
        default=None, description="Capabilities shared by every target"
    )
    settings: RunSettings | None = None
    include_builtin: bool = Field(
        default=True, description="Run the built-in stages before scripted ones"
    )
    stages: Sequence[StageDefinition] = Field(default_factory=list)


async def load_scenario(path: Path) -> ScenarioDefinition:
    """Load and validate a scenario file.

    Args:
        path: Path to the YAML scenario

    Returns:
        The validated scenario definition

    Raises:
        FileNotFoundError: If the file does not exist
        ScenarioError: If the file is empty, not YAML or fails validation

    """
    if not await asyncio.to_thread(path.is_file):
        raise FileNotFoundError(f"Scenario file not found: {path}")

    content = await asyncio.to_thread(path.read_text, encoding="utf-8")

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ScenarioError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        raise ScenarioError(f"Empty scenario file: {path}")

    try:
        return ScenarioDefinition.model_validate(data)
    except ValidationError as e:
        raise ScenarioError(f"Invalid scenario schema in {path}: {e}") from e


def build_stages(
    scenario: ScenarioDefinition | None,
    target: Target,
    credentials: Mapping[str, Credential],
) -> Sequence[Stage]:
    """Combine built-in stages with the scenario's scripted stages.

    Scripted stages with the same name as a built-in stage are appended to
    it rather than declared twice.
    """
    if scenario is None:
        return default_stages(target, credentials)

    stages = list(default_stages(target, credentials)) if scenario.include_builtin else []
    for definition in scenario.stages:
        cases = [
            StepCase(
                name=case.name,
                category=case.category,
                depends_on=tuple(case.depends_on),
                timeout=case.timeout,
                role=case.role,
                steps=tuple(case.steps),
            )
            for case in definition.tests
        ]
        index = next(
            (i for i, stage in enumerate(stages) if stage.name == definition.name), None
        )
        if index is None:
            stages.append(
                Stage(name=definition.name, cases=cases, required=definition.required)
            )
        else:
            existing = stages[index]
            stages[index] = Stage(
                name=existing.name,
                cases=[*existing.cases, *cases],
                required=existing.required or definition.required,
            )
    return stages
