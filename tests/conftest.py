"""Shared fixtures for orchestrator tests."""

import asyncio
import os
import sys
from typing import Any, Dict, List, Optional

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from orchestrator.decisions import DecisionLog
from orchestrator.flavors import FlavorRegistry
from orchestrator.models import (
    ArtifactValue,
    Flavor,
    FlavorExecutionResult,
    FlavorStepRef,
    StageCategory,
)

_MISSING = object()


def build_flavor(
    name: str,
    category: StageCategory = StageCategory.BUILD,
    description: Optional[str] = None,
) -> Flavor:
    return Flavor(
        name=name,
        stage_category=category,
        steps=(FlavorStepRef(step_name=f"{name}-step", step_type="shape"),),
        synthesis_artifact=f"{name}-output",
        description=description,
    )


def build_result(flavor_name: str, value: Any) -> FlavorExecutionResult:
    return FlavorExecutionResult(
        flavor_name=flavor_name,
        artifacts={f"{flavor_name}-output": value},
        synthesis_artifact=ArtifactValue(name=f"{flavor_name}-output", value=value),
    )


class RecordingExecutor:
    """Flavor executor double that records calls and can fail per flavor."""

    def __init__(
        self,
        failures: Optional[Dict[str, Exception]] = None,
        values: Optional[Dict[str, Any]] = None,
        delay: float = 0.0,
    ):
        self.failures = failures or {}
        self.values = values or {}
        self.delay = delay
        self.calls: List[str] = []
        self.active = 0
        self.max_active = 0

    async def execute(self, flavor: Flavor, context) -> FlavorExecutionResult:
        self.calls.append(flavor.name)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if flavor.name in self.failures:
                raise self.failures[flavor.name]
            value = self.values.get(flavor.name, _MISSING)
            if value is _MISSING:
                value = {"summary": f"{flavor.name} done"}
            return FlavorExecutionResult(
                flavor_name=flavor.name,
                artifacts={flavor.synthesis_artifact: value},
                synthesis_artifact=ArtifactValue(name=flavor.synthesis_artifact, value=value),
            )
        finally:
            self.active -= 1


@pytest.fixture
def make_flavor():
    return build_flavor


@pytest.fixture
def registry():
    return FlavorRegistry([
        build_flavor(name)
        for name in ("a", "b", "c", "d", "e", "f")
    ])


@pytest.fixture
def decision_log():
    return DecisionLog()


@pytest.fixture
def executor():
    return RecordingExecutor()


@pytest.fixture
def make_executor():
    return RecordingExecutor


@pytest.fixture
def make_result():
    return build_result
