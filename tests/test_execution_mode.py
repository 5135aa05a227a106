"""Tests for the execution mode decider."""

from unittest.mock import MagicMock

import pytest

from orchestrator.decisions import DecisionType
from orchestrator.errors import DecisionRecordError
from orchestrator.execution_mode import EXECUTION_MODE_CONFIDENCE, ExecutionModeDecider, choose_mode
from orchestrator.models import ExecutionMode, OrchestratorConfig, StageCategory


@pytest.mark.parametrize(
    "count, ceiling, expected",
    [
        (1, 5, ExecutionMode.SEQUENTIAL),
        (2, 5, ExecutionMode.PARALLEL),
        (5, 5, ExecutionMode.PARALLEL),
        (6, 5, ExecutionMode.SEQUENTIAL),
        (2, 1, ExecutionMode.SEQUENTIAL),
        (2, 2, ExecutionMode.PARALLEL),
    ],
)
def test_choose_mode(count, ceiling, expected):
    mode, reasoning = choose_mode(count, ceiling)
    assert mode == expected
    assert reasoning


def test_reasoning_mentions_count_and_ceiling():
    _, parallel = choose_mode(3, 4)
    _, capped = choose_mode(7, 4)

    assert "3 flavors" in parallel and "max_parallel_flavors=4" in parallel
    assert "7 flavors" in capped and "max_parallel_flavors=4" in capped
    assert "sequential" in choose_mode(1, 4)[1]


@pytest.mark.asyncio
async def test_decide_records_execution_mode_decision(make_flavor, decision_log):
    decider = ExecutionModeDecider(StageCategory.PLAN, decision_log)
    flavors = [make_flavor("a"), make_flavor("b")]

    mode, decision = await decider.decide(flavors, OrchestratorConfig(max_parallel_flavors=3))

    assert mode == ExecutionMode.PARALLEL
    assert decision.decision_type == DecisionType.EXECUTION_MODE
    assert decision.stage_category == StageCategory.PLAN
    assert decision.options == ("sequential", "parallel")
    assert decision.selection == "parallel"
    assert decision.confidence == EXECUTION_MODE_CONFIDENCE == 0.95
    assert decision.context == {
        "flavor_count": 2,
        "max_parallel_flavors": 3,
        "selected_flavors": ["a", "b"],
    }


@pytest.mark.asyncio
async def test_decide_wraps_recorder_failure(make_flavor):
    recorder = MagicMock()
    recorder.record.side_effect = ValueError("rejected")
    decider = ExecutionModeDecider(StageCategory.BUILD, recorder)

    with pytest.raises(DecisionRecordError) as excinfo:
        await decider.decide([make_flavor("a")], OrchestratorConfig())

    assert "execution-mode" in str(excinfo.value)
