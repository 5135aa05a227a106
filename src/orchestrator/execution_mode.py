"""Execution mode decider.

Deterministic rule:
- 1 Flavor -> sequential
- 2..max_parallel_flavors Flavors -> parallel
- more than max_parallel_flavors -> sequential (bounded fan-out)
"""

from typing import Any, Sequence, Tuple
import logging

from orchestrator.decisions import Decision, DecisionType, record_decision
from orchestrator.models import ExecutionMode, Flavor, OrchestratorConfig, StageCategory, flavor_names

logger = logging.getLogger(__name__)

EXECUTION_MODE_CONFIDENCE = 0.95


def choose_mode(flavor_count: int, max_parallel_flavors: int) -> Tuple[ExecutionMode, str]:
    """Pick the execution mode for a number of selected Flavors.

    Returns:
        Tuple of (mode, reasoning)
    """
    if flavor_count <= 1:
        return ExecutionMode.SEQUENTIAL, "Only one flavor selected; sequential is optimal."
    if flavor_count <= max_parallel_flavors:
        return ExecutionMode.PARALLEL, (
            f"{flavor_count} flavors fit within max_parallel_flavors={max_parallel_flavors}; "
            f"parallelizing for efficiency."
        )
    return ExecutionMode.SEQUENTIAL, (
        f"{flavor_count} flavors exceeds max_parallel_flavors={max_parallel_flavors}; "
        f"running sequentially to avoid resource contention."
    )


class ExecutionModeDecider:
    """Chooses sequential or parallel execution and records the choice."""

    def __init__(self, stage_category: StageCategory, decision_recorder: Any):
        self.stage_category = StageCategory(stage_category)
        self.decision_recorder = decision_recorder

    async def decide(
        self,
        flavors: Sequence[Flavor],
        config: OrchestratorConfig,
    ) -> Tuple[ExecutionMode, Decision]:
        """Decide the mode for the selected Flavors.

        Raises:
            DecisionRecordError: If the decision cannot be recorded
        """
        mode, reasoning = choose_mode(len(flavors), config.max_parallel_flavors)
        decision = await record_decision(
            self.decision_recorder,
            stage_category=self.stage_category,
            decision_type=DecisionType.EXECUTION_MODE,
            context={
                "flavor_count": len(flavors),
                "max_parallel_flavors": config.max_parallel_flavors,
                "selected_flavors": flavor_names(flavors),
            },
            options=[ExecutionMode.SEQUENTIAL.value, ExecutionMode.PARALLEL.value],
            selection=mode.value,
            reasoning=reasoning,
            confidence=EXECUTION_MODE_CONFIDENCE,
        )
        logger.info(f"Stage {self.stage_category.value}: execution mode {mode.value}")
        return mode, decision
