"""Fan-out executor: runs the selected Flavors through a caller-supplied executor.

- Sequential: one Flavor at a time, in order; the first failure stops the run
- Parallel: every Flavor launched at once; all are awaited (never fail-fast)
  and every failure is reported together

No retries here. Retry or timeout policy belongs to the injected executor.
"""

from typing import Any, List, Sequence, Tuple
import asyncio
import logging

from orchestrator.errors import FlavorExecutionError
from orchestrator.models import (
    ExecutionMode,
    Flavor,
    FlavorExecutionResult,
    OrchestratorContext,
    StageCategory,
)

logger = logging.getLogger(__name__)


class FanOutExecutor:
    """Runs Flavors sequentially or concurrently.

    The executor must expose an async ``execute(flavor, context)`` returning
    a FlavorExecutionResult.
    """

    def __init__(self, stage_category: StageCategory, flavor_executor: Any):
        self.stage_category = StageCategory(stage_category)
        self.flavor_executor = flavor_executor

    async def run(
        self,
        flavors: Sequence[Flavor],
        mode: ExecutionMode,
        context: OrchestratorContext,
    ) -> List[FlavorExecutionResult]:
        """Execute the Flavors and return results in Flavor order.

        Raises:
            FlavorExecutionError: On the first sequential failure, or after all
                parallel Flavors settle when any of them failed
        """
        if ExecutionMode(mode) == ExecutionMode.PARALLEL:
            return await self._run_parallel(flavors, context)
        return await self._run_sequential(flavors, context)

    async def _run_sequential(
        self,
        flavors: Sequence[Flavor],
        context: OrchestratorContext,
    ) -> List[FlavorExecutionResult]:
        category = self.stage_category.value
        results: List[FlavorExecutionResult] = []
        for index, flavor in enumerate(flavors, start=1):
            logger.info(f"Stage {category}: executing flavor {index}/{len(flavors)} {flavor.name}")
            try:
                result = await self.flavor_executor.execute(flavor, context)
            except Exception as e:
                logger.error(f"Stage {category}: flavor {flavor.name} failed: {e}")
                raise FlavorExecutionError(
                    f'Stage "{category}" sequential execution failed at flavor '
                    f'"{flavor.name}" ({index}/{len(flavors)}): {e}',
                    stage_category=category,
                    failures=[(flavor.name, e)],
                    attempted=index,
                ) from e
            results.append(result)
        return results

    async def _run_parallel(
        self,
        flavors: Sequence[Flavor],
        context: OrchestratorContext,
    ) -> List[FlavorExecutionResult]:
        category = self.stage_category.value
        logger.info(f"Stage {category}: executing {len(flavors)} flavors in parallel")

        async def _execute_one(flavor: Flavor) -> FlavorExecutionResult:
            return await self.flavor_executor.execute(flavor, context)

        settled = await asyncio.gather(
            *(_execute_one(flavor) for flavor in flavors),
            return_exceptions=True,
        )

        failures: List[Tuple[str, BaseException]] = []
        results: List[FlavorExecutionResult] = []
        for flavor, outcome in zip(flavors, settled):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    # Cancellation and interpreter exits are not flavor failures
                    raise outcome
                logger.error(f"Stage {category}: flavor {flavor.name} failed: {outcome}")
                failures.append((flavor.name, outcome))
            else:
                results.append(outcome)

        if failures:
            reasons = "; ".join(f"{name}: {error}" for name, error in failures)
            raise FlavorExecutionError(
                f'Stage "{category}" parallel execution failed '
                f"({len(failures)}/{len(flavors)} flavors failed): {reasons}",
                stage_category=category,
                failures=failures,
                attempted=len(flavors),
            )
        return results
