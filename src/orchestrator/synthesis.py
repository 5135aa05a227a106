"""Synthesis: merge per-Flavor outputs into one Stage artifact.

The category-specific part is only the choice of approach (merge-all,
cascade, first-wins) and its explanation. The merge itself is always a
map of flavor name to synthesis value, named "<category>-synthesis".
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging

from orchestrator.decisions import Decision, DecisionType, record_decision
from orchestrator.errors import SynthesisError
from orchestrator.models import (
    ArtifactValue,
    FlavorExecutionResult,
    OrchestratorContext,
    StageCategory,
    SynthesisApproach,
)
from orchestrator.vocabulary import DEFAULT_SYNTHESIS_ALTERNATIVES, StageVocabulary

logger = logging.getLogger(__name__)

SYNTHESIS_CONFIDENCE = 0.9

DEFAULT_REASONING_TEMPLATE = (
    "Merging all {count} flavor synthesis artifact(s) into a single keyed record "
    "for downstream stage consumption."
)


@dataclass(frozen=True)
class SynthesisStrategy:
    """An approach plus the alternatives it was chosen from."""
    approach: str
    alternatives: Tuple[str, ...]
    reasoning: str

    def __post_init__(self):
        object.__setattr__(self, "approach", getattr(self.approach, "value", self.approach))
        object.__setattr__(
            self,
            "alternatives",
            tuple(getattr(a, "value", a) for a in self.alternatives),
        )


class SynthesisStrategyProvider:
    """Category-specific hook choosing the synthesis approach."""

    def get_synthesis_strategy(
        self,
        results: Sequence[FlavorExecutionResult],
        context: OrchestratorContext,
    ) -> SynthesisStrategy:
        raise NotImplementedError


class VocabularySynthesisStrategy(SynthesisStrategyProvider):
    """Picks the approach declared by a category vocabulary.

    Without a vocabulary: merge-all, offered alongside first-wins and cascade.
    """

    def __init__(self, vocabulary: Optional[StageVocabulary] = None):
        self.vocabulary = vocabulary

    def get_synthesis_strategy(
        self,
        results: Sequence[FlavorExecutionResult],
        context: OrchestratorContext,
    ) -> SynthesisStrategy:
        if self.vocabulary is None:
            approach = SynthesisApproach.MERGE_ALL
            alternatives = list(DEFAULT_SYNTHESIS_ALTERNATIVES)
            template = DEFAULT_REASONING_TEMPLATE
        else:
            approach = self.vocabulary.synthesis_preference
            alternatives = list(self.vocabulary.synthesis_alternatives)
            template = self.vocabulary.reasoning_template or DEFAULT_REASONING_TEMPLATE
        return SynthesisStrategy(
            approach=approach,
            alternatives=tuple(alternatives),
            reasoning=template.replace("{count}", str(len(results))),
        )


def find_missing_values(results: Sequence[FlavorExecutionResult]) -> List[str]:
    """Names of Flavors whose synthesis value is missing (None).

    Falsy values such as 0, False and "" are valid.
    """
    return [
        result.flavor_name
        for result in results
        if result.synthesis_artifact is None or result.synthesis_artifact.value is None
    ]


def merge_results(
    stage_category: StageCategory,
    results: Sequence[FlavorExecutionResult],
) -> ArtifactValue:
    """Key every synthesis value by flavor name."""
    merged: Dict[str, Any] = {
        result.flavor_name: result.synthesis_artifact.value for result in results
    }
    return ArtifactValue(name=f"{StageCategory(stage_category).value}-synthesis", value=merged)


class Synthesizer:
    """Validates Flavor outputs, merges them and records the approach."""

    def __init__(
        self,
        stage_category: StageCategory,
        strategy_provider: SynthesisStrategyProvider,
        decision_recorder: Any,
    ):
        self.stage_category = StageCategory(stage_category)
        self.strategy_provider = strategy_provider
        self.decision_recorder = decision_recorder

    async def synthesize(
        self,
        results: Sequence[FlavorExecutionResult],
        context: OrchestratorContext,
    ) -> Tuple[ArtifactValue, Decision]:
        """Merge the results into the Stage artifact.

        Raises:
            SynthesisError: If any synthesis value is missing, or the strategy
                chose an approach outside its own alternatives
            DecisionRecordError: If the decision cannot be recorded
        """
        category = self.stage_category.value

        missing = find_missing_values(results)
        if missing:
            logger.error(f"Stage {category}: missing synthesis artifacts from {missing}")
            raise SynthesisError(
                f'Stage "{category}" synthesis failed: flavor(s) '
                f"{', '.join(repr(name) for name in missing)} returned no synthesis artifact value.",
                stage_category=category,
            )

        strategy = self.strategy_provider.get_synthesis_strategy(results, context)
        if strategy.approach not in strategy.alternatives:
            raise SynthesisError(
                f'Stage "{category}" synthesis strategy chose "{strategy.approach}", '
                f"which is not among its alternatives {list(strategy.alternatives)}.",
                stage_category=category,
            )

        artifact = merge_results(self.stage_category, results)
        decision = await record_decision(
            self.decision_recorder,
            stage_category=self.stage_category,
            decision_type=DecisionType.SYNTHESIS_APPROACH,
            context={
                "flavor_count": len(results),
                "flavor_names": [result.flavor_name for result in results],
            },
            options=list(strategy.alternatives),
            selection=strategy.approach,
            reasoning=strategy.reasoning,
            confidence=SYNTHESIS_CONFIDENCE,
        )
        logger.info(f"Stage {category}: synthesized {len(results)} result(s) via {strategy.approach}")
        return artifact, decision
