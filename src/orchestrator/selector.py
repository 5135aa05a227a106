"""Flavor selector: decides which Flavors a Stage runs.

Precedence, highest first:
1. Exclusions (a Flavor both pinned and excluded is excluded)
2. Pins (always run, resolved even when not listed as available)
3. Scoring (the single top-scoring non-pinned candidate runs)
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Tuple
import logging

from orchestrator.decisions import Decision, DecisionType, record_decision
from orchestrator.errors import ConfigurationError, FlavorNotFoundError, OrchestrationError
from orchestrator.models import Flavor, OrchestratorContext, Stage, StageCategory, flavor_names
from orchestrator.scoring import FlavorScorer, MatchReport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SelectionResult:
    """Output of the selection phase.

    Attributes:
        selected_flavors: Pinned Flavors first, then the top scorer (never empty)
        decision: The recorded flavor-selection Decision
        match_reports: One report per scored (non-pinned) candidate, best first
    """
    selected_flavors: Tuple[Flavor, ...]
    decision: Decision
    match_reports: Tuple[MatchReport, ...]


def _unique(names: Tuple[str, ...]) -> List[str]:
    seen = set()
    ordered = []
    for name in names:
        if name not in seen:
            seen.add(name)
            ordered.append(name)
    return ordered


class FlavorSelector:
    """Applies pin/exclude rules, resolves and scores candidates, records the choice."""

    def __init__(
        self,
        stage_category: StageCategory,
        flavor_resolver: Any,
        decision_recorder: Any,
        scorer: FlavorScorer,
    ):
        """Initialize the selector.

        Args:
            stage_category: Category every lookup and decision is made for
            flavor_resolver: Object exposing get(stage_category, name) -> Flavor
            decision_recorder: Object exposing record(...) -> Decision
            scorer: Category-specific scoring hook
        """
        self.stage_category = StageCategory(stage_category)
        self.flavor_resolver = flavor_resolver
        self.decision_recorder = decision_recorder
        self.scorer = scorer

    def _resolve(self, name: str, kind: str):
        """Resolve one Flavor; None when not found, fatal on any other error."""
        try:
            return self.flavor_resolver.get(self.stage_category, name)
        except FlavorNotFoundError as e:
            logger.warning(
                f'Orchestrator: {kind} "{self.stage_category.value}/{name}" '
                f"not found in registry, skipping ({e})"
            )
            return None
        except Exception as e:
            raise OrchestrationError(
                f'Stage "{self.stage_category.value}" failed to resolve {kind} "{name}": {e}',
                stage_category=self.stage_category.value,
            ) from e

    async def select(self, stage: Stage, context: OrchestratorContext) -> SelectionResult:
        """Choose the Flavors to run and record a flavor-selection Decision.

        Raises:
            ConfigurationError: If nothing is available or nothing resolves
            OrchestrationError: If the resolver fails with anything but "not found"
            DecisionRecordError: If the decision cannot be recorded
        """
        category = self.stage_category.value
        excluded = set(stage.excluded_flavors)
        pinned = _unique(stage.pinned_flavors)

        for name in pinned:
            if name in excluded:
                logger.warning(
                    f'Orchestrator: flavor "{category}/{name}" is both pinned and excluded; '
                    f"exclusion wins."
                )

        pinned_flavors: List[Flavor] = []
        for name in pinned:
            if name in excluded:
                continue
            flavor = self._resolve(name, "pinned flavor")
            if flavor is not None:
                pinned_flavors.append(flavor)

        candidate_names = [name for name in _unique(stage.available_flavors) if name not in excluded]
        if not candidate_names and not pinned_flavors:
            logger.error(f'Orchestrator: stage "{category}" has no available flavors after exclusions.')
            raise ConfigurationError(
                f'Stage "{category}" has no available flavors after applying excluded flavors.',
                stage_category=category,
            )

        pinned_names = set(flavor_names(pinned_flavors))
        candidates: List[Flavor] = []
        for name in candidate_names:
            if name in pinned_names:
                continue
            flavor = self._resolve(name, "flavor")
            if flavor is not None:
                candidates.append(flavor)

        if not candidates and not pinned_flavors:
            logger.error(
                f'Orchestrator: stage "{category}" has no resolvable flavors '
                f"(candidates: {candidate_names})."
            )
            raise ConfigurationError(
                f'Stage "{category}" has no resolvable flavors. '
                f"Ensure every available flavor is registered.",
                stage_category=category,
            )

        reports = [self.scorer.report(flavor, context) for flavor in candidates]
        ranked = sorted(zip(candidates, reports), key=lambda pair: pair[1].score, reverse=True)

        top = ranked[0] if ranked else None
        selected: List[Flavor] = []
        seen = set()
        for flavor in pinned_flavors + ([top[0]] if top else []):
            if flavor.name not in seen:
                seen.add(flavor.name)
                selected.append(flavor)

        confidence = top[1].score if top else 0.0
        selection = top[0].name if top else pinned_flavors[0].name
        options = _unique(tuple(flavor_names(candidates) + flavor_names(pinned_flavors)))
        if selection not in options:
            options.append(selection)

        score_summary = ", ".join(
            f"{flavor.name}({report.score:.2f})" for flavor, report in ranked[:3]
        )
        reasoning = (
            f"Scored candidates: [{score_summary or 'none (all pinned)'}]. "
            f"Pinned: [{', '.join(pinned) or 'none'}]. "
            f"Excluded: [{', '.join(sorted(excluded)) or 'none'}]. "
            f'Selected: "{selection}" as primary, with {len(pinned_flavors)} pinned flavor(s).'
        )

        snapshot: Dict[str, Any] = {
            "available_artifacts": list(context.available_artifacts),
            "bet": context.bet,
            "learning_count": len(context.learnings),
            "candidate_count": len(candidates),
            "pinned_flavors": pinned,
            "excluded_flavors": sorted(excluded),
        }
        decision = await record_decision(
            self.decision_recorder,
            stage_category=self.stage_category,
            decision_type=DecisionType.FLAVOR_SELECTION,
            context=snapshot,
            options=options,
            selection=selection,
            reasoning=reasoning,
            confidence=confidence,
        )

        logger.info(f"Stage {category}: selected {flavor_names(selected)} (confidence {confidence:.2f})")
        return SelectionResult(
            selected_flavors=tuple(selected),
            decision=decision,
            match_reports=tuple(report for _, report in ranked),
        )
