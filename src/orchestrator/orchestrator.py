"""Stage orchestrator: single entry point for running a Stage.

A run moves through four phases, strictly in order:

    select -> decide-mode -> execute -> synthesize

Each judgment phase records a Decision. Any failure aborts the remaining
phases and propagates; there is no partial result.

Category-specific behavior is injected as two strategy objects (a scorer
and a synthesis strategy provider). The factory picks both per category
from its vocabulary cache.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union
import logging
import uuid

from orchestrator.config import Settings
from orchestrator.decisions import Decision, DecisionLog
from orchestrator.errors import ConfigurationError
from orchestrator.execution_mode import ExecutionModeDecider
from orchestrator.fanout import FanOutExecutor
from orchestrator.flavors import FlavorRegistry
from orchestrator.models import (
    ArtifactValue,
    ExecutionMode,
    Flavor,
    FlavorExecutionResult,
    OrchestratorConfig,
    OrchestratorContext,
    Stage,
    StageCategory,
    flavor_names,
)
from orchestrator.run_trace import OrchestrationPhase, OrchestrationTrace, RunStatus, TraceStore
from orchestrator.scoring import FlavorScorer, MatchReport, VocabularyScorer
from orchestrator.selector import FlavorSelector
from orchestrator.synthesis import SynthesisStrategyProvider, Synthesizer, VocabularySynthesisStrategy
from orchestrator.vocabulary import VocabularyCache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrchestratorResult:
    """Result of a successful Stage run.

    Attributes:
        stage_category: Category that was orchestrated
        selected_flavors: Flavors that ran, pinned first
        decisions: [flavor-selection, execution-mode, synthesis-approach]
        flavor_results: One result per selected Flavor, in Flavor order
        stage_artifact: "<category>-synthesis" map of flavor name to value
        execution_mode: How the Flavors were run
        match_reports: Score breakdown per scored candidate
        trace_id: ID of the run trace
    """
    stage_category: StageCategory
    selected_flavors: Tuple[Flavor, ...]
    decisions: Tuple[Decision, ...]
    flavor_results: Tuple[FlavorExecutionResult, ...]
    stage_artifact: ArtifactValue
    execution_mode: ExecutionMode
    match_reports: Tuple[MatchReport, ...] = ()
    trace_id: Optional[str] = None

    def __repr__(self):
        return (
            f"OrchestratorResult(\n"
            f"  stage={self.stage_category.value},\n"
            f"  flavors={flavor_names(self.selected_flavors)},\n"
            f"  mode={self.execution_mode.value},\n"
            f"  decisions={[d.decision_type.value for d in self.decisions]},\n"
            f"  trace_id={self.trace_id or 'N/A'}\n"
            f")"
        )


class StageOrchestrator:
    """Runs one Stage category end to end.

    Collaborators:
    - flavor_resolver: get(stage_category, name) -> Flavor
    - decision_recorder: record(...) -> Decision (sync or awaitable)
    - flavor_executor: async execute(flavor, context) -> FlavorExecutionResult
    """

    def __init__(
        self,
        stage_category: StageCategory,
        flavor_resolver: Any,
        decision_recorder: Any,
        flavor_executor: Any,
        scorer: FlavorScorer,
        synthesis_strategy: SynthesisStrategyProvider,
        trace_store: Optional[TraceStore] = None,
        default_config: Optional[OrchestratorConfig] = None,
    ):
        self.stage_category = StageCategory(stage_category)
        self.default_config = default_config or OrchestratorConfig()
        self.selector = FlavorSelector(self.stage_category, flavor_resolver, decision_recorder, scorer)
        self.mode_decider = ExecutionModeDecider(self.stage_category, decision_recorder)
        self.fanout = FanOutExecutor(self.stage_category, flavor_executor)
        self.synthesizer = Synthesizer(self.stage_category, synthesis_strategy, decision_recorder)
        self.trace_store = trace_store if trace_store is not None else TraceStore()

    async def run(
        self,
        stage: Stage,
        context: Optional[OrchestratorContext] = None,
    ) -> OrchestratorResult:
        """Run the Stage through every phase.

        Args:
            stage: Stage configuration (must match this orchestrator's category)
            context: Artifacts, bet and learnings for this run

        Returns:
            OrchestratorResult with exactly three decisions

        Raises:
            OrchestrationError: (or a subclass) on any phase failure
        """
        context = context or OrchestratorContext()
        category = self.stage_category.value
        if stage.category != self.stage_category:
            raise ConfigurationError(
                f'Stage "{stage.category.value}" cannot run on the "{category}" orchestrator.',
                stage_category=stage.category.value,
            )

        trace = OrchestrationTrace(trace_id=str(uuid.uuid4()), stage_category=category)
        self.trace_store.store(trace)
        logger.info(f"Stage {category}: orchestration started (trace {trace.trace_id})")

        try:
            trace.advance(OrchestrationPhase.SELECT)
            selection = await self.selector.select(stage, context)
            selected = list(selection.selected_flavors)
            trace.finish_phase(
                True,
                summary=f"selected {flavor_names(selected)}",
                decision_id=selection.decision.id,
            )

            trace.advance(OrchestrationPhase.DECIDE_MODE)
            config = stage.orchestrator_config or self.default_config
            mode, mode_decision = await self.mode_decider.decide(selected, config)
            trace.finish_phase(True, summary=mode.value, decision_id=mode_decision.id)

            trace.advance(OrchestrationPhase.EXECUTE)
            results = await self.fanout.run(selected, mode, context)
            trace.finish_phase(True, summary=f"{len(results)} flavor result(s)")

            trace.advance(OrchestrationPhase.SYNTHESIZE)
            artifact, synthesis_decision = await self.synthesizer.synthesize(results, context)
            trace.finish_phase(True, summary=artifact.name, decision_id=synthesis_decision.id)
        except Exception as e:
            trace.finish_phase(False, error_message=str(e))
            trace.complete(RunStatus.FAILED, str(e))
            logger.error(f"Stage {category}: orchestration failed: {e}")
            raise

        trace.complete(RunStatus.SUCCESS)
        logger.info(f"Stage {category}: orchestration completed (trace {trace.trace_id})")
        return OrchestratorResult(
            stage_category=self.stage_category,
            selected_flavors=tuple(selected),
            decisions=(selection.decision, mode_decision, synthesis_decision),
            flavor_results=tuple(results),
            stage_artifact=artifact,
            execution_mode=mode,
            match_reports=tuple(selection.match_reports),
            trace_id=trace.trace_id,
        )


class OrchestratorFactory:
    """Builds StageOrchestrators keyed on category.

    Owns the vocabulary cache; every orchestrator it builds for a category
    shares the same loaded vocabulary.
    """

    def __init__(
        self,
        flavor_resolver: Any,
        decision_recorder: Any,
        flavor_executor: Any,
        vocabulary_dir: Optional[Union[str, Path]] = None,
        vocabulary_cache: Optional[VocabularyCache] = None,
        trace_store: Optional[TraceStore] = None,
        default_config: Optional[OrchestratorConfig] = None,
    ):
        self.flavor_resolver = flavor_resolver
        self.default_config = default_config or OrchestratorConfig()
        self.decision_recorder = decision_recorder
        self.flavor_executor = flavor_executor
        self.vocabulary_dir = vocabulary_dir
        self.vocabulary_cache = vocabulary_cache if vocabulary_cache is not None else VocabularyCache()
        self.trace_store = trace_store if trace_store is not None else TraceStore()
        self._overrides: Dict[StageCategory, Tuple[Optional[FlavorScorer], Optional[SynthesisStrategyProvider]]] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        flavor_executor: Any,
    ) -> "OrchestratorFactory":
        """Build a factory with a DecisionLog and FlavorRegistry from settings.

        Stages without their own config run with the settings' limits.
        """
        registry = FlavorRegistry()
        if settings.flavors_dir:
            registry.load_directory(settings.flavors_dir)
        return cls(
            flavor_resolver=registry,
            decision_recorder=DecisionLog(settings.decisions_dir),
            flavor_executor=flavor_executor,
            vocabulary_dir=settings.vocabulary_dir,
            trace_store=TraceStore(settings.max_traces),
            default_config=settings.orchestrator_config(),
        )

    def register_strategies(
        self,
        stage_category: StageCategory,
        scorer: Optional[FlavorScorer] = None,
        synthesis_strategy: Optional[SynthesisStrategyProvider] = None,
    ) -> None:
        """Override the vocabulary-driven strategies for one category."""
        self._overrides[StageCategory(stage_category)] = (scorer, synthesis_strategy)

    def create(self, stage_category: Union[StageCategory, str]) -> StageOrchestrator:
        """Build the orchestrator for a category.

        Raises:
            ConfigurationError: If the category is unknown
        """
        try:
            category = StageCategory(stage_category)
        except ValueError as e:
            raise ConfigurationError(
                f'Unknown stage category "{stage_category}". '
                f"Expected one of {[c.value for c in StageCategory]}.",
                stage_category=str(stage_category),
            ) from e

        vocabulary = self.vocabulary_cache.get(category, self.vocabulary_dir)
        scorer, synthesis_strategy = self._overrides.get(category, (None, None))
        return StageOrchestrator(
            stage_category=category,
            flavor_resolver=self.flavor_resolver,
            decision_recorder=self.decision_recorder,
            flavor_executor=self.flavor_executor,
            scorer=scorer or VocabularyScorer(vocabulary),
            synthesis_strategy=synthesis_strategy or VocabularySynthesisStrategy(vocabulary),
            trace_store=self.trace_store,
            default_config=self.default_config,
        )


def create_stage_orchestrator(
    stage_category: Union[StageCategory, str],
    flavor_resolver: Any,
    decision_recorder: Any,
    flavor_executor: Any,
    vocabulary_dir: Optional[Union[str, Path]] = None,
    vocabulary_cache: Optional[VocabularyCache] = None,
) -> StageOrchestrator:
    """Convenience wrapper around OrchestratorFactory.create()."""
    factory = OrchestratorFactory(
        flavor_resolver=flavor_resolver,
        decision_recorder=decision_recorder,
        flavor_executor=flavor_executor,
        vocabulary_dir=vocabulary_dir,
        vocabulary_cache=vocabulary_cache,
    )
    return factory.create(stage_category)
