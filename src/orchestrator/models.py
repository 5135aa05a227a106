"""Stage, Flavor and context data model.

Stages describe one orchestration run; Flavors are the candidate
strategies a Stage can choose from. Everything here is read-only once
constructed.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field


class StageCategory(str, Enum):
    """The closed set of work modes a Stage can be orchestrated for."""

    RESEARCH = "research"
    PLAN = "plan"
    BUILD = "build"
    REVIEW = "review"


class ExecutionMode(str, Enum):
    """How selected Flavors are run."""

    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class SynthesisApproach(str, Enum):
    """Built-in strategies for merging per-Flavor outputs."""

    MERGE_ALL = "merge-all"
    CASCADE = "cascade"
    FIRST_WINS = "first-wins"


class OrchestratorConfig(BaseModel):
    """Per-stage orchestration limits."""

    max_parallel_flavors: int = Field(
        default=5,
        ge=1,
        description="Upper bound on Flavors run concurrently",
    )
    confidence_threshold: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Minimum decision confidence before human review is suggested",
    )


@dataclass(frozen=True)
class Stage:
    """Configuration for one orchestration run.

    Attributes:
        category: Stage category (work mode)
        available_flavors: Names of the Flavors this Stage may choose from
        pinned_flavors: Names that always run (unless also excluded)
        excluded_flavors: Names that never run
        orchestrator_config: Parallelism ceiling and confidence threshold; None
            uses the orchestrator's default
    """
    category: StageCategory
    available_flavors: Tuple[str, ...]
    pinned_flavors: Tuple[str, ...] = ()
    excluded_flavors: Tuple[str, ...] = ()
    orchestrator_config: Optional[OrchestratorConfig] = None

    def __post_init__(self):
        """Normalize and validate stage structure."""
        object.__setattr__(self, "category", StageCategory(self.category))
        object.__setattr__(self, "available_flavors", tuple(self.available_flavors))
        object.__setattr__(self, "pinned_flavors", tuple(self.pinned_flavors or ()))
        object.__setattr__(self, "excluded_flavors", tuple(self.excluded_flavors or ()))
        for name in self.available_flavors + self.pinned_flavors + self.excluded_flavors:
            if not isinstance(name, str) or not name:
                raise ValueError("Flavor names must be non-empty strings")


@dataclass(frozen=True)
class FlavorStepRef:
    """A reference to a Step within a Flavor's ordered step list."""
    step_name: str
    step_type: str


@dataclass(frozen=True)
class Flavor:
    """A named, registered strategy within a Stage category.

    Attributes:
        name: Unique name within the category
        stage_category: Category this Flavor belongs to
        steps: Ordered step references
        synthesis_artifact: Artifact key the executor must populate for synthesis
        description: Optional free text, used for keyword scoring
    """
    name: str
    stage_category: StageCategory
    steps: Tuple[FlavorStepRef, ...]
    synthesis_artifact: str
    description: Optional[str] = None

    def __post_init__(self):
        """Validate flavor structure."""
        if not isinstance(self.name, str) or not self.name:
            raise ValueError("Flavor name must be a non-empty string")
        if not self.synthesis_artifact:
            raise ValueError(f'Flavor "{self.name}" must declare a synthesis artifact')
        object.__setattr__(self, "stage_category", StageCategory(self.stage_category))
        object.__setattr__(self, "steps", tuple(self.steps))


@dataclass(frozen=True)
class OrchestratorContext:
    """Per-run input shared by every orchestration phase.

    Attributes:
        available_artifacts: Artifact names produced by prior Stages
        bet: Free-form metadata about the work unit (title, description, tags, ...)
        learnings: Advisory strings pre-filtered for this Stage category
    """
    available_artifacts: Tuple[str, ...] = ()
    bet: Optional[Dict[str, Any]] = None
    learnings: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "available_artifacts", tuple(self.available_artifacts or ()))
        object.__setattr__(self, "learnings", tuple(self.learnings or ()))


@dataclass(frozen=True)
class ArtifactValue:
    """A named artifact value (Flavor synthesis output or Stage artifact)."""
    name: str
    value: Any


@dataclass(frozen=True)
class FlavorExecutionResult:
    """Result of executing one Flavor.

    Attributes:
        flavor_name: Flavor that produced this result
        artifacts: Every artifact collected from the Flavor's steps
        synthesis_artifact: The artifact declared by the Flavor for synthesis
    """
    flavor_name: str
    artifacts: Dict[str, Any]
    synthesis_artifact: ArtifactValue


def flavor_names(flavors: Sequence[Flavor]) -> List[str]:
    """Return the names of the given Flavors, preserving order."""
    return [flavor.name for flavor in flavors]
