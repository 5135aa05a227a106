"""Flavor registry: the Flavor Resolver consumed by the selector.

Pure lookup of Flavor definitions keyed by (stage category, name).
Definitions can be registered in code or loaded from a directory of
JSON documents.
"""

from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union
import json
import logging
import threading

from pydantic import BaseModel, Field, ValidationError

from orchestrator.errors import FlavorNotFoundError
from orchestrator.models import Flavor, FlavorStepRef, StageCategory

logger = logging.getLogger(__name__)


class FlavorStepDefinition(BaseModel):
    """On-disk form of a step reference."""
    step_name: str = Field(..., min_length=1)
    step_type: str = Field(..., min_length=1)


class FlavorDefinition(BaseModel):
    """On-disk form of a Flavor, validated before registration."""
    name: str = Field(..., min_length=1)
    stage_category: StageCategory
    description: Optional[str] = None
    steps: List[FlavorStepDefinition] = Field(..., min_length=1)
    synthesis_artifact: str = Field(..., min_length=1)

    def to_flavor(self) -> Flavor:
        return Flavor(
            name=self.name,
            stage_category=self.stage_category,
            description=self.description,
            steps=tuple(FlavorStepRef(s.step_name, s.step_type) for s in self.steps),
            synthesis_artifact=self.synthesis_artifact,
        )


class FlavorRegistry:
    """In-memory registry of Flavor definitions.

    Safe to share between concurrent orchestration runs.
    """

    def __init__(self, flavors: Optional[List[Flavor]] = None):
        self._flavors: Dict[Tuple[StageCategory, str], Flavor] = {}
        self._lock = threading.Lock()
        for flavor in flavors or []:
            self.register(flavor)

    def register(self, flavor: Flavor) -> None:
        """Register (or replace) a Flavor.

        Raises:
            ValueError: If the Flavor fails structural validation
        """
        valid, errors = self.validate(flavor)
        if not valid:
            raise ValueError(f'Invalid flavor "{flavor.name}": {"; ".join(errors)}')
        with self._lock:
            self._flavors[(flavor.stage_category, flavor.name)] = flavor

    def get(self, stage_category: StageCategory, name: str) -> Flavor:
        """Look up a Flavor.

        Raises:
            FlavorNotFoundError: If no Flavor (stage_category, name) is registered
        """
        key = (StageCategory(stage_category), name)
        with self._lock:
            flavor = self._flavors.get(key)
        if flavor is None:
            raise FlavorNotFoundError(stage_category, name)
        return flavor

    def list(self, stage_category: Optional[StageCategory] = None) -> List[Flavor]:
        """List registered Flavors, optionally for one category, sorted by name."""
        with self._lock:
            flavors = list(self._flavors.values())
        if stage_category is not None:
            category = StageCategory(stage_category)
            flavors = [f for f in flavors if f.stage_category == category]
        return sorted(flavors, key=lambda f: (f.stage_category.value, f.name))

    def delete(self, stage_category: StageCategory, name: str) -> Flavor:
        """Remove a Flavor and return it.

        Raises:
            FlavorNotFoundError: If the Flavor is not registered
        """
        key = (StageCategory(stage_category), name)
        with self._lock:
            flavor = self._flavors.pop(key, None)
        if flavor is None:
            raise FlavorNotFoundError(stage_category, name)
        return flavor

    def load_directory(self, directory: Union[str, Path]) -> int:
        """Load every ``*.json`` Flavor definition in a directory.

        Invalid files are skipped with a warning.

        Returns:
            Number of Flavors loaded
        """
        path = Path(directory)
        if not path.exists():
            logger.warning(f"Flavor directory not found: {path}")
            return 0

        loaded = 0
        for flavor_file in sorted(path.glob("*.json")):
            try:
                definition = FlavorDefinition(**json.loads(flavor_file.read_text(encoding="utf-8")))
                self.register(definition.to_flavor())
            except (OSError, ValueError, ValidationError) as e:
                logger.warning(f"Skipping invalid flavor file {flavor_file}: {e}")
                continue
            loaded += 1

        logger.info(f"FlavorRegistry: loaded {loaded} flavor(s) from {path}")
        return loaded

    @staticmethod
    def validate(flavor: Flavor) -> Tuple[bool, List[str]]:
        """Structural validation of a Flavor.

        Returns:
            Tuple of (valid, errors)
        """
        errors: List[str] = []
        if not flavor.steps:
            errors.append("Flavor must have at least one step")
        seen = set()
        for step in flavor.steps:
            if not step.step_name or not step.step_type:
                errors.append("Step references need a step_name and step_type")
            if step.step_name in seen:
                errors.append(f'Duplicate step_name: "{step.step_name}"')
            seen.add(step.step_name)
        if not flavor.synthesis_artifact:
            errors.append("Flavor must declare a synthesis artifact")
        return not errors, errors
