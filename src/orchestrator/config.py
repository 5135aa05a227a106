"""Process-level settings read from the environment (and a .env file)."""

from dataclasses import dataclass
from typing import Optional
import logging
import os

from dotenv import load_dotenv

from orchestrator.errors import ConfigurationError
from orchestrator.models import OrchestratorConfig

logger = logging.getLogger(__name__)


def _optional(name: str) -> Optional[str]:
    value = os.getenv(name)
    return value if value else None


@dataclass(frozen=True)
class Settings:
    """Orchestrator settings.

    Attributes:
        max_parallel_flavors: Default parallelism ceiling for Stages
        confidence_threshold: Default confidence threshold for Stages
        vocabulary_dir: Directory overriding the built-in vocabularies
        decisions_dir: Where the decision log persists (None keeps it in memory)
        flavors_dir: Directory of Flavor definitions loaded at startup
        max_traces: How many run traces the orchestrators keep in memory
        log_level: Root logging level name
    """
    max_parallel_flavors: int = 5
    confidence_threshold: float = 0.7
    vocabulary_dir: Optional[str] = None
    decisions_dir: Optional[str] = None
    flavors_dir: Optional[str] = None
    max_traces: int = 100
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, dotenv: bool = True, env_file: Optional[str] = None) -> "Settings":
        """Build settings from ORCHESTRATOR_* variables and LOG_LEVEL.

        Args:
            dotenv: Load a .env file first (existing variables win)
            env_file: Explicit .env path; searched for when omitted

        Raises:
            ConfigurationError: If a numeric variable cannot be parsed
        """
        if dotenv:
            load_dotenv(env_file)

        try:
            max_parallel = int(os.getenv("ORCHESTRATOR_MAX_PARALLEL_FLAVORS", "5"))
            threshold = float(os.getenv("ORCHESTRATOR_CONFIDENCE_THRESHOLD", "0.7"))
            max_traces = int(os.getenv("ORCHESTRATOR_MAX_TRACES", "100"))
        except ValueError as e:
            raise ConfigurationError(f"Invalid orchestrator setting: {e}") from e

        return cls(
            max_parallel_flavors=max_parallel,
            confidence_threshold=threshold,
            vocabulary_dir=_optional("ORCHESTRATOR_VOCABULARY_DIR"),
            decisions_dir=_optional("ORCHESTRATOR_DECISIONS_DIR"),
            flavors_dir=_optional("ORCHESTRATOR_FLAVORS_DIR"),
            max_traces=max_traces,
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

    def orchestrator_config(self) -> OrchestratorConfig:
        """Default per-stage config; pydantic validates the bounds."""
        return OrchestratorConfig(
            max_parallel_flavors=self.max_parallel_flavors,
            confidence_threshold=self.confidence_threshold,
        )
