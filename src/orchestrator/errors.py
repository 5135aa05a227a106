"""Exception taxonomy for stage orchestration.

Every failure the engine surfaces to its caller is an OrchestrationError
carrying the stage category (when known) and a human-readable explanation.
"""

from typing import Any, List, Optional, Tuple


class OrchestrationError(Exception):
    """Base class for every fatal orchestration failure."""

    def __init__(self, message: str, stage_category: Optional[str] = None):
        super().__init__(message)
        self.stage_category = stage_category


class ConfigurationError(OrchestrationError):
    """Raised when a Stage has nothing to run (no candidates / none resolvable)."""
    pass


class FlavorExecutionError(OrchestrationError):
    """Raised when one or more Flavors fail during fan-out execution.

    Attributes:
        failures: (flavor_name, exception) pairs, one per failed Flavor
        attempted: Number of Flavors that were attempted
    """

    def __init__(
        self,
        message: str,
        stage_category: Optional[str] = None,
        failures: Optional[List[Tuple[str, BaseException]]] = None,
        attempted: int = 0,
    ):
        super().__init__(message, stage_category)
        self.failures = failures or []
        self.attempted = attempted


class SynthesisError(OrchestrationError):
    """Raised when synthesis validation or the strategy contract fails."""
    pass


class DecisionRecordError(OrchestrationError):
    """Raised when a Decision could not be recorded. Never swallowed."""
    pass


class FlavorNotFoundError(Exception):
    """Raised by the Flavor Resolver when (category, name) is not registered."""

    def __init__(self, stage_category: Any, name: str):
        category = getattr(stage_category, "value", stage_category)
        super().__init__(f'Flavor "{category}/{name}" not found')
        self.stage_category = category
        self.name = name


class DecisionValidationError(ValueError):
    """Raised when a decision input violates the Decision invariants."""
    pass


class DecisionNotFoundError(KeyError):
    """Raised when a decision id is unknown to the decision log."""

    def __init__(self, decision_id: str):
        super().__init__(decision_id)
        self.decision_id = decision_id

    def __str__(self) -> str:
        return f'Decision "{self.decision_id}" not found'
