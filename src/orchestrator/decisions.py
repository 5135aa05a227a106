"""Decision log: the audit trail of every orchestration judgment.

Key principles:
- Append-only: a recorded Decision is never mutated
- Outcomes are separate records keyed by decision id
- One-way emission: subscribers are notified, never awaited or depended on
- Serializable: every record round-trips through JSON
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Literal, Optional, Tuple, Union
import inspect
import json
import logging
import threading
import uuid

from pydantic import BaseModel, ValidationError, model_validator

from orchestrator.errors import (
    DecisionNotFoundError,
    DecisionRecordError,
    DecisionValidationError,
)
from orchestrator.models import StageCategory

logger = logging.getLogger(__name__)


class DecisionType(str, Enum):
    """Kinds of decision the orchestrator records, one per phase."""
    FLAVOR_SELECTION = "flavor-selection"
    EXECUTION_MODE = "execution-mode"
    SYNTHESIS_APPROACH = "synthesis-approach"


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Decision:
    """An immutable audit record of one orchestration judgment.

    Attributes:
        id: Unique identifier assigned by the log
        stage_category: Category of the Stage being orchestrated
        decision_type: Which phase made the decision
        context: Phase-specific snapshot of the inputs
        options: Every alternative considered (always contains selection)
        selection: The alternative chosen
        reasoning: Human-readable explanation
        confidence: Confidence in the selection, 0.0 to 1.0
        decided_at: ISO-8601 timestamp
    """
    id: str
    stage_category: StageCategory
    decision_type: DecisionType
    context: Dict[str, Any]
    options: Tuple[str, ...]
    selection: str
    reasoning: str
    confidence: float
    decided_at: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        data = asdict(self)
        data["stage_category"] = self.stage_category.value
        data["decision_type"] = self.decision_type.value
        data["options"] = list(self.options)
        return data

    def to_json(self, indent: int = 2) -> str:
        """Convert to a JSON string."""
        return json.dumps(self.to_dict(), indent=indent, default=str)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Decision":
        """Rebuild a Decision from its dictionary form."""
        return cls(
            id=data["id"],
            stage_category=StageCategory(data["stage_category"]),
            decision_type=DecisionType(data["decision_type"]),
            context=dict(data.get("context") or {}),
            options=tuple(data["options"]),
            selection=data["selection"],
            reasoning=data["reasoning"],
            confidence=float(data["confidence"]),
            decided_at=data["decided_at"],
        )


class DecisionOutcome(BaseModel):
    """Post-facto assessment of a decision. At least one field must be set."""

    artifact_quality: Optional[Literal["good", "partial", "poor"]] = None
    gate_result: Optional[Literal["passed", "failed", "skipped"]] = None
    rework_required: Optional[bool] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _require_one_field(self) -> "DecisionOutcome":
        if all(
            value is None
            for value in (self.artifact_quality, self.gate_result, self.rework_required, self.notes)
        ):
            raise ValueError("A decision outcome needs at least one field")
        return self


@dataclass(frozen=True)
class DecisionOutcomeRecord:
    """One append-only outcome entry for a decision."""
    decision_id: str
    outcome: DecisionOutcome
    recorded_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "decision_id": self.decision_id,
            "outcome": self.outcome.model_dump(exclude_none=True),
            "recorded_at": self.recorded_at,
        }


@dataclass
class DecisionQuery:
    """Filters for listing decisions. None means no filter on that field."""
    stage_category: Optional[StageCategory] = None
    decision_type: Optional[DecisionType] = None
    confidence_min: Optional[float] = None
    confidence_max: Optional[float] = None
    decided_from: Optional[str] = None
    decided_to: Optional[str] = None

    def matches(self, decision: Decision) -> bool:
        if self.stage_category is not None and decision.stage_category != self.stage_category:
            return False
        if self.decision_type is not None and decision.decision_type != self.decision_type:
            return False
        if self.confidence_min is not None and decision.confidence < self.confidence_min:
            return False
        if self.confidence_max is not None and decision.confidence > self.confidence_max:
            return False
        if self.decided_from is not None and decision.decided_at < self.decided_from:
            return False
        if self.decided_to is not None and decision.decided_at > self.decided_to:
            return False
        return True


@dataclass
class DecisionStats:
    """Aggregate statistics over a set of decisions."""
    count: int
    avg_confidence: float
    count_by_type: Dict[str, int] = field(default_factory=dict)
    outcome_distribution: Dict[str, int] = field(default_factory=dict)


DecisionSubscriber = Callable[[Decision], None]


def validate_decision_input(
    stage_category: Any,
    decision_type: Any,
    options: Any,
    selection: Any,
    reasoning: Any,
    confidence: Any,
) -> Tuple[StageCategory, DecisionType, Tuple[str, ...]]:
    """Check the Decision invariants before a record is accepted.

    Returns:
        Tuple of (stage_category, decision_type, options) in normalized form

    Raises:
        DecisionValidationError: If any invariant is violated
    """
    try:
        category = StageCategory(stage_category)
    except ValueError:
        raise DecisionValidationError(f"Unknown stage category: {stage_category!r}")
    try:
        dtype = DecisionType(decision_type)
    except ValueError:
        raise DecisionValidationError(f"Unknown decision type: {decision_type!r}")

    normalized = tuple(options or ())
    if not normalized:
        raise DecisionValidationError("Decision options must not be empty")
    if selection not in normalized:
        raise DecisionValidationError(
            f"Decision selection {selection!r} is not one of the options {list(normalized)}"
        )
    if not isinstance(reasoning, str) or not reasoning.strip():
        raise DecisionValidationError("Decision reasoning must be a non-empty string")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        raise DecisionValidationError(f"Decision confidence must be a number, got {confidence!r}")
    if not 0.0 <= confidence <= 1.0:
        raise DecisionValidationError(f"Decision confidence {confidence} outside [0, 1]")
    return category, dtype, normalized


class DecisionLog:
    """Decision Recorder with optional JSON persistence and outcome tracking.

    Decisions are persisted to ``base_path/{stage_category}.{id}.json``;
    outcomes are appended to ``base_path/outcomes.jsonl``. Without a
    base_path the log is purely in-memory.

    Cache semantics: list() loads from disk only while the cache is empty.
    """

    OUTCOMES_FILE = "outcomes.jsonl"

    def __init__(self, base_path: Optional[Union[str, Path]] = None):
        """Initialize the decision log.

        Args:
            base_path: Directory for decision files, or None for in-memory only
        """
        self.base_path = Path(base_path) if base_path is not None else None
        self._decisions: Dict[str, Decision] = {}
        self._outcomes: Dict[str, List[DecisionOutcomeRecord]] = {}
        self._subscribers: List[DecisionSubscriber] = []
        self._lock = threading.Lock()
        self._outcomes_loaded = False

    def record(
        self,
        *,
        stage_category: Any,
        decision_type: Any,
        context: Optional[Dict[str, Any]],
        options: Any,
        selection: str,
        reasoning: str,
        confidence: float,
        decided_at: Optional[str] = None,
    ) -> Decision:
        """Validate, assign an id and timestamp, persist and publish a decision.

        Returns:
            The stored Decision

        Raises:
            DecisionValidationError: If the input violates the Decision invariants
            OSError: If the decision file cannot be written
        """
        category, dtype, normalized = validate_decision_input(
            stage_category, decision_type, options, selection, reasoning, confidence
        )
        decision = Decision(
            id=str(uuid.uuid4()),
            stage_category=category,
            decision_type=dtype,
            context=dict(context or {}),
            options=normalized,
            selection=selection,
            reasoning=reasoning,
            confidence=float(confidence),
            decided_at=decided_at or utc_now(),
        )

        with self._lock:
            if self.base_path is not None:
                self.base_path.mkdir(parents=True, exist_ok=True)
                path = self.base_path / f"{decision.stage_category.value}.{decision.id}.json"
                path.write_text(decision.to_json(), encoding="utf-8")
            self._decisions[decision.id] = decision
            subscribers = list(self._subscribers)

        logger.debug(
            f"Recorded {decision.decision_type.value} decision {decision.id} for "
            f"{decision.stage_category.value}: {decision.selection} "
            f"(confidence {decision.confidence:.2f})"
        )
        self._publish(decision, subscribers)
        return decision

    def subscribe(self, callback: DecisionSubscriber) -> None:
        """Register a consumer of newly recorded decisions."""
        with self._lock:
            self._subscribers.append(callback)

    def _publish(self, decision: Decision, subscribers: List[DecisionSubscriber]) -> None:
        for callback in subscribers:
            try:
                callback(decision)
            except Exception as e:
                logger.warning(
                    f"Decision subscriber {callback!r} failed for {decision.id}: {e}"
                )

    def get(self, decision_id: str) -> Decision:
        """Retrieve a decision by id.

        Raises:
            DecisionNotFoundError: If no decision with that id exists
        """
        with self._lock:
            cached = self._decisions.get(decision_id)
        if cached is not None:
            return cached

        self._load_from_disk()
        with self._lock:
            loaded = self._decisions.get(decision_id)
        if loaded is None:
            raise DecisionNotFoundError(decision_id)
        return loaded

    def list(self, query: Optional[DecisionQuery] = None) -> List[Decision]:
        """List decisions, optionally filtered, oldest first."""
        if not self._decisions:
            self._load_from_disk()
        with self._lock:
            decisions = list(self._decisions.values())
        if query is not None:
            decisions = [d for d in decisions if query.matches(d)]
        return sorted(decisions, key=lambda d: d.decided_at)

    def record_outcome(self, decision_id: str, outcome: DecisionOutcome) -> DecisionOutcomeRecord:
        """Append an outcome entry for a decision.

        Raises:
            DecisionNotFoundError: If no decision with that id exists
            OSError: If the outcomes file cannot be written
        """
        self.get(decision_id)
        self._load_outcomes()
        entry = DecisionOutcomeRecord(
            decision_id=decision_id,
            outcome=outcome,
            recorded_at=utc_now(),
        )
        with self._lock:
            if self.base_path is not None:
                self.base_path.mkdir(parents=True, exist_ok=True)
                with open(self.base_path / self.OUTCOMES_FILE, "a", encoding="utf-8") as f:
                    f.write(json.dumps(entry.to_dict()) + "\n")
            self._outcomes.setdefault(decision_id, []).append(entry)
        return entry

    def outcomes(self, decision_id: str) -> List[DecisionOutcomeRecord]:
        """All outcome entries for a decision, in the order they were recorded."""
        self._load_outcomes()
        with self._lock:
            return list(self._outcomes.get(decision_id, []))

    def outcome_for(self, decision_id: str) -> Optional[DecisionOutcome]:
        """Merge every outcome entry for a decision; later fields win."""
        entries = self.outcomes(decision_id)
        if not entries:
            return None
        merged: Dict[str, Any] = {}
        for entry in entries:
            merged.update(entry.outcome.model_dump(exclude_none=True))
        return DecisionOutcome(**merged)

    def get_stats(self, stage_category: Optional[StageCategory] = None) -> DecisionStats:
        """Compute aggregate statistics, optionally for one category."""
        query = DecisionQuery(stage_category=StageCategory(stage_category)) if stage_category else None
        subset = self.list(query)

        count = len(subset)
        avg_confidence = sum(d.confidence for d in subset) / count if count else 0.0

        count_by_type: Dict[str, int] = {}
        for d in subset:
            count_by_type[d.decision_type.value] = count_by_type.get(d.decision_type.value, 0) + 1

        distribution = {"good": 0, "partial": 0, "poor": 0, "no_outcome": 0}
        for d in subset:
            outcome = self.outcome_for(d.id)
            quality = outcome.artifact_quality if outcome else None
            distribution[quality or "no_outcome"] += 1

        return DecisionStats(
            count=count,
            avg_confidence=avg_confidence,
            count_by_type=count_by_type,
            outcome_distribution=distribution,
        )

    def clear(self) -> None:
        """Drop the in-memory cache (files on disk are untouched)."""
        with self._lock:
            self._decisions.clear()
            self._outcomes.clear()
            self._outcomes_loaded = False

    def _load_from_disk(self) -> None:
        """Load decisions from base_path into the cache."""
        if self.base_path is None or not self.base_path.exists():
            return

        with self._lock:
            for path in sorted(self.base_path.glob("*.json")):
                try:
                    decision = Decision.from_dict(json.loads(path.read_text(encoding="utf-8")))
                except (OSError, ValueError, KeyError) as e:
                    logger.warning(f"Skipping unreadable decision file {path}: {e}")
                    continue
                self._decisions.setdefault(decision.id, decision)

    def _load_outcomes(self) -> None:
        """Load outcomes.jsonl once per cache lifetime."""
        if self.base_path is None:
            return
        with self._lock:
            if self._outcomes_loaded:
                return
            self._outcomes_loaded = True
            outcomes_path = self.base_path / self.OUTCOMES_FILE
            if not outcomes_path.exists():
                return
            for line in outcomes_path.read_text(encoding="utf-8").splitlines():
                if not line.strip():
                    continue
                try:
                    raw = json.loads(line)
                    entry = DecisionOutcomeRecord(
                        decision_id=raw["decision_id"],
                        outcome=DecisionOutcome(**raw["outcome"]),
                        recorded_at=raw["recorded_at"],
                    )
                except (ValueError, KeyError, ValidationError) as e:
                    logger.warning(f"Skipping malformed outcome entry: {e}")
                    continue
                self._outcomes.setdefault(entry.decision_id, []).append(entry)


async def record_decision(
    recorder: Any,
    *,
    stage_category: StageCategory,
    decision_type: DecisionType,
    context: Dict[str, Any],
    options: List[str],
    selection: str,
    reasoning: str,
    confidence: float,
) -> Decision:
    """Record a decision through any recorder, sync or awaitable.

    Raises:
        DecisionRecordError: If the recorder fails for any reason
    """
    category = StageCategory(stage_category).value
    dtype = DecisionType(decision_type).value
    try:
        decision = recorder.record(
            stage_category=stage_category,
            decision_type=decision_type,
            context=context,
            options=options,
            selection=selection,
            reasoning=reasoning,
            confidence=confidence,
            decided_at=utc_now(),
        )
        if inspect.isawaitable(decision):
            decision = await decision
    except Exception as e:
        raise DecisionRecordError(
            f'Stage "{category}" failed to record {dtype} decision: {e}',
            stage_category=category,
        ) from e
    return decision
