"""Phase tracing for stage orchestration runs.

Each run advances through four phases in a fixed order:

    select -> decide-mode -> execute -> synthesize

Key principles:
- Strict: a phase can be entered once, and only after its predecessor
- Read-only: traces observe a run, they never change its outcome
- Serializable: Easy to convert to JSON
"""

from collections import OrderedDict
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
import json
import threading

from orchestrator.errors import OrchestrationError


class OrchestrationPhase(str, Enum):
    """Phases of a run, in order."""
    SELECT = "select"
    DECIDE_MODE = "decide-mode"
    EXECUTE = "execute"
    SYNTHESIZE = "synthesize"


PHASE_ORDER = [
    OrchestrationPhase.SELECT,
    OrchestrationPhase.DECIDE_MODE,
    OrchestrationPhase.EXECUTE,
    OrchestrationPhase.SYNTHESIZE,
]


class PhaseStatus(str, Enum):
    """Status of a single phase."""
    STARTED = "STARTED"
    SUCCESS = "SUCCESS"
    FAIL = "FAIL"


class RunStatus(str, Enum):
    """Overall run status."""
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class PhaseRecord:
    """One entered phase of a run."""
    phase: OrchestrationPhase
    status: PhaseStatus
    started_at: str
    completed_at: Optional[str] = None
    summary: Optional[str] = None
    error_message: Optional[str] = None
    decision_id: Optional[str] = None


@dataclass
class OrchestrationTrace:
    """Complete trace of one Stage orchestration run."""
    trace_id: str
    stage_category: str
    status: RunStatus = RunStatus.RUNNING
    started_at: str = field(default_factory=_now)
    completed_at: Optional[str] = None
    phases: List[PhaseRecord] = field(default_factory=list)
    final_error: Optional[str] = None

    @property
    def current_phase(self) -> Optional[OrchestrationPhase]:
        return self.phases[-1].phase if self.phases else None

    def advance(self, phase: OrchestrationPhase) -> PhaseRecord:
        """Enter the next phase.

        Raises:
            OrchestrationError: If the phase is out of order, repeated, the
                previous phase has not succeeded, or the run is complete
        """
        phase = OrchestrationPhase(phase)
        if self.status != RunStatus.RUNNING:
            raise OrchestrationError(
                f'Stage "{self.stage_category}" run {self.trace_id} is already '
                f"{self.status.value}; cannot enter {phase.value}.",
                stage_category=self.stage_category,
            )

        expected = PHASE_ORDER[len(self.phases)] if len(self.phases) < len(PHASE_ORDER) else None
        if phase != expected:
            raise OrchestrationError(
                f'Stage "{self.stage_category}" cannot enter phase {phase.value} '
                f"(expected {expected.value if expected else 'no further phase'}).",
                stage_category=self.stage_category,
            )
        if self.phases and self.phases[-1].status != PhaseStatus.SUCCESS:
            raise OrchestrationError(
                f'Stage "{self.stage_category}" cannot enter phase {phase.value}: '
                f"{self.phases[-1].phase.value} did not succeed.",
                stage_category=self.stage_category,
            )

        record = PhaseRecord(phase=phase, status=PhaseStatus.STARTED, started_at=_now())
        self.phases.append(record)
        return record

    def finish_phase(
        self,
        success: bool,
        summary: Optional[str] = None,
        error_message: Optional[str] = None,
        decision_id: Optional[str] = None,
    ) -> None:
        """Close the current phase."""
        if not self.phases or self.phases[-1].status != PhaseStatus.STARTED:
            return
        record = self.phases[-1]
        record.status = PhaseStatus.SUCCESS if success else PhaseStatus.FAIL
        record.completed_at = _now()
        record.summary = summary
        record.error_message = error_message
        record.decision_id = decision_id

    def complete(self, status: RunStatus, final_error: Optional[str] = None) -> None:
        """Mark the run complete."""
        self.status = status
        self.completed_at = _now()
        if final_error is not None:
            self.final_error = final_error

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def get_summary(self) -> str:
        """Human-readable multi-line summary."""
        lines = [
            f"Trace ID: {self.trace_id}",
            f"Stage: {self.stage_category}",
            f"Status: {self.status.value}",
            f"Started: {self.started_at}",
        ]
        if self.completed_at:
            lines.append(f"Completed: {self.completed_at}")

        lines.append(f"\nPhases ({len(self.phases)}/{len(PHASE_ORDER)}):")
        for index, record in enumerate(self.phases, start=1):
            line = f"  {index}. {record.phase.value}: {record.status.value}"
            if record.summary:
                line += f" ({record.summary})"
            lines.append(line)
            if record.error_message:
                lines.append(f"     Error: {record.error_message}")

        if self.final_error:
            lines.append(f"\nFinal Error: {self.final_error}")
        return "\n".join(lines)


DEFAULT_MAX_TRACES = 100


class TraceStore:
    """In-memory store of orchestration traces, owned by an orchestrator.

    Holds at most max_traces traces; storing past the cap evicts the
    oldest.
    """

    def __init__(self, max_traces: int = DEFAULT_MAX_TRACES):
        if max_traces < 1:
            raise ValueError(f"max_traces must be at least 1, got {max_traces}")
        self.max_traces = max_traces
        self._traces: "OrderedDict[str, OrchestrationTrace]" = OrderedDict()
        self._lock = threading.Lock()

    def store(self, trace: OrchestrationTrace) -> None:
        with self._lock:
            self._traces[trace.trace_id] = trace
            self._traces.move_to_end(trace.trace_id)
            while len(self._traces) > self.max_traces:
                self._traces.popitem(last=False)

    def get(self, trace_id: str) -> Optional[OrchestrationTrace]:
        with self._lock:
            return self._traces.get(trace_id)

    def get_all(self) -> List[OrchestrationTrace]:
        with self._lock:
            return list(self._traces.values())

    def get_recent(self, limit: int = 10) -> List[OrchestrationTrace]:
        """Most recent traces first."""
        traces = sorted(self.get_all(), key=lambda t: t.started_at, reverse=True)
        return traces[:limit]

    def clear(self) -> None:
        with self._lock:
            self._traces.clear()
