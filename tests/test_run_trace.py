"""Test suite for orchestration run traces.

Validates:
- Phases can only be entered in order, once each
- A failed phase blocks every later phase
- Traces serialize to JSON
- TraceStore works correctly
"""

import json

import pytest

from orchestrator.errors import OrchestrationError
from orchestrator.run_trace import (
    PHASE_ORDER,
    OrchestrationPhase,
    OrchestrationTrace,
    PhaseStatus,
    RunStatus,
    TraceStore,
)


def _trace(trace_id="t-1"):
    return OrchestrationTrace(trace_id=trace_id, stage_category="build")


def test_phases_advance_in_order():
    trace = _trace()

    for phase in PHASE_ORDER:
        record = trace.advance(phase)
        assert record.status == PhaseStatus.STARTED
        trace.finish_phase(True, summary=phase.value)

    assert [p.phase for p in trace.phases] == PHASE_ORDER
    assert trace.current_phase == OrchestrationPhase.SYNTHESIZE


def test_skipping_a_phase_is_rejected():
    trace = _trace()
    trace.advance(OrchestrationPhase.SELECT)
    trace.finish_phase(True)

    with pytest.raises(OrchestrationError) as excinfo:
        trace.advance(OrchestrationPhase.EXECUTE)

    assert "expected decide-mode" in str(excinfo.value)


def test_repeating_a_phase_is_rejected():
    trace = _trace()
    trace.advance(OrchestrationPhase.SELECT)
    trace.finish_phase(True)

    with pytest.raises(OrchestrationError):
        trace.advance(OrchestrationPhase.SELECT)


def test_no_phase_after_synthesize():
    trace = _trace()
    for phase in PHASE_ORDER:
        trace.advance(phase)
        trace.finish_phase(True)

    with pytest.raises(OrchestrationError) as excinfo:
        trace.advance(OrchestrationPhase.SELECT)

    assert "no further phase" in str(excinfo.value)


def test_failed_phase_blocks_next():
    trace = _trace()
    trace.advance(OrchestrationPhase.SELECT)
    trace.finish_phase(False, error_message="nothing to run")

    with pytest.raises(OrchestrationError):
        trace.advance(OrchestrationPhase.DECIDE_MODE)


def test_completed_trace_rejects_phases():
    trace = _trace()
    trace.complete(RunStatus.FAILED, "aborted")

    with pytest.raises(OrchestrationError):
        trace.advance(OrchestrationPhase.SELECT)
    assert trace.final_error == "aborted"
    assert trace.completed_at is not None


def test_finish_phase_does_not_overwrite_closed_phase():
    trace = _trace()
    trace.advance(OrchestrationPhase.SELECT)
    trace.finish_phase(True, summary="selected ['a']")

    trace.finish_phase(False, error_message="late failure")

    assert trace.phases[0].status == PhaseStatus.SUCCESS
    assert trace.phases[0].error_message is None


def test_trace_serialization_and_summary():
    trace = _trace()
    trace.advance(OrchestrationPhase.SELECT)
    trace.finish_phase(False, error_message="no resolvable flavors")
    trace.complete(RunStatus.FAILED, "no resolvable flavors")

    data = json.loads(trace.to_json())
    assert data["trace_id"] == "t-1"
    assert data["phases"][0]["phase"] == "select"

    summary = trace.get_summary()
    assert "Stage: build" in summary
    assert "select: FAIL" in summary
    assert "Final Error: no resolvable flavors" in summary


def test_trace_store():
    store = TraceStore()
    first = OrchestrationTrace(trace_id="1", stage_category="plan", started_at="2026-01-01T00:00:00")
    second = OrchestrationTrace(trace_id="2", stage_category="plan", started_at="2026-01-02T00:00:00")
    store.store(first)
    store.store(second)

    assert store.get("1") is first
    assert store.get("missing") is None
    assert [t.trace_id for t in store.get_recent(1)] == ["2"]
    assert len(store.get_all()) == 2

    store.clear()
    assert store.get_all() == []


def test_trace_store_evicts_oldest_past_capacity():
    store = TraceStore(max_traces=3)
    for i in range(5):
        store.store(OrchestrationTrace(trace_id=str(i), stage_category="build"))

    assert [t.trace_id for t in store.get_all()] == ["2", "3", "4"]
    assert store.get("0") is None

    # re-storing a kept trace refreshes it instead of growing the store
    store.store(store.get("2"))
    store.store(OrchestrationTrace(trace_id="5", stage_category="build"))
    assert [t.trace_id for t in store.get_all()] == ["4", "2", "5"]


def test_trace_store_rejects_zero_capacity():
    with pytest.raises(ValueError):
        TraceStore(max_traces=0)
