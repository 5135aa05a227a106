"""Test suite for the decision log.

Validates:
- Decision invariants are enforced on record
- Persistence to JSON files and reload from disk
- Append-only outcomes and merged outcome views
- Stats and query filters
- Subscribers are notified and their failures never propagate
"""

import asyncio
import json
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from orchestrator.decisions import (
    Decision,
    DecisionLog,
    DecisionOutcome,
    DecisionQuery,
    DecisionType,
    record_decision,
)
from orchestrator.errors import DecisionNotFoundError, DecisionRecordError, DecisionValidationError
from orchestrator.models import StageCategory


def _record(log, **overrides):
    fields = dict(
        stage_category=StageCategory.BUILD,
        decision_type=DecisionType.FLAVOR_SELECTION,
        context={"candidate_count": 2},
        options=["a", "b"],
        selection="a",
        reasoning="a scored highest",
        confidence=0.8,
    )
    fields.update(overrides)
    return log.record(**fields)


def test_record_assigns_id_and_timestamp():
    log = DecisionLog()

    decision = _record(log)

    assert decision.id
    assert decision.decided_at
    assert decision.options == ("a", "b")
    assert log.get(decision.id) is decision


def test_ids_are_unique():
    log = DecisionLog()
    ids = {_record(log).id for _ in range(20)}
    assert len(ids) == 20


@pytest.mark.parametrize(
    "overrides",
    [
        {"options": []},
        {"selection": "z"},
        {"reasoning": "   "},
        {"confidence": 1.5},
        {"confidence": -0.1},
        {"confidence": True},
        {"decision_type": "guess"},
        {"stage_category": "deploy"},
    ],
)
def test_invalid_decisions_are_rejected(overrides):
    log = DecisionLog()

    with pytest.raises(DecisionValidationError):
        _record(log, **overrides)

    assert log.list() == []


def test_get_unknown_raises():
    with pytest.raises(DecisionNotFoundError) as excinfo:
        DecisionLog().get("nope")
    assert "nope" in str(excinfo.value)


def test_persistence_round_trip(tmp_path):
    log = DecisionLog(tmp_path)
    decision = _record(log, context={"bet": {"title": "x"}})

    path = tmp_path / f"build.{decision.id}.json"
    assert path.exists()
    assert json.loads(path.read_text())["selection"] == "a"

    reloaded = DecisionLog(tmp_path)
    assert reloaded.get(decision.id) == decision
    assert [d.id for d in reloaded.list()] == [decision.id]


def test_unreadable_files_are_skipped(tmp_path):
    (tmp_path / "build.broken.json").write_text("{not json")
    log = DecisionLog(tmp_path)
    decision = _record(log)

    log.clear()
    assert [d.id for d in log.list()] == [decision.id]


def test_list_filters_and_sorts():
    log = DecisionLog()
    old = _record(log, decided_at="2026-01-01T00:00:00+00:00", confidence=0.3)
    new = _record(
        log,
        decided_at="2026-02-01T00:00:00+00:00",
        decision_type=DecisionType.EXECUTION_MODE,
        options=["sequential", "parallel"],
        selection="parallel",
        confidence=0.95,
    )
    other = _record(log, stage_category=StageCategory.PLAN, decided_at="2026-01-15T00:00:00+00:00")

    assert [d.id for d in log.list()] == [old.id, other.id, new.id]
    assert [d.id for d in log.list(DecisionQuery(stage_category=StageCategory.BUILD))] == [old.id, new.id]
    assert [d.id for d in log.list(DecisionQuery(decision_type=DecisionType.EXECUTION_MODE))] == [new.id]
    assert [d.id for d in log.list(DecisionQuery(confidence_min=0.5, confidence_max=0.9))] == [other.id]
    assert [d.id for d in log.list(DecisionQuery(decided_from="2026-01-10", decided_to="2026-01-31"))] == [other.id]


def test_outcome_requires_a_field():
    with pytest.raises(ValidationError):
        DecisionOutcome()
    with pytest.raises(ValidationError):
        DecisionOutcome(artifact_quality="excellent")


def test_outcomes_are_append_only_and_merged(tmp_path):
    log = DecisionLog(tmp_path)
    decision = _record(log)

    log.record_outcome(decision.id, DecisionOutcome(artifact_quality="partial"))
    log.record_outcome(decision.id, DecisionOutcome(gate_result="passed", notes="ok"))
    log.record_outcome(decision.id, DecisionOutcome(artifact_quality="good"))

    assert len(log.outcomes(decision.id)) == 3
    merged = log.outcome_for(decision.id)
    assert merged.artifact_quality == "good"
    assert merged.gate_result == "passed"
    assert merged.notes == "ok"
    # The decision itself never changes
    assert log.get(decision.id) == decision

    lines = (tmp_path / "outcomes.jsonl").read_text().splitlines()
    assert len(lines) == 3

    reloaded = DecisionLog(tmp_path)
    assert reloaded.outcome_for(decision.id).artifact_quality == "good"


def test_outcome_for_unknown_decision():
    log = DecisionLog()
    with pytest.raises(DecisionNotFoundError):
        log.record_outcome("missing", DecisionOutcome(rework_required=True))
    assert log.outcome_for("missing") is None


def test_stats():
    log = DecisionLog()
    first = _record(log, confidence=0.6)
    second = _record(
        log,
        decision_type=DecisionType.SYNTHESIS_APPROACH,
        options=["merge-all"],
        selection="merge-all",
        confidence=0.9,
    )
    _record(log, stage_category=StageCategory.REVIEW, confidence=0.3)
    log.record_outcome(first.id, DecisionOutcome(artifact_quality="poor"))
    log.record_outcome(second.id, DecisionOutcome(artifact_quality="good"))

    stats = log.get_stats(StageCategory.BUILD)

    assert stats.count == 2
    assert stats.avg_confidence == pytest.approx(0.75)
    assert stats.count_by_type == {"flavor-selection": 1, "synthesis-approach": 1}
    assert stats.outcome_distribution == {"good": 1, "partial": 0, "poor": 1, "no_outcome": 0}
    assert log.get_stats().outcome_distribution["no_outcome"] == 1
    assert DecisionLog().get_stats().avg_confidence == 0.0


def test_subscribers_are_notified_and_isolated(caplog):
    log = DecisionLog()
    seen = []
    log.subscribe(MagicMock(side_effect=RuntimeError("consumer crashed")))
    log.subscribe(seen.append)

    decision = _record(log)

    assert seen == [decision]
    assert any("consumer crashed" in r.getMessage() for r in caplog.records)


def test_decision_dict_round_trip():
    decision = _record(DecisionLog())
    data = decision.to_dict()
    assert data["stage_category"] == "build"
    assert data["decision_type"] == "flavor-selection"
    assert Decision.from_dict(json.loads(decision.to_json())) == decision


def test_record_decision_wraps_failures():
    recorder = MagicMock()
    recorder.record.side_effect = DecisionValidationError("selection not in options")

    with pytest.raises(DecisionRecordError) as excinfo:
        asyncio.run(record_decision(
            recorder,
            stage_category=StageCategory.PLAN,
            decision_type=DecisionType.SYNTHESIS_APPROACH,
            context={},
            options=["merge-all"],
            selection="merge-all",
            reasoning="r",
            confidence=0.9,
        ))

    assert excinfo.value.stage_category == "plan"
    assert 'Stage "plan"' in str(excinfo.value)
    assert "synthesis-approach" in str(excinfo.value)


def test_record_logs_decision_summary(caplog):
    log = DecisionLog()

    with caplog.at_level("DEBUG", logger="orchestrator.decisions"):
        decision = _record(log, confidence=0.75)

    messages = [r.getMessage() for r in caplog.records]
    assert f"Recorded flavor-selection decision {decision.id} for build: a (confidence 0.75)" in messages
