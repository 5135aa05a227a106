"""Decision Log Service - FastAPI Application

Read-mostly HTTP surface over a DecisionLog: browse decisions, view
stats and attach outcomes. Orchestration itself is not exposed; the
Flavor Executor is supplied by the embedding application.
"""

from dataclasses import asdict
from typing import Optional
import os
import logging

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel
import uvicorn

from orchestrator.config import Settings
from orchestrator.decisions import (
    DecisionLog,
    DecisionOutcome,
    DecisionQuery,
    DecisionType,
)
from orchestrator.errors import DecisionNotFoundError
from orchestrator.models import StageCategory

logger = logging.getLogger(__name__)


class OutcomeResponse(BaseModel):
    """Recorded outcome entry."""
    decision_id: str
    outcome: DecisionOutcome
    recorded_at: str


def create_app(decision_log: Optional[DecisionLog] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Build the app around a decision log.

    Args:
        decision_log: Log to serve; built from settings when omitted
        settings: Settings used for logging level and the default log location
    """
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    log = decision_log if decision_log is not None else DecisionLog(settings.decisions_dir)

    app = FastAPI(
        title="Stage Orchestrator Decision Log",
        description="Audit trail of flavor selection, execution mode and synthesis decisions",
        version="1.0.0",
    )
    app.state.decision_log = log

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "persistent": log.base_path is not None,
        }

    @app.get("/decisions")
    async def list_decisions(
        stage_category: Optional[StageCategory] = None,
        decision_type: Optional[DecisionType] = None,
        confidence_min: Optional[float] = Query(None, ge=0.0, le=1.0),
        confidence_max: Optional[float] = Query(None, ge=0.0, le=1.0),
        decided_from: Optional[str] = None,
        decided_to: Optional[str] = None,
    ):
        """List decisions, oldest first."""
        query = DecisionQuery(
            stage_category=stage_category,
            decision_type=decision_type,
            confidence_min=confidence_min,
            confidence_max=confidence_max,
            decided_from=decided_from,
            decided_to=decided_to,
        )
        decisions = log.list(query)
        return {"count": len(decisions), "decisions": [d.to_dict() for d in decisions]}

    @app.get("/decisions/stats")
    async def decision_stats(stage_category: Optional[StageCategory] = None):
        """Aggregate statistics, optionally for one category."""
        return asdict(log.get_stats(stage_category))

    @app.get("/decisions/{decision_id}")
    async def get_decision(decision_id: str):
        """Fetch one decision together with its merged outcome."""
        try:
            decision = log.get(decision_id)
        except DecisionNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        outcome = log.outcome_for(decision_id)
        return {
            "decision": decision.to_dict(),
            "outcome": outcome.model_dump(exclude_none=True) if outcome else None,
        }

    @app.post("/decisions/{decision_id}/outcome", response_model=OutcomeResponse)
    async def record_outcome(decision_id: str, outcome: DecisionOutcome):
        """Attach an outcome to a decision (append-only)."""
        try:
            entry = log.record_outcome(decision_id, outcome)
        except DecisionNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        logger.info(f"Recorded outcome for decision {decision_id}")
        return OutcomeResponse(
            decision_id=entry.decision_id,
            outcome=entry.outcome,
            recorded_at=entry.recorded_at,
        )

    return app


def main() -> None:
    """Serve the decision log API."""
    port = int(os.getenv("ORCHESTRATOR_API_PORT", "8002"))
    uvicorn.run(create_app(), host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
