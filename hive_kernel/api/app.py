"""
Hive Kernel API — FastAPI endpoints.

Exposes the pipeline via a REST API for:
- Read-only views (agents, connections, landmarks, heatmap)
- Event ingestion
- Playback control and replay status
- Event log queries and integrity checks
- Diagnostics and configuration
"""

from typing import Any, Dict, List, Optional, Union

from fastapi import Body, FastAPI, HTTPException, Query
from pydantic import BaseModel, TypeAdapter, ValidationError

from hive_kernel.models.config import HiveConfig
from hive_kernel.models.control import ControlCommand
from hive_kernel.pipeline.loop import HivePipeline

_COMMAND_ADAPTER = TypeAdapter(ControlCommand)


# --- Response Models ---

class IngestResponse(BaseModel):
    accepted: int
    rejected: int
    queue_depth: int


class ControlResponse(BaseModel):
    status: str
    command: str


# --- Application Factory ---

def create_app(
    pipeline: Optional[HivePipeline] = None,
    config: Optional[HiveConfig] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="Hive Kernel API",
        description="Live agent activity field with heatmap and replay",
        version="0.1.0",
    )

    hive = pipeline or HivePipeline(config)
    app.state.pipeline = hive

    # === VIEWS ===

    @app.get("/view")
    def get_view():
        """The most recently published view."""
        return hive.view().model_dump(mode="json")

    @app.get("/agents")
    def list_agents():
        """Visible agents in id order."""
        return [a.model_dump(mode="json") for a in hive.view().agents.values()]

    @app.get("/agents/{agent_id}")
    def get_agent(agent_id: str):
        agent = hive.view().agents.get(agent_id)
        if agent is None:
            raise HTTPException(404, "Agent not found")
        return agent.model_dump(mode="json")

    @app.get("/connections")
    def list_connections():
        return [c.model_dump(mode="json") for c in hive.view().connections]

    @app.get("/landmarks")
    def list_landmarks():
        return [lm.model_dump(mode="json") for lm in hive.view().landmarks.values()]

    @app.get("/heatmap")
    def get_heatmap():
        grid = hive.view().heatmap
        return {
            "width": len(grid[0]) if grid else 0,
            "height": len(grid),
            "cells": grid,
            "total": sum(sum(row) for row in grid),
        }

    # === INGESTION ===

    @app.post("/events", response_model=IngestResponse)
    def ingest_events(payload: Union[List[Any], Dict[str, Any]] = Body(...)):
        """Normalize one record or a list of records into the event queue."""
        records = payload if isinstance(payload, list) else [payload]
        accepted, rejected = hive.ingest_many(records)
        return IngestResponse(
            accepted=accepted,
            rejected=rejected,
            queue_depth=len(hive.queue),
        )

    # === CONTROL ===

    @app.post("/control", response_model=ControlResponse)
    def submit_control(payload: Dict[str, Any] = Body(...)):
        """Queue a control command; it takes effect on the next tick."""
        try:
            command = _COMMAND_ADAPTER.validate_python(payload)
        except ValidationError as exc:
            raise HTTPException(
                422, exc.errors(include_url=False, include_context=False, include_input=False)
            )
        hive.submit(command)
        return ControlResponse(status="queued", command=command.command)

    @app.post("/pipeline/step")
    def force_step():
        """Force one tick (for testing and manual driving)."""
        return hive.step().model_dump(mode="json")

    @app.get("/pipeline/status")
    def pipeline_status():
        view = hive.view()
        return {
            "status": hive.status,
            "tick": view.tick,
            "mode": view.replay.mode.value,
            "paused": view.paused,
            "agents": len(hive.engine.agents),
        }

    # === REPLAY / HISTORY ===

    @app.get("/replay/status")
    def replay_status():
        return hive.history.status().model_dump(mode="json")

    @app.get("/history")
    def get_history(
        start: Optional[float] = None,
        end: Optional[float] = None,
        limit: int = Query(100, ge=1),
    ):
        """Recorded events in log order."""
        records = hive.history.records(start=start, end=end, limit=limit)
        return [r.model_dump(mode="json", by_alias=True) for r in records]

    @app.get("/history/verify")
    def verify_history():
        """Verify chain integrity."""
        return {
            "integrity_valid": hive.history.verify(),
            "total_records": hive.history.record_count,
        }

    # === DIAGNOSTICS ===

    @app.get("/diagnostics")
    def get_diagnostics():
        return hive.diagnostics().model_dump(mode="json")

    @app.get("/config")
    def get_config():
        """Active configuration."""
        return hive.config.model_dump(mode="json")

    return app


# Default application instance
app = create_app()
