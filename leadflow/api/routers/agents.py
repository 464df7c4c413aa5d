"""Administrative agent routes: single runs, batches, traces and metrics."""

from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from leadflow.agents.registry import ensure_agent_allowed
from leadflow.api.deps import get_runtime, require_admin
from leadflow.exceptions import NotFoundError, ValidationError

router = APIRouter(tags=["agents"], dependencies=[Depends(require_admin)])

RECENT_TRACES = 20


class AgentRunRequest(BaseModel):
    agent: Optional[str] = None
    input: Any = None


class BatchRunRequest(BaseModel):
    agent: Optional[str] = None
    inputs: Any = None
    itemDelayMs: Optional[int] = 0


def _require_agent_name(name):
    if not name or not isinstance(name, str):
        raise ValidationError("agent is required")
    ensure_agent_allowed(name)


@router.post("/agents/run")
def run_agent(req: AgentRunRequest, runtime=Depends(get_runtime)):
    _require_agent_name(req.agent)
    result = runtime.batch_manager.run_single(req.agent, req.input)
    return {
        **result.to_dict(),
        "agent": runtime.registry.get(req.agent).get_metadata(),
        "traces": runtime.tracer.get_agent_traces(req.agent, limit=RECENT_TRACES),
        "metrics": runtime.tracer.snapshot(),
    }


@router.post("/batch/run")
def run_batch(req: BatchRunRequest, runtime=Depends(get_runtime)):
    _require_agent_name(req.agent)
    if req.itemDelayMs is not None and req.itemDelayMs < 0:
        raise ValidationError("itemDelayMs must be >= 0")
    batch = runtime.batch_manager.run_batch(req.agent, req.inputs,
                                            item_delay_ms=req.itemDelayMs or 0)
    return {"success": batch["failed"] == 0, **batch}


@router.get("/agents")
def list_agents(runtime=Depends(get_runtime)):
    return {"success": True, "agents": runtime.registry.get_all_metadata()}


@router.get("/agents/metrics")
def agent_metrics(agent: str = None, runtime=Depends(get_runtime)):
    if agent:
        _require_agent_name(agent)
        return {"success": True, "agent": agent, "metrics": runtime.tracer.get_metrics(agent)}
    return {"success": True, **runtime.tracer.snapshot()}


@router.get("/agents/traces")
def get_traces(agent: str = None, limit: int = 50, runtime=Depends(get_runtime)):
    if agent:
        _require_agent_name(agent)
        if not runtime.registry.has(agent):
            raise NotFoundError(f"Agent '{agent}' not found")
        return {"success": True, "traces": runtime.tracer.get_agent_traces(agent, limit=limit)}
    return {"success": True, "traces": runtime.tracer.get_recent_traces(limit)}


@router.post("/agents/traces")
def clear_traces(agent: str = None, runtime=Depends(get_runtime)):
    if agent:
        _require_agent_name(agent)
    return {"success": True, "cleared": runtime.tracer.clear_traces()}
