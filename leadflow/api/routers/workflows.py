"""Workflow routing and approval routes."""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from leadflow.api.deps import get_runtime

router = APIRouter(prefix="/workflow", tags=["workflow"])


class RouteRequest(BaseModel):
    subscriberId: Optional[str] = None
    event: Optional[str] = None


class ApproveRequest(BaseModel):
    workflowId: Optional[str] = None


class RejectRequest(BaseModel):
    workflowId: Optional[str] = None
    reason: Optional[str] = None


@router.post("/route")
def route_workflow(req: RouteRequest, runtime=Depends(get_runtime)):
    return {"success": True, **runtime.router.route(req.subscriberId, req.event)}


@router.post("/approve")
def approve_workflow(req: ApproveRequest, runtime=Depends(get_runtime)):
    return {"success": True, **runtime.approvals.approve(req.workflowId)}


@router.post("/reject")
def reject_workflow(req: RejectRequest, runtime=Depends(get_runtime)):
    return {"success": True, **runtime.approvals.reject(req.workflowId, req.reason)}


@router.get("/queue")
def list_queue(status: str = None, limit: int = 50, runtime=Depends(get_runtime)):
    return {"success": True, "items": runtime.approvals.list(status=status, limit=limit)}
