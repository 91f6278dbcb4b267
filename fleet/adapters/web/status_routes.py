"""Scheduler status API routes."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

status_router = APIRouter(tags=["Status"])


class DecisionModel(BaseModel):
    account_id: str
    action: str
    wait_seconds: float
    reason: str
    error: Optional[str] = None


class StatusResponse(BaseModel):
    cycles: int
    exitRequested: bool
    maxConcurrentSessions: int
    activeRuns: int
    pendingRuns: int
    liveSessions: List[Dict[str, Any]]
    decisions: List[DecisionModel]


class QuotaEntry(BaseModel):
    count: int
    limit: int
    available: bool
    wait_seconds: float


class QuotaResponse(BaseModel):
    account_id: str
    quota: Dict[str, QuotaEntry]


def _scheduler(request: Request):
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=503, detail="Scheduler not running")
    return scheduler


@status_router.get("/status", response_model=StatusResponse)
async def status(request: Request):
    scheduler = _scheduler(request)
    return StatusResponse(
        cycles=scheduler.cycles,
        exitRequested=scheduler.context.exit_requested,
        maxConcurrentSessions=scheduler.config.max_concurrent_sessions,
        activeRuns=scheduler.gate.active,
        pendingRuns=scheduler.gate.pending,
        liveSessions=scheduler.registry.snapshot(),
        decisions=[DecisionModel(**d.to_dict()) for d in scheduler.last_decisions.values()],
    )


@status_router.get("/quota/{account_id}", response_model=QuotaResponse)
async def quota(account_id: str, request: Request):
    scheduler = _scheduler(request)
    account = scheduler.find_account(account_id)
    if account is None:
        raise HTTPException(status_code=404, detail=f"Unknown account: {account_id}")
    limits = {t: account.limit_for(t) for t in account.enabled_action_types()}
    return QuotaResponse(
        account_id=account_id,
        quota=scheduler.quota.status(account.tracker_id, limits),
    )
