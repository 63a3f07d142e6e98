"""Health check endpoint."""

from __future__ import annotations

from fastapi import APIRouter
from starlette.concurrency import run_in_threadpool

from quest_board_service.core.state import get_app_state
from quest_board_service.schemas import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Check service health and return record counts."""
    state = get_app_state()
    users_by_status: dict[str, int] = {}
    quests_by_status: dict[str, int] = {}
    if state.user_service is not None:
        users_by_status = await run_in_threadpool(state.user_service.count_users)
    if state.quest_store is not None:
        quests_by_status = await run_in_threadpool(state.quest_store.counts_by_status)
    return HealthResponse(
        status="ok",
        uptime_seconds=state.uptime_seconds,
        started_at=state.started_at,
        total_users=sum(users_by_status.values()),
        users_by_status=users_by_status,
        total_quests=sum(quests_by_status.values()),
        quests_by_status=quests_by_status,
    )
