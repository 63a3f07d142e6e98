"""Application management and rating endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request
from starlette.concurrency import run_in_threadpool

from quest_board_service.core.state import get_app_state
from quest_board_service.routers.serializers import application_to_dict
from quest_board_service.routers.validation import (
    optional_str,
    parse_json_body,
    parse_status,
    require_caller,
    require_int,
    require_str,
)
from quest_board_service.services.records import APPLICATION_STATUSES

if TYPE_CHECKING:
    from quest_board_service.services.lifecycle_engine import QuestLifecycleEngine
    from quest_board_service.services.rating_service import RatingService

router = APIRouter()


def _engine() -> QuestLifecycleEngine:
    state = get_app_state()
    if state.engine is None:
        msg = "QuestLifecycleEngine not initialized"
        raise RuntimeError(msg)
    return state.engine


def _rating_service() -> RatingService:
    state = get_app_state()
    if state.rating_service is None:
        msg = "RatingService not initialized"
        raise RuntimeError(msg)
    return state.rating_service


@router.get("/applications")
async def list_my_applications(request: Request) -> dict[str, Any]:
    """List the caller's applications."""
    caller_id = require_caller(request)
    status = parse_status(request.query_params.get("status"), APPLICATION_STATUSES)
    applications = await run_in_threadpool(
        _engine().applications_for_quester, caller_id, status=status
    )
    return {"applications": [application_to_dict(a) for a in applications]}


@router.post("/applications/{application_id}/reject")
async def reject_applicant(application_id: str, request: Request) -> dict[str, Any]:
    """Reject a pending applicant. Quest giver only."""
    caller_id = require_caller(request)
    application = await run_in_threadpool(_engine().reject_applicant, caller_id, application_id)
    return application_to_dict(application)


@router.delete("/applications/{application_id}")
async def withdraw_application(application_id: str, request: Request) -> dict[str, Any]:
    """Withdraw the caller's pending application."""
    caller_id = require_caller(request)
    application = await run_in_threadpool(_engine().withdraw, caller_id, application_id)
    return {
        "application_id": application.application_id,
        "quest_id": application.quest_id,
        "withdrawn": True,
    }


@router.post("/applications/{application_id}/rating")
async def rate_counterparty(application_id: str, request: Request) -> dict[str, Any]:
    """Rate the other party of a completed application."""
    caller_id = require_caller(request)
    data = parse_json_body(await request.body())
    rated_user_id = require_str(data, "rated_user_id")
    stars = require_int(data, "rating")
    review = optional_str(data, "review")

    result = await run_in_threadpool(
        _rating_service().rate_counterparty,
        caller_id,
        rated_user_id,
        stars,
        application_id,
        review,
    )
    return {
        "application": application_to_dict(result.application),
        "rated_user_id": result.rated_user_id,
        "total_rating_score": result.total_rating_score,
        "number_of_ratings": result.number_of_ratings,
    }
