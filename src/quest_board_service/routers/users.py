"""Member registration, approval, profile and wallet endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from quest_board_service.core.exceptions import ServiceError
from quest_board_service.core.money import format_amount
from quest_board_service.core.state import get_app_state
from quest_board_service.routers.serializers import quest_to_dict, user_to_dict
from quest_board_service.routers.validation import (
    optional_str,
    parse_json_body,
    require_amount,
    require_caller,
    require_str,
)

if TYPE_CHECKING:
    from quest_board_service.services.lifecycle_engine import QuestLifecycleEngine
    from quest_board_service.services.user_service import UserService

router = APIRouter()


def _user_service() -> UserService:
    state = get_app_state()
    if state.user_service is None:
        msg = "UserService not initialized"
        raise RuntimeError(msg)
    return state.user_service


def _engine() -> QuestLifecycleEngine:
    state = get_app_state()
    if state.engine is None:
        msg = "QuestLifecycleEngine not initialized"
        raise RuntimeError(msg)
    return state.engine


@router.post("/users", status_code=201)
async def register_user(request: Request) -> JSONResponse:
    """Register the calling identity as a pending member."""
    caller_id = require_caller(request)
    data = parse_json_body(await request.body())
    name = require_str(data, "name")

    user = await run_in_threadpool(_user_service().register_user, caller_id, name)
    return JSONResponse(status_code=201, content=user_to_dict(user, viewer_id=caller_id))


@router.get("/users")
async def list_users(request: Request) -> dict[str, Any]:
    """List members for the admin approval queue."""
    caller_id = require_caller(request)
    status = request.query_params.get("status")
    users = await run_in_threadpool(_user_service().list_users, caller_id, status=status)
    return {"users": [user_to_dict(user, viewer_id=caller_id) for user in users]}


@router.get("/users/{user_id}")
async def get_user(user_id: str, request: Request) -> dict[str, Any]:
    """Return a member profile with its average rating."""
    caller_id = require_caller(request)
    user = await run_in_threadpool(_user_service().get_profile, user_id)
    return user_to_dict(user, viewer_id=caller_id)


@router.patch("/users/{user_id}")
async def update_profile(user_id: str, request: Request) -> dict[str, Any]:
    """Set or clear the caller's avatar URL."""
    caller_id = require_caller(request)
    data = parse_json_body(await request.body())
    if "avatar_url" not in data:
        raise ServiceError(
            "INVALID_PAYLOAD",
            "Missing required field: avatar_url",
            400,
            {"field": "avatar_url"},
        )
    avatar_url = optional_str(data, "avatar_url")

    user = await run_in_threadpool(_user_service().set_avatar, caller_id, user_id, avatar_url)
    return user_to_dict(user, viewer_id=caller_id)


@router.get("/users/{user_id}/quests")
async def get_user_quests(user_id: str, request: Request) -> dict[str, Any]:
    """Quests a member has posted and quests they completed as a quester."""
    require_caller(request)
    result = await run_in_threadpool(_engine().profile_quests, user_id)
    return {
        "user_id": user_id,
        "posted": [quest_to_dict(quest) for quest in result.posted],
        "completed": [quest_to_dict(quest) for quest in result.completed],
    }


@router.post("/users/{user_id}/approve")
async def approve_user(user_id: str, request: Request) -> dict[str, Any]:
    """Approve a pending member. Admin-only."""
    caller_id = require_caller(request)
    user = await run_in_threadpool(_user_service().approve_user, caller_id, user_id)
    return user_to_dict(user, viewer_id=caller_id)


@router.post("/users/{user_id}/top-up")
async def top_up(user_id: str, request: Request) -> dict[str, Any]:
    """Add demo funds to the caller's wallet."""
    caller_id = require_caller(request)
    data = parse_json_body(await request.body())
    amount = require_amount(data, "amount")

    user = await run_in_threadpool(_user_service().top_up, caller_id, user_id, amount)
    return {
        "user_id": user.user_id,
        "amount": format_amount(amount),
        "wallet_balance": format_amount(user.wallet_balance),
    }
