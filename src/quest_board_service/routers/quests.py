"""Quest posting, browsing and lifecycle endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from quest_board_service.config import get_settings
from quest_board_service.core.exceptions import ServiceError
from quest_board_service.core.money import format_amount, to_minor_units
from quest_board_service.core.state import get_app_state
from quest_board_service.routers.serializers import application_to_dict, quest_to_dict
from quest_board_service.routers.validation import (
    optional_amount,
    optional_str,
    parse_json_body,
    parse_limit,
    parse_status,
    require_amount,
    require_caller,
    require_str,
)
from quest_board_service.services.lifecycle_engine import QuestDraft
from quest_board_service.services.records import (
    APPLICATION_STATUSES,
    QUEST_STATUSES,
    QuestLocation,
)

if TYPE_CHECKING:
    from quest_board_service.services.lifecycle_engine import QuestLifecycleEngine
    from quest_board_service.services.quest_store import QuestStore

router = APIRouter()


def _engine() -> QuestLifecycleEngine:
    state = get_app_state()
    if state.engine is None:
        msg = "QuestLifecycleEngine not initialized"
        raise RuntimeError(msg)
    return state.engine


def _quest_store() -> QuestStore:
    state = get_app_state()
    if state.quest_store is None:
        msg = "QuestStore not initialized"
        raise RuntimeError(msg)
    return state.quest_store


def _parse_location(data: dict[str, Any]) -> QuestLocation | None:
    raw = data.get("location")
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ServiceError("INVALID_LOCATION", "location must be an object", 400, {})
    try:
        return QuestLocation.model_validate(raw)
    except ValidationError as exc:
        raise ServiceError(
            "INVALID_LOCATION",
            "location needs address, lat and lng",
            400,
            {},
        ) from exc


# ---------------------------------------------------------------------------
# POST /quests, GET /quests, GET /quests/mine (before /quests/{quest_id})
# ---------------------------------------------------------------------------


@router.post("/quests", status_code=201)
async def post_quest(request: Request) -> JSONResponse:
    """Publish a quest owned by the caller."""
    caller_id = require_caller(request)
    data = parse_json_body(await request.body())
    draft = QuestDraft(
        title=require_str(data, "title"),
        description=optional_str(data, "description") or "",
        category=require_str(data, "category"),
        work_type=require_str(data, "work_type"),
        price=require_amount(data, "price"),
        location=_parse_location(data),
        image_url=optional_str(data, "image_url"),
        schedule=optional_str(data, "schedule"),
    )

    result = await run_in_threadpool(_engine().post_quest, caller_id, draft)
    return JSONResponse(
        status_code=201,
        content={"quest": quest_to_dict(result.quest), "quests_posted": result.quests_posted},
    )


@router.get("/quests")
async def list_quests(request: Request) -> dict[str, Any]:
    """Browse open quests."""
    require_caller(request)
    settings = get_settings()
    params = request.query_params

    max_price_raw = params.get("max_price")
    max_price = to_minor_units(max_price_raw) if max_price_raw is not None else None
    limit = parse_limit(
        params.get("limit"),
        default=settings.quests.default_list_limit,
        maximum=settings.quests.max_list_limit,
    )

    quests = await run_in_threadpool(
        _quest_store().list_open,
        work_type=params.get("work_type"),
        category=params.get("category"),
        max_price=max_price,
        sort=params.get("sort", "newest"),
        limit=limit,
    )
    return {"quests": [quest_to_dict(quest) for quest in quests]}


@router.get("/quests/mine")
async def list_my_quests(request: Request) -> dict[str, Any]:
    """List quests posted by the caller."""
    caller_id = require_caller(request)
    status = parse_status(request.query_params.get("status"), QUEST_STATUSES)
    quests = await run_in_threadpool(_quest_store().list_by_giver, caller_id, status=status)
    return {"quests": [quest_to_dict(quest) for quest in quests]}


# ---------------------------------------------------------------------------
# Single quest
# ---------------------------------------------------------------------------


@router.get("/quests/{quest_id}")
async def get_quest(quest_id: str, request: Request) -> dict[str, Any]:
    """Return one quest."""
    require_caller(request)
    quest = await run_in_threadpool(_quest_store().get, quest_id)
    return quest_to_dict(quest)


@router.delete("/quests/{quest_id}")
async def delete_quest(quest_id: str, request: Request) -> dict[str, Any]:
    """Delete an open or paused quest."""
    caller_id = require_caller(request)
    result = await run_in_threadpool(_engine().delete_quest, caller_id, quest_id)
    return {
        "quest_id": result.quest_id,
        "deleted": True,
        "rejected_application_ids": result.rejected_application_ids,
    }


@router.get("/quests/{quest_id}/applications")
async def list_quest_applications(quest_id: str, request: Request) -> dict[str, Any]:
    """List the applications received by one of the caller's quests."""
    caller_id = require_caller(request)
    status = parse_status(request.query_params.get("status"), APPLICATION_STATUSES)
    applications = await run_in_threadpool(
        _engine().applications_for_quest, caller_id, quest_id, status=status
    )
    return {"applications": [application_to_dict(a) for a in applications]}


# ---------------------------------------------------------------------------
# Lifecycle actions
# ---------------------------------------------------------------------------


@router.post("/quests/{quest_id}/apply", status_code=201)
async def apply_to_quest(quest_id: str, request: Request) -> JSONResponse:
    """Apply to an open quest."""
    caller_id = require_caller(request)
    application = await run_in_threadpool(_engine().apply, caller_id, quest_id)
    return JSONResponse(status_code=201, content=application_to_dict(application))


@router.post("/quests/{quest_id}/hire")
async def hire_applicant(quest_id: str, request: Request) -> dict[str, Any]:
    """Hire an applicant and place the price in escrow."""
    caller_id = require_caller(request)
    data = parse_json_body(await request.body())
    application_id = require_str(data, "application_id")
    applicant_id = require_str(data, "applicant_id")

    result = await run_in_threadpool(
        _engine().hire, caller_id, quest_id, application_id, applicant_id
    )
    return {
        "quest": quest_to_dict(result.quest),
        "application": application_to_dict(result.application),
        "wallet_balance": format_amount(result.giver_balance),
        "rejected_application_ids": result.rejected_application_ids,
    }


@router.post("/quests/{quest_id}/toggle-pause")
async def toggle_pause(quest_id: str, request: Request) -> dict[str, Any]:
    """Pause an open quest or reopen a paused one."""
    caller_id = require_caller(request)
    quest = await run_in_threadpool(_engine().toggle_pause, caller_id, quest_id)
    return quest_to_dict(quest)


@router.post("/quests/{quest_id}/complete")
async def mark_complete(quest_id: str, request: Request) -> dict[str, Any]:
    """Pay the escrow to the hired quester and complete the quest."""
    caller_id = require_caller(request)
    data = parse_json_body(await request.body())
    hired_applicant_id = require_str(data, "hired_applicant_id")
    hired_application_id = require_str(data, "hired_application_id")

    result = await run_in_threadpool(
        _engine().mark_complete, caller_id, quest_id, hired_applicant_id, hired_application_id
    )
    return {
        "quest": quest_to_dict(result.quest),
        "application": (
            application_to_dict(result.application) if result.application is not None else None
        ),
        "payout": format_amount(result.payout),
    }


@router.post("/quests/{quest_id}/cancel-hire")
async def cancel_hire(quest_id: str, request: Request) -> dict[str, Any]:
    """Refund the escrow to the giver and reopen the quest."""
    caller_id = require_caller(request)
    data = parse_json_body(await request.body())
    application_id = require_str(data, "application_id")
    escrow_amount = optional_amount(data, "escrow_amount")
    hired_applicant_id = optional_str(data, "hired_applicant_id")

    result = await run_in_threadpool(
        _engine().cancel_hired,
        caller_id,
        quest_id,
        application_id,
        escrow_amount,
        hired_applicant_id,
    )
    return {
        "quest": quest_to_dict(result.quest),
        "application": (
            application_to_dict(result.application) if result.application is not None else None
        ),
        "refund": format_amount(result.refund),
        "wallet_balance": format_amount(result.giver_balance),
    }
