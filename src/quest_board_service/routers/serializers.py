"""Conversion of stored records to API response bodies."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from quest_board_service.core.money import format_amount
from quest_board_service.services.rating_service import average_rating

if TYPE_CHECKING:
    from quest_board_service.services.records import ApplicationRecord, QuestRecord, UserRecord


def user_to_dict(user: UserRecord, *, viewer_id: str) -> dict[str, Any]:
    """
    Profile including the derived average rating.

    The wallet balance is only shown to the profile owner.
    """
    body: dict[str, Any] = {
        "user_id": user.user_id,
        "name": user.name,
        "status": user.status,
        "avatar_url": user.avatar_url,
        "total_rating_score": user.total_rating_score,
        "number_of_ratings": user.number_of_ratings,
        "average_rating": average_rating(user),
        "quests_posted": user.quests_posted,
        "quests_completed": user.quests_completed,
        "quests_given_completed": user.quests_given_completed,
        "created_at": user.created_at,
        "approved_at": user.approved_at,
    }
    if viewer_id == user.user_id:
        body["wallet_balance"] = format_amount(user.wallet_balance)
    return body


def quest_to_dict(quest: QuestRecord) -> dict[str, Any]:
    """Quest detail with amounts rendered as decimal strings."""
    return {
        "quest_id": quest.quest_id,
        "quest_giver_id": quest.quest_giver_id,
        "quest_giver_name": quest.quest_giver_name,
        "title": quest.title,
        "description": quest.description,
        "category": quest.category,
        "work_type": quest.work_type,
        "schedule": quest.schedule,
        "price": format_amount(quest.price),
        "location": quest.location.model_dump() if quest.location is not None else None,
        "image_url": quest.image_url,
        "status": quest.status,
        "hired_applicant_id": quest.hired_applicant_id,
        "hired_application_id": quest.hired_application_id,
        "escrow_amount": format_amount(quest.escrow_amount),
        "applicant_count": quest.applicant_count,
        "created_at": quest.created_at,
        "hired_at": quest.hired_at,
        "completed_at": quest.completed_at,
    }


def application_to_dict(application: ApplicationRecord) -> dict[str, Any]:
    """Application detail."""
    return application.model_dump(mode="json", exclude={"schema_version"})
