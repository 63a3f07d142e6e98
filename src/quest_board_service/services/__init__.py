"""Service layer components."""

from quest_board_service.services.application_store import ApplicationStore
from quest_board_service.services.document_store import DocumentStore
from quest_board_service.services.lifecycle_engine import QuestLifecycleEngine
from quest_board_service.services.quest_store import QuestStore
from quest_board_service.services.rating_service import RatingService
from quest_board_service.services.user_service import UserService

__all__ = [
    "ApplicationStore",
    "DocumentStore",
    "QuestLifecycleEngine",
    "QuestStore",
    "RatingService",
    "UserService",
]
