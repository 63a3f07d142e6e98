"""Application lifecycle management."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from quest_board_service.config import get_settings
from quest_board_service.core.money import to_minor_units
from quest_board_service.core.state import init_app_state
from quest_board_service.logging import get_logger, setup_logging
from quest_board_service.services.application_store import ApplicationStore
from quest_board_service.services.document_store import DocumentStore
from quest_board_service.services.lifecycle_engine import QuestLifecycleEngine
from quest_board_service.services.quest_store import QuestStore
from quest_board_service.services.rating_service import RatingService
from quest_board_service.services.user_service import UserService

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastapi import FastAPI


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle."""
    # === STARTUP ===
    settings = get_settings()

    setup_logging(settings.logging.level, settings.service.name, settings.logging.directory)
    logger = get_logger(__name__)

    state = init_app_state()

    store = DocumentStore(
        settings.database.path,
        busy_timeout_ms=settings.database.busy_timeout_ms,
        max_transaction_attempts=settings.database.max_transaction_attempts,
        retry_backoff_seconds=settings.database.retry_backoff_seconds,
    )
    quest_store = QuestStore(store)
    application_store = ApplicationStore(store)

    state.store = store
    state.quest_store = quest_store
    state.application_store = application_store
    state.user_service = UserService(
        store,
        signup_credit=to_minor_units(settings.wallet.signup_credit),
        max_top_up=to_minor_units(settings.wallet.max_top_up),
        admin_ids=settings.admin.user_ids,
    )
    state.engine = QuestLifecycleEngine(
        store,
        quest_store,
        application_store,
        max_title_length=settings.quests.max_title_length,
        max_description_length=settings.quests.max_description_length,
    )
    state.rating_service = RatingService(
        store,
        application_store,
        max_review_length=settings.ratings.max_review_length,
    )

    logger.info(
        "Service starting",
        extra={
            "service": settings.service.name,
            "version": settings.service.version,
            "port": settings.server.port,
            "db_path": settings.database.path,
        },
    )

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Service shutting down", extra={"uptime_seconds": state.uptime_seconds})
    store.close()
