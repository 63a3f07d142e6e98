"""Shared test helpers for building stores, services and seeded records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from quest_board_service.services.application_store import ApplicationStore
from quest_board_service.services.document_store import DocumentStore
from quest_board_service.services.lifecycle_engine import QuestDraft, QuestLifecycleEngine
from quest_board_service.services.quest_store import QuestStore
from quest_board_service.services.rating_service import RatingService
from quest_board_service.services.records import (
    APPLICATIONS,
    QUESTS,
    USERS,
    ApplicationRecord,
    QuestLocation,
    QuestRecord,
    UserRecord,
)
from quest_board_service.services.user_service import UserService

if TYPE_CHECKING:
    from pathlib import Path

SIGNUP_CREDIT = 500_000
MAX_TOP_UP = 1_000_000
ADMIN_ID = "u-admin"
TIMESTAMP = "2026-01-01T00:00:00Z"


@dataclass
class Services:
    """Everything a service-level test needs, wired to one database file."""

    store: DocumentStore
    quests: QuestStore
    applications: ApplicationStore
    users: UserService
    engine: QuestLifecycleEngine
    ratings: RatingService


def make_store(
    db_path: Path,
    *,
    busy_timeout_ms: int = 5000,
    max_transaction_attempts: int = 5,
) -> DocumentStore:
    """Open a document store with test-friendly retry settings."""
    return DocumentStore(
        str(db_path),
        busy_timeout_ms=busy_timeout_ms,
        max_transaction_attempts=max_transaction_attempts,
        retry_backoff_seconds=0.0,
    )


def make_services(store: DocumentStore) -> Services:
    """Wire the service layer on top of an existing store."""
    quests = QuestStore(store)
    applications = ApplicationStore(store)
    return Services(
        store=store,
        quests=quests,
        applications=applications,
        users=UserService(
            store,
            signup_credit=SIGNUP_CREDIT,
            max_top_up=MAX_TOP_UP,
            admin_ids=[ADMIN_ID],
        ),
        engine=QuestLifecycleEngine(
            store,
            quests,
            applications,
            max_title_length=120,
            max_description_length=5000,
        ),
        ratings=RatingService(store, applications, max_review_length=1000),
    )


def seed_user(
    store: DocumentStore,
    user_id: str,
    *,
    balance: int = SIGNUP_CREDIT,
    status: str = "approved",
    name: str | None = None,
) -> UserRecord:
    """Write a user record directly."""
    user = UserRecord(
        user_id=user_id,
        name=name or user_id,
        status=status,  # type: ignore[arg-type]
        wallet_balance=balance,
        created_at=TIMESTAMP,
    )
    store.run_transaction(lambda txn: txn.set(USERS, user_id, user.model_dump(mode="json")))
    return user


def get_user(store: DocumentStore, user_id: str) -> UserRecord:
    """Read a committed user record."""
    data = store.get(USERS, user_id)
    assert data is not None, f"user {user_id} missing"
    return UserRecord.model_validate(data)


def get_quest(store: DocumentStore, quest_id: str) -> QuestRecord | None:
    """Read a committed quest record."""
    data = store.get(QUESTS, quest_id)
    return QuestRecord.model_validate(data) if data is not None else None


def get_application(store: DocumentStore, application_id: str) -> ApplicationRecord | None:
    """Read a committed application record."""
    data = store.get(APPLICATIONS, application_id)
    return ApplicationRecord.model_validate(data) if data is not None else None


def make_draft(
    *,
    title: str = "Fix the garden fence",
    price: int = 120_000,
    work_type: str = "in-person",
    category: str = "Home Repair",
) -> QuestDraft:
    """A valid quest draft."""
    return QuestDraft(
        title=title,
        description="Two broken panels need replacing.",
        category=category,
        work_type=work_type,
        price=price,
        location=QuestLocation(address="12 Rizal St, Manila", lat=14.5995, lng=120.9842),
        image_url="https://images.example.com/fence.jpg",
        schedule="Saturday morning",
    )


def post_quest(services: Services, giver_id: str, **draft_fields: object) -> QuestRecord:
    """Post a quest through the engine and return it."""
    draft = make_draft(**draft_fields)  # type: ignore[arg-type]
    return services.engine.post_quest(giver_id, draft).quest


def as_user(user_id: str) -> dict[str, str]:
    """Headers identifying the caller to the HTTP API."""
    return {"X-User-Id": user_id}
