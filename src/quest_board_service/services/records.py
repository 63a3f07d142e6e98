"""
Versioned document schemas for the ``users``, ``quests`` and ``applications`` collections.

Every document written to or read from the store is validated against one
of these models. Monetary fields are integer minor units.
"""

from __future__ import annotations

from typing import Literal, get_args

from pydantic import BaseModel, ConfigDict, Field, model_validator

USERS = "users"
QUESTS = "quests"
APPLICATIONS = "applications"

UserStatus = Literal["pending", "approved"]
QuestStatus = Literal["open", "paused", "in-progress", "completed", "archived"]
ApplicationStatus = Literal["pending", "hired", "rejected", "completed"]
WorkType = Literal["in-person", "online"]

QUEST_STATUSES: tuple[str, ...] = get_args(QuestStatus)
APPLICATION_STATUSES: tuple[str, ...] = get_args(ApplicationStatus)
ACTIVE_APPLICATION_STATUSES: tuple[str, ...] = ("pending", "hired")
DELETABLE_QUEST_STATUSES: tuple[str, ...] = ("open", "paused")


class UserRecord(BaseModel):
    """A member of the marketplace and their wallet."""

    model_config = ConfigDict(extra="forbid")
    schema_version: Literal[1] = 1
    user_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    status: UserStatus
    wallet_balance: int = Field(ge=0)
    total_rating_score: int = Field(default=0, ge=0)
    number_of_ratings: int = Field(default=0, ge=0)
    quests_posted: int = Field(default=0, ge=0)
    quests_completed: int = Field(default=0, ge=0)
    quests_given_completed: int = Field(default=0, ge=0)
    avatar_url: str | None = None
    created_at: str
    approved_at: str | None = None


class QuestLocation(BaseModel):
    """A pinned map location."""

    model_config = ConfigDict(extra="forbid")
    address: str
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class QuestRecord(BaseModel):
    """A posted job and the escrow held against it."""

    model_config = ConfigDict(extra="forbid")
    schema_version: Literal[1] = 1
    quest_id: str = Field(min_length=1)
    quest_giver_id: str = Field(min_length=1)
    quest_giver_name: str
    title: str = Field(min_length=1)
    description: str
    category: str
    work_type: WorkType
    schedule: str | None = None
    price: int = Field(gt=0)
    location: QuestLocation | None = None
    image_url: str | None = None
    status: QuestStatus
    hired_applicant_id: str | None = None
    hired_application_id: str | None = None
    escrow_amount: int = Field(default=0, ge=0)
    applicant_count: int = Field(default=0, ge=0)
    created_at: str
    hired_at: str | None = None
    completed_at: str | None = None

    @model_validator(mode="after")
    def _check_escrow(self) -> QuestRecord:
        if self.escrow_amount > 0 and self.status != "in-progress":
            msg = "escrow_amount may only be held while in-progress"
            raise ValueError(msg)
        if self.status == "in-progress" and self.escrow_amount != self.price:
            msg = "escrow_amount must equal price while in-progress"
            raise ValueError(msg)
        if self.status == "completed" and self.escrow_amount != 0:
            msg = "escrow_amount must be 0 once completed"
            raise ValueError(msg)
        hired = self.status in ("in-progress", "completed")
        if hired != (self.hired_applicant_id is not None):
            msg = "hired_applicant_id must be set exactly while in-progress or completed"
            raise ValueError(msg)
        return self


class ApplicationRecord(BaseModel):
    """One quester's application to one quest."""

    model_config = ConfigDict(extra="forbid")
    schema_version: Literal[1] = 1
    application_id: str = Field(min_length=1)
    quest_id: str = Field(min_length=1)
    quest_giver_id: str = Field(min_length=1)
    quester_id: str = Field(min_length=1)
    applicant_name: str
    quest_title: str
    status: ApplicationStatus
    quester_rated: bool = False
    quester_rating: int | None = Field(default=None, ge=1, le=5)
    quester_review: str | None = None
    giver_rated: bool = False
    giver_rating: int | None = Field(default=None, ge=1, le=5)
    giver_review: str | None = None
    applied_at: str
    updated_at: str | None = None

    @model_validator(mode="after")
    def _check_ratings(self) -> ApplicationRecord:
        if self.quester_rated != (self.quester_rating is not None):
            msg = "quester_rated must be set together with quester_rating"
            raise ValueError(msg)
        if self.giver_rated != (self.giver_rating is not None):
            msg = "giver_rated must be set together with giver_rating"
            raise ValueError(msg)
        return self


COLLECTION_SCHEMAS: dict[str, type[BaseModel]] = {
    USERS: UserRecord,
    QUESTS: QuestRecord,
    APPLICATIONS: ApplicationRecord,
}
