"""
Quest lifecycle engine.

Moves quests through open -> in-progress -> completed (or back to open on
cancellation) while moving funds between wallet balances and escrow.

Every operation is one ``run_transaction`` call: the callback reads every
record it needs, validates preconditions against that fresh state, then
queues its writes. A callback may be re-run on contention, so it never
depends on anything computed by a previous attempt.
"""

from __future__ import annotations

import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from functools import partial
from typing import TYPE_CHECKING

from quest_board_service.core.exceptions import ServiceError
from quest_board_service.core.money import format_amount
from quest_board_service.logging import get_logger
from quest_board_service.services.document_store import Increment
from quest_board_service.services.ledger import adjust_balance, require_profile
from quest_board_service.services.records import (
    DELETABLE_QUEST_STATUSES,
    USERS,
    ApplicationRecord,
    QuestLocation,
    QuestRecord,
)
from quest_board_service.services.user_service import require_approved_user

if TYPE_CHECKING:
    from quest_board_service.services.application_store import ApplicationStore
    from quest_board_service.services.document_store import DocumentStore, Transaction
    from quest_board_service.services.quest_store import QuestStore

WORK_TYPES: tuple[str, ...] = ("in-person", "online")


@dataclass(frozen=True)
class QuestDraft:
    """Giver-supplied fields for a new quest."""

    title: str
    description: str
    category: str
    work_type: str
    price: int
    location: QuestLocation | None = None
    image_url: str | None = None
    schedule: str | None = None


@dataclass(frozen=True)
class PostResult:
    quest: QuestRecord
    quests_posted: int


@dataclass(frozen=True)
class HireResult:
    quest: QuestRecord
    application: ApplicationRecord
    giver_balance: int
    rejected_application_ids: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class CompletionResult:
    quest: QuestRecord
    application: ApplicationRecord | None
    payout: int
    quester_balance: int


@dataclass(frozen=True)
class CancellationResult:
    quest: QuestRecord
    application: ApplicationRecord | None
    refund: int
    giver_balance: int


@dataclass(frozen=True)
class DeletionResult:
    quest_id: str
    rejected_application_ids: list[str]


@dataclass(frozen=True)
class ProfileQuests:
    posted: list[QuestRecord]
    completed: list[QuestRecord]


class QuestLifecycleEngine:
    """
    Orchestrates quest, application and wallet changes.

    The caller identity is passed explicitly to every operation and every
    ownership rule is checked here, inside the transaction.
    """

    def __init__(
        self,
        store: DocumentStore,
        quests: QuestStore,
        applications: ApplicationStore,
        *,
        max_title_length: int,
        max_description_length: int,
    ) -> None:
        self._store = store
        self._quests = quests
        self._applications = applications
        self._max_title_length = max_title_length
        self._max_description_length = max_description_length
        self._logger = get_logger(__name__)

    def _now(self) -> str:
        return datetime.now(UTC).isoformat(timespec="seconds").replace("+00:00", "Z")

    @staticmethod
    def _require_giver(quest: QuestRecord, caller_id: str) -> None:
        if quest.quest_giver_id != caller_id:
            raise ServiceError(
                "FORBIDDEN",
                "Only the quest giver can perform this action",
                403,
                {"quest_id": quest.quest_id},
            )

    @staticmethod
    def _require_status(quest: QuestRecord, status: str, error: str, message: str) -> None:
        if quest.status != status:
            raise ServiceError(
                error,
                message,
                409,
                {"quest_id": quest.quest_id, "status": quest.status},
            )

    # ------------------------------------------------------------------
    # Posting
    # ------------------------------------------------------------------

    def _validate_draft(self, draft: QuestDraft) -> QuestDraft:
        title = draft.title.strip()
        if not title or len(title) > self._max_title_length:
            raise ServiceError(
                "INVALID_TITLE",
                f"Title must be 1-{self._max_title_length} characters",
                400,
                {},
            )
        if len(draft.description) > self._max_description_length:
            raise ServiceError(
                "INVALID_DESCRIPTION",
                f"Description must be at most {self._max_description_length} characters",
                400,
                {},
            )
        category = draft.category.strip()
        if not category:
            raise ServiceError("INVALID_CATEGORY", "Category is required", 400, {})
        if draft.work_type not in WORK_TYPES:
            raise ServiceError(
                "INVALID_WORK_TYPE",
                f"work_type must be one of {list(WORK_TYPES)}",
                400,
                {},
            )
        if draft.price <= 0:
            raise ServiceError("INVALID_PRICE", "Price must be greater than 0", 400, {})
        location = draft.location
        if draft.work_type == "in-person" and location is None:
            raise ServiceError(
                "LOCATION_REQUIRED",
                "In-person quests need a pinned location",
                400,
                {},
            )
        if draft.work_type == "online":
            location = None
        return QuestDraft(
            title=title,
            description=draft.description,
            category=category,
            work_type=draft.work_type,
            price=draft.price,
            location=location,
            image_url=draft.image_url,
            schedule=draft.schedule,
        )

    def post_quest(self, caller_id: str, draft: QuestDraft) -> PostResult:
        """
        Publish a new open quest owned by the caller.

        The image, if any, has already been stored by the caller; its URL is
        kept verbatim.

        Raises:
            ServiceError: INVALID_* on bad fields, USER_NOT_APPROVED.
        """
        clean = self._validate_draft(draft)
        quest_id = f"q-{uuid.uuid4()}"
        created_at = self._now()

        def _post(txn: Transaction) -> PostResult:
            giver = require_approved_user(txn, caller_id)
            quest = QuestRecord(
                quest_id=quest_id,
                quest_giver_id=caller_id,
                quest_giver_name=giver.name,
                title=clean.title,
                description=clean.description,
                category=clean.category,
                work_type=clean.work_type,  # type: ignore[arg-type]
                schedule=clean.schedule,
                price=clean.price,
                location=clean.location,
                image_url=clean.image_url,
                status="open",
                created_at=created_at,
            )
            self._quests.create(txn, quest)
            txn.update(USERS, caller_id, {"quests_posted": Increment(1)})
            return PostResult(quest=quest, quests_posted=giver.quests_posted + 1)

        result = self._store.run_transaction(_post)
        self._logger.info(
            "Quest posted",
            extra={
                "quest_id": quest_id,
                "giver_id": caller_id,
                "price": format_amount(clean.price),
            },
        )
        return result

    # ------------------------------------------------------------------
    # Applications
    # ------------------------------------------------------------------

    def apply(self, caller_id: str, quest_id: str) -> ApplicationRecord:
        """
        Apply to an open quest.

        Raises:
            ServiceError: OWN_QUEST, QUEST_CLOSED, ALREADY_APPLIED,
                USER_NOT_APPROVED, QUEST_NOT_FOUND.
        """
        application_id = f"app-{uuid.uuid4()}"
        applied_at = self._now()

        def _apply(txn: Transaction) -> ApplicationRecord:
            quester = require_approved_user(txn, caller_id)
            quest = self._quests.read(txn, quest_id)
            if quest.quest_giver_id == caller_id:
                raise ServiceError(
                    "OWN_QUEST",
                    "You cannot apply to your own quest",
                    400,
                    {"quest_id": quest_id},
                )
            if quest.status != "open":
                raise ServiceError(
                    "QUEST_CLOSED",
                    "This quest is not accepting applications",
                    409,
                    {"quest_id": quest_id, "status": quest.status},
                )
            existing = self._applications.find_active(txn, quest_id, caller_id)
            if existing is not None:
                raise ServiceError(
                    "ALREADY_APPLIED",
                    "You already have an active application for this quest",
                    409,
                    {"application_id": existing.application_id},
                )

            application = ApplicationRecord(
                application_id=application_id,
                quest_id=quest_id,
                quest_giver_id=quest.quest_giver_id,
                quester_id=caller_id,
                applicant_name=quester.name,
                quest_title=quest.title,
                status="pending",
                applied_at=applied_at,
            )
            self._applications.create(txn, application)
            self._quests.update(txn, quest_id, {"applicant_count": Increment(1)})
            return application

        application = self._store.run_transaction(_apply)
        self._logger.info(
            "Application submitted",
            extra={"application_id": application_id, "quest_id": quest_id, "quester_id": caller_id},
        )
        return application

    def reject_applicant(self, caller_id: str, application_id: str) -> ApplicationRecord:
        """
        Reject a pending application to one of the caller's quests.

        Raises:
            ServiceError: FORBIDDEN, APPLICATION_NOT_PENDING, APPLICATION_NOT_FOUND.
        """
        updated_at = self._now()

        def _reject(txn: Transaction) -> ApplicationRecord:
            application = self._applications.read(txn, application_id)
            if application.quest_giver_id != caller_id:
                raise ServiceError(
                    "FORBIDDEN",
                    "Only the quest giver can reject applicants",
                    403,
                    {"application_id": application_id},
                )
            self._require_pending(application)
            quest = self._quests.read(txn, application.quest_id)

            self._applications.update(
                txn, application_id, {"status": "rejected", "updated_at": updated_at}
            )
            self._quests.update(txn, quest.quest_id, {"applicant_count": Increment(-1)})
            return application.model_copy(update={"status": "rejected", "updated_at": updated_at})

        application = self._store.run_transaction(_reject)
        self._logger.info(
            "Applicant rejected",
            extra={"application_id": application_id, "quest_id": application.quest_id},
        )
        return application

    def withdraw(self, caller_id: str, application_id: str) -> ApplicationRecord:
        """
        Delete the caller's own pending application.

        Raises:
            ServiceError: FORBIDDEN, APPLICATION_NOT_PENDING, APPLICATION_NOT_FOUND.
        """

        def _withdraw(txn: Transaction) -> ApplicationRecord:
            application = self._applications.read(txn, application_id)
            if application.quester_id != caller_id:
                raise ServiceError(
                    "FORBIDDEN",
                    "Only the applicant can withdraw an application",
                    403,
                    {"application_id": application_id},
                )
            self._require_pending(application)
            quest = self._quests.read(txn, application.quest_id)

            self._applications.delete(txn, application_id)
            self._quests.update(txn, quest.quest_id, {"applicant_count": Increment(-1)})
            return application

        application = self._store.run_transaction(_withdraw)
        self._logger.info(
            "Application withdrawn",
            extra={"application_id": application_id, "quest_id": application.quest_id},
        )
        return application

    def applications_for_quest(
        self,
        caller_id: str,
        quest_id: str,
        *,
        status: str | None,
    ) -> list[ApplicationRecord]:
        """
        List applications received by one of the caller's quests.

        Raises:
            ServiceError: FORBIDDEN, QUEST_NOT_FOUND.
        """
        quest = self._quests.get(quest_id)
        self._require_giver(quest, caller_id)
        return self._applications.list_for_quest(quest_id, status=status)

    def applications_for_quester(
        self,
        caller_id: str,
        *,
        status: str | None,
    ) -> list[ApplicationRecord]:
        """List the caller's own applications."""
        return self._applications.list_for_quester(caller_id, status=status)

    def profile_quests(self, user_id: str) -> ProfileQuests:
        """
        Quests a member has posted and quests they completed as a quester.

        Raises:
            ServiceError: USER_NOT_FOUND if no such member exists.
        """
        if self._store.get(USERS, user_id) is None:
            raise ServiceError("USER_NOT_FOUND", "User not found", 404, {"user_id": user_id})
        posted = self._quests.list_by_giver(user_id, status=None)
        completed: list[QuestRecord] = []
        for application in self._applications.list_for_quester(user_id, status="completed"):
            quest = self._quests.find(application.quest_id)
            if quest is not None:
                completed.append(quest)
        return ProfileQuests(posted=posted, completed=completed)

    @staticmethod
    def _require_pending(application: ApplicationRecord) -> None:
        if application.status != "pending":
            raise ServiceError(
                "APPLICATION_NOT_PENDING",
                "Application is no longer pending",
                409,
                {"application_id": application.application_id, "status": application.status},
            )

    # ------------------------------------------------------------------
    # Hiring
    # ------------------------------------------------------------------

    def hire(
        self,
        caller_id: str,
        quest_id: str,
        application_id: str,
        applicant_id: str,
    ) -> HireResult:
        """
        Hire an applicant and move the price from the giver's wallet into escrow.

        Other pending applications are rejected afterwards in separate
        best-effort transactions.

        Raises:
            ServiceError: FORBIDDEN, QUEST_NOT_OPEN, INVALID_PRICE,
                APPLICATION_MISMATCH, APPLICATION_NOT_PENDING,
                INSUFFICIENT_FUNDS, PROFILE_MISSING.
        """
        hired_at = self._now()

        def _hire(txn: Transaction) -> HireResult:
            quest = self._quests.read(txn, quest_id)
            self._require_giver(quest, caller_id)
            self._require_status(quest, "open", "QUEST_NOT_OPEN", "Quest is not open for hiring")
            if quest.price <= 0:
                raise ServiceError("INVALID_PRICE", "Quest has no valid price", 400, {})
            application = self._applications.read(txn, application_id)
            if application.quest_id != quest_id or application.quester_id != applicant_id:
                raise ServiceError(
                    "APPLICATION_MISMATCH",
                    "Application does not belong to this quest and applicant",
                    400,
                    {"application_id": application_id},
                )
            self._require_pending(application)
            giver = require_profile(txn, caller_id)
            require_profile(txn, applicant_id)

            giver_balance = adjust_balance(txn, giver, -quest.price)
            quest_updates = {
                "status": "in-progress",
                "hired_applicant_id": applicant_id,
                "hired_application_id": application_id,
                "escrow_amount": quest.price,
                "hired_at": hired_at,
            }
            self._quests.update(
                txn, quest_id, {**quest_updates, "applicant_count": Increment(-1)}
            )
            self._applications.update(
                txn, application_id, {"status": "hired", "updated_at": hired_at}
            )
            return HireResult(
                quest=quest.model_copy(
                    update={**quest_updates, "applicant_count": quest.applicant_count - 1}
                ),
                application=application.model_copy(
                    update={"status": "hired", "updated_at": hired_at}
                ),
                giver_balance=giver_balance,
            )

        result = self._store.run_transaction(_hire)
        self._logger.info(
            "Applicant hired",
            extra={
                "quest_id": quest_id,
                "application_id": application_id,
                "applicant_id": applicant_id,
                "escrow": format_amount(result.quest.escrow_amount),
            },
        )

        rejected = self._reject_remaining(quest_id)
        return HireResult(
            quest=result.quest,
            application=result.application,
            giver_balance=result.giver_balance,
            rejected_application_ids=rejected,
        )

    def _reject_remaining(self, quest_id: str) -> list[str]:
        """Reject every application still pending on a hired quest."""
        rejected: list[str] = []
        for pending_id in self._applications.list_pending_ids(quest_id):
            try:
                reject = partial(
                    self._reject_if_pending, quest_id=quest_id, application_id=pending_id
                )
                if self._store.run_transaction(reject):
                    rejected.append(pending_id)
            except (ServiceError, sqlite3.Error) as exc:
                self._logger.warning(
                    "Could not reject remaining applicant",
                    extra={"quest_id": quest_id, "application_id": pending_id, "reason": str(exc)},
                )
        return rejected

    def _reject_if_pending(self, txn: Transaction, quest_id: str, application_id: str) -> bool:
        application = self._applications.read_optional(txn, application_id)
        if application is None or application.status != "pending":
            return False
        self._applications.update(
            txn, application_id, {"status": "rejected", "updated_at": self._now()}
        )
        self._quests.update(txn, quest_id, {"applicant_count": Increment(-1)})
        return True

    # ------------------------------------------------------------------
    # Quest management
    # ------------------------------------------------------------------

    def toggle_pause(self, caller_id: str, quest_id: str) -> QuestRecord:
        """
        Flip an open quest to paused or a paused quest back to open.

        Quests in any other state are returned unchanged.

        Raises:
            ServiceError: FORBIDDEN, QUEST_NOT_FOUND.
        """

        def _toggle(txn: Transaction) -> QuestRecord:
            quest = self._quests.read(txn, quest_id)
            self._require_giver(quest, caller_id)
            if quest.status not in ("open", "paused"):
                return quest
            new_status = "paused" if quest.status == "open" else "open"
            self._quests.update(txn, quest_id, {"status": new_status})
            return quest.model_copy(update={"status": new_status})

        quest = self._store.run_transaction(_toggle)
        self._logger.info(
            "Quest pause toggled", extra={"quest_id": quest_id, "status": quest.status}
        )
        return quest

    def delete_quest(self, caller_id: str, quest_id: str) -> DeletionResult:
        """
        Delete an open or paused quest and reject its pending applications.

        Raises:
            ServiceError: FORBIDDEN, QUEST_NOT_DELETABLE, QUEST_NOT_FOUND.
        """
        updated_at = self._now()

        def _delete(txn: Transaction) -> DeletionResult:
            quest = self._quests.read(txn, quest_id)
            self._require_giver(quest, caller_id)
            if quest.status not in DELETABLE_QUEST_STATUSES:
                raise ServiceError(
                    "QUEST_NOT_DELETABLE",
                    "Only open or paused quests can be deleted",
                    409,
                    {"quest_id": quest_id, "status": quest.status},
                )
            pending = self._applications.pending_for_quest(txn, quest_id)

            self._quests.delete(txn, quest_id)
            for application in pending:
                self._applications.update(
                    txn,
                    application.application_id,
                    {"status": "rejected", "updated_at": updated_at},
                )
            return DeletionResult(
                quest_id=quest_id,
                rejected_application_ids=[a.application_id for a in pending],
            )

        result = self._store.run_transaction(_delete)
        self._logger.info(
            "Quest deleted",
            extra={"quest_id": quest_id, "rejected": len(result.rejected_application_ids)},
        )
        return result

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    def mark_complete(
        self,
        caller_id: str,
        quest_id: str,
        hired_applicant_id: str,
        hired_application_id: str,
    ) -> CompletionResult:
        """
        Release the escrow to the hired quester and close the quest.

        Raises:
            ServiceError: FORBIDDEN, QUEST_NOT_IN_PROGRESS,
                APPLICATION_MISMATCH, PROFILE_MISSING.
        """
        completed_at = self._now()

        def _complete(txn: Transaction) -> CompletionResult:
            quest = self._quests.read(txn, quest_id)
            self._require_giver(quest, caller_id)
            self._require_status(
                quest, "in-progress", "QUEST_NOT_IN_PROGRESS", "Quest is not in progress"
            )
            self._require_hire_matches(quest, hired_applicant_id, hired_application_id)
            giver = require_profile(txn, quest.quest_giver_id)
            same_person = hired_applicant_id == quest.quest_giver_id
            quester = giver if same_person else require_profile(txn, hired_applicant_id)
            application = self._applications.read_optional(txn, hired_application_id)

            payout = quest.escrow_amount
            quester_balance = adjust_balance(txn, quester, payout)
            if same_person:
                txn.update(
                    USERS,
                    giver.user_id,
                    {"quests_completed": Increment(1), "quests_given_completed": Increment(1)},
                )
            else:
                txn.update(USERS, quester.user_id, {"quests_completed": Increment(1)})
                txn.update(USERS, giver.user_id, {"quests_given_completed": Increment(1)})

            quest_updates = {
                "status": "completed",
                "escrow_amount": 0,
                "completed_at": completed_at,
            }
            self._quests.update(txn, quest_id, quest_updates)

            completed_application = None
            if application is not None:
                application_updates = {"status": "completed", "updated_at": completed_at}
                self._applications.update(txn, hired_application_id, application_updates)
                completed_application = application.model_copy(update=application_updates)
            else:
                self._logger.warning(
                    "Hired application missing at completion",
                    extra={"quest_id": quest_id, "application_id": hired_application_id},
                )

            return CompletionResult(
                quest=quest.model_copy(update=quest_updates),
                application=completed_application,
                payout=payout,
                quester_balance=quester_balance,
            )

        result = self._store.run_transaction(_complete)
        self._logger.info(
            "Quest completed",
            extra={
                "quest_id": quest_id,
                "quester_id": hired_applicant_id,
                "payout": format_amount(result.payout),
            },
        )
        return result

    def cancel_hired(
        self,
        caller_id: str,
        quest_id: str,
        application_id: str,
        escrow_amount: int | None = None,
        hired_applicant_id: str | None = None,
    ) -> CancellationResult:
        """
        Refund the escrow to the giver and reopen the quest.

        The refund is the escrow held on the quest record. A caller-supplied
        ``escrow_amount`` that disagrees with it is rejected.

        Raises:
            ServiceError: FORBIDDEN, QUEST_NOT_IN_PROGRESS, ESCROW_MISMATCH,
                APPLICATION_MISMATCH, PROFILE_MISSING.
        """
        updated_at = self._now()

        def _cancel(txn: Transaction) -> CancellationResult:
            quest = self._quests.read(txn, quest_id)
            self._require_giver(quest, caller_id)
            self._require_status(
                quest, "in-progress", "QUEST_NOT_IN_PROGRESS", "Quest is not in progress"
            )
            if escrow_amount is not None and escrow_amount != quest.escrow_amount:
                raise ServiceError(
                    "ESCROW_MISMATCH",
                    "Escrow amount does not match the amount held for this quest",
                    409,
                    {"quest_id": quest_id, "escrow_amount": format_amount(quest.escrow_amount)},
                )
            self._require_hire_matches(
                quest,
                hired_applicant_id if hired_applicant_id is not None else quest.hired_applicant_id,
                application_id,
            )
            giver = require_profile(txn, quest.quest_giver_id)
            application = self._applications.read_optional(txn, application_id)

            refund = quest.escrow_amount
            giver_balance = adjust_balance(txn, giver, refund)
            quest_updates = {
                "status": "open",
                "hired_applicant_id": None,
                "hired_application_id": None,
                "escrow_amount": 0,
                "hired_at": None,
            }
            self._quests.update(txn, quest_id, quest_updates)

            rejected_application = None
            if application is not None:
                application_updates = {"status": "rejected", "updated_at": updated_at}
                self._applications.update(txn, application_id, application_updates)
                rejected_application = application.model_copy(update=application_updates)

            return CancellationResult(
                quest=quest.model_copy(update=quest_updates),
                application=rejected_application,
                refund=refund,
                giver_balance=giver_balance,
            )

        result = self._store.run_transaction(_cancel)
        self._logger.info(
            "Hire cancelled",
            extra={
                "quest_id": quest_id,
                "application_id": application_id,
                "refund": format_amount(result.refund),
            },
        )
        return result

    @staticmethod
    def _require_hire_matches(
        quest: QuestRecord,
        hired_applicant_id: str | None,
        hired_application_id: str,
    ) -> None:
        if (
            hired_applicant_id != quest.hired_applicant_id
            or hired_application_id != quest.hired_application_id
        ):
            raise ServiceError(
                "APPLICATION_MISMATCH",
                "The given hire does not match the quest's hired applicant",
                400,
                {"quest_id": quest.quest_id},
            )
