"""Counterparty ratings on completed applications."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

from quest_board_service.core.exceptions import ServiceError
from quest_board_service.logging import get_logger
from quest_board_service.services.document_store import Increment
from quest_board_service.services.ledger import require_profile
from quest_board_service.services.records import USERS

if TYPE_CHECKING:
    from quest_board_service.services.application_store import ApplicationStore
    from quest_board_service.services.document_store import DocumentStore, Transaction
    from quest_board_service.services.records import ApplicationRecord, UserRecord

MIN_STARS = 1
MAX_STARS = 5


def average_rating(user: UserRecord) -> str:
    """Average stars received, to one decimal place, or ``"N/A"`` when unrated."""
    if user.number_of_ratings == 0:
        return "N/A"
    average = Decimal(user.total_rating_score) / Decimal(user.number_of_ratings)
    return str(average.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class RatingResult:
    application: ApplicationRecord
    rated_user_id: str
    total_rating_score: int
    number_of_ratings: int


class RatingService:
    """
    Records one rating per side of a completed application.

    The giver rates the quester (``quester_*`` fields) and the quester rates
    the giver (``giver_*`` fields). The flag, the stored rating and the
    rated user's aggregate change in a single transaction.
    """

    def __init__(
        self,
        store: DocumentStore,
        applications: ApplicationStore,
        *,
        max_review_length: int,
    ) -> None:
        self._store = store
        self._applications = applications
        self._max_review_length = max_review_length
        self._logger = get_logger(__name__)

    def rate_counterparty(
        self,
        caller_id: str,
        rated_user_id: str,
        stars: int,
        application_id: str,
        review_text: str | None = None,
    ) -> RatingResult:
        """
        Rate the other party of a completed application.

        Raises:
            ServiceError: INVALID_RATING, INVALID_REVIEW, FORBIDDEN,
                RATING_NOT_ALLOWED, ALREADY_RATED, PROFILE_MISSING,
                APPLICATION_NOT_FOUND.
        """
        if isinstance(stars, bool) or not isinstance(stars, int) or not (
            MIN_STARS <= stars <= MAX_STARS
        ):
            raise ServiceError(
                "INVALID_RATING",
                f"Rating must be an integer from {MIN_STARS} to {MAX_STARS}",
                400,
                {},
            )
        review = review_text.strip() if review_text is not None else None
        if review is not None and len(review) > self._max_review_length:
            raise ServiceError(
                "INVALID_REVIEW",
                f"Review must be at most {self._max_review_length} characters",
                400,
                {},
            )
        if review == "":
            review = None

        def _rate(txn: Transaction) -> RatingResult:
            application = self._applications.read(txn, application_id)
            side = self._rated_side(application, caller_id, rated_user_id)
            if application.status != "completed":
                raise ServiceError(
                    "RATING_NOT_ALLOWED",
                    "Only completed quests can be rated",
                    409,
                    {"application_id": application_id, "status": application.status},
                )
            if getattr(application, f"{side}_rated"):
                raise ServiceError(
                    "ALREADY_RATED",
                    "This application has already been rated",
                    409,
                    {"application_id": application_id},
                )
            rated_user = require_profile(txn, rated_user_id)

            txn.update(
                USERS,
                rated_user_id,
                {"total_rating_score": Increment(stars), "number_of_ratings": Increment(1)},
            )
            updates = {
                f"{side}_rated": True,
                f"{side}_rating": stars,
                f"{side}_review": review,
                "updated_at": datetime.now(UTC).isoformat(timespec="seconds").replace(
                    "+00:00", "Z"
                ),
            }
            self._applications.update(txn, application_id, updates)
            return RatingResult(
                application=application.model_copy(update=updates),
                rated_user_id=rated_user_id,
                total_rating_score=rated_user.total_rating_score + stars,
                number_of_ratings=rated_user.number_of_ratings + 1,
            )

        result = self._store.run_transaction(_rate)
        self._logger.info(
            "Rating recorded",
            extra={
                "application_id": application_id,
                "rated_user_id": rated_user_id,
                "stars": stars,
            },
        )
        return result

    @staticmethod
    def _rated_side(application: ApplicationRecord, caller_id: str, rated_user_id: str) -> str:
        """Which side of the application the caller is rating."""
        if caller_id == application.quest_giver_id and rated_user_id == application.quester_id:
            return "quester"
        if caller_id == application.quester_id and rated_user_id == application.quest_giver_id:
            return "giver"
        raise ServiceError(
            "FORBIDDEN",
            "Only the giver and quester of this application can rate each other",
            403,
            {"application_id": application.application_id},
        )
