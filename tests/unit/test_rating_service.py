"""Unit tests for counterparty ratings."""

from __future__ import annotations

import pytest

from quest_board_service.core.exceptions import ServiceError
from quest_board_service.services.rating_service import average_rating
from quest_board_service.services.records import UserRecord
from tests.helpers import TIMESTAMP, get_application, get_user, post_quest, seed_user

GIVER = "u-giver"
QUESTER = "u-quester"
OUTSIDER = "u-outsider"


@pytest.fixture
def completed(services):
    """A completed quest and its application."""
    seed_user(services.store, GIVER)
    seed_user(services.store, QUESTER, balance=0)
    seed_user(services.store, OUTSIDER)
    quest = post_quest(services, GIVER)
    application = services.engine.apply(QUESTER, quest.quest_id)
    services.engine.hire(GIVER, quest.quest_id, application.application_id, QUESTER)
    services.engine.mark_complete(GIVER, quest.quest_id, QUESTER, application.application_id)
    return services, application.application_id


@pytest.mark.unit
class TestRateCounterparty:
    def test_giver_rates_quester(self, completed) -> None:
        services, application_id = completed

        result = services.ratings.rate_counterparty(
            GIVER, QUESTER, 5, application_id, "Quick and tidy"
        )

        assert result.total_rating_score == 5
        assert result.number_of_ratings == 1
        quester = get_user(services.store, QUESTER)
        assert quester.total_rating_score == 5
        assert quester.number_of_ratings == 1
        stored = get_application(services.store, application_id)
        assert stored.quester_rated is True
        assert stored.quester_rating == 5
        assert stored.quester_review == "Quick and tidy"
        assert stored.giver_rated is False

    def test_second_rating_is_rejected_without_side_effects(self, completed) -> None:
        services, application_id = completed
        services.ratings.rate_counterparty(GIVER, QUESTER, 5, application_id)

        with pytest.raises(ServiceError) as exc_info:
            services.ratings.rate_counterparty(GIVER, QUESTER, 1, application_id)

        assert exc_info.value.error == "ALREADY_RATED"
        quester = get_user(services.store, QUESTER)
        assert quester.total_rating_score == 5
        assert quester.number_of_ratings == 1

    def test_quester_rates_giver(self, completed) -> None:
        services, application_id = completed

        services.ratings.rate_counterparty(QUESTER, GIVER, 4, application_id)

        giver = get_user(services.store, GIVER)
        assert giver.total_rating_score == 4
        assert giver.number_of_ratings == 1
        stored = get_application(services.store, application_id)
        assert stored.giver_rated is True
        assert stored.quester_rated is False

    def test_both_sides_rate_independently(self, completed) -> None:
        services, application_id = completed

        services.ratings.rate_counterparty(GIVER, QUESTER, 3, application_id)
        services.ratings.rate_counterparty(QUESTER, GIVER, 5, application_id)

        stored = get_application(services.store, application_id)
        assert stored.quester_rating == 3
        assert stored.giver_rating == 5

    def test_blank_review_is_stored_as_none(self, completed) -> None:
        services, application_id = completed

        services.ratings.rate_counterparty(GIVER, QUESTER, 4, application_id, "   ")

        assert get_application(services.store, application_id).quester_review is None

    def test_uncompleted_application_cannot_be_rated(self, services) -> None:
        seed_user(services.store, GIVER)
        seed_user(services.store, QUESTER)
        quest = post_quest(services, GIVER)
        application = services.engine.apply(QUESTER, quest.quest_id)

        with pytest.raises(ServiceError) as exc_info:
            services.ratings.rate_counterparty(GIVER, QUESTER, 5, application.application_id)

        assert exc_info.value.error == "RATING_NOT_ALLOWED"
        assert get_user(services.store, QUESTER).number_of_ratings == 0

    @pytest.mark.parametrize("stars", [0, 6, True, 4.5])
    def test_invalid_stars(self, completed, stars) -> None:
        services, application_id = completed

        with pytest.raises(ServiceError) as exc_info:
            services.ratings.rate_counterparty(GIVER, QUESTER, stars, application_id)

        assert exc_info.value.error == "INVALID_RATING"

    def test_review_too_long(self, completed) -> None:
        services, application_id = completed

        with pytest.raises(ServiceError) as exc_info:
            services.ratings.rate_counterparty(GIVER, QUESTER, 5, application_id, "x" * 1001)

        assert exc_info.value.error == "INVALID_REVIEW"

    def test_outsider_cannot_rate(self, completed) -> None:
        services, application_id = completed

        with pytest.raises(ServiceError) as exc_info:
            services.ratings.rate_counterparty(OUTSIDER, QUESTER, 5, application_id)

        assert exc_info.value.error == "FORBIDDEN"

    def test_giver_cannot_rate_themselves(self, completed) -> None:
        services, application_id = completed

        with pytest.raises(ServiceError) as exc_info:
            services.ratings.rate_counterparty(GIVER, GIVER, 5, application_id)

        assert exc_info.value.error == "FORBIDDEN"

    def test_unknown_application(self, completed) -> None:
        services, _ = completed

        with pytest.raises(ServiceError) as exc_info:
            services.ratings.rate_counterparty(GIVER, QUESTER, 5, "app-missing")

        assert exc_info.value.error == "APPLICATION_NOT_FOUND"


def _user(total: int, count: int) -> UserRecord:
    return UserRecord(
        user_id="u-x",
        name="X",
        status="approved",
        wallet_balance=0,
        total_rating_score=total,
        number_of_ratings=count,
        created_at=TIMESTAMP,
    )


@pytest.mark.unit
@pytest.mark.parametrize(
    ("total", "count", "expected"),
    [
        (0, 0, "N/A"),
        (5, 1, "5.0"),
        (9, 2, "4.5"),
        (14, 3, "4.7"),
        (13, 3, "4.3"),
        (9, 4, "2.3"),
    ],
)
def test_average_rating(total, count, expected) -> None:
    assert average_rating(_user(total, count)) == expected
