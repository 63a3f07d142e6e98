"""Wallet balance adjustments composed into lifecycle transactions."""

from __future__ import annotations

from typing import TYPE_CHECKING

from quest_board_service.core.exceptions import ServiceError
from quest_board_service.core.money import format_amount
from quest_board_service.services.document_store import Increment
from quest_board_service.services.records import USERS, UserRecord

if TYPE_CHECKING:
    from quest_board_service.services.document_store import Transaction


def read_user(txn: Transaction, user_id: str) -> UserRecord | None:
    """Read a user record inside ``txn``."""
    data = txn.get(USERS, user_id)
    if data is None:
        return None
    return UserRecord.model_validate(data)


def require_profile(txn: Transaction, user_id: str) -> UserRecord:
    """Read a user record that an operation cannot proceed without."""
    user = read_user(txn, user_id)
    if user is None:
        raise ServiceError(
            "PROFILE_MISSING",
            "A user profile involved in this operation no longer exists",
            404,
            {"user_id": user_id},
        )
    return user


def adjust_balance(txn: Transaction, user: UserRecord, delta: int) -> int:
    """
    Queue an atomic ``wallet_balance`` increment for ``user``.

    ``user`` must have been read through ``txn`` so the funds check runs
    against the balance locked by this transaction.

    Args:
        txn: The enclosing transaction.
        user: The freshly read user record.
        delta: Signed amount in minor units.

    Returns:
        The balance the user will hold once ``txn`` commits.

    Raises:
        ServiceError: INSUFFICIENT_FUNDS if the balance would go negative.
    """
    new_balance = user.wallet_balance + delta
    if new_balance < 0:
        raise ServiceError(
            "INSUFFICIENT_FUNDS",
            "Wallet balance is too low for this operation, top up funds first",
            402,
            {
                "user_id": user.user_id,
                "balance": format_amount(user.wallet_balance),
                "required": format_amount(-delta),
            },
        )
    if delta != 0:
        txn.update(USERS, user.user_id, {"wallet_balance": Increment(delta)})
    return new_balance
