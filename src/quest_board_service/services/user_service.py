"""Member registration, admin approval and wallet top-ups."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from quest_board_service.core.exceptions import ServiceError
from quest_board_service.core.money import format_amount
from quest_board_service.logging import get_logger
from quest_board_service.services.ledger import adjust_balance, read_user
from quest_board_service.services.records import USERS, UserRecord

if TYPE_CHECKING:
    from collections.abc import Iterable

    from quest_board_service.services.document_store import DocumentStore, Transaction

MAX_NAME_LENGTH = 100
MAX_AVATAR_URL_LENGTH = 2048


def require_approved_user(txn: Transaction, user_id: str) -> UserRecord:
    """
    Read a user that must exist and be approved.

    Raises:
        ServiceError: USER_NOT_FOUND (404) or USER_NOT_APPROVED (403).
    """
    user = read_user(txn, user_id)
    if user is None:
        raise ServiceError("USER_NOT_FOUND", "User not found", 404, {"user_id": user_id})
    if user.status != "approved":
        raise ServiceError(
            "USER_NOT_APPROVED",
            "Account is awaiting admin approval",
            403,
            {"user_id": user_id},
        )
    return user


class UserService:
    """
    Manages member records outside the quest lifecycle.

    New members start ``pending`` with the signup credit and must be
    approved by an admin before they can post or apply.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        signup_credit: int,
        max_top_up: int,
        admin_ids: Iterable[str],
    ) -> None:
        self._store = store
        self._signup_credit = signup_credit
        self._max_top_up = max_top_up
        self._admin_ids = frozenset(admin_ids)
        self._logger = get_logger(__name__)

    def _now(self) -> str:
        return datetime.now(UTC).isoformat(timespec="seconds").replace("+00:00", "Z")

    def is_admin(self, user_id: str) -> bool:
        """Whether the identity may approve members."""
        return user_id in self._admin_ids

    def _require_admin(self, caller_id: str) -> None:
        if not self.is_admin(caller_id):
            raise ServiceError("FORBIDDEN", "Admin privileges required", 403, {})

    def register_user(self, user_id: str, name: str) -> UserRecord:
        """
        Create the caller's member record.

        Raises:
            ServiceError: INVALID_NAME if the name is blank or too long.
            ServiceError: USER_EXISTS if the record already exists.
        """
        clean_name = name.strip()
        if not clean_name or len(clean_name) > MAX_NAME_LENGTH:
            raise ServiceError(
                "INVALID_NAME",
                f"Name must be 1-{MAX_NAME_LENGTH} characters",
                400,
                {},
            )

        record = UserRecord(
            user_id=user_id,
            name=clean_name,
            status="pending",
            wallet_balance=self._signup_credit,
            created_at=self._now(),
        )

        def _register(txn: Transaction) -> UserRecord:
            if read_user(txn, user_id) is not None:
                raise ServiceError(
                    "USER_EXISTS", "User already registered", 409, {"user_id": user_id}
                )
            txn.set(USERS, user_id, record.model_dump(mode="json"))
            return record

        created = self._store.run_transaction(_register)
        self._logger.info(
            "User registered",
            extra={"user_id": user_id, "signup_credit": format_amount(self._signup_credit)},
        )
        return created

    def approve_user(self, admin_id: str, user_id: str) -> UserRecord:
        """
        Move a pending member to approved.

        Raises:
            ServiceError: FORBIDDEN, USER_NOT_FOUND, USER_ALREADY_APPROVED.
        """
        self._require_admin(admin_id)
        approved_at = self._now()

        def _approve(txn: Transaction) -> UserRecord:
            user = read_user(txn, user_id)
            if user is None:
                raise ServiceError("USER_NOT_FOUND", "User not found", 404, {"user_id": user_id})
            if user.status == "approved":
                raise ServiceError(
                    "USER_ALREADY_APPROVED",
                    "User is already approved",
                    409,
                    {"user_id": user_id},
                )
            txn.update(USERS, user_id, {"status": "approved", "approved_at": approved_at})
            return user.model_copy(update={"status": "approved", "approved_at": approved_at})

        approved = self._store.run_transaction(_approve)
        self._logger.info("User approved", extra={"user_id": user_id, "admin_id": admin_id})
        return approved

    def top_up(self, caller_id: str, user_id: str, amount: int) -> UserRecord:
        """
        Credit demo funds to the caller's own wallet.

        Raises:
            ServiceError: FORBIDDEN, INVALID_AMOUNT, USER_NOT_FOUND.
        """
        if caller_id != user_id:
            raise ServiceError("FORBIDDEN", "Only the wallet owner can top up", 403, {})
        if amount <= 0 or amount > self._max_top_up:
            raise ServiceError(
                "INVALID_AMOUNT",
                f"Top-up must be greater than 0 and at most {format_amount(self._max_top_up)}",
                400,
                {},
            )

        def _top_up(txn: Transaction) -> UserRecord:
            user = read_user(txn, user_id)
            if user is None:
                raise ServiceError("USER_NOT_FOUND", "User not found", 404, {"user_id": user_id})
            new_balance = adjust_balance(txn, user, amount)
            return user.model_copy(update={"wallet_balance": new_balance})

        updated = self._store.run_transaction(_top_up)
        self._logger.info(
            "Wallet topped up",
            extra={
                "user_id": user_id,
                "amount": format_amount(amount),
                "balance": format_amount(updated.wallet_balance),
            },
        )
        return updated

    def set_avatar(self, caller_id: str, user_id: str, avatar_url: str | None) -> UserRecord:
        """
        Store or clear the caller's avatar URL.

        The image itself is uploaded elsewhere; the URL is kept verbatim.

        Raises:
            ServiceError: FORBIDDEN, INVALID_AVATAR_URL, USER_NOT_FOUND.
        """
        if caller_id != user_id:
            raise ServiceError("FORBIDDEN", "Only the profile owner can change it", 403, {})
        if avatar_url is not None and (
            not avatar_url.strip() or len(avatar_url) > MAX_AVATAR_URL_LENGTH
        ):
            raise ServiceError(
                "INVALID_AVATAR_URL",
                f"avatar_url must be 1-{MAX_AVATAR_URL_LENGTH} characters or null",
                400,
                {},
            )

        def _set_avatar(txn: Transaction) -> UserRecord:
            user = read_user(txn, user_id)
            if user is None:
                raise ServiceError("USER_NOT_FOUND", "User not found", 404, {"user_id": user_id})
            txn.update(USERS, user_id, {"avatar_url": avatar_url})
            return user.model_copy(update={"avatar_url": avatar_url})

        updated = self._store.run_transaction(_set_avatar)
        self._logger.info(
            "Avatar updated", extra={"user_id": user_id, "cleared": avatar_url is None}
        )
        return updated

    def get_profile(self, user_id: str) -> UserRecord:
        """
        Read a committed member record.

        Raises:
            ServiceError: USER_NOT_FOUND if no such member exists.
        """
        data = self._store.get(USERS, user_id)
        if data is None:
            raise ServiceError("USER_NOT_FOUND", "User not found", 404, {"user_id": user_id})
        return UserRecord.model_validate(data)

    def list_users(self, admin_id: str, *, status: str | None) -> list[UserRecord]:
        """List members, oldest first, for the admin approval queue."""
        self._require_admin(admin_id)
        if status is not None and status not in ("pending", "approved"):
            raise ServiceError(
                "INVALID_PARAMETER",
                "status must be 'pending' or 'approved'",
                400,
                {"status": status},
            )
        where = [("status", "==", status)] if status is not None else []
        rows = self._store.query(USERS, where, order_by="created_at")
        return [UserRecord.model_validate(row) for row in rows]

    def count_users(self) -> dict[str, int]:
        """Count members per status."""
        return self._store.count_by(USERS, "status")
