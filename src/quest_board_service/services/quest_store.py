"""Typed access to the ``quests`` collection."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from quest_board_service.core.exceptions import ServiceError
from quest_board_service.services.records import QUESTS, QuestRecord

if TYPE_CHECKING:
    from quest_board_service.services.document_store import DocumentStore, Filter, Transaction

QUEST_SORTS: dict[str, tuple[str, bool]] = {
    "newest": ("created_at", True),
    "price-asc": ("price", False),
    "price-desc": ("price", True),
}


class QuestStore:
    """Quest reads and writes over the document store."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def read(self, txn: Transaction, quest_id: str) -> QuestRecord:
        """
        Read a quest inside ``txn``.

        Raises:
            ServiceError: QUEST_NOT_FOUND if no such quest exists.
        """
        data = txn.get(QUESTS, quest_id)
        if data is None:
            raise ServiceError("QUEST_NOT_FOUND", "Quest not found", 404, {"quest_id": quest_id})
        return QuestRecord.model_validate(data)

    def create(self, txn: Transaction, quest: QuestRecord) -> None:
        """Queue a new quest document."""
        txn.set(QUESTS, quest.quest_id, quest.model_dump(mode="json"))

    def update(self, txn: Transaction, quest_id: str, fields: dict[str, Any]) -> None:
        """Queue a partial update; values may be ``Increment``."""
        txn.update(QUESTS, quest_id, fields)

    def delete(self, txn: Transaction, quest_id: str) -> None:
        """Queue removal of a quest."""
        txn.delete(QUESTS, quest_id)

    def get(self, quest_id: str) -> QuestRecord:
        """
        Read a committed quest.

        Raises:
            ServiceError: QUEST_NOT_FOUND if no such quest exists.
        """
        quest = self.find(quest_id)
        if quest is None:
            raise ServiceError("QUEST_NOT_FOUND", "Quest not found", 404, {"quest_id": quest_id})
        return quest

    def find(self, quest_id: str) -> QuestRecord | None:
        """Read a committed quest, or None when absent."""
        data = self._store.get(QUESTS, quest_id)
        return QuestRecord.model_validate(data) if data is not None else None

    def list_open(
        self,
        *,
        work_type: str | None,
        category: str | None,
        max_price: int | None,
        sort: str,
        limit: int,
    ) -> list[QuestRecord]:
        """List open quests with optional filters."""
        if sort not in QUEST_SORTS:
            raise ServiceError(
                "INVALID_PARAMETER",
                f"sort must be one of {sorted(QUEST_SORTS)}",
                400,
                {"sort": sort},
            )
        where: list[Filter] = [("status", "==", "open")]
        if work_type is not None:
            where.append(("work_type", "==", work_type))
        if category is not None:
            where.append(("category", "==", category))
        if max_price is not None:
            where.append(("price", "<=", max_price))
        order_by, descending = QUEST_SORTS[sort]
        rows = self._store.query(
            QUESTS, where, order_by=order_by, descending=descending, limit=limit
        )
        return [QuestRecord.model_validate(row) for row in rows]

    def list_by_giver(self, giver_id: str, *, status: str | None) -> list[QuestRecord]:
        """List a giver's quests, newest first."""
        where: list[Filter] = [("quest_giver_id", "==", giver_id)]
        if status is not None:
            where.append(("status", "==", status))
        rows = self._store.query(QUESTS, where, order_by="created_at", descending=True)
        return [QuestRecord.model_validate(row) for row in rows]

    def counts_by_status(self) -> dict[str, int]:
        """Count committed quests per status."""
        return self._store.count_by(QUESTS, "status")
