"""Typed access to the ``applications`` collection."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from quest_board_service.core.exceptions import ServiceError
from quest_board_service.services.records import (
    ACTIVE_APPLICATION_STATUSES,
    APPLICATIONS,
    ApplicationRecord,
)

if TYPE_CHECKING:
    from quest_board_service.services.document_store import DocumentStore, Filter, Transaction


class ApplicationStore:
    """Application reads and writes over the document store."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def read(self, txn: Transaction, application_id: str) -> ApplicationRecord:
        """
        Read an application inside ``txn``.

        Raises:
            ServiceError: APPLICATION_NOT_FOUND if no such application exists.
        """
        application = self.read_optional(txn, application_id)
        if application is None:
            raise ServiceError(
                "APPLICATION_NOT_FOUND",
                "Application not found",
                404,
                {"application_id": application_id},
            )
        return application

    def read_optional(self, txn: Transaction, application_id: str) -> ApplicationRecord | None:
        """Read an application inside ``txn``, or None when absent."""
        data = txn.get(APPLICATIONS, application_id)
        if data is None:
            return None
        return ApplicationRecord.model_validate(data)

    def find_active(
        self,
        txn: Transaction,
        quest_id: str,
        quester_id: str,
    ) -> ApplicationRecord | None:
        """Return the quester's pending or hired application for a quest, if any."""
        rows = txn.query(
            APPLICATIONS,
            [("quest_id", "==", quest_id), ("quester_id", "==", quester_id)],
        )
        for row in rows:
            if row["status"] in ACTIVE_APPLICATION_STATUSES:
                return ApplicationRecord.model_validate(row)
        return None

    def pending_for_quest(self, txn: Transaction, quest_id: str) -> list[ApplicationRecord]:
        """Return every pending application for a quest."""
        rows = txn.query(
            APPLICATIONS,
            [("quest_id", "==", quest_id), ("status", "==", "pending")],
            order_by="applied_at",
        )
        return [ApplicationRecord.model_validate(row) for row in rows]

    def create(self, txn: Transaction, application: ApplicationRecord) -> None:
        """Queue a new application document."""
        txn.set(APPLICATIONS, application.application_id, application.model_dump(mode="json"))

    def update(self, txn: Transaction, application_id: str, fields: dict[str, Any]) -> None:
        """Queue a partial update."""
        txn.update(APPLICATIONS, application_id, fields)

    def delete(self, txn: Transaction, application_id: str) -> None:
        """Queue removal of an application."""
        txn.delete(APPLICATIONS, application_id)

    def list_pending_ids(self, quest_id: str) -> list[str]:
        """Committed ids of pending applications for a quest."""
        rows = self._store.query(
            APPLICATIONS,
            [("quest_id", "==", quest_id), ("status", "==", "pending")],
            order_by="applied_at",
        )
        return [row["application_id"] for row in rows]

    def list_for_quester(self, quester_id: str, *, status: str | None) -> list[ApplicationRecord]:
        """A quester's applications, newest first."""
        where: list[Filter] = [("quester_id", "==", quester_id)]
        if status is not None:
            where.append(("status", "==", status))
        rows = self._store.query(APPLICATIONS, where, order_by="applied_at", descending=True)
        return [ApplicationRecord.model_validate(row) for row in rows]

    def list_for_quest(self, quest_id: str, *, status: str | None) -> list[ApplicationRecord]:
        """Applications received by a quest, oldest first."""
        where: list[Filter] = [("quest_id", "==", quest_id)]
        if status is not None:
            where.append(("status", "==", status))
        rows = self._store.query(APPLICATIONS, where, order_by="applied_at")
        return [ApplicationRecord.model_validate(row) for row in rows]
