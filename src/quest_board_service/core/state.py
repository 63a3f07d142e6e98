"""Application state management."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from quest_board_service.services.application_store import ApplicationStore
    from quest_board_service.services.document_store import DocumentStore
    from quest_board_service.services.lifecycle_engine import QuestLifecycleEngine
    from quest_board_service.services.quest_store import QuestStore
    from quest_board_service.services.rating_service import RatingService
    from quest_board_service.services.user_service import UserService


@dataclass
class AppState:
    """Runtime application state."""

    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    store: DocumentStore | None = None
    quest_store: QuestStore | None = None
    application_store: ApplicationStore | None = None
    user_service: UserService | None = None
    engine: QuestLifecycleEngine | None = None
    rating_service: RatingService | None = None

    @property
    def uptime_seconds(self) -> float:
        """Calculate uptime in seconds."""
        return (datetime.now(UTC) - self.start_time).total_seconds()

    @property
    def started_at(self) -> str:
        """ISO format start time."""
        return self.start_time.isoformat(timespec="seconds").replace("+00:00", "Z")


# Global application state container
_state_container: dict[str, AppState | None] = {"app_state": None}


def get_app_state() -> AppState:
    """Get the current application state."""
    app_state = _state_container["app_state"]
    if app_state is None:
        msg = "Application state not initialized"
        raise RuntimeError(msg)
    return app_state


def init_app_state() -> AppState:
    """Initialize application state. Called during startup."""
    app_state = AppState()
    _state_container["app_state"] = app_state
    return app_state


def reset_app_state() -> None:
    """Reset application state. Used in testing."""
    _state_container["app_state"] = None
