"""API routers."""

from quest_board_service.routers import applications, health, quests, users

__all__ = ["applications", "health", "quests", "users"]
