"""FastAPI application factory."""

from __future__ import annotations

from fastapi import FastAPI

from quest_board_service.config import get_settings
from quest_board_service.core.exceptions import register_exception_handlers
from quest_board_service.core.lifespan import lifespan
from quest_board_service.core.middleware import RequestValidationMiddleware
from quest_board_service.routers import applications, health, quests, users


def create_app() -> FastAPI:
    """
    Create and configure FastAPI application.

    Returns:
        Configured FastAPI instance with all routers registered.
    """
    settings = get_settings()

    app = FastAPI(
        title=f"{settings.service.name} Service",
        version=settings.service.version,
        lifespan=lifespan,
    )

    register_exception_handlers(app)

    app.include_router(health.router, tags=["Operations"])
    app.include_router(users.router, tags=["Users"])
    app.include_router(quests.router, tags=["Quests"])
    app.include_router(applications.router, tags=["Applications"])

    app.add_middleware(
        RequestValidationMiddleware,
        max_body_size=settings.request.max_body_size,
    )

    return app
