"""Run the service with uvicorn using values from config.yaml."""

from __future__ import annotations

import uvicorn

from quest_board_service.config import get_settings


def main() -> None:
    """Start the HTTP server."""
    settings = get_settings()
    uvicorn.run(
        "quest_board_service.app:create_app",
        factory=True,
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.server.log_level,
    )


if __name__ == "__main__":
    main()
