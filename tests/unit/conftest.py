"""Unit test fixtures: auto-clear caches between tests, shared service wiring."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from quest_board_service.config import clear_settings_cache
from quest_board_service.core.state import reset_app_state
from tests.helpers import Services, make_services, make_store

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture(autouse=True)
def _clear_caches():
    """Clear settings cache and app state between tests."""
    clear_settings_cache()
    reset_app_state()
    yield
    clear_settings_cache()
    reset_app_state()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Path of a fresh SQLite database file."""
    return tmp_path / "quest-board.db"


@pytest.fixture
def services(db_path: Path) -> Iterator[Services]:
    """Service layer over a fresh database."""
    wired = make_services(make_store(db_path))
    yield wired
    wired.store.close()
