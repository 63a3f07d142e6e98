"""Router test fixtures: a configured app over a temporary database."""

from __future__ import annotations

import os

import pytest
from httpx import ASGITransport, AsyncClient

from quest_board_service.app import create_app
from quest_board_service.config import clear_settings_cache
from quest_board_service.core.lifespan import lifespan
from quest_board_service.core.state import reset_app_state
from tests.helpers import ADMIN_ID, as_user


@pytest.fixture
async def app(tmp_path):
    """Create a test app with a temporary database."""
    db_path = tmp_path / "test.db"
    config_content = f"""
service:
  name: "quest-board"
  version: "0.1.0"
server:
  host: "0.0.0.0"
  port: 8010
  log_level: "info"
logging:
  level: "WARNING"
  directory: "{tmp_path / "logs"}"
database:
  path: "{db_path}"
  busy_timeout_ms: 5000
  max_transaction_attempts: 5
  retry_backoff_seconds: 0.0
wallet:
  signup_credit: "5000.00"
  max_top_up: "10000.00"
quests:
  max_title_length: 120
  max_description_length: 5000
  default_list_limit: 50
  max_list_limit: 200
ratings:
  max_review_length: 1000
admin:
  user_ids: ["{ADMIN_ID}"]
request:
  max_body_size: 1048576
"""
    config_path = tmp_path / "config.yaml"
    config_path.write_text(config_content)
    os.environ["CONFIG_PATH"] = str(config_path)

    clear_settings_cache()
    reset_app_state()

    test_app = create_app()
    async with lifespan(test_app):
        yield test_app

    reset_app_state()
    clear_settings_cache()
    os.environ.pop("CONFIG_PATH", None)


@pytest.fixture
async def client(app):
    """Create an async HTTP client for the test app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def member(client):
    """Register a user and have the admin approve them."""

    async def _member(user_id: str, name: str | None = None) -> dict:
        response = await client.post(
            "/users", json={"name": name or user_id}, headers=as_user(user_id)
        )
        assert response.status_code == 201, response.text
        response = await client.post(f"/users/{user_id}/approve", headers=as_user(ADMIN_ID))
        assert response.status_code == 200, response.text
        return response.json()

    return _member


@pytest.fixture
def quest_body():
    """A valid POST /quests body."""
    return {
        "title": "Fix the garden fence",
        "description": "Two broken panels need replacing.",
        "category": "Home Repair",
        "work_type": "in-person",
        "price": "1200.00",
        "schedule": "Saturday morning",
        "location": {"address": "12 Rizal St, Manila", "lat": 14.5995, "lng": 120.9842},
    }
