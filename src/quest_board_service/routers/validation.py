"""Shared request validation helpers for quest-board routers."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from quest_board_service.core.exceptions import ServiceError
from quest_board_service.core.money import to_minor_units

if TYPE_CHECKING:
    from collections.abc import Sequence

    from fastapi import Request

CALLER_HEADER = "X-User-Id"


def parse_json_body(raw_body: bytes) -> dict[str, Any]:
    """Parse JSON body, raising ServiceError on failure."""
    try:
        data = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ServiceError(
            "INVALID_JSON",
            "Request body is not valid JSON",
            400,
            {},
        ) from exc

    if not isinstance(data, dict):
        raise ServiceError(
            "INVALID_JSON",
            "Request body must be a JSON object",
            400,
            {},
        )

    return data


def require_caller(request: Request) -> str:
    """Return the authenticated caller id forwarded by the auth gateway."""
    caller_id = request.headers.get(CALLER_HEADER, "").strip()
    if not caller_id:
        raise ServiceError(
            "UNAUTHORIZED",
            f"Missing {CALLER_HEADER} header",
            401,
            {},
        )
    return caller_id


def require_str(data: dict[str, Any], field_name: str) -> str:
    """Extract a required non-empty string field."""
    if field_name not in data or data[field_name] is None:
        raise ServiceError(
            "INVALID_PAYLOAD",
            f"Missing required field: {field_name}",
            400,
            {"field": field_name},
        )

    value = data[field_name]
    if not isinstance(value, str):
        raise ServiceError(
            "INVALID_PAYLOAD",
            f"Field '{field_name}' must be a string",
            400,
            {"field": field_name},
        )

    if not value.strip():
        raise ServiceError(
            "INVALID_PAYLOAD",
            f"Field '{field_name}' must not be empty",
            400,
            {"field": field_name},
        )

    return value


def optional_str(data: dict[str, Any], field_name: str) -> str | None:
    """Extract an optional string field; absent and null map to None."""
    value = data.get(field_name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ServiceError(
            "INVALID_PAYLOAD",
            f"Field '{field_name}' must be a string",
            400,
            {"field": field_name},
        )
    return value


def require_amount(data: dict[str, Any], field_name: str) -> int:
    """Extract a currency amount (decimal string or integer) as minor units."""
    if field_name not in data or data[field_name] is None:
        raise ServiceError(
            "INVALID_PAYLOAD",
            f"Missing required field: {field_name}",
            400,
            {"field": field_name},
        )
    return to_minor_units(data[field_name])


def optional_amount(data: dict[str, Any], field_name: str) -> int | None:
    """Extract an optional currency amount as minor units."""
    if data.get(field_name) is None:
        return None
    return to_minor_units(data[field_name])


def require_int(data: dict[str, Any], field_name: str) -> int:
    """Extract a required integer field."""
    value = data.get(field_name)
    if value is None:
        raise ServiceError(
            "INVALID_PAYLOAD",
            f"Missing required field: {field_name}",
            400,
            {"field": field_name},
        )
    if isinstance(value, bool) or not isinstance(value, int):
        raise ServiceError(
            "INVALID_PAYLOAD",
            f"Field '{field_name}' must be an integer",
            400,
            {"field": field_name},
        )
    return value


def parse_limit(raw: str | None, *, default: int, maximum: int) -> int:
    """Parse a ``limit`` query parameter."""
    if raw is None:
        return default
    try:
        limit = int(raw)
    except ValueError as exc:
        raise ServiceError("INVALID_PARAMETER", "limit must be an integer", 400, {}) from exc
    if limit <= 0 or limit > maximum:
        raise ServiceError(
            "INVALID_PARAMETER",
            f"limit must be between 1 and {maximum}",
            400,
            {},
        )
    return limit


def parse_status(raw: str | None, allowed: Sequence[str]) -> str | None:
    """Parse an optional ``status`` query parameter against the allowed values."""
    if raw is None:
        return None
    if raw not in allowed:
        raise ServiceError(
            "INVALID_PARAMETER",
            f"status must be one of {list(allowed)}",
            400,
            {"status": raw},
        )
    return raw
