from __future__ import annotations

import math
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from flask import request

from app.notaris.constants import DEFAULT_PAGE_SIZE


def json_body() -> dict[str, Any]:
    """Request payload as a dict: JSON body first, then form fields."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    if request.form:
        return request.form.to_dict()
    return {}


def client_ip() -> str | None:
    forwarded = (request.headers.get("X-Forwarded-For") or "").strip()
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.remote_addr


def clean_str(value: Any) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def parse_int(value: Any, default: int | None = None) -> int | None:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_bool(value: Any, default: bool = False) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def parse_date(value: Any) -> date | None:
    """Parse YYYY-MM-DD (or a full ISO timestamp) into a date."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value).strip()
    if not s:
        return None
    return date.fromisoformat(s[:10])


def parse_datetime(value: Any) -> datetime | None:
    """Parse an ISO timestamp; a trailing Z and offsets are normalized to naive UTC."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    s = str(value).strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def money(value: Decimal | float | int | None) -> float:
    if value is None:
        return 0.0
    return float(value)


def page_args(default_limit: int = DEFAULT_PAGE_SIZE, max_limit: int = 100) -> tuple[int, int]:
    page = max(parse_int(request.args.get("page"), 1) or 1, 1)
    limit = parse_int(request.args.get("limit"), default_limit) or default_limit
    limit = min(max(limit, 1), max_limit)
    return page, limit


def paginate(query, page: int, limit: int) -> tuple[list, dict[str, int]]:
    """Apply offset/limit to an ORM query and return (rows, meta)."""
    total = query.order_by(None).count()
    rows = query.offset((page - 1) * limit).limit(limit).all()
    meta = {
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if limit else 0,
    }
    return rows, meta


def missing_references(s, payload: dict, refs: dict[str, tuple[type, str]]) -> list[str]:
    """
    Errors for ID fields in the payload that point at no row, e.g.
    {"staff_id": (StaffProfile, "Staff not found.")}. Absent or empty fields pass.
    """
    errors = []
    for field, (model, message) in refs.items():
        if field not in payload:
            continue
        ref_id = parse_int(payload.get(field))
        if ref_id is not None and s.get(model, ref_id) is None:
            errors.append(message)
    return errors
