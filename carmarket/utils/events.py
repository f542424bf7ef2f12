from __future__ import annotations

import json
import logging
from datetime import date, datetime
from enum import Enum
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from carmarket.extensions import db
from carmarket.models import ListingEvent
from carmarket.utils.observability import get_request_id

logger = logging.getLogger(__name__)


def _safe_value(value: Any):
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _safe_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_safe_value(v) for v in value]
    return str(value)


def _safe_json(data: Any) -> str:
    normalized = _safe_value(data if isinstance(data, dict) else {"value": data})
    return json.dumps(normalized, separators=(",", ":"), ensure_ascii=False)


def log_event(
    event_type: str,
    *,
    listing_id: int | None = None,
    actor_user_id: int | None = None,
    actor_role: str | None = None,
    severity: str = "INFO",
    request_id: str | None = None,
    metadata: dict | None = None,
) -> ListingEvent | None:
    """Best-effort listing event logger.

    Runs in a savepoint so a failed insert never rolls back the caller's
    transaction; failures are logged and reported as ``None``.
    """
    try:
        event = ListingEvent(
            event_type=(event_type or "unknown").strip()[:80],
            listing_id=int(listing_id) if listing_id is not None else None,
            actor_user_id=int(actor_user_id) if actor_user_id is not None else None,
            actor_role=(actor_role or "").strip()[:32] or None,
            request_id=(request_id or get_request_id() or "").strip()[:80] or None,
            severity=(severity or "INFO").strip().upper()[:16] or "INFO",
            metadata_json=_safe_json(metadata or {}),
        )
        with db.session.begin_nested():
            db.session.add(event)
            db.session.flush()
        return event
    except SQLAlchemyError:
        logger.exception("listing_event_write_failed event_type=%s listing_id=%s", event_type, listing_id)
        return None
