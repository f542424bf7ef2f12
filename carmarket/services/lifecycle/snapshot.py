from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from carmarket.services.lifecycle.state_machine import ListingStatus


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class ListingSnapshot:
    """Point-in-time view of a listing, as handed to the engine.

    The engine never mutates a snapshot; transitions produce a new one
    that the caller persists.
    """

    id: int
    owner_id: int
    status: ListingStatus
    is_featured: bool = False
    feature_start: datetime | None = None
    feature_end: datetime | None = None
    showroom_id: int | None = None
    version: int = 0
    rejection_reason: str | None = None
    updated_by: int | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None

    def __post_init__(self):
        if not isinstance(self.status, ListingStatus):
            object.__setattr__(self, "status", ListingStatus.parse(self.status))

    def evolve(self, **changes) -> "ListingSnapshot":
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "owner_id": int(self.owner_id),
            "showroom_id": int(self.showroom_id) if self.showroom_id is not None else None,
            "status": self.status.value,
            "is_featured": bool(self.is_featured),
            "feature_start": _iso(self.feature_start),
            "feature_end": _iso(self.feature_end),
            "rejection_reason": self.rejection_reason,
            "version": int(self.version),
            "updated_by": int(self.updated_by) if self.updated_by is not None else None,
            "updated_at": _iso(self.updated_at),
            "deleted_at": _iso(self.deleted_at),
        }


def featured_days_remaining(listing: ListingSnapshot, *, now: datetime) -> int | None:
    # Display-only; nothing un-features a listing when the window lapses.
    if not listing.is_featured:
        return None
    if listing.feature_start is None or listing.feature_end is None:
        return None
    remaining = (listing.feature_end - now) / timedelta(days=1)
    return max(0, int(math.ceil(remaining)))
