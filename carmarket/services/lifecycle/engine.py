from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from carmarket.services.lifecycle.executor import execute, side_effects_for
from carmarket.services.lifecycle.guard import DenyReason, authorize
from carmarket.services.lifecycle.snapshot import ListingSnapshot
from carmarket.services.lifecycle.state_machine import ListingAction, ListingStatus
from carmarket.services.lifecycle.validator import ActionRequest, validate


@dataclass(frozen=True)
class TransitionRecord:
    listing_id: int
    action: ListingAction
    from_status: ListingStatus
    to_status: ListingStatus
    actor_id: int
    actor_role: str
    reason: str | None
    side_effects: tuple[str, ...]
    occurred_at: datetime

    def to_dict(self) -> dict:
        return {
            "listing_id": int(self.listing_id),
            "action": self.action.value,
            "from_status": self.from_status.value,
            "to_status": self.to_status.value,
            "actor_id": int(self.actor_id),
            "actor_role": self.actor_role,
            "reason": self.reason,
            "side_effects": list(self.side_effects),
            "occurred_at": self.occurred_at.isoformat(),
        }


@dataclass(frozen=True)
class TransitionResult:
    allowed: bool
    listing: ListingSnapshot
    reason: DenyReason | None = None
    record: TransitionRecord | None = None
    side_effects: tuple[str, ...] = field(default_factory=tuple)

    @property
    def error(self) -> str | None:
        return self.reason.value if self.reason else None

    def to_dict(self) -> dict:
        if not self.allowed:
            return {"error": self.error}
        snap = self.listing
        return {
            "status": snap.status.value,
            "is_featured": bool(snap.is_featured),
            "feature_start": snap.feature_start.isoformat() if snap.feature_start else None,
            "feature_end": snap.feature_end.isoformat() if snap.feature_end else None,
        }


def process(request: ActionRequest, *, now: datetime | None = None) -> TransitionResult:
    """Run authorize -> validate -> execute for a single action request.

    Business-rule failures come back as ``allowed=False`` with the unchanged
    snapshot; only malformed input raises.
    """
    now = now or datetime.utcnow()
    listing = request.listing

    decision = authorize(request.actor, listing, request.action)
    if not decision.allowed:
        return TransitionResult(allowed=False, listing=listing, reason=decision.reason)

    checked = validate(request, decision, now=now)
    if not checked.ok or checked.payload is None:
        return TransitionResult(allowed=False, listing=listing, reason=checked.reason)

    payload = checked.payload
    updated = execute(listing, request.action, payload, actor=request.actor, now=now)
    effects = side_effects_for(payload)
    record = TransitionRecord(
        listing_id=int(listing.id),
        action=request.action,
        from_status=listing.status,
        to_status=updated.status,
        actor_id=int(request.actor.user_id),
        actor_role=request.actor.role.value,
        reason=payload.reason,
        side_effects=effects,
        occurred_at=now,
    )
    return TransitionResult(
        allowed=True,
        listing=updated,
        record=record,
        side_effects=effects,
    )
