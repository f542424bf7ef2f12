from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from carmarket.services.lifecycle.guard import Actor, Decision, DenyReason
from carmarket.services.lifecycle.snapshot import ListingSnapshot
from carmarket.services.lifecycle.state_machine import ListingAction, ListingStatus

MAX_REASON_LENGTH = 500


@dataclass(frozen=True)
class ActionRequest:
    actor: Actor
    listing: ListingSnapshot
    action: ListingAction
    reason: str | None = None
    featured: bool | None = None
    # Supplied by the listing's promotion package.
    feature_duration_days: int | None = None

    def __post_init__(self):
        if not isinstance(self.action, ListingAction):
            object.__setattr__(self, "action", ListingAction.parse(self.action))


@dataclass(frozen=True)
class ActionPayload:
    action: ListingAction
    target_status: ListingStatus
    privileged: bool = False
    reason: str | None = None
    featured: bool | None = None
    feature_start: datetime | None = None
    feature_end: datetime | None = None


@dataclass(frozen=True)
class Validation:
    ok: bool
    reason: DenyReason | None = None
    payload: ActionPayload | None = None


def _clean_reason(value) -> str | None:
    text = str(value or "").strip()
    if not text:
        return None
    return text[:MAX_REASON_LENGTH]


def _duration_days(value) -> int:
    if isinstance(value, bool) or value is None:
        raise ValueError("feature_duration_days required")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"invalid_feature_duration_days {value!r}")
    try:
        days = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"invalid_feature_duration_days {value!r}") from None
    if days <= 0:
        raise ValueError(f"invalid_feature_duration_days {value!r}")
    return days


def validate(request: ActionRequest, decision: Decision, *, now: datetime) -> Validation:
    if not decision.allowed or decision.target_status is None:
        raise ValueError("validate called without an allow decision")

    action = request.action
    reason = _clean_reason(request.reason)
    base = {
        "action": action,
        "target_status": decision.target_status,
        "privileged": bool(decision.privileged),
        "reason": reason,
    }

    if action == ListingAction.Reject:
        if reason is None:
            return Validation(ok=False, reason=DenyReason.MissingReason)
        return Validation(ok=True, payload=ActionPayload(**base))

    if action == ListingAction.Feature:
        featured = True if request.featured is None else bool(request.featured)
        if not featured:
            return Validation(ok=True, payload=ActionPayload(**base, featured=False))
        days = _duration_days(request.feature_duration_days)
        return Validation(
            ok=True,
            payload=ActionPayload(
                **base,
                featured=True,
                feature_start=now,
                feature_end=now + timedelta(days=days),
            ),
        )

    return Validation(ok=True, payload=ActionPayload(**base))
