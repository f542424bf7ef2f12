from __future__ import annotations

from datetime import datetime

from carmarket.services.lifecycle.guard import Actor
from carmarket.services.lifecycle.snapshot import ListingSnapshot
from carmarket.services.lifecycle.state_machine import ListingAction
from carmarket.services.lifecycle.validator import ActionPayload


class SideEffect:
    REASON_CAPTURED = "reason_captured"
    FEATURED_SET = "featured_set"
    FEATURED_CLEARED = "featured_cleared"
    PROMOTION_WINDOW_SET = "promotion_window_set"
    SOFT_DELETED = "soft_deleted"


def side_effects_for(payload: ActionPayload) -> tuple[str, ...]:
    effects: list[str] = []
    if payload.action == ListingAction.Reject and payload.reason:
        effects.append(SideEffect.REASON_CAPTURED)
    if payload.action == ListingAction.Feature:
        if payload.featured:
            effects.append(SideEffect.FEATURED_SET)
            if payload.feature_start is not None and payload.feature_end is not None:
                effects.append(SideEffect.PROMOTION_WINDOW_SET)
        else:
            effects.append(SideEffect.FEATURED_CLEARED)
    if payload.action == ListingAction.Delete:
        effects.append(SideEffect.SOFT_DELETED)
    return tuple(effects)


def execute(
    listing: ListingSnapshot,
    action: ListingAction,
    payload: ActionPayload,
    *,
    actor: Actor,
    now: datetime,
) -> ListingSnapshot:
    action = ListingAction.parse(action)
    if payload.action != action:
        raise ValueError(f"payload_action_mismatch {payload.action.value}!={action.value}")

    changes: dict = {
        "status": payload.target_status,
        "version": int(listing.version or 0) + 1,
        "updated_at": now,
        "updated_by": int(actor.user_id),
    }

    if action == ListingAction.Reject:
        changes["rejection_reason"] = payload.reason
    elif action in (ListingAction.Approve, ListingAction.Publish):
        changes["rejection_reason"] = None
    elif action == ListingAction.Feature:
        if payload.featured:
            changes["is_featured"] = True
            changes["feature_start"] = payload.feature_start
            changes["feature_end"] = payload.feature_end
        else:
            changes["is_featured"] = False
            changes["feature_start"] = None
            changes["feature_end"] = None
    elif action == ListingAction.Delete:
        changes["deleted_at"] = now

    return listing.evolve(**changes)
