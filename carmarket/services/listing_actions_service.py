from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from carmarket.extensions import db
from carmarket.models import CarListing, ListingTransition, PromotionPackage, User
from carmarket.services.lifecycle import (
    ActionRequest,
    Actor,
    ListingAction,
    ListingSnapshot,
    ListingStatus,
    Permission,
    Role,
    TransitionResult,
    available_actions,
    featured_days_remaining,
    has_permission,
    process,
)
from carmarket.utils.events import log_event

logger = logging.getLogger(__name__)

DEFAULT_FEATURE_DAYS = 7


class ListingActionError(Exception):
    code = "ListingActionError"


class ListingNotFound(ListingActionError):
    code = "NotFound"


class ListingConflict(ListingActionError):
    code = "Conflict"


class ListingForbidden(ListingActionError):
    code = "Unauthorized"


@dataclass
class ActionOutcome:
    result: TransitionResult
    listing: CarListing
    transition: ListingTransition | None = None
    replayed: bool = False

    @property
    def allowed(self) -> bool:
        return bool(self.result.allowed)


def actor_for_user(user: User) -> Actor:
    return Actor.from_values(user.role or Role.Buyer.value, user.id)


def snapshot_of(row: CarListing) -> ListingSnapshot:
    return ListingSnapshot(
        id=int(row.id),
        owner_id=int(row.seller_id),
        status=ListingStatus.parse(row.status or ListingStatus.Draft.value),
        is_featured=bool(row.is_featured),
        feature_start=row.feature_start,
        feature_end=row.feature_end,
        showroom_id=int(row.showroom_id) if row.showroom_id is not None else None,
        version=int(row.version or 0),
        rejection_reason=row.rejection_reason,
        updated_by=int(row.updated_by) if row.updated_by is not None else None,
        updated_at=row.updated_at,
        deleted_at=row.deleted_at,
    )


def feature_duration_for(row: CarListing) -> int:
    if row.promotion_package_id is not None:
        package = db.session.get(PromotionPackage, int(row.promotion_package_id))
        if package is not None and package.is_active:
            days = package.feature_duration_days or package.duration_days
            if days and int(days) > 0:
                return int(days)
    return int(current_app.config.get("LISTING_FEATURE_DEFAULT_DAYS") or DEFAULT_FEATURE_DAYS)


def _get_listing(listing_id: int) -> CarListing:
    row = db.session.get(CarListing, int(listing_id))
    if row is None:
        raise ListingNotFound(f"listing {listing_id} not found")
    return row


def _replay(row: CarListing, key: str, action: ListingAction, actor: Actor) -> ActionOutcome | None:
    existing = ListingTransition.query.filter_by(listing_id=int(row.id), idempotency_key=key).first()
    if existing is None:
        return None
    # Only the original caller gets the stored outcome; anyone else goes through the engine.
    if existing.actor_id is None or int(existing.actor_id) != int(actor.user_id):
        return None
    if existing.action != action.value:
        raise ListingConflict(f"idempotency key already used for {existing.action}")
    recorded = snapshot_of(row).evolve(
        status=ListingStatus.parse(existing.to_status),
        version=int(existing.version or 0),
        is_featured=bool(existing.is_featured),
        feature_start=existing.feature_start,
        feature_end=existing.feature_end,
    )
    result = TransitionResult(allowed=True, listing=recorded, side_effects=tuple(existing.side_effects()))
    return ActionOutcome(result=result, listing=row, transition=existing, replayed=True)


def _persist(row: CarListing, before: ListingSnapshot, result: TransitionResult, *, key: str | None) -> ListingTransition:
    after = result.listing
    record = result.record
    stmt = (
        update(CarListing)
        .where(CarListing.id == int(before.id), CarListing.version == int(before.version))
        .values(
            status=after.status.value,
            is_featured=bool(after.is_featured),
            feature_start=after.feature_start,
            feature_end=after.feature_end,
            rejection_reason=after.rejection_reason,
            version=int(after.version),
            updated_at=after.updated_at,
            updated_by=after.updated_by,
            deleted_at=after.deleted_at,
        )
        .execution_options(synchronize_session=False)
    )
    res = db.session.execute(stmt)
    if int(res.rowcount or 0) != 1:
        db.session.rollback()
        raise ListingConflict(f"listing {before.id} changed since version {before.version}")

    transition = ListingTransition(
        listing_id=int(before.id),
        action=record.action.value,
        from_status=record.from_status.value,
        to_status=record.to_status.value,
        actor_id=int(record.actor_id),
        actor_role=record.actor_role,
        idempotency_key=key,
        reason=record.reason,
        side_effects_json=json.dumps(list(record.side_effects)),
        is_featured=bool(after.is_featured),
        feature_start=after.feature_start,
        feature_end=after.feature_end,
        version=int(after.version),
        created_at=record.occurred_at,
    )
    db.session.add(transition)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise ListingConflict(f"duplicate idempotency key for listing {before.id}") from None

    log_event(
        f"listing.{record.action.value}",
        listing_id=int(before.id),
        actor_user_id=int(record.actor_id),
        actor_role=record.actor_role,
        metadata={
            "from_status": record.from_status,
            "to_status": record.to_status,
            "side_effects": record.side_effects,
            "version": after.version,
        },
    )
    db.session.commit()
    db.session.refresh(row)
    return transition


def apply_listing_action(
    listing_id: int,
    actor: Actor,
    action,
    *,
    reason: str | None = None,
    featured: bool | None = None,
    idempotency_key: str | None = None,
    now: datetime | None = None,
) -> ActionOutcome:
    action = ListingAction.parse(action)
    row = _get_listing(listing_id)
    key = (idempotency_key or "").strip()[:160] or None
    if key:
        replayed = _replay(row, key, action, actor)
        if replayed is not None:
            logger.info("listing_action_replayed listing_id=%s action=%s key=%s", row.id, action.value, key)
            return replayed

    before = snapshot_of(row)
    duration = feature_duration_for(row) if action == ListingAction.Feature else None
    request = ActionRequest(
        actor=actor,
        listing=before,
        action=action,
        reason=reason,
        featured=featured,
        feature_duration_days=duration,
    )
    result = process(request, now=now or datetime.utcnow())
    if not result.allowed:
        logger.info(
            "listing_action_denied listing_id=%s action=%s status=%s actor_id=%s role=%s reason=%s",
            row.id,
            action.value,
            before.status.value,
            actor.user_id,
            actor.role.value,
            result.error,
        )
        return ActionOutcome(result=result, listing=row)

    transition = _persist(row, before, result, key=key)
    logger.info(
        "listing_action_applied listing_id=%s action=%s %s->%s actor_id=%s version=%s",
        row.id,
        action.value,
        before.status.value,
        result.listing.status.value,
        actor.user_id,
        result.listing.version,
    )
    return ActionOutcome(result=result, listing=row, transition=transition)


def create_draft_listing(actor: Actor, user: User, fields: dict) -> CarListing:
    if not has_permission(actor.role, Permission.CreateListings):
        raise ListingForbidden("role may not create listings")
    title = str(fields.get("title") or "").strip()
    if not title:
        raise ValueError("title required")

    def _opt_int(name):
        raw = fields.get(name)
        if raw is None or raw == "":
            return None
        return int(raw)

    package_id = _opt_int("promotion_package_id")
    if package_id is not None and db.session.get(PromotionPackage, package_id) is None:
        raise ValueError("unknown promotion_package_id")

    row = CarListing(
        seller_id=int(actor.user_id),
        showroom_id=int(user.showroom_id) if actor.role.is_dealer and user.showroom_id is not None else None,
        title=title[:160],
        description=str(fields.get("description") or "").strip() or None,
        price=_opt_int("price") or 0,
        currency=(str(fields.get("currency") or "QAR").strip().upper()[:8] or "QAR"),
        year=_opt_int("year"),
        make=(str(fields.get("make") or "").strip()[:80] or None),
        model=(str(fields.get("model") or "").strip()[:80] or None),
        mileage=_opt_int("mileage"),
        status=ListingStatus.Draft.value,
        promotion_package_id=package_id,
        version=0,
    )
    db.session.add(row)
    db.session.flush()
    log_event(
        "listing.created",
        listing_id=int(row.id),
        actor_user_id=int(actor.user_id),
        actor_role=actor.role.value,
    )
    db.session.commit()
    return row


def listing_view(row: CarListing, actor: Actor | None, *, now: datetime | None = None) -> dict:
    snap = snapshot_of(row)
    include_private = bool(
        actor is not None
        and (actor.owns(snap) or actor.can(Permission.ManageAllListings) or actor.can(Permission.ApproveListings))
    )
    payload = row.to_dict(include_private=include_private)
    payload["featured_days_remaining"] = featured_days_remaining(snap, now=now or datetime.utcnow())
    payload["available_actions"] = [a.value for a in available_actions(actor, snap)] if actor is not None else []
    return payload


def transitions_for(listing_id: int) -> list[ListingTransition]:
    return (
        ListingTransition.query.filter_by(listing_id=int(listing_id))
        .order_by(ListingTransition.created_at.asc(), ListingTransition.id.asc())
        .all()
    )
