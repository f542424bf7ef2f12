from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from carmarket.extensions import db
from carmarket.models import CarListing, User
from carmarket.services.lifecycle import (
    DenyReason,
    ListingAction,
    ListingStatus,
    Permission,
    role_catalog,
)
from carmarket.services.listing_actions_service import (
    ListingConflict,
    ListingForbidden,
    ListingNotFound,
    actor_for_user,
    apply_listing_action,
    create_draft_listing,
    listing_view,
    transitions_for,
)
from carmarket.utils.jwt_utils import decode_token, get_bearer_token, subject_user_id
from carmarket.utils.observability import tag_actor, tag_listing_action


listings_bp = Blueprint("listings_bp", __name__, url_prefix="/api")

# Wire status for each business-rule denial.
DENY_STATUS = {
    DenyReason.InvalidTransition: 403,
    DenyReason.Unauthorized: 403,
    DenyReason.MissingReason: 422,
}

_DENY_MESSAGES = {
    DenyReason.InvalidTransition: "Action is not allowed from the listing's current status",
    DenyReason.Unauthorized: "You do not have permission to perform this action",
    DenyReason.MissingReason: "A reason is required for this action",
}


def _error(code: str, message: str, status: int):
    payload = {
        "ok": False,
        "error": code,
        "message": message,
        "status": int(status),
    }
    rid = (getattr(g, "request_id", "") or "").strip()
    if rid:
        payload["trace_id"] = rid
    return jsonify(payload), int(status)


def _current_user() -> User | None:
    token = get_bearer_token(request.headers.get("Authorization", ""))
    if not token:
        return None
    uid = subject_user_id(decode_token(token))
    if uid is None:
        return None
    return db.session.get(User, uid)


def _current_actor():
    """Return (actor, error_response); exactly one of them is None."""
    u = _current_user()
    if u is None:
        return None, _error("AuthenticationRequired", "Sign in to continue", 401)
    try:
        actor = actor_for_user(u)
    except ValueError:
        current_app.logger.warning("unknown_role user_id=%s role=%s", u.id, u.role)
        return None, _error(DenyReason.Unauthorized.value, "Unknown role", 403)
    tag_actor(actor.user_id, actor.role.value)
    return actor, None


def _optional_actor():
    u = _current_user()
    if u is None:
        return None
    try:
        actor = actor_for_user(u)
    except ValueError:
        return None
    tag_actor(actor.user_id, actor.role.value)
    return actor


def _maybe_bool(value):
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        if value not in (0, 1):
            raise ValueError(f"invalid boolean {value!r}")
        return bool(value)
    raw = str(value).strip().lower()
    if raw in ("1", "true", "yes", "y", "on"):
        return True
    if raw in ("0", "false", "no", "n", "off"):
        return False
    raise ValueError(f"invalid boolean {value!r}")


def _outcome_denied(outcome):
    reason = outcome.result.reason
    return _error(reason.value, _DENY_MESSAGES[reason], DENY_STATUS[reason])


@listings_bp.get("/roles")
def list_roles():
    return jsonify({"ok": True, "roles": role_catalog()}), 200


@listings_bp.post("/listings")
def create_listing():
    actor, err = _current_actor()
    if err is not None:
        return err
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return _error("InvalidRequest", "JSON object body required", 400)
    user = db.session.get(User, actor.user_id)
    try:
        row = create_draft_listing(actor, user, payload)
    except ListingForbidden as e:
        return _error(e.code, str(e), 403)
    except ValueError as e:
        db.session.rollback()
        return _error("InvalidRequest", str(e), 400)
    return jsonify({"ok": True, "listing": listing_view(row, actor)}), 201


@listings_bp.get("/listings/<int:listing_id>")
def get_listing(listing_id: int):
    actor = _optional_actor()
    row = db.session.get(CarListing, listing_id)
    if row is None:
        return _error("NotFound", "Listing not found", 404)

    is_owner = actor is not None and int(actor.user_id) == int(row.seller_id)
    is_platform = actor is not None and actor.can(Permission.ManageAllListings)
    is_reviewer = actor is not None and actor.can(Permission.ApproveListings)
    if row.deleted_at is not None and not is_platform:
        return _error("NotFound", "Listing not found", 404)
    public_statuses = (ListingStatus.Active.value, ListingStatus.Sold.value)
    if (row.status or "") not in public_statuses and not (is_owner or is_platform or is_reviewer):
        return _error("NotFound", "Listing not found", 404)
    return jsonify({"ok": True, "listing": listing_view(row, actor)}), 200


@listings_bp.get("/listings/<int:listing_id>/transitions")
def get_listing_transitions(listing_id: int):
    actor, err = _current_actor()
    if err is not None:
        return err
    row = db.session.get(CarListing, listing_id)
    if row is None:
        return _error("NotFound", "Listing not found", 404)
    allowed = (
        int(actor.user_id) == int(row.seller_id)
        or actor.can(Permission.ManageAllListings)
        or actor.can(Permission.ApproveListings)
    )
    if not allowed:
        return _error(DenyReason.Unauthorized.value, _DENY_MESSAGES[DenyReason.Unauthorized], 403)
    items = [t.to_dict() for t in transitions_for(int(row.id))]
    return jsonify({"ok": True, "items": items, "count": len(items)}), 200


@listings_bp.put("/listings/<int:listing_id>/actions")
def listing_action(listing_id: int):
    actor, err = _current_actor()
    if err is not None:
        return err

    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return _error("InvalidRequest", "JSON object body required", 400)
    try:
        action = ListingAction.parse(payload.get("action"))
    except ValueError:
        return _error("InvalidAction", "Unknown listing action", 400)
    tag_listing_action(action.value)

    reason = payload.get("reason")
    if reason is not None and not isinstance(reason, str):
        return _error("InvalidRequest", "reason must be a string", 400)
    try:
        featured = _maybe_bool(payload.get("featured"))
    except ValueError:
        return _error("InvalidRequest", "featured must be a boolean", 400)

    try:
        outcome = apply_listing_action(
            listing_id,
            actor,
            action,
            reason=reason,
            featured=featured,
            idempotency_key=request.headers.get("Idempotency-Key"),
        )
    except ListingNotFound:
        return _error("NotFound", "Listing not found", 404)
    except ListingConflict as e:
        return _error(ListingConflict.code, str(e), 409)
    except ValueError as e:
        current_app.logger.warning("listing_action_rejected listing_id=%s action=%s err=%s", listing_id, action.value, e)
        return _error("InvalidRequest", str(e), 400)

    if not outcome.allowed:
        return _outcome_denied(outcome)

    body = {"ok": True, **outcome.result.to_dict()}
    body["listing_id"] = int(listing_id)
    body["side_effects"] = list(outcome.result.side_effects)
    body["replayed"] = bool(outcome.replayed)
    body["listing"] = listing_view(outcome.listing, actor)
    return jsonify(body), 200


@listings_bp.delete("/listings/<int:listing_id>")
def delete_listing(listing_id: int):
    actor, err = _current_actor()
    if err is not None:
        return err
    tag_listing_action(ListingAction.Delete.value)
    try:
        outcome = apply_listing_action(
            listing_id,
            actor,
            ListingAction.Delete,
            idempotency_key=request.headers.get("Idempotency-Key"),
        )
    except ListingNotFound:
        return _error("NotFound", "Listing not found", 404)
    except ListingConflict as e:
        return _error(ListingConflict.code, str(e), 409)

    if not outcome.allowed:
        return _outcome_denied(outcome)
    return "", 204
