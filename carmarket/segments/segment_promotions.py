from __future__ import annotations

from flask import Blueprint, jsonify, request

from carmarket.extensions import db
from carmarket.models import CarListing, PromotionPackage
from carmarket.services.lifecycle import DenyReason, Permission, has_any_permission
from carmarket.segments.segment_listings import _current_actor, _error


promotions_bp = Blueprint("promotions_bp", __name__, url_prefix="/api")


def _positive_int(value, *, field: str, required: bool = True):
    if value is None or value == "":
        if required:
            raise ValueError(f"{field} required")
        return None
    if isinstance(value, bool):
        raise ValueError(f"{field} must be an integer")
    number = int(value)
    if number <= 0:
        raise ValueError(f"{field} must be positive")
    return number


@promotions_bp.get("/promotion-packages")
def list_packages():
    rows = PromotionPackage.query.filter_by(is_active=True).order_by(PromotionPackage.price.asc()).all()
    return jsonify({"ok": True, "items": [r.to_dict() for r in rows]}), 200


@promotions_bp.post("/admin/promotion-packages")
def create_package():
    actor, err = _current_actor()
    if err is not None:
        return err
    if not has_any_permission(actor.role, Permission.ManagePromotions, Permission.ManageAllListings):
        return _error(DenyReason.Unauthorized.value, "Cannot manage promotion packages", 403)

    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return _error("InvalidRequest", "JSON object body required", 400)
    name = str(payload.get("name") or "").strip()
    if not name:
        return _error("InvalidRequest", "name required", 400)
    try:
        duration = _positive_int(payload.get("duration_days"), field="duration_days")
        feature_duration = _positive_int(payload.get("feature_duration_days"), field="feature_duration_days", required=False)
        price = int(payload.get("price") or 0)
    except (TypeError, ValueError) as e:
        return _error("InvalidRequest", str(e), 400)

    row = PromotionPackage(
        name=name[:120],
        description=str(payload.get("description") or "").strip() or None,
        plan=str(payload.get("plan") or "basic").strip().lower()[:32] or "basic",
        price=max(0, price),
        currency=str(payload.get("currency") or "QAR").strip().upper()[:8] or "QAR",
        duration_days=duration,
        feature_duration_days=feature_duration,
        is_featured=bool(payload.get("is_featured", feature_duration is not None)),
        is_active=True,
    )
    db.session.add(row)
    db.session.commit()
    return jsonify({"ok": True, "package": row.to_dict()}), 201


@promotions_bp.put("/listings/<int:listing_id>/promotion-package")
def attach_package(listing_id: int):
    actor, err = _current_actor()
    if err is not None:
        return err
    row = db.session.get(CarListing, listing_id)
    if row is None or row.deleted_at is not None:
        return _error("NotFound", "Listing not found", 404)

    is_owner = int(actor.user_id) == int(row.seller_id)
    if not (is_owner or actor.can(Permission.ManageAllListings)):
        return _error(DenyReason.Unauthorized.value, "Cannot change this listing's package", 403)

    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return _error("InvalidRequest", "JSON object body required", 400)
    try:
        package_id = _positive_int(payload.get("package_id"), field="package_id")
    except (TypeError, ValueError) as e:
        return _error("InvalidRequest", str(e), 400)
    package = db.session.get(PromotionPackage, package_id)
    if package is None or not package.is_active:
        return _error("NotFound", "Promotion package not found", 404)

    row.promotion_package_id = int(package.id)
    db.session.add(row)
    db.session.commit()
    return jsonify({"ok": True, "listing_id": int(row.id), "package": package.to_dict()}), 200
