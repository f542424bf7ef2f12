from datetime import datetime
import json

from carmarket.extensions import db


class ListingTransition(db.Model):
    __tablename__ = "listing_transitions"
    __table_args__ = (
        db.UniqueConstraint("listing_id", "idempotency_key", name="uq_listing_transition_listing_key"),
    )

    id = db.Column(db.Integer, primary_key=True)
    listing_id = db.Column(db.Integer, nullable=False, index=True)
    action = db.Column(db.String(32), nullable=False)
    from_status = db.Column(db.String(16), nullable=False, default="")
    to_status = db.Column(db.String(16), nullable=False)
    actor_id = db.Column(db.Integer, nullable=True, index=True)
    actor_role = db.Column(db.String(32), nullable=False, default="")
    # Null keys never collide in the unique constraint.
    idempotency_key = db.Column(db.String(160), nullable=True)
    reason = db.Column(db.String(500), nullable=True)
    side_effects_json = db.Column(db.Text, nullable=True)
    # Feature window as left by this transition, returned on replay.
    is_featured = db.Column(db.Boolean, nullable=False, default=False)
    feature_start = db.Column(db.DateTime, nullable=True)
    feature_end = db.Column(db.DateTime, nullable=True)
    version = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def side_effects(self) -> list:
        raw = self.side_effects_json
        if not raw:
            return []
        try:
            parsed = json.loads(raw)
        except (TypeError, ValueError):
            return []
        if isinstance(parsed, list):
            return [str(x) for x in parsed]
        return []

    def to_dict(self):
        return {
            "id": int(self.id),
            "listing_id": int(self.listing_id),
            "action": self.action or "",
            "from_status": self.from_status or "",
            "to_status": self.to_status or "",
            "actor_id": int(self.actor_id) if self.actor_id is not None else None,
            "actor_role": self.actor_role or "",
            "idempotency_key": self.idempotency_key or "",
            "reason": self.reason or "",
            "side_effects": self.side_effects(),
            "version": int(self.version or 0),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
