from datetime import datetime
import json

from carmarket.extensions import db


class ListingEvent(db.Model):
    __tablename__ = "listing_events"

    id = db.Column(db.Integer, primary_key=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    event_type = db.Column(db.String(80), nullable=False, index=True)
    listing_id = db.Column(db.Integer, nullable=True, index=True)

    actor_user_id = db.Column(db.Integer, nullable=True, index=True)
    actor_role = db.Column(db.String(32), nullable=True)

    request_id = db.Column(db.String(80), nullable=True, index=True)
    severity = db.Column(db.String(16), nullable=False, default="INFO", index=True)
    metadata_json = db.Column(db.Text, nullable=True)

    def metadata_dict(self) -> dict:
        if not self.metadata_json:
            return {}
        try:
            parsed = json.loads(self.metadata_json)
        except (TypeError, ValueError):
            return {"raw": str(self.metadata_json)}
        return parsed if isinstance(parsed, dict) else {"raw": parsed}

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "event_type": self.event_type or "",
            "listing_id": int(self.listing_id) if self.listing_id is not None else None,
            "actor_user_id": int(self.actor_user_id) if self.actor_user_id is not None else None,
            "actor_role": self.actor_role or "",
            "request_id": self.request_id or "",
            "severity": self.severity or "INFO",
            "metadata": self.metadata_dict(),
        }
