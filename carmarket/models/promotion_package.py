from datetime import datetime

from carmarket.extensions import db


class PromotionPackage(db.Model):
    __tablename__ = "promotion_packages"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)
    plan = db.Column(db.String(32), nullable=False, default="basic")
    price = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(8), nullable=False, default="QAR")

    # Listing visibility window.
    duration_days = db.Column(db.Integer, nullable=False, default=30)
    # Featured slot length; falls back to duration_days when unset.
    feature_duration_days = db.Column(db.Integer, nullable=True)

    is_featured = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": int(self.id),
            "name": self.name or "",
            "description": self.description or "",
            "plan": self.plan or "basic",
            "price": int(self.price or 0),
            "currency": self.currency or "QAR",
            "duration_days": int(self.duration_days or 0),
            "feature_duration_days": int(self.feature_duration_days) if self.feature_duration_days is not None else None,
            "is_featured": bool(self.is_featured),
            "is_active": bool(self.is_active),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
