from datetime import datetime
import sqlalchemy as sa

from carmarket.extensions import db


class CarListing(db.Model):
    __tablename__ = "car_listings"

    id = db.Column(db.Integer, primary_key=True)

    # Seller/dealer user id
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    showroom_id = db.Column(db.Integer, nullable=True, index=True)

    title = db.Column(db.String(160), nullable=False)
    description = db.Column(db.Text, nullable=True)

    price = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(8), nullable=False, default="QAR", server_default="QAR")
    year = db.Column(db.Integer, nullable=True, index=True)
    make = db.Column(db.String(80), nullable=True, index=True)
    model = db.Column(db.String(80), nullable=True, index=True)
    mileage = db.Column(db.Integer, nullable=True)

    # Lifecycle (values of ListingStatus)
    status = db.Column(db.String(16), nullable=False, default="draft", server_default="draft", index=True)
    rejection_reason = db.Column(db.String(500), nullable=True)

    # Promotion window
    is_featured = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.text("false"), index=True)
    feature_start = db.Column(db.DateTime, nullable=True)
    feature_end = db.Column(db.DateTime, nullable=True)
    promotion_package_id = db.Column(db.Integer, db.ForeignKey("promotion_packages.id"), nullable=True, index=True)

    # Optimistic concurrency token; bumped on every lifecycle write.
    version = db.Column(db.Integer, nullable=False, default=0, server_default="0")

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, server_default=sa.func.now())
    updated_at = db.Column(db.DateTime, nullable=True)
    updated_by = db.Column(db.Integer, nullable=True)
    deleted_at = db.Column(db.DateTime, nullable=True, index=True)

    def to_dict(self, *, include_private: bool = False):
        payload = {
            "id": self.id,
            "seller_id": self.seller_id,
            "owner_id": self.seller_id,
            "showroom_id": int(self.showroom_id) if self.showroom_id is not None else None,
            "title": self.title,
            "description": self.description or "",
            "price": int(self.price or 0),
            "currency": self.currency or "QAR",
            "year": int(self.year) if self.year is not None else None,
            "make": self.make or "",
            "model": self.model or "",
            "mileage": int(self.mileage) if self.mileage is not None else None,
            "status": self.status or "draft",
            "is_featured": bool(self.is_featured),
            "feature_start": self.feature_start.isoformat() if self.feature_start else None,
            "feature_end": self.feature_end.isoformat() if self.feature_end else None,
            "promotion_package_id": int(self.promotion_package_id) if self.promotion_package_id is not None else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_private:
            payload["rejection_reason"] = self.rejection_reason or ""
            payload["version"] = int(self.version or 0)
            payload["updated_by"] = int(self.updated_by) if self.updated_by is not None else None
            payload["deleted_at"] = self.deleted_at.isoformat() if self.deleted_at else None
        return payload
