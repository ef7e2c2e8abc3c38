from datetime import datetime

from app.extensions import db


OFFER_STATUSES = ("PENDING", "ACCEPTED", "REJECTED", "EXPIRED", "COUNTERED")


class Offer(db.Model):
    __tablename__ = "offers"

    id = db.Column(db.Integer, primary_key=True)
    listing_id = db.Column(db.Integer, db.ForeignKey("listings.id"), nullable=False, index=True)
    buyer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    amount = db.Column(db.Float, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    counter_amount = db.Column(db.Float, nullable=True)
    message = db.Column(db.String(500), nullable=True)

    expires_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    listing = db.relationship("Listing", backref=db.backref("offers", lazy="dynamic", cascade="all, delete-orphan"))
    buyer = db.relationship("User", backref=db.backref("offers_made", lazy="dynamic", cascade="all, delete-orphan"))

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or datetime.utcnow()
        return bool(self.expires_at and self.expires_at < now)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "listing_id": int(self.listing_id),
            "buyer_id": int(self.buyer_id),
            "amount": float(self.amount or 0.0),
            "status": self.status or "PENDING",
            "counter_amount": float(self.counter_amount) if self.counter_amount is not None else None,
            "message": self.message or "",
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
