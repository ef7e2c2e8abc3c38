from datetime import datetime

from app.extensions import db


TRANSACTION_STATUSES = ("PENDING", "COMPLETED", "CANCELLED", "REFUNDED")
COMMISSION_RATE = 0.20


def calculate_commission(amount: float) -> float:
    return round(float(amount or 0.0) * COMMISSION_RATE, 2)


def calculate_net_amount(amount: float) -> float:
    return round(float(amount or 0.0) - calculate_commission(amount), 2)


class Transaction(db.Model):
    __tablename__ = "transactions"

    id = db.Column(db.Integer, primary_key=True)
    listing_id = db.Column(db.Integer, db.ForeignKey("listings.id"), nullable=False, unique=True, index=True)
    buyer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    amount = db.Column(db.Float, nullable=False)
    commission = db.Column(db.Float, nullable=False)
    net_amount = db.Column(db.Float, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)

    listing = db.relationship("Listing", backref=db.backref("transaction", uselist=False))

    @classmethod
    def for_amount(cls, *, listing_id: int, buyer_id: int, seller_id: int, amount: float) -> "Transaction":
        return cls(
            listing_id=int(listing_id),
            buyer_id=int(buyer_id),
            seller_id=int(seller_id),
            amount=round(float(amount), 2),
            commission=calculate_commission(amount),
            net_amount=calculate_net_amount(amount),
            status="PENDING",
        )

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "listing_id": int(self.listing_id),
            "buyer_id": int(self.buyer_id),
            "seller_id": int(self.seller_id),
            "amount": float(self.amount or 0.0),
            "commission": float(self.commission or 0.0),
            "net_amount": float(self.net_amount or 0.0),
            "status": self.status or "PENDING",
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
