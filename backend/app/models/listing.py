from datetime import datetime
import json

import sqlalchemy as sa

from app.extensions import db


CATEGORIES = (
    "ELECTRONICS",
    "CLOTHING",
    "HOME_GARDEN",
    "SPORTS",
    "BOOKS",
    "TOYS",
    "VEHICLES",
    "COLLECTIBLES",
    "BABY_KIDS",
    "PET_SUPPLIES",
)
CONDITIONS = ("NEW", "LIKE_NEW", "GOOD", "FAIR", "POOR")
PRICING_TYPES = ("FIXED", "OFFERS")
STATUSES = ("PENDING", "APPROVED", "REJECTED", "SOLD", "PAUSED")


def _json_list(raw_value) -> list:
    text_value = str(raw_value or "").strip()
    if not text_value:
        return []
    try:
        parsed = json.loads(text_value)
        if isinstance(parsed, list):
            return [str(item) for item in parsed if item]
    except Exception:
        return []
    return []


class Listing(db.Model):
    __tablename__ = "listings"

    id = db.Column(db.Integer, primary_key=True)

    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    title = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")

    category = db.Column(db.String(32), nullable=False, index=True)
    subcategory_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    condition = db.Column(db.String(16), nullable=False, default="GOOD")

    pricing_type = db.Column(db.String(16), nullable=False, default="FIXED")
    # Rand amounts
    price = db.Column(db.Float, nullable=True)
    min_offer = db.Column(db.Float, nullable=True)

    # JSON encoded url lists
    images_json = db.Column(db.Text, nullable=False, default="[]")
    primary_image = db.Column(db.String(1024), nullable=False, default="")
    ai_enhanced_images_json = db.Column(db.Text, nullable=False, default="[]")
    original_images_json = db.Column(db.Text, nullable=False, default="[]")
    ai_generated_desc = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.text("false"))

    city = db.Column(db.String(100), nullable=False, default="")
    province = db.Column(db.String(40), nullable=False, default="")

    status = db.Column(db.String(16), nullable=False, default="PENDING", server_default="PENDING", index=True)
    rejection_reason = db.Column(db.Text, nullable=True)
    views = db.Column(db.Integer, nullable=False, default=0, server_default="0")

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    approved_at = db.Column(db.DateTime, nullable=True)
    sold_at = db.Column(db.DateTime, nullable=True, index=True)

    seller = db.relationship("User", backref=db.backref("listings", lazy="dynamic", cascade="all, delete-orphan"))
    subcategory = db.relationship("Category", backref=db.backref("listings", lazy="dynamic"))

    @property
    def images(self) -> list:
        return _json_list(self.images_json)

    @images.setter
    def images(self, value) -> None:
        self.images_json = json.dumps([str(v) for v in (value or []) if v])

    @property
    def ai_enhanced_images(self) -> list:
        return _json_list(self.ai_enhanced_images_json)

    @ai_enhanced_images.setter
    def ai_enhanced_images(self, value) -> None:
        self.ai_enhanced_images_json = json.dumps([str(v) for v in (value or []) if v])

    @property
    def original_images(self) -> list:
        return _json_list(self.original_images_json)

    @original_images.setter
    def original_images(self, value) -> None:
        self.original_images_json = json.dumps([str(v) for v in (value or []) if v])

    def to_dict(self, *, include_seller: bool = False, include_private: bool = False) -> dict:
        payload = {
            "id": int(self.id),
            "seller_id": int(self.seller_id),
            "title": self.title or "",
            "description": self.description or "",
            "category": self.category or "",
            "subcategory_id": int(self.subcategory_id) if self.subcategory_id is not None else None,
            "condition": self.condition or "",
            "pricing_type": self.pricing_type or "FIXED",
            "price": float(self.price) if self.price is not None else None,
            "min_offer": float(self.min_offer) if self.min_offer is not None else None,
            "images": self.images,
            "primary_image": self.primary_image or "",
            "ai_enhanced_images": self.ai_enhanced_images,
            "ai_generated_desc": bool(self.ai_generated_desc),
            "city": self.city or "",
            "province": self.province or "",
            "status": self.status or "PENDING",
            "views": int(self.views or 0),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "sold_at": self.sold_at.isoformat() if self.sold_at else None,
        }
        if include_private:
            payload["rejection_reason"] = self.rejection_reason or None
            payload["original_images"] = self.original_images
        if include_seller and self.seller is not None:
            seller = self.seller.to_public_dict()
            if include_private:
                seller["email"] = self.seller.email
            payload["seller"] = seller
        return payload
