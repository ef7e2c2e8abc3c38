from datetime import datetime

import sqlalchemy as sa

from app.extensions import db


class Category(db.Model):
    __tablename__ = "categories"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    slug = db.Column(db.String(140), nullable=False, unique=True, index=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    icon = db.Column(db.String(64), nullable=True)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, server_default=sa.text("true"))
    item_count = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    ai_generated = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.text("false"))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    parent = db.relationship("Category", remote_side=[id], backref="children")

    def to_dict(self, *, include_counts: bool = False) -> dict:
        payload = {
            "id": int(self.id),
            "name": self.name or "",
            "slug": self.slug or "",
            "parent_id": int(self.parent_id) if self.parent_id is not None else None,
            "icon": self.icon or None,
            "description": self.description or "",
            "is_active": bool(self.is_active),
            "item_count": int(self.item_count or 0),
            "ai_generated": bool(self.ai_generated),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_counts:
            payload["children_count"] = len(self.children or [])
        return payload
