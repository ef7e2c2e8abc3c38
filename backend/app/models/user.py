from datetime import datetime

from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from app.extensions import db


ROLES = ("BUYER", "SELLER", "ADMIN")


class User(db.Model, UserMixin):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(120), nullable=False, default="")
    email = db.Column(db.String(255), unique=True, index=True, nullable=False)

    # South African mobile, +27 or leading 0
    phone = db.Column(db.String(32), nullable=True)
    city = db.Column(db.String(100), nullable=True)
    province = db.Column(db.String(40), nullable=True)
    profile_image = db.Column(db.String(1024), nullable=True)

    role = db.Column(db.String(16), nullable=False, default="BUYER", index=True)

    rating = db.Column(db.Float, nullable=False, default=0.0)
    review_count = db.Column(db.Integer, nullable=False, default=0)

    email_verified = db.Column(db.DateTime, nullable=True)
    password_hash = db.Column(db.String(255), nullable=False)

    # Lockout after repeated failed logins
    failed_login_attempts = db.Column(db.Integer, nullable=False, default=0)
    lockout_until = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def set_password(self, raw_password: str) -> None:
        self.password_hash = generate_password_hash(raw_password)

    def check_password(self, raw_password: str) -> bool:
        return check_password_hash(self.password_hash, raw_password)

    @property
    def is_admin(self) -> bool:
        return (self.role or "").upper() == "ADMIN"

    @property
    def is_email_verified(self) -> bool:
        return self.email_verified is not None

    def is_locked(self, now: datetime | None = None) -> bool:
        now = now or datetime.utcnow()
        return bool(self.lockout_until and self.lockout_until > now)

    def to_public_dict(self) -> dict:
        return {
            "id": int(self.id),
            "name": self.name or "",
            "city": self.city or "",
            "province": self.province or "",
            "rating": float(self.rating or 0.0),
            "review_count": int(self.review_count or 0),
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": getattr(self, "phone", None),
            "city": self.city or "",
            "province": self.province or "",
            "profile_image": (getattr(self, "profile_image", None) or ""),
            "role": self.role or "BUYER",
            "rating": float(self.rating or 0.0),
            "review_count": int(self.review_count or 0),
            "email_verified": self.email_verified.isoformat() if self.email_verified else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
