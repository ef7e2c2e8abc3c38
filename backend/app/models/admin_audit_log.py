from datetime import datetime
import json

from app.extensions import db


ADMIN_ACTIONS = (
    "APPROVE_LISTING",
    "REJECT_LISTING",
    "PAUSE_LISTING",
    "RESTORE_LISTING",
    "DELETE_LISTING",
    "CREATE_USER",
    "UPDATE_USER",
    "DELETE_USER",
    "UPDATE_USER_ROLE",
    "BAN_USER",
    "UNBAN_USER",
    "CREATE_CATEGORY",
    "UPDATE_CATEGORY",
    "MERGE_CATEGORIES",
    "DELETE_CATEGORY",
    "TOGGLE_CATEGORY_STATUS",
    "UPDATE_SETTINGS",
    "VIEW_AUDIT_LOG",
    "EXPORT_DATA",
)
AUDIT_TARGET_TYPES = ("LISTING", "USER", "CATEGORY", "TRANSACTION", "SYSTEM")


class AdminAuditLog(db.Model):
    __tablename__ = "admin_audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    # No FK: entries outlive deleted admins
    user_id = db.Column(db.Integer, nullable=False, index=True)
    action = db.Column(db.String(40), nullable=False, index=True)

    target_type = db.Column(db.String(20), nullable=False, index=True)
    target_id = db.Column(db.String(120), nullable=False, index=True)

    details_json = db.Column(db.Text, nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    request_id = db.Column(db.String(80), nullable=True)

    def details_dict(self) -> dict:
        raw = self.details_json
        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
            if isinstance(parsed, dict):
                return parsed
        except Exception:
            pass
        return {"raw": str(raw)}

    def to_dict(self, user=None) -> dict:
        payload = {
            "id": int(self.id),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "user_id": int(self.user_id),
            "action": self.action or "",
            "target_type": self.target_type or "",
            "target_id": self.target_id or "",
            "details": self.details_dict(),
            "ip_address": self.ip_address or None,
            "user_agent": self.user_agent or None,
        }
        if user is not None:
            payload["user"] = {"id": int(user.id), "name": user.name or "", "email": user.email or ""}
        return payload
