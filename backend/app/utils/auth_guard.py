from __future__ import annotations

from functools import wraps

from flask import g, jsonify, request

from app.extensions import db
from app.models import User
from app.utils.jwt_utils import user_id_from_header


def current_user() -> User | None:
    cached = getattr(g, "current_user", None)
    if cached is not None:
        return cached
    uid = getattr(g, "auth_user_id", None)
    if uid is None:
        uid = user_id_from_header(request.headers.get("Authorization", ""))
    if uid is None:
        return None
    try:
        user = db.session.get(User, int(uid))
    except Exception:
        db.session.rollback()
        return None
    g.current_user = user
    return user


def is_admin(user: User | None) -> bool:
    return bool(user is not None and user.is_admin)


def login_required(fn):
    @wraps(fn)
    def wrapped(*args, **kwargs):
        if current_user() is None:
            return jsonify({"ok": False, "message": "Unauthorized"}), 401
        return fn(*args, **kwargs)

    return wrapped


def admin_required(fn):
    @wraps(fn)
    def wrapped(*args, **kwargs):
        user = current_user()
        if user is None:
            return jsonify({"ok": False, "message": "Unauthorized"}), 401
        if not is_admin(user):
            return jsonify({"ok": False, "message": "Forbidden"}), 403
        return fn(*args, **kwargs)

    return wrapped
