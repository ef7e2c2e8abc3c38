from datetime import datetime

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import or_

from app.extensions import db
from app.models import (
    ROLES,
    Listing,
    Offer,
    PasswordResetToken,
    Transaction,
    User,
    VerificationToken,
)
from app.utils.audit_log import create_audit_log
from app.utils.auth_guard import admin_required, current_user
from app.utils.validation import (
    SA_PHONE_RE,
    SA_PROVINCES,
    ValidationError,
    is_valid_email,
    normalize_role,
    validation_error_response,
)


admin_users_bp = Blueprint("admin_users_bp", __name__, url_prefix="/api/admin/users")

USER_SORT_COLUMNS = {
    "createdAt": User.created_at,
    "name": User.name,
    "email": User.email,
    "role": User.role,
}


def _admin_user_dict(user: User) -> dict:
    payload = user.to_dict()
    uid = int(user.id)
    payload["counts"] = {
        "listings": int(user.listings.order_by(None).count()),
        "purchases": int(Transaction.query.filter(Transaction.buyer_id == uid).count()),
        "sales": int(Transaction.query.filter(Transaction.seller_id == uid).count()),
    }
    return payload


def _admin_count() -> int:
    return int(User.query.filter(User.role == "ADMIN").count())


def _clean_new_user(data: dict) -> dict:
    errors: dict[str, str] = {}
    email = str(data.get("email") or "").strip().lower()
    name = str(data.get("name") or "").strip()
    password = str(data.get("password") or "")
    role = normalize_role(data.get("role") or "BUYER")
    phone = str(data.get("phone") or "").strip()
    city = str(data.get("city") or "").strip()
    province = str(data.get("province") or "").strip()

    if not is_valid_email(email):
        errors["email"] = "Invalid email address"
    if not (2 <= len(name) <= 100):
        errors["name"] = "Name must be between 2 and 100 characters"
    if not (8 <= len(password) <= 100):
        errors["password"] = "Password must be between 8 and 100 characters"
    if role is None:
        errors["role"] = f"Role must be one of: {', '.join(ROLES)}"
    if phone and not SA_PHONE_RE.match(phone):
        errors["phone"] = "Please enter a valid South African phone number"
    if province and province not in SA_PROVINCES:
        errors["province"] = "Please select a valid province"
    if errors:
        raise ValidationError(errors)
    return {
        "email": email,
        "name": name,
        "password": password,
        "role": role,
        "phone": phone or None,
        "city": city or None,
        "province": province or None,
    }


@admin_users_bp.get("")
@admin_required
def list_users():
    try:
        page = max(1, int(request.args.get("page") or 1))
        limit = min(max(1, int(request.args.get("limit") or 20)), 100)
    except ValueError:
        return jsonify({"ok": False, "message": "page and limit must be integers"}), 400

    q = User.query
    role = normalize_role(request.args.get("role"))
    if role:
        q = q.filter(User.role == role)
    search = (request.args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(or_(User.name.ilike(like), User.email.ilike(like)))

    total = q.order_by(None).count()
    column = USER_SORT_COLUMNS.get((request.args.get("sortBy") or "createdAt").strip(), User.created_at)
    ascending = (request.args.get("sortOrder") or "desc").strip().lower() == "asc"
    rows = (
        q.order_by(column.asc() if ascending else column.desc(), User.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return jsonify(
        {
            "users": [_admin_user_dict(u) for u in rows],
            "pagination": {
                "total": int(total),
                "page": page,
                "limit": limit,
                "totalPages": (int(total) + limit - 1) // limit,
            },
        }
    ), 200


@admin_users_bp.get("/stats")
@admin_required
def user_statistics():
    now = datetime.utcnow()
    month_start = datetime(now.year, now.month, 1)
    return jsonify(
        {
            "totalUsers": int(User.query.count()),
            "adminCount": int(User.query.filter(User.role == "ADMIN").count()),
            "sellerCount": int(User.query.filter(User.role == "SELLER").count()),
            "buyerCount": int(User.query.filter(User.role == "BUYER").count()),
            "verifiedUsers": int(User.query.filter(User.email_verified.isnot(None)).count()),
            "usersThisMonth": int(User.query.filter(User.created_at >= month_start).count()),
        }
    ), 200


@admin_users_bp.post("")
@admin_required
def create_user():
    admin = current_user()
    data = request.get_json(silent=True) or {}
    try:
        clean = _clean_new_user(data)
    except ValidationError as e:
        return validation_error_response(e)
    if User.query.filter_by(email=clean["email"]).first() is not None:
        return jsonify({"ok": False, "message": "A user with this email already exists"}), 409

    user = User(
        email=clean["email"],
        name=clean["name"],
        role=clean["role"],
        phone=clean["phone"],
        city=clean["city"],
        province=clean["province"],
        email_verified=datetime.utcnow(),
    )
    user.set_password(clean["password"])
    try:
        db.session.add(user)
        db.session.flush()
        create_audit_log(
            user_id=int(admin.id),
            action="CREATE_USER",
            target_type="USER",
            target_id=user.id,
            details={"email": user.email, "name": user.name, "role": user.role},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("admin_user_create_failed")
        return jsonify({"ok": False, "message": "Failed to create user. Please try again."}), 500
    current_app.logger.info("admin_user_created user_id=%s admin_id=%s", user.id, admin.id)
    return jsonify({"ok": True, "user": user.to_dict()}), 201


@admin_users_bp.delete("/<int:user_id>")
@admin_required
def delete_user(user_id: int):
    admin = current_user()
    user = db.session.get(User, int(user_id))
    if user is None:
        return jsonify({"ok": False, "message": "User not found"}), 404
    if user.is_admin and _admin_count() <= 1:
        return jsonify(
            {"ok": False, "message": "Cannot delete the last admin user. At least one admin must remain."}
        ), 400
    if int(user.id) == int(admin.id):
        return jsonify({"ok": False, "message": "You cannot delete your own account"}), 400
    uid = int(user.id)
    if Transaction.query.filter(or_(Transaction.buyer_id == uid, Transaction.seller_id == uid)).count():
        return jsonify(
            {"ok": False, "message": "Users with transaction history cannot be deleted"}
        ), 400

    details = {"email": user.email, "name": user.name, "role": user.role}
    try:
        create_audit_log(
            user_id=int(admin.id),
            action="DELETE_USER",
            target_type="USER",
            target_id=uid,
            details=details,
        )
        listing_ids = [row.id for row in Listing.query.with_entities(Listing.id).filter(Listing.seller_id == uid)]
        offers = Offer.query.filter(Offer.buyer_id == uid)
        if listing_ids:
            offers = Offer.query.filter(or_(Offer.buyer_id == uid, Offer.listing_id.in_(listing_ids)))
        offers.delete(synchronize_session=False)
        Listing.query.filter(Listing.seller_id == uid).delete(synchronize_session=False)
        VerificationToken.query.filter_by(user_id=uid).delete(synchronize_session=False)
        PasswordResetToken.query.filter_by(user_id=uid).delete(synchronize_session=False)
        db.session.delete(user)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("admin_user_delete_failed user_id=%s", user_id)
        return jsonify({"ok": False, "message": "Failed to delete user. Please try again."}), 500
    current_app.logger.info("admin_user_deleted user_id=%s admin_id=%s", uid, admin.id)
    return jsonify({"ok": True, "message": "User deleted"}), 200


@admin_users_bp.route("/<int:user_id>/role", methods=["PATCH", "PUT", "POST"])
@admin_required
def update_user_role(user_id: int):
    admin = current_user()
    data = request.get_json(silent=True) or {}
    role = normalize_role(data.get("role"))
    if role is None:
        return validation_error_response(ValidationError({"role": f"Role must be one of: {', '.join(ROLES)}"}))

    user = db.session.get(User, int(user_id))
    if user is None:
        return jsonify({"ok": False, "message": "User not found"}), 404
    if user.is_admin and role != "ADMIN" and _admin_count() <= 1:
        return jsonify(
            {
                "ok": False,
                "message": "Cannot remove admin role from the last admin user. At least one admin must remain.",
            }
        ), 400
    if int(user.id) == int(admin.id):
        return jsonify({"ok": False, "message": "You cannot change your own role"}), 400

    previous = user.role
    user.role = role
    try:
        create_audit_log(
            user_id=int(admin.id),
            action="UPDATE_USER_ROLE",
            target_type="USER",
            target_id=user.id,
            details={"email": user.email, "previousRole": previous, "newRole": role},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("admin_user_role_update_failed user_id=%s", user_id)
        return jsonify({"ok": False, "message": "Failed to update user role. Please try again."}), 500
    return jsonify({"ok": True, "user": user.to_dict()}), 200
