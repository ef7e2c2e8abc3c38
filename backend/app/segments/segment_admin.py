from datetime import datetime

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import or_

from app.extensions import db
from app.models import ADMIN_ACTIONS, AUDIT_TARGET_TYPES, STATUSES, Listing, User
from app.utils.audit_log import create_audit_log, get_audit_logs
from app.utils.auth_guard import admin_required, current_user
from app.utils.mailer import send_moderation_notice
from app.utils.validation import ValidationError, validate_reason, validation_error_response


admin_bp = Blueprint("admin_bp", __name__, url_prefix="/api/admin")

SORT_COLUMNS = {
    "createdAt": Listing.created_at,
    "updatedAt": Listing.updated_at,
    "price": Listing.price,
}


def _int_arg(name: str, default: int, *, lo: int, hi: int | None = None) -> int:
    try:
        value = int(request.args.get(name) or default)
    except (TypeError, ValueError):
        value = default
    value = max(lo, value)
    return min(value, hi) if hi is not None else value


def _parse_date(raw: str | None) -> datetime | None:
    text = (raw or "").strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        return None


def _admin_listing_dict(listing: Listing) -> dict:
    payload = listing.to_dict(include_private=True)
    seller = listing.seller
    payload["seller"] = (
        {"id": int(seller.id), "name": seller.name, "email": seller.email, "rating": float(seller.rating or 0.0)}
        if seller is not None
        else None
    )
    return payload


@admin_bp.get("/listings")
@admin_required
def admin_list_listings():
    page = _int_arg("page", 1, lo=1)
    limit = _int_arg("limit", 20, lo=1, hi=100)
    q = Listing.query

    raw_status = (request.args.get("status") or "").strip().upper()
    if raw_status:
        statuses = [s.strip() for s in raw_status.split(",") if s.strip() in STATUSES]
        if statuses:
            q = q.filter(Listing.status.in_(statuses))
    category = (request.args.get("category") or "").strip().upper()
    if category:
        q = q.filter(Listing.category == category)
    search = (request.args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(or_(Listing.title.ilike(like), Listing.description.ilike(like)))

    total = q.order_by(None).count()
    column = SORT_COLUMNS.get((request.args.get("sort_by") or "createdAt").strip(), Listing.created_at)
    descending = (request.args.get("sort_order") or "desc").strip().lower() != "asc"
    q = q.order_by(column.desc() if descending else column.asc(), Listing.id.desc() if descending else Listing.id.asc())
    rows = q.offset((page - 1) * limit).limit(limit).all()
    return jsonify(
        {
            "listings": [_admin_listing_dict(row) for row in rows],
            "pagination": {
                "total": int(total),
                "page": page,
                "limit": limit,
                "totalPages": (int(total) + limit - 1) // limit,
            },
        }
    ), 200


def _moderate(listing_id: int, *, action: str, allowed_from: str, to_status: str, verb: str, reason_label: str | None = None):
    admin = current_user()
    reason = None
    if reason_label:
        data = request.get_json(silent=True) or {}
        try:
            reason = validate_reason(data.get("reason"), label=reason_label)
        except ValidationError as e:
            return validation_error_response(e)

    listing = db.session.get(Listing, int(listing_id))
    if listing is None:
        return jsonify({"ok": False, "message": "Listing not found"}), 404
    if listing.status != allowed_from:
        return jsonify(
            {
                "ok": False,
                "message": (
                    f"Cannot {verb} listing with status: {listing.status}. "
                    f"Only {allowed_from} listings can be {verb}{'d' if verb.endswith('e') else 'ed'}."
                ),
            }
        ), 400

    previous = listing.status
    now = datetime.utcnow()
    listing.status = to_status
    listing.updated_at = now
    if to_status == "APPROVED" and action == "APPROVE_LISTING":
        listing.approved_at = now
        listing.rejection_reason = None
    if action == "REJECT_LISTING":
        listing.rejection_reason = reason

    details = {"previousStatus": previous, "newStatus": to_status, "listingTitle": listing.title}
    if reason:
        details["reason"] = reason
    try:
        db.session.flush()
        create_audit_log(
            user_id=int(admin.id),
            action=action,
            target_type="LISTING",
            target_id=listing.id,
            details=details,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("listing_%s_failed listing_id=%s", verb, listing_id)
        return jsonify({"ok": False, "message": f"Failed to {verb} listing"}), 500

    send_moderation_notice(listing, action, reason)
    current_app.logger.info("listing_%s listing_id=%s admin_id=%s", verb, listing.id, admin.id)
    return jsonify({"ok": True, "listing": _admin_listing_dict(listing)}), 200


@admin_bp.post("/listings/<int:listing_id>/approve")
@admin_required
def approve_listing(listing_id: int):
    return _moderate(listing_id, action="APPROVE_LISTING", allowed_from="PENDING", to_status="APPROVED", verb="approve")


@admin_bp.post("/listings/<int:listing_id>/reject")
@admin_required
def reject_listing(listing_id: int):
    return _moderate(
        listing_id,
        action="REJECT_LISTING",
        allowed_from="PENDING",
        to_status="REJECTED",
        verb="reject",
        reason_label="Rejection",
    )


@admin_bp.post("/listings/<int:listing_id>/pause")
@admin_required
def pause_listing(listing_id: int):
    return _moderate(listing_id, action="PAUSE_LISTING", allowed_from="APPROVED", to_status="PAUSED", verb="pause")


@admin_bp.post("/listings/<int:listing_id>/restore")
@admin_required
def restore_listing(listing_id: int):
    return _moderate(listing_id, action="RESTORE_LISTING", allowed_from="PAUSED", to_status="APPROVED", verb="resume")


@admin_bp.delete("/listings/<int:listing_id>")
@admin_required
def admin_delete_listing(listing_id: int):
    admin = current_user()
    data = request.get_json(silent=True) or {}
    try:
        reason = validate_reason(data.get("reason"), label="Deletion")
    except ValidationError as e:
        return validation_error_response(e)

    listing = db.session.get(Listing, int(listing_id))
    if listing is None:
        return jsonify({"ok": False, "message": "Listing not found"}), 404
    if listing.status == "SOLD":
        return jsonify({"ok": False, "message": "Cannot delete SOLD listings. They are part of transaction history."}), 400
    if listing.transaction is not None and listing.transaction.status != "CANCELLED":
        return jsonify({"ok": False, "message": "Listings with an open transaction cannot be deleted"}), 400

    seller = listing.seller
    title = listing.title
    details = {
        "previousStatus": listing.status,
        "deletionReason": reason,
        "listingTitle": title,
        "sellerId": int(listing.seller_id),
    }
    try:
        create_audit_log(
            user_id=int(admin.id),
            action="DELETE_LISTING",
            target_type="LISTING",
            target_id=listing.id,
            details=details,
        )
        if listing.transaction is not None:
            db.session.delete(listing.transaction)
        db.session.delete(listing)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("listing_admin_delete_failed listing_id=%s", listing_id)
        return jsonify({"ok": False, "message": "Failed to delete listing"}), 500

    if seller is not None:
        send_moderation_notice(_DeletedListing(title=title, seller=seller), "DELETE_LISTING", reason)
    return jsonify({"ok": True, "message": "Listing deleted"}), 200


class _DeletedListing:
    def __init__(self, *, title: str, seller: User):
        self.title = title
        self.seller = seller


@admin_bp.get("/audit-logs")
@admin_required
def list_audit_logs():
    args = request.args
    action = (args.get("action") or "").strip().upper() or None
    if action and action not in ADMIN_ACTIONS:
        return jsonify({"ok": False, "message": f"Unknown action: {action}"}), 400
    target_type = (args.get("targetType") or args.get("target_type") or "").strip().upper() or None
    if target_type and target_type not in AUDIT_TARGET_TYPES:
        return jsonify({"ok": False, "message": f"Unknown target type: {target_type}"}), 400
    try:
        user_id = int(args.get("userId") or args.get("user_id")) if (args.get("userId") or args.get("user_id")) else None
        cursor = int(args.get("cursor")) if args.get("cursor") else None
    except ValueError:
        return jsonify({"ok": False, "message": "userId and cursor must be integers"}), 400

    result = get_audit_logs(
        user_id=user_id,
        action=action,
        target_type=target_type,
        target_id=(args.get("targetId") or args.get("target_id") or "").strip() or None,
        start_date=_parse_date(args.get("startDate")),
        end_date=_parse_date(args.get("endDate")),
        limit=_int_arg("limit", 50, lo=1, hi=200),
        cursor=cursor,
    )
    return jsonify(result), 200
