from datetime import datetime

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import and_, case, func, or_

from app.extensions import db
from app.models import CATEGORIES, CONDITIONS, PRICING_TYPES, Listing
from app.utils.auth_guard import current_user, is_admin, login_required
from app.utils.validation import SA_PROVINCES, ValidationError, validate_listing_payload, validation_error_response


listings_bp = Blueprint("listings_bp", __name__, url_prefix="/api/listings")

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
MAX_FEATURED = 50
MAX_SEARCH = 50
SORT_OPTIONS = ("newest", "oldest", "price-low", "price-high", "most-viewed")


def _int_arg(name: str, default: int, *, lo: int, hi: int) -> int:
    try:
        value = int(request.args.get(name) or default)
    except (TypeError, ValueError):
        value = default
    return max(lo, min(value, hi))


def _float_arg(name: str) -> float | None:
    raw = (request.args.get(name) or "").strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def _sort_order(sort_by: str):
    """Return (column expression, descending) for a public sort option."""
    if sort_by == "oldest":
        return Listing.created_at, False
    if sort_by == "price-low":
        return func.coalesce(Listing.price, 0.0), False
    if sort_by == "price-high":
        return func.coalesce(Listing.price, 0.0), True
    if sort_by == "most-viewed":
        return Listing.views, True
    return Listing.created_at, True


def _cursor_value(listing: Listing, sort_by: str):
    if sort_by in ("price-low", "price-high"):
        return float(listing.price or 0.0)
    if sort_by == "most-viewed":
        return int(listing.views or 0)
    return listing.created_at


def _apply_public_filters(q):
    args = request.args
    category = (args.get("category") or "").strip().upper()
    condition = (args.get("condition") or "").strip().upper()
    pricing_type = (args.get("pricingType") or args.get("pricing_type") or "").strip().upper()
    city = (args.get("city") or "").strip()
    province = (args.get("province") or "").strip()
    query = (args.get("query") or args.get("q") or "").strip()
    min_price = _float_arg("minPrice")
    max_price = _float_arg("maxPrice")

    if category in CATEGORIES:
        q = q.filter(Listing.category == category)
    if condition in CONDITIONS:
        q = q.filter(Listing.condition == condition)
    if pricing_type in PRICING_TYPES:
        q = q.filter(Listing.pricing_type == pricing_type)
    if min_price is not None:
        q = q.filter(Listing.price >= min_price)
    if max_price is not None:
        q = q.filter(Listing.price <= max_price)
    if city:
        q = q.filter(Listing.city.ilike(f"%{city}%"))
    if province:
        q = q.filter(func.lower(Listing.province) == province.lower())
    if query:
        like = f"%{query}%"
        q = q.filter(or_(Listing.title.ilike(like), Listing.description.ilike(like)))
    return q


def _can_manage(user, listing: Listing) -> bool:
    return user is not None and (int(listing.seller_id) == int(user.id) or is_admin(user))


def _get_listing_or_404(listing_id: int):
    listing = db.session.get(Listing, int(listing_id))
    if listing is None:
        return None, (jsonify({"ok": False, "message": "Listing not found"}), 404)
    return listing, None


@listings_bp.get("")
def list_listings():
    sort_by = (request.args.get("sortBy") or request.args.get("sort") or "newest").strip().lower()
    if sort_by not in SORT_OPTIONS:
        sort_by = "newest"
    limit = _int_arg("limit", DEFAULT_PAGE_SIZE, lo=1, hi=MAX_PAGE_SIZE)

    base = _apply_public_filters(Listing.query.filter(Listing.status == "APPROVED"))
    total_count = base.order_by(None).count()

    column, descending = _sort_order(sort_by)
    q = base
    cursor_raw = (request.args.get("cursor") or "").strip()
    if cursor_raw:
        try:
            anchor = db.session.get(Listing, int(cursor_raw))
        except (ValueError, OverflowError):
            anchor = None
        if anchor is not None:
            value = _cursor_value(anchor, sort_by)
            if descending:
                q = q.filter(or_(column < value, and_(column == value, Listing.id < anchor.id)))
            else:
                q = q.filter(or_(column > value, and_(column == value, Listing.id > anchor.id)))

    if descending:
        q = q.order_by(column.desc(), Listing.id.desc())
    else:
        q = q.order_by(column.asc(), Listing.id.asc())

    rows = q.limit(limit + 1).all()
    has_more = len(rows) > limit
    rows = rows[:limit]
    return jsonify(
        {
            "listings": [row.to_dict(include_seller=True) for row in rows],
            "totalCount": int(total_count),
            "hasMore": has_more,
            "nextCursor": str(rows[-1].id) if has_more and rows else None,
        }
    ), 200


@listings_bp.get("/featured")
def featured_listings():
    limit = _int_arg("limit", 8, lo=1, hi=MAX_FEATURED)
    rows = (
        Listing.query.filter(Listing.status == "APPROVED")
        .order_by(Listing.created_at.desc(), Listing.id.desc())
        .limit(limit)
        .all()
    )
    return jsonify({"listings": [row.to_dict(include_seller=True) for row in rows]}), 200


@listings_bp.get("/search")
def search_listings():
    query = (request.args.get("q") or request.args.get("query") or "").strip()
    if len(query) < 2:
        return jsonify({"listings": []}), 200
    limit = _int_arg("limit", 20, lo=1, hi=MAX_SEARCH)
    like = f"%{query}%"
    title_hit = case((Listing.title.ilike(like), 0), else_=1)
    rows = (
        Listing.query.filter(Listing.status == "APPROVED")
        .filter(or_(Listing.title.ilike(like), Listing.description.ilike(like)))
        .order_by(title_hit.asc(), Listing.created_at.desc(), Listing.id.desc())
        .limit(limit)
        .all()
    )
    return jsonify({"listings": [row.to_dict(include_seller=True) for row in rows]}), 200


@listings_bp.get("/mine")
@login_required
def my_listings():
    user = current_user()
    status = (request.args.get("status") or "").strip().upper()
    q = Listing.query.filter(Listing.seller_id == int(user.id))
    if status:
        q = q.filter(Listing.status == status)
    rows = q.order_by(Listing.created_at.desc(), Listing.id.desc()).all()
    return jsonify({"listings": [row.to_dict(include_private=True) for row in rows]}), 200


@listings_bp.get("/<int:listing_id>")
def get_listing(listing_id: int):
    listing, err = _get_listing_or_404(listing_id)
    if err:
        return err
    user = current_user()
    if listing.status != "APPROVED":
        if not _can_manage(user, listing):
            return jsonify({"ok": False, "message": "Listing not found"}), 404
        return jsonify({"listing": listing.to_dict(include_seller=True, include_private=True)}), 200

    try:
        listing.views = int(listing.views or 0) + 1
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("listing_view_increment_failed listing_id=%s", listing_id)
    return jsonify({"listing": listing.to_dict(include_seller=True, include_private=_can_manage(user, listing))}), 200


@listings_bp.post("")
@login_required
def create_listing():
    user = current_user()
    data = request.get_json(silent=True) or {}
    try:
        clean = validate_listing_payload(data)
    except ValidationError as e:
        return validation_error_response(e)

    listing = Listing(
        seller_id=int(user.id),
        title=clean["title"],
        description=clean["description"],
        category=clean["category"],
        condition=clean["condition"],
        pricing_type=clean["pricing_type"],
        price=clean["price"],
        min_offer=clean["min_offer"],
        primary_image=clean["primary_image"],
        city=clean["city"],
        province=clean["province"],
        ai_generated_desc=bool(clean.get("ai_generated_desc", False)),
        status="PENDING",
    )
    listing.images = clean["images"]
    listing.ai_enhanced_images = clean.get("ai_enhanced_images", [])
    listing.original_images = clean.get("original_images", [])
    try:
        if (user.role or "").upper() == "BUYER":
            user.role = "SELLER"
        db.session.add(listing)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("listing_create_failed")
        return jsonify({"ok": False, "message": "Failed to create listing. Please try again."}), 500
    current_app.logger.info("listing_created listing_id=%s seller_id=%s", listing.id, user.id)
    return jsonify(
        {
            "ok": True,
            "message": "Listing submitted for review",
            "listing": listing.to_dict(include_private=True),
        }
    ), 201


@listings_bp.patch("/<int:listing_id>")
@listings_bp.put("/<int:listing_id>")
@login_required
def update_listing(listing_id: int):
    user = current_user()
    listing, err = _get_listing_or_404(listing_id)
    if err:
        return err
    if not _can_manage(user, listing):
        return jsonify({"ok": False, "message": "Forbidden"}), 403
    if listing.status == "SOLD":
        return jsonify({"ok": False, "message": "Sold listings cannot be edited"}), 400

    data = dict(request.get_json(silent=True) or {})
    if any(k in data for k in ("price", "minOffer", "pricingType")):
        data.setdefault("pricingType", listing.pricing_type)
        data.setdefault("price", listing.price)
        data.setdefault("minOffer", listing.min_offer)
    try:
        clean = validate_listing_payload(data, partial=True)
    except ValidationError as e:
        return validation_error_response(e)

    for key in ("title", "description", "category", "condition", "pricing_type", "price", "min_offer", "primary_image", "city", "province"):
        if key in clean:
            setattr(listing, key, clean[key])
    for key in ("images", "ai_enhanced_images", "original_images"):
        if key in clean:
            setattr(listing, key, clean[key])
    if "ai_generated_desc" in clean:
        listing.ai_generated_desc = clean["ai_generated_desc"]
    listing.updated_at = datetime.utcnow()
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("listing_update_failed listing_id=%s", listing_id)
        return jsonify({"ok": False, "message": "Failed to update listing"}), 500
    return jsonify({"ok": True, "listing": listing.to_dict(include_private=True)}), 200


@listings_bp.delete("/<int:listing_id>")
@login_required
def delete_listing(listing_id: int):
    user = current_user()
    listing, err = _get_listing_or_404(listing_id)
    if err:
        return err
    if not _can_manage(user, listing):
        return jsonify({"ok": False, "message": "Forbidden"}), 403
    if listing.status == "SOLD":
        return jsonify({"ok": False, "message": "Sold listings cannot be deleted"}), 400
    try:
        if listing.transaction is not None:
            if listing.transaction.status != "CANCELLED":
                return jsonify({"ok": False, "message": "Listings with an open transaction cannot be deleted"}), 400
            db.session.delete(listing.transaction)
        db.session.delete(listing)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("listing_delete_failed listing_id=%s", listing_id)
        return jsonify({"ok": False, "message": "Failed to delete listing"}), 500
    current_app.logger.info("listing_deleted listing_id=%s by=%s", listing_id, user.id)
    return jsonify({"ok": True, "message": "Listing deleted"}), 200


def _seller_transition(listing_id: int, *, from_status: str, to_status: str, verb: str):
    user = current_user()
    listing, err = _get_listing_or_404(listing_id)
    if err:
        return err
    if int(listing.seller_id) != int(user.id):
        return jsonify({"ok": False, "message": "Forbidden"}), 403
    if listing.status != from_status:
        return jsonify(
            {
                "ok": False,
                "message": f"Cannot {verb} listing with status: {listing.status}. Only {from_status} listings can be {verb}d.",
            }
        ), 400
    listing.status = to_status
    listing.updated_at = datetime.utcnow()
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("listing_%s_failed listing_id=%s", verb, listing_id)
        return jsonify({"ok": False, "message": f"Failed to {verb} listing"}), 500
    return jsonify({"ok": True, "listing": listing.to_dict(include_private=True)}), 200


@listings_bp.post("/<int:listing_id>/pause")
@login_required
def pause_listing(listing_id: int):
    return _seller_transition(listing_id, from_status="APPROVED", to_status="PAUSED", verb="pause")


@listings_bp.post("/<int:listing_id>/resume")
@login_required
def resume_listing(listing_id: int):
    return _seller_transition(listing_id, from_status="PAUSED", to_status="APPROVED", verb="resume")


@listings_bp.get("/options")
def listing_options():
    return jsonify(
        {
            "categories": list(CATEGORIES),
            "conditions": list(CONDITIONS),
            "pricingTypes": list(PRICING_TYPES),
            "provinces": list(SA_PROVINCES),
            "sortOptions": list(SORT_OPTIONS),
        }
    ), 200
