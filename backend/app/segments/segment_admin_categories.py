from datetime import datetime

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import or_

from app.extensions import db
from app.models import Category, Listing
from app.services.ai.category_matcher import recommend_categories
from app.utils.audit_log import create_audit_log
from app.utils.auth_guard import admin_required, current_user
from app.utils.validation import SLUG_RE, ValidationError, slugify, validation_error_response


admin_categories_bp = Blueprint("admin_categories_bp", __name__, url_prefix="/api/admin/categories")
categories_bp = Blueprint("categories_bp", __name__, url_prefix="/api/categories")


def _bool_arg(name: str) -> bool | None:
    raw = (request.args.get(name) or "").strip().lower()
    if raw in ("1", "true", "yes"):
        return True
    if raw in ("0", "false", "no"):
        return False
    return None


def _listing_count(category: Category) -> int:
    return int(category.listings.order_by(None).count())


def _category_payload(category: Category) -> dict:
    payload = category.to_dict(include_counts=True)
    payload["listing_count"] = _listing_count(category)
    payload["parent"] = (
        {"id": int(category.parent.id), "name": category.parent.name, "slug": category.parent.slug}
        if category.parent is not None
        else None
    )
    payload["children"] = [
        {"id": int(c.id), "name": c.name, "slug": c.slug, "item_count": int(c.item_count or 0)}
        for c in sorted(category.children or [], key=lambda c: c.name or "")
    ]
    return payload


def _is_descendant(candidate: Category, ancestor_id: int) -> bool:
    seen = set()
    node = candidate
    while node is not None and node.id not in seen:
        if int(node.id) == int(ancestor_id):
            return True
        seen.add(node.id)
        node = node.parent
    return False


def _clean_category(data: dict, *, partial: bool) -> dict:
    errors: dict[str, str] = {}
    out: dict = {}

    if "name" in data or not partial:
        name = str(data.get("name") or "").strip()
        if len(name) < 2:
            errors["name"] = "Name must be at least 2 characters"
        elif len(name) > 120:
            errors["name"] = "Name must not exceed 120 characters"
        out["name"] = name
    if "slug" in data or not partial:
        slug = str(data.get("slug") or "").strip() or slugify(out.get("name", ""))
        if len(slug) < 2:
            errors["slug"] = "Slug must be at least 2 characters"
        elif not SLUG_RE.match(slug):
            errors["slug"] = "Slug must contain only lowercase letters, numbers, and hyphens"
        out["slug"] = slug
    if "icon" in data:
        out["icon"] = str(data.get("icon") or "").strip() or None
    if "description" in data:
        description = str(data.get("description") or "").strip()
        if description and len(description) < 10:
            errors["description"] = "Description must be at least 10 characters"
        out["description"] = description or None
    parent_raw = data.get("parentId", data.get("parent_id", ...))
    if parent_raw is not ...:
        if parent_raw in (None, ""):
            out["parent_id"] = None
        else:
            try:
                out["parent_id"] = int(parent_raw)
            except (TypeError, ValueError):
                errors["parentId"] = "Parent id must be an integer"
    active = data.get("isActive", data.get("is_active"))
    if active is not None:
        out["is_active"] = bool(active)
    if "aiGenerated" in data:
        out["ai_generated"] = bool(data.get("aiGenerated"))
    if errors:
        raise ValidationError(errors)
    return out


def _recount(category: Category) -> None:
    category.item_count = _listing_count(category)


@admin_categories_bp.get("")
@admin_required
def list_categories():
    q = Category.query
    search = (request.args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(or_(Category.name.ilike(like), Category.description.ilike(like), Category.slug.ilike(like)))
    active = _bool_arg("isActive")
    if active is not None:
        q = q.filter(Category.is_active.is_(active))
    ai_generated = _bool_arg("aiGenerated")
    if ai_generated is not None:
        q = q.filter(Category.ai_generated.is_(ai_generated))
    parent = (request.args.get("parentId") or "").strip()
    if parent == "root":
        q = q.filter(Category.parent_id.is_(None))
    elif parent.isdigit():
        q = q.filter(Category.parent_id == int(parent))
    rows = q.order_by(Category.parent_id.asc(), Category.name.asc()).all()
    return jsonify({"categories": [_category_payload(c) for c in rows]}), 200


@admin_categories_bp.get("/analytics")
@admin_required
def category_analytics():
    rows = Category.query.all()
    total = len(rows)
    active = sum(1 for c in rows if c.is_active)
    ai_generated = sum(1 for c in rows if c.ai_generated)
    roots = sum(1 for c in rows if c.parent_id is None)
    items = sum(int(c.item_count or 0) for c in rows)
    distribution = sorted(
        ({"categoryName": c.name, "itemCount": int(c.item_count or 0)} for c in rows),
        key=lambda d: d["itemCount"],
        reverse=True,
    )[:10]
    return jsonify(
        {
            "total": total,
            "active": active,
            "inactive": total - active,
            "aiGenerated": ai_generated,
            "manual": total - ai_generated,
            "withZeroItems": sum(1 for c in rows if not c.item_count),
            "rootCategories": roots,
            "subcategories": total - roots,
            "avgItemsPerCategory": round(items / total, 1) if total else 0,
            "distribution": distribution,
        }
    ), 200


@admin_categories_bp.get("/<int:category_id>")
@admin_required
def get_category(category_id: int):
    category = db.session.get(Category, int(category_id))
    if category is None:
        return jsonify({"ok": False, "message": "Category not found"}), 404
    return jsonify({"ok": True, "category": _category_payload(category)}), 200


@admin_categories_bp.post("")
@admin_required
def create_category():
    admin = current_user()
    data = request.get_json(silent=True) or {}
    try:
        clean = _clean_category(data, partial=False)
    except ValidationError as e:
        return validation_error_response(e)

    if Category.query.filter_by(slug=clean["slug"]).first() is not None:
        return jsonify({"ok": False, "message": "A category with this slug already exists"}), 409
    parent_id = clean.get("parent_id")
    if parent_id is not None and db.session.get(Category, parent_id) is None:
        return jsonify({"ok": False, "message": "Parent category not found"}), 404

    category = Category(**clean)
    try:
        db.session.add(category)
        db.session.flush()
        create_audit_log(
            user_id=int(admin.id),
            action="CREATE_CATEGORY",
            target_type="CATEGORY",
            target_id=category.id,
            details={"name": category.name, "slug": category.slug, "parentId": category.parent_id},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("category_create_failed")
        return jsonify({"ok": False, "message": "Failed to create category"}), 500
    return jsonify({"ok": True, "category": _category_payload(category)}), 201


@admin_categories_bp.route("/<int:category_id>", methods=["PATCH", "PUT"])
@admin_required
def update_category(category_id: int):
    admin = current_user()
    category = db.session.get(Category, int(category_id))
    if category is None:
        return jsonify({"ok": False, "message": "Category not found"}), 404
    data = request.get_json(silent=True) or {}
    try:
        clean = _clean_category(data, partial=True)
    except ValidationError as e:
        return validation_error_response(e)

    slug = clean.get("slug")
    if slug and slug != category.slug:
        if Category.query.filter(Category.slug == slug, Category.id != category.id).first() is not None:
            return jsonify({"ok": False, "message": "A category with this slug already exists"}), 409
    if "parent_id" in clean and clean["parent_id"] is not None:
        if int(clean["parent_id"]) == int(category.id):
            return jsonify({"ok": False, "message": "A category cannot be its own parent"}), 400
        parent = db.session.get(Category, int(clean["parent_id"]))
        if parent is None:
            return jsonify({"ok": False, "message": "Parent category not found"}), 404
        if _is_descendant(parent, int(category.id)):
            return jsonify(
                {"ok": False, "message": "Cannot set a descendant category as parent (circular hierarchy)"}
            ), 400

    changes = {}
    for key, value in clean.items():
        if getattr(category, key) != value:
            changes[key] = {"from": getattr(category, key), "to": value}
            setattr(category, key, value)
    try:
        create_audit_log(
            user_id=int(admin.id),
            action="UPDATE_CATEGORY",
            target_type="CATEGORY",
            target_id=category.id,
            details={"name": category.name, "changes": changes},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("category_update_failed category_id=%s", category_id)
        return jsonify({"ok": False, "message": "Failed to update category"}), 500
    return jsonify({"ok": True, "category": _category_payload(category)}), 200


@admin_categories_bp.post("/<int:category_id>/toggle")
@admin_required
def toggle_category(category_id: int):
    admin = current_user()
    category = db.session.get(Category, int(category_id))
    if category is None:
        return jsonify({"ok": False, "message": "Category not found"}), 404
    category.is_active = not bool(category.is_active)
    try:
        create_audit_log(
            user_id=int(admin.id),
            action="TOGGLE_CATEGORY_STATUS",
            target_type="CATEGORY",
            target_id=category.id,
            details={"name": category.name, "isActive": bool(category.is_active)},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("category_toggle_failed category_id=%s", category_id)
        return jsonify({"ok": False, "message": "Failed to toggle category status"}), 500
    return jsonify({"ok": True, "category": _category_payload(category)}), 200


@admin_categories_bp.post("/merge")
@admin_required
def merge_categories():
    admin = current_user()
    data = request.get_json(silent=True) or {}
    try:
        source_id = int(data.get("sourceId"))
        target_id = int(data.get("targetId"))
    except (TypeError, ValueError):
        return jsonify({"ok": False, "message": "sourceId and targetId are required"}), 400
    if source_id == target_id:
        return jsonify({"ok": False, "message": "Cannot merge a category with itself"}), 400

    source = db.session.get(Category, source_id)
    target = db.session.get(Category, target_id)
    if source is None or target is None:
        return jsonify({"ok": False, "message": "One or both categories not found"}), 404
    if _is_descendant(target, source_id):
        return jsonify({"ok": False, "message": "Cannot merge a category into one of its subcategories"}), 400

    try:
        moved_listings = (
            Listing.query.filter(Listing.subcategory_id == source_id)
            .update({Listing.subcategory_id: target_id}, synchronize_session=False)
        )
        moved_children = (
            Category.query.filter(Category.parent_id == source_id)
            .update({Category.parent_id: target_id}, synchronize_session=False)
        )
        source.is_active = False
        source.item_count = 0
        source.updated_at = datetime.utcnow()
        db.session.flush()
        db.session.expire(target)
        _recount(target)
        create_audit_log(
            user_id=int(admin.id),
            action="MERGE_CATEGORIES",
            target_type="CATEGORY",
            target_id=target.id,
            details={
                "sourceId": source_id,
                "sourceName": source.name,
                "targetName": target.name,
                "movedListings": int(moved_listings or 0),
                "movedChildren": int(moved_children or 0),
            },
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("category_merge_failed source=%s target=%s", source_id, target_id)
        return jsonify({"ok": False, "message": "Failed to merge categories"}), 500
    current_app.logger.info("category_merged source=%s target=%s", source_id, target_id)
    return jsonify(
        {
            "ok": True,
            "movedListings": int(moved_listings or 0),
            "movedChildren": int(moved_children or 0),
            "category": _category_payload(target),
        }
    ), 200


@admin_categories_bp.delete("/<int:category_id>")
@admin_required
def delete_category(category_id: int):
    admin = current_user()
    category = db.session.get(Category, int(category_id))
    if category is None:
        return jsonify({"ok": False, "message": "Category not found"}), 404
    listings = _listing_count(category)
    if listings:
        return jsonify(
            {"ok": False, "message": f"Cannot delete category with {listings} listings. Merge or reassign listings first."}
        ), 400
    children = len(category.children or [])
    if children:
        return jsonify(
            {
                "ok": False,
                "message": f"Cannot delete category with {children} subcategories. Delete or reassign subcategories first.",
            }
        ), 400
    try:
        create_audit_log(
            user_id=int(admin.id),
            action="DELETE_CATEGORY",
            target_type="CATEGORY",
            target_id=category.id,
            details={"name": category.name, "slug": category.slug},
        )
        db.session.delete(category)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("category_delete_failed category_id=%s", category_id)
        return jsonify({"ok": False, "message": "Failed to delete category"}), 500
    return jsonify({"ok": True, "message": "Category deleted"}), 200


@categories_bp.get("")
def category_tree():
    rows = Category.query.filter(Category.is_active.is_(True)).order_by(Category.name.asc()).all()
    by_parent: dict = {}
    for row in rows:
        by_parent.setdefault(row.parent_id, []).append(row)

    def build(parent_id):
        return [
            {**c.to_dict(), "children": build(c.id)}
            for c in by_parent.get(parent_id, [])
        ]

    return jsonify({"categories": build(None)}), 200


@categories_bp.post("/match")
def match_categories():
    data = request.get_json(silent=True) or {}
    names = data.get("suggestions") or data.get("names") or []
    if not isinstance(names, list) or not names:
        return jsonify({"ok": False, "message": "suggestions must be a non-empty list"}), 400
    names = [str(n).strip() for n in names if str(n or "").strip()][:20]
    existing = [c.name for c in Category.query.filter(Category.is_active.is_(True)).all()]
    return jsonify({"ok": True, **recommend_categories(names, existing)}), 200
