"""Admin dashboard aggregates: headline counters and chart series."""
from datetime import datetime, timedelta

from flask import Blueprint, jsonify, request
from sqlalchemy import func

from app.extensions import db
from app.models import CATEGORIES, STATUSES, Listing, User
from app.models.transaction import COMMISSION_RATE
from app.utils.auth_guard import admin_required


admin_dashboard_bp = Blueprint("admin_dashboard_bp", __name__, url_prefix="/api/admin/dashboard")

MAX_SERIES_DAYS = 365


def _days_arg(default: int = 30) -> int:
    try:
        days = int(request.args.get("days") or default)
    except (TypeError, ValueError):
        days = default
    return min(max(1, days), MAX_SERIES_DAYS)


def _window_start(days: int, now: datetime | None = None) -> datetime:
    now = now or datetime.utcnow()
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight - timedelta(days=days)


def _counts_by(column) -> dict:
    rows = db.session.query(column, func.count(Listing.id)).group_by(column).all()
    return {key: int(count) for key, count in rows}


def sales_series(days: int, now: datetime | None = None) -> list[dict]:
    start = _window_start(days, now)
    buckets = {
        (start + timedelta(days=i)).date().isoformat(): {"sales": 0, "revenue": 0.0, "commission": 0.0}
        for i in range(days)
    }
    sold = (
        Listing.query.with_entities(Listing.sold_at, Listing.price)
        .filter(Listing.status == "SOLD", Listing.sold_at >= start)
        .all()
    )
    for sold_at, price in sold:
        bucket = buckets.get(sold_at.date().isoformat()) if sold_at else None
        if bucket is None:
            continue
        bucket["sales"] += 1
        if price:
            bucket["revenue"] += float(price)
            bucket["commission"] += float(price) * COMMISSION_RATE
    return [
        {
            "date": key,
            "sales": data["sales"],
            "revenue": round(data["revenue"], 2),
            "commission": round(data["commission"], 2),
        }
        for key, data in sorted(buckets.items())
    ]


def user_growth_series(days: int, now: datetime | None = None) -> list[dict]:
    start = _window_start(days, now)
    total = int(User.query.filter(User.created_at < start).count())
    per_day: dict[str, int] = {}
    for (created_at,) in User.query.with_entities(User.created_at).filter(User.created_at >= start).all():
        key = created_at.date().isoformat()
        per_day[key] = per_day.get(key, 0) + 1

    points = []
    for i in range(days):
        key = (start + timedelta(days=i)).date().isoformat()
        new_users = per_day.get(key, 0)
        total += new_users
        points.append({"date": key, "newUsers": new_users, "totalUsers": total})
    return points


@admin_dashboard_bp.get("/statistics")
@admin_required
def statistics():
    now = datetime.utcnow()
    by_status = {status: 0 for status in STATUSES}
    by_status.update({k: v for k, v in _counts_by(Listing.status).items() if k in by_status})
    by_category = {category: 0 for category in CATEGORIES}
    by_category.update({k: v for k, v in _counts_by(Listing.category).items() if k in by_category})

    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    week_sales = Listing.query.filter(Listing.status == "SOLD", Listing.sold_at >= now - timedelta(days=7)).count()
    month_prices = (
        Listing.query.with_entities(Listing.price)
        .filter(Listing.status == "SOLD", Listing.sold_at >= now - timedelta(days=30), Listing.price.isnot(None))
        .all()
    )
    month_revenue = sum(float(price) * COMMISSION_RATE for (price,) in month_prices)

    return jsonify(
        {
            "pendingListings": by_status["PENDING"],
            "approvedListings": by_status["APPROVED"],
            "rejectedListings": by_status["REJECTED"],
            "pausedListings": by_status["PAUSED"],
            "soldListings": by_status["SOLD"],
            "totalListings": sum(by_status.values()),
            "totalUsers": int(User.query.count()),
            "activeUsers": int(User.query.filter(User.email_verified.isnot(None)).count()),
            "todaySignups": int(User.query.filter(User.created_at >= today).count()),
            "weekSales": int(week_sales),
            "monthRevenue": round(month_revenue, 2),
            "listingsByCategory": by_category,
            "listingsByStatus": by_status,
        }
    ), 200


@admin_dashboard_bp.get("/sales")
@admin_required
def sales():
    return jsonify({"series": sales_series(_days_arg())}), 200


@admin_dashboard_bp.get("/category-distribution")
@admin_required
def category_distribution():
    rows = (
        db.session.query(Listing.category, func.count(Listing.id))
        .filter(Listing.status.in_(("APPROVED", "SOLD")))
        .group_by(Listing.category)
        .all()
    )
    total = sum(int(count) for _, count in rows)
    return jsonify(
        {
            "distribution": [
                {
                    "category": category,
                    "count": int(count),
                    "percentage": (int(count) / total * 100) if total else 0,
                }
                for category, count in rows
            ]
        }
    ), 200


@admin_dashboard_bp.get("/user-growth")
@admin_required
def user_growth():
    return jsonify({"series": user_growth_series(_days_arg())}), 200


@admin_dashboard_bp.get("/status-distribution")
@admin_required
def status_distribution():
    counts = _counts_by(Listing.status)
    return jsonify({"distribution": [{"status": s, "count": int(c)} for s, c in counts.items()]}), 200
