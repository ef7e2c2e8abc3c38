"""marketplace initial schema

Revision ID: b1c2d3e4f5a6
Revises:
Create Date: 2026-10-17 00:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "b1c2d3e4f5a6"
down_revision = None
branch_labels = None
depends_on = None


def _table_exists(bind, table_name: str) -> bool:
    try:
        return sa.inspect(bind).has_table(table_name)
    except Exception:
        return False


def _create_users(bind):
    if _table_exists(bind, "users"):
        return
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False, server_default=""),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("city", sa.String(length=100), nullable=True),
        sa.Column("province", sa.String(length=40), nullable=True),
        sa.Column("profile_image", sa.String(length=1024), nullable=True),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="BUYER"),
        sa.Column("rating", sa.Float(), nullable=False, server_default="0"),
        sa.Column("review_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("email_verified", sa.DateTime(), nullable=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("failed_login_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lockout_until", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"], unique=False)
    op.create_index("ix_users_created_at", "users", ["created_at"], unique=False)


def _create_categories(bind):
    if _table_exists(bind, "categories"):
        return
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("slug", sa.String(length=140), nullable=False),
        sa.Column("parent_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=True),
        sa.Column("icon", sa.String(length=64), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("item_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("ai_generated", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_categories_slug", "categories", ["slug"], unique=True)
    op.create_index("ix_categories_parent_id", "categories", ["parent_id"], unique=False)


def _create_listings(bind):
    if _table_exists(bind, "listings"):
        return
    op.create_table(
        "listings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("seller_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("category", sa.String(length=32), nullable=False),
        sa.Column("subcategory_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=True),
        sa.Column("condition", sa.String(length=16), nullable=False, server_default="GOOD"),
        sa.Column("pricing_type", sa.String(length=16), nullable=False, server_default="FIXED"),
        sa.Column("price", sa.Float(), nullable=True),
        sa.Column("min_offer", sa.Float(), nullable=True),
        sa.Column("images_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("primary_image", sa.String(length=1024), nullable=False, server_default=""),
        sa.Column("ai_enhanced_images_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("original_images_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("ai_generated_desc", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("city", sa.String(length=100), nullable=False, server_default=""),
        sa.Column("province", sa.String(length=40), nullable=False, server_default=""),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="PENDING"),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("views", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("sold_at", sa.DateTime(), nullable=True),
    )
    for column in ("seller_id", "category", "subcategory_id", "status", "created_at", "sold_at"):
        op.create_index(f"ix_listings_{column}", "listings", [column], unique=False)


def _create_offers_and_transactions(bind):
    if not _table_exists(bind, "offers"):
        op.create_table(
            "offers",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("listing_id", sa.Integer(), sa.ForeignKey("listings.id"), nullable=False),
            sa.Column("buyer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("amount", sa.Float(), nullable=False),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="PENDING"),
            sa.Column("counter_amount", sa.Float(), nullable=True),
            sa.Column("message", sa.String(length=500), nullable=True),
            sa.Column("expires_at", sa.DateTime(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
        )
        for column in ("listing_id", "buyer_id", "status"):
            op.create_index(f"ix_offers_{column}", "offers", [column], unique=False)

    if not _table_exists(bind, "transactions"):
        op.create_table(
            "transactions",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("listing_id", sa.Integer(), sa.ForeignKey("listings.id"), nullable=False),
            sa.Column("buyer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("seller_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("amount", sa.Float(), nullable=False),
            sa.Column("commission", sa.Float(), nullable=False),
            sa.Column("net_amount", sa.Float(), nullable=False),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="PENDING"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("completed_at", sa.DateTime(), nullable=True),
        )
        op.create_index("ix_transactions_listing_id", "transactions", ["listing_id"], unique=True)
        for column in ("buyer_id", "seller_id", "status"):
            op.create_index(f"ix_transactions_{column}", "transactions", [column], unique=False)

    if not _table_exists(bind, "reviews"):
        op.create_table(
            "reviews",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("transaction_id", sa.Integer(), sa.ForeignKey("transactions.id"), nullable=False),
            sa.Column("reviewer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("reviewee_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("rating", sa.Integer(), nullable=False),
            sa.Column("comment", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_reviews_transaction_id", "reviews", ["transaction_id"], unique=True)
        op.create_index("ix_reviews_reviewer_id", "reviews", ["reviewer_id"], unique=False)
        op.create_index("ix_reviews_reviewee_id", "reviews", ["reviewee_id"], unique=False)


def _create_audit_and_tokens(bind):
    if not _table_exists(bind, "admin_audit_logs"):
        op.create_table(
            "admin_audit_logs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("action", sa.String(length=40), nullable=False),
            sa.Column("target_type", sa.String(length=20), nullable=False),
            sa.Column("target_id", sa.String(length=120), nullable=False),
            sa.Column("details_json", sa.Text(), nullable=True),
            sa.Column("ip_address", sa.String(length=64), nullable=True),
            sa.Column("user_agent", sa.String(length=255), nullable=True),
            sa.Column("request_id", sa.String(length=80), nullable=True),
        )
        for column in ("created_at", "user_id", "action", "target_type", "target_id"):
            op.create_index(f"ix_admin_audit_logs_{column}", "admin_audit_logs", [column], unique=False)

    for table in ("verification_tokens", "password_reset_tokens"):
        if _table_exists(bind, table):
            continue
        op.create_table(
            table,
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("token_hash", sa.String(length=128), nullable=False),
            sa.Column("expires_at", sa.DateTime(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        op.create_index(f"ix_{table}_user_id", table, ["user_id"], unique=False)
        op.create_index(f"ix_{table}_token_hash", table, ["token_hash"], unique=True)
        op.create_index(f"ix_{table}_expires_at", table, ["expires_at"], unique=False)


def upgrade():
    bind = op.get_bind()
    _create_users(bind)
    _create_categories(bind)
    _create_listings(bind)
    _create_offers_and_transactions(bind)
    _create_audit_and_tokens(bind)


def downgrade():
    bind = op.get_bind()
    for table in (
        "password_reset_tokens",
        "verification_tokens",
        "admin_audit_logs",
        "reviews",
        "transactions",
        "offers",
        "listings",
        "categories",
        "users",
    ):
        if _table_exists(bind, table):
            op.drop_table(table)
