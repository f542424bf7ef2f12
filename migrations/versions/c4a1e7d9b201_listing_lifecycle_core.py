"""listing lifecycle core tables

Revision ID: c4a1e7d9b201
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "c4a1e7d9b201"
down_revision = None
branch_labels = None
depends_on = None


def _table_exists(bind, table_name: str) -> bool:
    try:
        return sa.inspect(bind).has_table(table_name)
    except Exception:
        return False


def _create_users(bind) -> None:
    if _table_exists(bind, "users"):
        return
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False, server_default=""),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("role", sa.String(length=32), nullable=False, server_default="buyer"),
        sa.Column("showroom_id", sa.Integer(), nullable=True),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_phone", "users", ["phone"], unique=True)
    op.create_index("ix_users_role", "users", ["role"], unique=False)
    op.create_index("ix_users_showroom_id", "users", ["showroom_id"], unique=False)


def _create_promotion_packages(bind) -> None:
    if _table_exists(bind, "promotion_packages"):
        return
    op.create_table(
        "promotion_packages",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("plan", sa.String(length=32), nullable=False, server_default="basic"),
        sa.Column("price", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=8), nullable=False, server_default="QAR"),
        sa.Column("duration_days", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("feature_duration_days", sa.Integer(), nullable=True),
        sa.Column("is_featured", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )


def _create_car_listings(bind) -> None:
    if _table_exists(bind, "car_listings"):
        return
    op.create_table(
        "car_listings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("seller_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("showroom_id", sa.Integer(), nullable=True),
        sa.Column("title", sa.String(length=160), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=8), nullable=False, server_default="QAR"),
        sa.Column("year", sa.Integer(), nullable=True),
        sa.Column("make", sa.String(length=80), nullable=True),
        sa.Column("model", sa.String(length=80), nullable=True),
        sa.Column("mileage", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="draft"),
        sa.Column("rejection_reason", sa.String(length=500), nullable=True),
        sa.Column("is_featured", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("feature_start", sa.DateTime(), nullable=True),
        sa.Column("feature_end", sa.DateTime(), nullable=True),
        sa.Column("promotion_package_id", sa.Integer(), sa.ForeignKey("promotion_packages.id"), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.Column("updated_by", sa.Integer(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
    )
    for col in ("seller_id", "showroom_id", "year", "make", "model", "status", "is_featured", "promotion_package_id", "deleted_at"):
        op.create_index(f"ix_car_listings_{col}", "car_listings", [col], unique=False)


def _create_listing_transitions(bind) -> None:
    if _table_exists(bind, "listing_transitions"):
        return
    op.create_table(
        "listing_transitions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("listing_id", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(length=32), nullable=False),
        sa.Column("from_status", sa.String(length=16), nullable=False, server_default=""),
        sa.Column("to_status", sa.String(length=16), nullable=False),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("actor_role", sa.String(length=32), nullable=False, server_default=""),
        sa.Column("idempotency_key", sa.String(length=160), nullable=True),
        sa.Column("reason", sa.String(length=500), nullable=True),
        sa.Column("side_effects_json", sa.Text(), nullable=True),
        sa.Column("is_featured", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("feature_start", sa.DateTime(), nullable=True),
        sa.Column("feature_end", sa.DateTime(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("listing_id", "idempotency_key", name="uq_listing_transition_listing_key"),
    )
    op.create_index("ix_listing_transitions_listing_id", "listing_transitions", ["listing_id"], unique=False)
    op.create_index("ix_listing_transitions_actor_id", "listing_transitions", ["actor_id"], unique=False)


def _create_listing_events(bind) -> None:
    if _table_exists(bind, "listing_events"):
        return
    op.create_table(
        "listing_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("event_type", sa.String(length=80), nullable=False),
        sa.Column("listing_id", sa.Integer(), nullable=True),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("actor_role", sa.String(length=32), nullable=True),
        sa.Column("request_id", sa.String(length=80), nullable=True),
        sa.Column("severity", sa.String(length=16), nullable=False, server_default="INFO"),
        sa.Column("metadata_json", sa.Text(), nullable=True),
    )
    for col in ("created_at", "event_type", "listing_id", "actor_user_id", "request_id", "severity"):
        op.create_index(f"ix_listing_events_{col}", "listing_events", [col], unique=False)


def upgrade():
    bind = op.get_bind()
    _create_users(bind)
    _create_promotion_packages(bind)
    _create_car_listings(bind)
    _create_listing_transitions(bind)
    _create_listing_events(bind)


def downgrade():
    bind = op.get_bind()
    for table_name in ("listing_events", "listing_transitions", "car_listings", "promotion_packages", "users"):
        if _table_exists(bind, table_name):
            op.drop_table(table_name)
