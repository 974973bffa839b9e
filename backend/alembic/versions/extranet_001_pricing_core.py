"""Extranet pricing core: partners, room types, rate plans, inventory and price ledgers

Revision ID: extranet_001
Revises:
Create Date: 2026-10-17
"""
from alembic import op
import sqlalchemy as sa

revision = "extranet_001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # --- partners ---
    op.create_table(
        "partners",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- room_types ---
    op.create_table(
        "room_types",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("partner_id", sa.Integer, sa.ForeignKey("partners.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("code", sa.String(50)),
        sa.Column("description", sa.Text),
        sa.Column("max_guests", sa.Integer, server_default="2"),
        sa.Column("base_price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("active", sa.Boolean, server_default="true"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("partner_id", "name", name="uq_room_types_partner_name"),
        sa.CheckConstraint("base_price >= 0", name="ck_room_types_base_price"),
    )
    op.create_index("ix_room_types_partner_id", "room_types", ["partner_id"])

    # --- rate_plans ---
    op.create_table(
        "rate_plans",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("partner_id", sa.Integer, sa.ForeignKey("partners.id", ondelete="CASCADE"), nullable=False),
        sa.Column("room_type_id", sa.Integer, sa.ForeignKey("room_types.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("code", sa.String(20)),
        sa.Column("kind", sa.String(20), server_default="NONE"),
        sa.Column("value", sa.Numeric(10, 4), server_default="0"),
        sa.Column("active", sa.Boolean, server_default="true"),
        sa.Column("priority", sa.Integer, server_default="100"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("room_type_id", "code", name="uq_rate_plans_room_code"),
    )
    op.create_index("ix_rate_plans_partner_id", "rate_plans", ["partner_id"])
    op.create_index("ix_rate_plans_room_type_id", "rate_plans", ["room_type_id"])

    # --- room_inventory ---
    op.create_table(
        "room_inventory",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("partner_id", sa.Integer, sa.ForeignKey("partners.id", ondelete="CASCADE"), nullable=False),
        sa.Column("room_type_id", sa.Integer, sa.ForeignKey("room_types.id", ondelete="CASCADE"), nullable=False),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("rooms_open", sa.Integer, nullable=False, server_default="0"),
        sa.Column("is_closed", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("min_stay", sa.Integer),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("partner_id", "room_type_id", "date", name="uq_room_inventory_partner_room_date"),
        sa.CheckConstraint("rooms_open >= 0", name="ck_room_inventory_rooms_open"),
        sa.CheckConstraint("min_stay IS NULL OR min_stay >= 1", name="ck_room_inventory_min_stay"),
    )
    op.create_index("idx_room_inventory_room_date", "room_inventory", ["room_type_id", "date"])

    # --- room_prices ---
    op.create_table(
        "room_prices",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("partner_id", sa.Integer, sa.ForeignKey("partners.id", ondelete="CASCADE"), nullable=False),
        sa.Column("room_type_id", sa.Integer, sa.ForeignKey("room_types.id", ondelete="CASCADE"), nullable=False),
        sa.Column("rate_plan_id", sa.Integer, sa.ForeignKey("rate_plans.id", ondelete="CASCADE"), nullable=False),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("source", sa.String(20), nullable=False, server_default="explicit"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("room_type_id", "rate_plan_id", "date", name="uq_room_prices_room_plan_date"),
        sa.CheckConstraint("price >= 0", name="ck_room_prices_price"),
    )
    op.create_index("idx_room_prices_partner_date", "room_prices", ["partner_id", "date"])


def downgrade() -> None:
    op.drop_index("idx_room_prices_partner_date")
    op.drop_table("room_prices")
    op.drop_index("idx_room_inventory_room_date")
    op.drop_table("room_inventory")
    op.drop_index("ix_rate_plans_room_type_id")
    op.drop_index("ix_rate_plans_partner_id")
    op.drop_table("rate_plans")
    op.drop_index("ix_room_types_partner_id")
    op.drop_table("room_types")
    op.drop_table("partners")
