"""Per-date ledgers: inventory and nightly prices."""

from datetime import date as date_type, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from extranet.database import Base

PRICE_SOURCE_EXPLICIT = "explicit"
PRICE_SOURCE_DERIVED = "derived"
PRICE_SOURCE_SEED = "seed"


class RoomInventory(Base):
    __tablename__ = "room_inventory"
    __table_args__ = (
        UniqueConstraint("partner_id", "room_type_id", "date", name="uq_room_inventory_partner_room_date"),
        CheckConstraint("rooms_open >= 0", name="ck_room_inventory_rooms_open"),
        CheckConstraint("min_stay IS NULL OR min_stay >= 1", name="ck_room_inventory_min_stay"),
        Index("idx_room_inventory_room_date", "room_type_id", "date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    partner_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("partners.id", ondelete="CASCADE"), nullable=False
    )
    room_type_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("room_types.id", ondelete="CASCADE"), nullable=False
    )
    date: Mapped[date_type] = mapped_column(Date, nullable=False)
    rooms_open: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_closed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    min_stay: Mapped[int | None] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class RoomPrice(Base):
    __tablename__ = "room_prices"
    __table_args__ = (
        UniqueConstraint("room_type_id", "rate_plan_id", "date", name="uq_room_prices_room_plan_date"),
        CheckConstraint("price >= 0", name="ck_room_prices_price"),
        Index("idx_room_prices_partner_date", "partner_id", "date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    partner_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("partners.id", ondelete="CASCADE"), nullable=False
    )
    room_type_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("room_types.id", ondelete="CASCADE"), nullable=False
    )
    rate_plan_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("rate_plans.id", ondelete="CASCADE"), nullable=False
    )
    date: Mapped[date_type] = mapped_column(Date, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    source: Mapped[str] = mapped_column(String(20), nullable=False, default=PRICE_SOURCE_EXPLICIT)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
