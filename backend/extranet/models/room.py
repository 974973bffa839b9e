"""Room type and rate plan models — the catalog side of pricing."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from extranet.database import Base

STD_CODE = "STD"


class RoomType(Base):
    __tablename__ = "room_types"
    __table_args__ = (
        UniqueConstraint("partner_id", "name", name="uq_room_types_partner_name"),
        CheckConstraint("base_price >= 0", name="ck_room_types_base_price"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    partner_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("partners.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    code: Mapped[str | None] = mapped_column(String(50))
    description: Mapped[str | None] = mapped_column(Text)
    max_guests: Mapped[int] = mapped_column(Integer, default=2)
    # Reference nightly rate; only used to seed a missing STD price
    base_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    partner: Mapped["Partner"] = relationship(back_populates="room_types")  # noqa: F821
    rate_plans: Mapped[list["RatePlan"]] = relationship(
        back_populates="room_type", cascade="all, delete-orphan", order_by="RatePlan.id"
    )


class RatePlan(Base):
    __tablename__ = "rate_plans"
    __table_args__ = (
        # One plan per code per room; in particular a single STD plan
        UniqueConstraint("room_type_id", "code", name="uq_rate_plans_room_code"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    partner_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("partners.id", ondelete="CASCADE"), nullable=False, index=True
    )
    room_type_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("room_types.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    code: Mapped[str | None] = mapped_column(String(20))
    kind: Mapped[str] = mapped_column(String(20), default="NONE")  # NONE | ABSOLUTE | PERCENT
    value: Mapped[Decimal] = mapped_column(Numeric(10, 4), default=Decimal("0"))
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    priority: Mapped[int] = mapped_column(Integer, default=100)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    room_type: Mapped["RoomType"] = relationship(back_populates="rate_plans")

    @property
    def is_std(self) -> bool:
        return (self.code or "").upper() == STD_CODE
