"""Bulk upsert gateway for the inventory and price ledgers.

Each batch is one transaction. Items that fail validation are dropped and
not counted; a storage error rolls the whole batch back.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date as date_type
from decimal import Decimal

from pydantic import BaseModel, Field, StrictBool, StrictInt, ValidationError, field_validator
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from extranet.database import dialect_insert
from extranet.models.ledger import PRICE_SOURCE_EXPLICIT, RoomInventory, RoomPrice
from extranet.models.room import RatePlan, RoomType
from extranet.services.pricing_rules import round_price

logger = logging.getLogger(__name__)

ISO_DATE_RE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")

INVENTORY_KEY = ["partner_id", "room_type_id", "date"]
PRICE_KEY = ["room_type_id", "rate_plan_id", "date"]


def parse_iso_date(value) -> date_type:
    """Strict YYYY-MM-DD that must also be a real calendar date."""
    if isinstance(value, date_type):
        return value
    if not isinstance(value, str) or not ISO_DATE_RE.fullmatch(value):
        raise ValueError("date must be YYYY-MM-DD")
    return date_type.fromisoformat(value)


class InventoryItem(BaseModel):
    date: date_type
    rooms_open: StrictInt | None = Field(default=None, alias="roomsOpen", ge=0, le=9999)
    min_stay: StrictInt | None = Field(default=None, alias="minStay", ge=1, le=365)
    is_closed: StrictBool | None = Field(default=None, alias="isClosed")

    model_config = {"populate_by_name": True}

    @field_validator("date", mode="before")
    @classmethod
    def check_date(cls, v):
        return parse_iso_date(v)

    @field_validator("rooms_open", "is_closed")
    @classmethod
    def not_explicit_null(cls, v, info):
        # min_stay may be cleared with null; the other two are NOT NULL columns
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v

    def update_values(self) -> dict:
        """Column values for the fields the caller actually sent."""
        return {
            name: getattr(self, name)
            for name in ("rooms_open", "min_stay", "is_closed")
            if name in self.model_fields_set
        }


class PriceItem(BaseModel):
    date: date_type
    price: Decimal = Field(ge=0, le=Decimal("99999999.99"))
    rate_plan_id: StrictInt = Field(alias="ratePlanId", gt=0)

    model_config = {"populate_by_name": True}

    @field_validator("date", mode="before")
    @classmethod
    def check_date(cls, v):
        return parse_iso_date(v)

    @field_validator("price")
    @classmethod
    def to_cents(cls, v):
        return round_price(v)


@dataclass
class BulkResult:
    ok: bool
    upserted: int

    def to_dict(self) -> dict:
        return {"ok": self.ok, "upserted": self.upserted}


def validate_items(model: type[BaseModel], items: list) -> list:
    valid = []
    for raw in items or []:
        try:
            valid.append(model.model_validate(raw))
        except ValidationError as e:
            logger.debug(f"Skipping invalid {model.__name__}: {e.error_count()} error(s)")
    return valid


class BulkUpsertGateway:
    """Writes partner-supplied inventory and prices."""

    async def _get_room(self, db: AsyncSession, room_type_id: int) -> RoomType:
        result = await db.execute(select(RoomType).where(RoomType.id == room_type_id))
        room = result.scalar_one_or_none()
        if not room:
            raise ValueError(f"Room type {room_type_id} not found")
        return room

    async def upsert_inventory(
        self,
        db: AsyncSession,
        room_type_id: int,
        items: list,
    ) -> BulkResult:
        """Upsert inventory rows, writing only the fields present per item.

        A new row takes rooms_open=0, is_closed=false, min_stay=null for
        anything the item omits.
        """
        room = await self._get_room(db, room_type_id)
        partner_id = room.partner_id
        valid = validate_items(InventoryItem, items)

        logger.info(
            f"[inventory:bulk] room={room_type_id} partner={partner_id} "
            f"received={len(items or [])} valid={len(valid)}"
        )
        if not valid:
            return BulkResult(ok=True, upserted=0)

        try:
            for item in valid:
                present = item.update_values()
                values = {
                    "partner_id": partner_id,
                    "room_type_id": room_type_id,
                    "date": item.date,
                    "rooms_open": 0,
                    "is_closed": False,
                    "min_stay": None,
                    **present,
                }
                stmt = dialect_insert(db, RoomInventory).values(**values)
                if present:
                    stmt = stmt.on_conflict_do_update(
                        index_elements=INVENTORY_KEY,
                        set_={**{k: stmt.excluded[k] for k in present}, "updated_at": func.now()},
                    )
                else:
                    stmt = stmt.on_conflict_do_nothing(index_elements=INVENTORY_KEY)
                await db.execute(stmt)
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"[inventory:bulk] room={room_type_id} failed: {e}")
            raise

        return BulkResult(ok=True, upserted=len(valid))

    async def upsert_prices(
        self,
        db: AsyncSession,
        room_type_id: int,
        items: list,
    ) -> BulkResult:
        """Upsert explicit prices. Overwrites seeded and derived rows."""
        room = await self._get_room(db, room_type_id)
        partner_id = room.partner_id

        result = await db.execute(select(RatePlan.id).where(RatePlan.room_type_id == room_type_id))
        plan_ids = set(result.scalars().all())

        valid = [
            item for item in validate_items(PriceItem, items)
            if item.rate_plan_id in plan_ids
        ]

        logger.info(
            f"[prices:bulk] room={room_type_id} partner={partner_id} "
            f"received={len(items or [])} valid={len(valid)}"
        )
        if not valid:
            return BulkResult(ok=True, upserted=0)

        try:
            for item in valid:
                stmt = dialect_insert(db, RoomPrice).values(
                    partner_id=partner_id,
                    room_type_id=room_type_id,
                    rate_plan_id=item.rate_plan_id,
                    date=item.date,
                    price=item.price,
                    source=PRICE_SOURCE_EXPLICIT,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=PRICE_KEY,
                    set_={
                        "price": stmt.excluded.price,
                        "source": PRICE_SOURCE_EXPLICIT,
                        "updated_at": func.now(),
                    },
                )
                await db.execute(stmt)
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"[prices:bulk] room={room_type_id} failed: {e}")
            raise

        return BulkResult(ok=True, upserted=len(valid))


bulk_upsert_gateway = BulkUpsertGateway()
