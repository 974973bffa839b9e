"""Calendar assembler: per-date availability and price matrix for room types.

Merges the inventory and price ledgers for a half-open date range and fills
missing derived prices through the derivation engine. With materialize=True
this read path writes (insert-only) and commits once per room.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from extranet.config import settings
from extranet.models.ledger import RoomInventory, RoomPrice
from extranet.models.room import RoomType
from extranet.services.derivation_engine import PriceIndex, RoomRef, derivation_engine
from extranet.services.pricing_rules import date_range, to_decimal, utc_today
from extranet.services.rate_catalog import PlanRef, RatePlanSet, rate_catalog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InventoryRecord:
    open: int
    closed: bool
    min_stay: int | None


# A day without an inventory row is never sellable
CLOSED_DAY = InventoryRecord(open=0, closed=True, min_stay=None)


@dataclass
class DailyCell:
    date: date
    inventory: int
    closed: bool
    min_stay: int | None
    price: Decimal | None
    currency: str | None

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "inventory": self.inventory,
            "closed": self.closed,
            "minStay": self.min_stay,
            "price": float(self.price) if self.price is not None else None,
            "currency": self.currency,
        }


@dataclass
class RoomCalendar:
    room_id: int
    room_name: str
    daily: list[DailyCell]
    daily_by_plan_id: dict[int, list[DailyCell]] = field(default_factory=dict)
    max_guests: int | None = None

    @property
    def has_signal(self) -> bool:
        return any(c.inventory > 0 or c.price is not None for c in self.daily)

    def to_dict(self) -> dict:
        out = {
            "roomId": self.room_id,
            "roomName": self.room_name,
            "maxGuests": self.max_guests,
            "daily": [c.to_dict() for c in self.daily],
        }
        if self.daily_by_plan_id:
            out["dailyByPlanId"] = {
                str(pid): [c.to_dict() for c in cells]
                for pid, cells in self.daily_by_plan_id.items()
            }
        return out


@dataclass
class _CalendarContext:
    """Everything read up front for one assemble() call."""

    days: list[date]
    plan_sets: dict[int, RatePlanSet]
    priority: dict[int, list[int]]
    inventory: dict[tuple[int, date], InventoryRecord]
    prices: dict[int, PriceIndex]
    requested_plan: PlanRef | None
    rate_plan_id: int | None
    materialize: bool
    currency: str | None
    today: date


def to_inventory_record(row: RoomInventory) -> InventoryRecord:
    rooms_open = 0 if row.is_closed else max(0, row.rooms_open or 0)
    return InventoryRecord(
        open=rooms_open,
        closed=bool(row.is_closed) or rooms_open <= 0,
        min_stay=row.min_stay,
    )


class CalendarAssembler:
    """Builds per-room daily calendars from the ledgers."""

    async def assemble(
        self,
        db: AsyncSession,
        partner_id: int,
        start: date,
        end: date,
        rate_plan_id: int | None = None,
        room_type_ids: list[int] | None = None,
        materialize: bool = True,
        timeout: float | None = None,
        today: date | None = None,
    ) -> list[RoomCalendar]:
        """Calendars for a partner's active room types over [start, end).

        rate_plan_id pins every room to one plan (null where it cannot be
        resolved). Without it, each day takes the first persisted price in
        plan-priority order, then the room's base price.

        With a timeout, each room gets that many seconds; a room that runs
        out is rolled back and left out of the result.
        """
        days = date_range(start, end)
        if not days:
            return []

        rooms = await self.load_rooms(db, partner_id, room_type_ids)
        if not rooms:
            return []

        ctx = await self._load_context(
            db, partner_id, rooms, days, rate_plan_id, materialize, today or utc_today()
        )

        calendars: list[RoomCalendar] = []
        for room, max_guests in rooms:
            work = self._assemble_room(db, room, ctx, max_guests)
            try:
                if timeout is None:
                    calendar = await work
                else:
                    calendar = await asyncio.wait_for(work, timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning(f"[calendar] room {room.id} exceeded {timeout}s budget, omitted")
                await db.rollback()
                continue

            if calendar.has_signal:
                calendars.append(calendar)
            else:
                logger.debug(f"[calendar] room {room.id} has no inventory or price signal, dropped")

        return calendars

    async def assemble_timeboxed(
        self,
        db: AsyncSession,
        partner_id: int,
        start: date,
        end: date,
        **kwargs,
    ) -> list[RoomCalendar]:
        """assemble() with the configured per-room budget."""
        return await self.assemble(
            db, partner_id, start, end, timeout=settings.rooms_timebox_seconds, **kwargs
        )

    async def load_rooms(
        self,
        db: AsyncSession,
        partner_id: int,
        room_type_ids: list[int] | None = None,
    ) -> list[tuple[RoomRef, int]]:
        query = select(RoomType).where(
            RoomType.partner_id == partner_id,
            RoomType.active == True,  # noqa: E712
        )
        if room_type_ids is not None:
            query = query.where(RoomType.id.in_(room_type_ids))
        result = await db.execute(query.order_by(RoomType.id.asc()))
        return [(RoomRef.from_model(rt), rt.max_guests) for rt in result.scalars().all()]

    async def load_inventory(
        self,
        db: AsyncSession,
        room_type_ids: list[int],
        start: date,
        end: date,
    ) -> dict[tuple[int, date], InventoryRecord]:
        result = await db.execute(
            select(RoomInventory).where(
                RoomInventory.room_type_id.in_(room_type_ids),
                RoomInventory.date >= start,
                RoomInventory.date < end,
            )
        )
        return {
            (row.room_type_id, row.date): to_inventory_record(row)
            for row in result.scalars().all()
        }

    async def load_prices(
        self,
        db: AsyncSession,
        room_type_ids: list[int],
        start: date,
        end: date,
    ) -> dict[int, PriceIndex]:
        prices = {rt_id: PriceIndex() for rt_id in room_type_ids}
        result = await db.execute(
            select(RoomPrice.room_type_id, RoomPrice.rate_plan_id, RoomPrice.date, RoomPrice.price).where(
                RoomPrice.room_type_id.in_(room_type_ids),
                RoomPrice.date >= start,
                RoomPrice.date < end,
            )
        )
        for rt_id, plan_id, day, price in result.all():
            value = to_decimal(price)
            if value is not None:
                prices[rt_id].set(plan_id, day, value)
        return prices

    async def _load_context(
        self,
        db: AsyncSession,
        partner_id: int,
        rooms: list[tuple[RoomRef, int]],
        days: list[date],
        rate_plan_id: int | None,
        materialize: bool,
        today: date,
    ) -> _CalendarContext:
        room_ids = [room.id for room, _ in rooms]
        start, end = days[0], days[-1] + timedelta(days=1)

        requested_plan = None
        if rate_plan_id is not None:
            requested_plan = await rate_catalog.get_plan(db, rate_plan_id)

        return _CalendarContext(
            days=days,
            plan_sets=await rate_catalog.load_plan_sets(db, partner_id, room_ids),
            priority=await rate_catalog.plan_priority(db, room_ids),
            inventory=await self.load_inventory(db, room_ids, start, end),
            prices=await self.load_prices(db, room_ids, start, end),
            requested_plan=requested_plan,
            rate_plan_id=rate_plan_id,
            materialize=materialize,
            currency=settings.default_currency,
            today=today,
        )

    async def _assemble_room(
        self,
        db: AsyncSession,
        room: RoomRef,
        ctx: _CalendarContext,
        max_guests: int | None = None,
    ) -> RoomCalendar:
        plan_set = ctx.plan_sets.get(room.id) or RatePlanSet(room_type_id=room.id)
        prices = ctx.prices.setdefault(room.id, PriceIndex())

        if ctx.materialize:
            written = await derivation_engine.materialize_room(
                db, room, plan_set, ctx.days, prices, today=ctx.today
            )
            if written:
                await db.commit()

        daily: list[DailyCell] = []
        for day in ctx.days:
            price = await self._resolve_price(db, room, day, plan_set, prices, ctx)
            daily.append(self._cell(room.id, day, price, ctx))

        if ctx.materialize and ctx.rate_plan_id is not None:
            # resolve_or_materialize may have written single rows
            await db.commit()

        by_plan: dict[int, list[DailyCell]] = {}
        for plan_id in prices.plan_ids():
            cells = [self._cell(room.id, day, prices.get(plan_id, day), ctx) for day in ctx.days]
            if any(c.price is not None for c in cells):
                by_plan[plan_id] = cells

        return RoomCalendar(
            room_id=room.id,
            room_name=room.name,
            daily=daily,
            daily_by_plan_id=by_plan,
            max_guests=max_guests,
        )

    async def _resolve_price(
        self,
        db: AsyncSession,
        room: RoomRef,
        day: date,
        plan_set: RatePlanSet,
        prices: PriceIndex,
        ctx: _CalendarContext,
    ) -> Decimal | None:
        if ctx.rate_plan_id is not None:
            price = prices.get(ctx.rate_plan_id, day)
            if price is None and ctx.requested_plan is not None:
                price = await derivation_engine.resolve_or_materialize(
                    db,
                    room,
                    ctx.requested_plan,
                    day,
                    plan_set,
                    prices,
                    today=ctx.today,
                    persist=ctx.materialize,
                )
            # No base price fallback for an explicitly requested plan
            return price

        for plan_id in ctx.priority.get(room.id, []):
            price = prices.get(plan_id, day)
            if price is not None:
                return price
        return to_decimal(room.base_price)

    @staticmethod
    def _cell(room_id: int, day: date, price: Decimal | None, ctx: _CalendarContext) -> DailyCell:
        rec = ctx.inventory.get((room_id, day), CLOSED_DAY)
        return DailyCell(
            date=day,
            inventory=rec.open,
            closed=rec.closed,
            min_stay=rec.min_stay,
            price=price,
            currency=ctx.currency,
        )


calendar_assembler = CalendarAssembler()
