"""Derivation engine — computes derived rate-plan prices from STD and caches them.

Persistence is insert-only: a derived or seeded row is written with
ON CONFLICT DO NOTHING and is never touched again by this module. Only the
bulk price upsert may overwrite it.

The engine never commits; callers own the transaction.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from extranet.database import dialect_insert
from extranet.models.ledger import PRICE_SOURCE_DERIVED, PRICE_SOURCE_SEED, RoomPrice
from extranet.models.room import RoomType
from extranet.services.pricing_rules import (
    derive_price,
    round_price,
    to_decimal,
    utc_today,
    within_window,
)
from extranet.services.rate_catalog import PlanRef, RatePlanSet, to_rule

logger = logging.getLogger(__name__)

# Rows per INSERT statement (keeps SQLite under its bound-parameter limit)
INSERT_CHUNK = 500

PRICE_KEY = ["room_type_id", "rate_plan_id", "date"]


@dataclass(frozen=True)
class RoomRef:
    """Detached copy of the RoomType fields pricing needs."""

    id: int
    partner_id: int
    name: str
    base_price: Decimal | None

    @classmethod
    def from_model(cls, room: RoomType) -> "RoomRef":
        return cls(id=room.id, partner_id=room.partner_id, name=room.name, base_price=room.base_price)


class PriceIndex:
    """Known nightly prices of one room type, keyed by (rate_plan_id, date)."""

    def __init__(self):
        self._prices: dict[tuple[int, date], Decimal] = {}
        self._by_plan: dict[int, set[date]] = defaultdict(set)

    def get(self, plan_id: int | None, day: date) -> Decimal | None:
        if plan_id is None:
            return None
        return self._prices.get((plan_id, day))

    def has(self, plan_id: int, day: date) -> bool:
        return (plan_id, day) in self._prices

    def set(self, plan_id: int, day: date, price: Decimal) -> None:
        self._prices[(plan_id, day)] = price
        self._by_plan[plan_id].add(day)

    def plan_ids(self) -> list[int]:
        return sorted(self._by_plan)


def _price_row(room: RoomRef, plan_id: int, day: date, price: Decimal, source: str) -> dict:
    return {
        "partner_id": room.partner_id,
        "room_type_id": room.id,
        "rate_plan_id": plan_id,
        "date": day,
        "price": price,
        "source": source,
    }


class DerivationEngine:
    """Resolves derived prices on demand and materializes them insert-only."""

    def effective_std_price(
        self,
        room: RoomRef,
        std_plan_id: int | None,
        day: date,
        prices: PriceIndex,
    ) -> tuple[Decimal | None, bool]:
        """STD price for the day and whether it had to be seeded from base_price.

        Returns (None, False) when the room has no STD plan or no usable
        base price.
        """
        if std_plan_id is None:
            return None, False

        persisted = prices.get(std_plan_id, day)
        if persisted is not None:
            return persisted, False

        base = to_decimal(room.base_price)
        if base is None or base < 0:
            return None, False
        return round_price(base), True

    async def resolve_or_materialize(
        self,
        db: AsyncSession,
        room: RoomRef,
        plan: PlanRef,
        day: date,
        plan_set: RatePlanSet,
        prices: PriceIndex,
        today: date | None = None,
        persist: bool = True,
    ) -> Decimal | None:
        """Price for one (room, derived plan, day), persisting it when in-window.

        An existing row always wins. Otherwise the price is derived from the
        effective STD price; a missing STD row is seeded from base_price. Both
        writes are insert-only and happen only inside the rolling window.
        Ineligible plans (inactive, STD, other room) resolve to None.
        With persist=False the value is computed for display only.
        """
        if not self.is_eligible(room, plan, plan_set):
            return None

        existing = prices.get(plan.id, day)
        if existing is not None:
            return existing

        today = today or utc_today()
        persist = persist and within_window(day, today)

        std_price, seeded = self.effective_std_price(room, plan_set.std_plan_id, day, prices)
        if std_price is None:
            return None

        derived = derive_price(std_price, to_rule(plan))
        if derived is None:
            logger.warning(f"Non-finite derivation for room {room.id} plan {plan.id} on {day}")
            return None

        if not persist:
            return derived

        seed_rows = []
        if seeded:
            seed_rows.append(_price_row(room, plan_set.std_plan_id, day, std_price, PRICE_SOURCE_SEED))
            prices.set(plan_set.std_plan_id, day, std_price)
        await self._insert_only(db, seed_rows)
        await self._insert_only(db, [_price_row(room, plan.id, day, derived, PRICE_SOURCE_DERIVED)])

        # Another request may have won the insert; report what storage holds
        await self._reconcile(db, room, [plan.id, plan_set.std_plan_id], day, day, prices)
        stored = prices.get(plan.id, day)
        return stored if stored is not None else derived

    async def materialize_room(
        self,
        db: AsyncSession,
        room: RoomRef,
        plan_set: RatePlanSet,
        days: list[date],
        prices: PriceIndex,
        today: date | None = None,
    ) -> int:
        """Seed STD and fill every active derived plan for in-window days.

        Existing rows are never recomputed. Updates `prices` in place so the
        caller can render without a second read. Returns the number of rows
        attempted.
        """
        if not plan_set.can_derive:
            return 0

        today = today or utc_today()
        std_id = plan_set.std_plan_id
        in_window = [d for d in days if within_window(d, today)]
        if not in_window:
            return 0

        seed_rows: list[dict] = []
        derived_rows: list[dict] = []

        for day in in_window:
            std_price, seeded = self.effective_std_price(room, std_id, day, prices)
            if std_price is None:
                continue
            if seeded:
                seed_rows.append(_price_row(room, std_id, day, std_price, PRICE_SOURCE_SEED))
                prices.set(std_id, day, std_price)

            for rule in plan_set.derived_plans:
                if prices.has(rule.id, day):
                    continue
                derived = derive_price(std_price, rule)
                if derived is None:
                    continue
                derived_rows.append(_price_row(room, rule.id, day, derived, PRICE_SOURCE_DERIVED))
                prices.set(rule.id, day, derived)

        if not seed_rows and not derived_rows:
            return 0

        await self._insert_only(db, seed_rows)
        await self._insert_only(db, derived_rows)

        plan_ids = {std_id} | {r["rate_plan_id"] for r in derived_rows}
        await self._reconcile(db, room, list(plan_ids), in_window[0], in_window[-1], prices)

        logger.info(
            f"[derive] room={room.id} seeded={len(seed_rows)} derived={len(derived_rows)} "
            f"window={in_window[0]}..{in_window[-1]}"
        )
        return len(seed_rows) + len(derived_rows)

    @staticmethod
    def is_eligible(room: RoomRef, plan: PlanRef, plan_set: RatePlanSet) -> bool:
        return (
            plan.active
            and not plan.is_std
            and plan.id != plan_set.std_plan_id
            and plan.room_type_id == room.id
            and plan_set.can_derive
        )

    async def _insert_only(self, db: AsyncSession, rows: list[dict]) -> None:
        for i in range(0, len(rows), INSERT_CHUNK):
            chunk = rows[i:i + INSERT_CHUNK]
            stmt = dialect_insert(db, RoomPrice).values(chunk)
            await db.execute(stmt.on_conflict_do_nothing(index_elements=PRICE_KEY))

    async def _reconcile(
        self,
        db: AsyncSession,
        room: RoomRef,
        plan_ids: list[int],
        first: date,
        last: date,
        prices: PriceIndex,
    ) -> None:
        """Overwrite in-memory prices with the persisted rows for the range."""
        result = await db.execute(
            select(RoomPrice.rate_plan_id, RoomPrice.date, RoomPrice.price).where(
                RoomPrice.room_type_id == room.id,
                RoomPrice.rate_plan_id.in_(plan_ids),
                RoomPrice.date >= first,
                RoomPrice.date <= last,
            )
        )
        for plan_id, day, price in result.all():
            value = to_decimal(price)
            if value is not None:
                prices.set(plan_id, day, value)


derivation_engine = DerivationEngine()
