"""Seed script for the extranet development database."""

import asyncio
from datetime import timedelta
from decimal import Decimal

from sqlalchemy import select

from extranet.database import async_session_factory
from extranet.models.ledger import RoomInventory
from extranet.models.partner import Partner
from extranet.models.room import STD_CODE, RatePlan, RoomType
from extranet.services.pricing_rules import KIND_ABSOLUTE, KIND_NONE, KIND_PERCENT, date_range, utc_today

# ── Partner / rooms ───────────────────────────────────────────────────────────

PARTNER = {"name": "Harbour View Hotel", "email": "demo@harbourview.example"}

ROOMS = [
    {"name": "Deluxe King", "code": "DLX-K", "max_guests": 2, "base_price": Decimal("100.00")},
    {"name": "Family Suite", "code": "FAM-S", "max_guests": 4, "base_price": Decimal("180.00")},
]

# ── Rate plans (per room) ─────────────────────────────────────────────────────

PLANS = [
    {"name": "Standard Rate", "code": STD_CODE, "kind": KIND_NONE, "value": Decimal("0"), "priority": 0},
    {"name": "Bed & Breakfast", "code": "BRKF", "kind": KIND_ABSOLUTE, "value": Decimal("15"), "priority": 10},
    {"name": "Non-Refundable", "code": "NRF", "kind": KIND_PERCENT, "value": Decimal("-10"), "priority": 20},
]

INVENTORY_DAYS = 30
ROOMS_OPEN = 5


async def seed(session_factory=async_session_factory):
    async with session_factory() as db:
        # Check if already seeded
        result = await db.execute(select(Partner).where(Partner.email == PARTNER["email"]))
        if result.scalar_one_or_none():
            print("Database already seeded. Skipping.")
            return

        partner = Partner(**PARTNER)
        db.add(partner)
        await db.flush()  # get partner.id

        today = utc_today()
        for room_data in ROOMS:
            room = RoomType(partner_id=partner.id, **room_data)
            db.add(room)
            await db.flush()

            for plan in PLANS:
                db.add(RatePlan(partner_id=partner.id, room_type_id=room.id, **plan))

            for day in date_range(today, today + timedelta(days=INVENTORY_DAYS)):
                db.add(RoomInventory(
                    partner_id=partner.id,
                    room_type_id=room.id,
                    date=day,
                    rooms_open=ROOMS_OPEN,
                    is_closed=False,
                ))

        print(
            f"Created partner {partner.name} (id={partner.id}) with {len(ROOMS)} rooms, "
            f"{len(PLANS)} plans each, {INVENTORY_DAYS} days of inventory"
        )

        await db.commit()
        print("Seed complete.")


if __name__ == "__main__":
    asyncio.run(seed())
