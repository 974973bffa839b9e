"""Catalog read model — partner-level search and details over assembled calendars."""

import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from extranet.config import settings
from extranet.models.partner import Partner
from extranet.models.room import RoomType
from extranet.services.calendar_assembler import RoomCalendar, calendar_assembler

logger = logging.getLogger(__name__)


def summarize(rooms: list[RoomCalendar], guests: int = 1) -> dict:
    """Availability and from-price rollup across every room's daily cells."""
    cells = [cell for room in rooms for cell in room.daily]
    available = sum(1 for c in cells if not c.closed and c.inventory >= guests)
    priced = [c.price for c in cells if c.price is not None]
    from_price = min(priced) if priced else None
    return {
        "fromPrice": float(from_price) if from_price is not None else None,
        "availableNights": available,
        "nightsTotal": len(cells),
    }


class CatalogService:
    """Guest-facing views of partner availability."""

    async def get_details(
        self,
        db: AsyncSession,
        property_id: int,
        start: date,
        end: date,
        rate_plan_id: int | None = None,
        guests: int = 1,
    ) -> dict:
        result = await db.execute(select(Partner).where(Partner.id == property_id))
        partner = result.scalar_one_or_none()
        if not partner:
            raise ValueError(f"Property {property_id} not found")
        partner_name = partner.name

        rooms = await calendar_assembler.assemble(
            db, property_id, start, end, rate_plan_id=rate_plan_id, materialize=True
        )

        return {
            "propertyId": property_id,
            "name": partner_name,
            "currency": settings.default_currency,
            "rooms": [r.to_dict() for r in rooms],
            **summarize(rooms, guests),
        }

    async def search(
        self,
        db: AsyncSession,
        start: date,
        end: date,
        rate_plan_id: int | None = None,
        guests: int = 2,
    ) -> list[dict]:
        """Every partner with sellable nights in [start, end) for the party size."""
        result = await db.execute(
            select(Partner.id, Partner.name)
            .where(Partner.id.in_(select(RoomType.partner_id).where(RoomType.active == True)))  # noqa: E712
            .order_by(Partner.id.asc())
        )
        partners = result.all()

        properties = []
        for partner_id, name in partners:
            # Display only; persistence happens on the details read
            rooms = await calendar_assembler.assemble_timeboxed(
                db, partner_id, start, end, rate_plan_id=rate_plan_id, materialize=False
            )
            if not rooms:
                continue

            rollup = summarize(rooms, guests)
            if rollup["availableNights"] <= 0:
                continue

            properties.append({
                "propertyId": partner_id,
                "name": name,
                "currency": settings.default_currency,
                **rollup,
                "detail": {"rooms": [r.to_dict() for r in rooms]},
            })

        logger.info(
            f"[catalog] search {start}..{end} plan={rate_plan_id} guests={guests}: "
            f"{len(properties)}/{len(partners)} properties available"
        )
        return properties


catalog_service = CatalogService()
