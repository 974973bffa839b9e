"""Extranet room router — room types, raw ledgers, calendars and bulk writes."""

import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from extranet.database import get_db
from extranet.dependencies import get_partner_id, require_write_token
from extranet.models.ledger import RoomInventory, RoomPrice
from extranet.models.room import STD_CODE, RatePlan, RoomType
from extranet.schemas.rooms import BulkRequest, BulkResponse, RoomTypeCreate, RoomTypeResponse
from extranet.services.bulk_upsert import bulk_upsert_gateway, parse_iso_date
from extranet.services.calendar_assembler import calendar_assembler
from extranet.services.pricing_rules import date_range
from extranet.services.rate_catalog import rate_catalog

logger = logging.getLogger(__name__)

router = APIRouter()


def parse_range(start: str, end: str) -> tuple[date, date]:
    """Query-string date range; 400 unless both are strict YYYY-MM-DD."""
    try:
        return parse_iso_date(start), parse_iso_date(end)
    except ValueError:
        raise HTTPException(status_code=400, detail="start/end must be YYYY-MM-DD")


def no_store(response: Response) -> None:
    response.headers["Cache-Control"] = "no-store"


async def _get_room(room_id: int, db: AsyncSession) -> RoomType:
    result = await db.execute(select(RoomType).where(RoomType.id == room_id))
    room = result.scalar_one_or_none()
    if not room:
        raise HTTPException(status_code=404, detail="Room type not found")
    return room


async def _raw_inventory(db: AsyncSession, room_id: int, start: date, end: date) -> list[dict]:
    result = await db.execute(
        select(RoomInventory).where(
            RoomInventory.room_type_id == room_id,
            RoomInventory.date >= start,
            RoomInventory.date < end,
        )
    )
    rows = {row.date: row for row in result.scalars().all()}
    out = []
    for day in date_range(start, end):
        row = rows.get(day)
        # Nulls where no row exists; the UI shows those as blank
        out.append({
            "date": day.isoformat(),
            "roomsOpen": row.rooms_open if row else None,
            "minStay": row.min_stay if row else None,
            "isClosed": row.is_closed if row else None,
        })
    return out


async def _raw_prices(
    db: AsyncSession, room_id: int, plan_id: int | None, start: date, end: date
) -> list[dict]:
    rows = {}
    if plan_id is not None:
        result = await db.execute(
            select(RoomPrice.date, RoomPrice.price).where(
                RoomPrice.room_type_id == room_id,
                RoomPrice.rate_plan_id == plan_id,
                RoomPrice.date >= start,
                RoomPrice.date < end,
            )
        )
        rows = {day: price for day, price in result.all()}
    return [
        {
            "date": day.isoformat(),
            "ratePlanId": plan_id,
            "price": float(rows[day]) if rows.get(day) is not None else None,
        }
        for day in date_range(start, end)
    ]


async def _default_plan_id(db: AsyncSession, room: RoomType, plan_id: int | None) -> int | None:
    if plan_id is not None:
        return plan_id
    plan_set = await rate_catalog.get_plan_set(db, room.id, room.partner_id)
    return plan_set.std_plan_id


@router.get("", response_model=list[RoomTypeResponse])
async def list_rooms(
    response: Response,
    partner_id: int = Depends(get_partner_id),
    db: AsyncSession = Depends(get_db),
):
    """Room types of the calling partner."""
    no_store(response)
    result = await db.execute(
        select(RoomType).where(RoomType.partner_id == partner_id).order_by(RoomType.id.asc())
    )
    return [RoomTypeResponse.model_validate(rt) for rt in result.scalars().all()]


@router.post(
    "",
    status_code=201,
    response_model=RoomTypeResponse,
    dependencies=[Depends(require_write_token)],
)
async def create_room(
    req: RoomTypeCreate,
    partner_id: int = Depends(get_partner_id),
    db: AsyncSession = Depends(get_db),
):
    """Create a room type, with its STD plan unless asked not to."""
    room = RoomType(
        partner_id=partner_id,
        name=req.name.strip(),
        code=req.code,
        description=req.description,
        max_guests=req.max_guests,
        base_price=req.base_price,
    )
    db.add(room)
    try:
        await db.flush()
        if req.with_std_plan:
            db.add(RatePlan(
                partner_id=partner_id,
                room_type_id=room.id,
                name="Standard Rate",
                code=STD_CODE,
                kind="NONE",
                priority=0,
            ))
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Room type already exists or partner unknown")
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"[rooms:post] db error: {e}")
        raise HTTPException(status_code=500, detail="Create failed")

    await db.refresh(room)
    logger.info(f"Created room type {room.id} for partner {partner_id}")
    return RoomTypeResponse.model_validate(room)


@router.get("/{room_id}/rate-plans")
async def get_rate_plans(
    room_id: int,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    """STD plan id and active derived plans of a room type."""
    no_store(response)
    room = await _get_room(room_id, db)
    plan_set = await rate_catalog.get_plan_set(db, room.id, room.partner_id)
    return plan_set.to_dict()


@router.get("/{room_id}/inventory")
async def get_inventory(
    room_id: int,
    response: Response,
    start: str = Query(""),
    end: str = Query(""),
    db: AsyncSession = Depends(get_db),
):
    no_store(response)
    ds, de = parse_range(start, end)
    room = await _get_room(room_id, db)
    return await _raw_inventory(db, room.id, ds, de)


@router.get("/{room_id}/prices")
async def get_prices(
    room_id: int,
    response: Response,
    start: str = Query(""),
    end: str = Query(""),
    plan_id: int | None = Query(None, alias="planId"),
    db: AsyncSession = Depends(get_db),
):
    """Persisted prices of one plan (STD when none is named)."""
    no_store(response)
    ds, de = parse_range(start, end)
    room = await _get_room(room_id, db)
    plan_id = await _default_plan_id(db, room, plan_id)
    return await _raw_prices(db, room.id, plan_id, ds, de)


@router.get("/{room_id}/snapshot")
async def get_snapshot(
    room_id: int,
    response: Response,
    start: str = Query(""),
    end: str = Query(""),
    plan_id: int | None = Query(None, alias="planId"),
    db: AsyncSession = Depends(get_db),
):
    no_store(response)
    ds, de = parse_range(start, end)
    room = await _get_room(room_id, db)
    plan_id = await _default_plan_id(db, room, plan_id)
    return {
        "inventory": await _raw_inventory(db, room.id, ds, de),
        "prices": await _raw_prices(db, room.id, plan_id, ds, de),
    }


@router.get("/{room_id}/calendar")
async def get_calendar(
    room_id: int,
    response: Response,
    start: str = Query(""),
    end: str = Query(""),
    rate_plan_id: int | None = Query(None, alias="ratePlanId"),
    materialize: bool = True,
    db: AsyncSession = Depends(get_db),
):
    """Assembled calendar of one room type; derived prices are filled in."""
    no_store(response)
    ds, de = parse_range(start, end)
    room = await _get_room(room_id, db)
    partner_id = room.partner_id

    try:
        rooms = await calendar_assembler.assemble(
            db,
            partner_id,
            ds,
            de,
            rate_plan_id=rate_plan_id,
            room_type_ids=[room_id],
            materialize=materialize,
        )
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"[calendar] room={room_id} db error: {e}")
        raise HTTPException(status_code=500, detail="Calendar failed")

    return {"rooms": [r.to_dict() for r in rooms]}


@router.post(
    "/{room_id}/inventory/bulk",
    response_model=BulkResponse,
    dependencies=[Depends(require_write_token)],
)
async def bulk_inventory(
    room_id: int,
    req: BulkRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    """Upsert inventory; only the fields sent per item are changed."""
    no_store(response)
    try:
        result = await bulk_upsert_gateway.upsert_inventory(db, room_id, req.items)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SQLAlchemyError:
        raise HTTPException(status_code=500, detail="Inventory upsert failed")
    return result.to_dict()


@router.post(
    "/{room_id}/prices/bulk",
    response_model=BulkResponse,
    dependencies=[Depends(require_write_token)],
)
async def bulk_prices(
    room_id: int,
    req: BulkRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    """Upsert explicit prices; these replace seeded or derived values."""
    no_store(response)
    try:
        result = await bulk_upsert_gateway.upsert_prices(db, room_id, req.items)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SQLAlchemyError:
        raise HTTPException(status_code=500, detail="Price upsert failed")
    return result.to_dict()
