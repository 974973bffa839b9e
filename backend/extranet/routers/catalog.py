"""Catalog router — guest-facing property search and details."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from extranet.database import get_db
from extranet.routers.rooms import no_store, parse_range
from extranet.services.catalog_service import catalog_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/search")
async def search(
    response: Response,
    start: str = Query(""),
    end: str = Query(""),
    rate_plan_id: int | None = Query(None, alias="ratePlanId"),
    guests: int = Query(2),
    db: AsyncSession = Depends(get_db),
):
    """Properties with at least one night open for `guests` in [start, end)."""
    no_store(response)
    ds, de = parse_range(start, end)
    try:
        properties = await catalog_service.search(
            db, ds, de, rate_plan_id=rate_plan_id, guests=max(1, guests)
        )
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"[catalog] search failed: {e}")
        raise HTTPException(status_code=500, detail="Search failed")
    return {"properties": properties}


@router.get("/details")
async def details(
    response: Response,
    property_id: int = Query(..., alias="propertyId"),
    start: str = Query(""),
    end: str = Query(""),
    rate_plan_id: int | None = Query(None, alias="ratePlanId"),
    guests: int = Query(1),
    db: AsyncSession = Depends(get_db),
):
    no_store(response)
    ds, de = parse_range(start, end)
    try:
        return await catalog_service.get_details(
            db, property_id, ds, de, rate_plan_id=rate_plan_id, guests=max(1, guests)
        )
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"[catalog] details for property {property_id} failed: {e}")
        raise HTTPException(status_code=500, detail="Details failed")
