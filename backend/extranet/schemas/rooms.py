from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field


class RoomTypeCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    code: str | None = Field(default=None, max_length=50)
    description: str | None = None
    max_guests: int = Field(default=2, ge=1, le=50)
    base_price: Decimal = Field(default=Decimal("0"), ge=0, le=Decimal("99999999.99"))
    # Also create the STD plan the derived plans price from
    with_std_plan: bool = True


class RoomTypeResponse(BaseModel):
    id: int
    partner_id: int
    name: str
    code: str | None
    description: str | None
    max_guests: int
    base_price: float
    active: bool
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class BulkRequest(BaseModel):
    # Items stay raw here; the gateway validates and skips them one by one
    items: list[Any] = Field(default_factory=list)


class BulkResponse(BaseModel):
    ok: bool
    upserted: int
