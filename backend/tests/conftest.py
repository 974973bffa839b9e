import os

# Must be set before extranet.config is imported
os.environ.setdefault("EXTRANET_WRITE_TOKEN", "test-write-token")

from datetime import date
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import Insert, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import extranet.models  # noqa: F401
from extranet.database import Base, get_db
from extranet.models.partner import Partner
from extranet.models.room import STD_CODE, RatePlan, RoomType

WRITE_TOKEN = os.environ["EXTRANET_WRITE_TOKEN"]

# Fixed "today" for service-level tests; the window is [Feb 27, Sep 1)
TODAY = date(2026, 3, 1)


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    from extranet.main import app

    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {WRITE_TOKEN}"}


async def make_partner(db: AsyncSession, name: str = "Seaside Inn") -> Partner:
    partner = Partner(name=name, email=f"{name.lower().replace(' ', '.')}@example.com")
    db.add(partner)
    await db.flush()
    return partner


async def make_room(
    db: AsyncSession,
    partner: Partner,
    name: str = "Deluxe King",
    base_price: str = "100.00",
    max_guests: int = 2,
    with_std: bool = True,
) -> RoomType:
    room = RoomType(
        partner_id=partner.id,
        name=name,
        base_price=Decimal(base_price),
        max_guests=max_guests,
    )
    db.add(room)
    await db.flush()
    if with_std:
        await make_plan(db, room, "Standard Rate", STD_CODE, priority=0)
    return room


async def make_plan(
    db: AsyncSession,
    room: RoomType,
    name: str,
    code: str | None,
    kind: str = "NONE",
    value: str = "0",
    active: bool = True,
    priority: int = 100,
) -> RatePlan:
    plan = RatePlan(
        partner_id=room.partner_id,
        room_type_id=room.id,
        name=name,
        code=code,
        kind=kind,
        value=Decimal(value),
        active=active,
        priority=priority,
    )
    db.add(plan)
    await db.flush()
    return plan


@pytest.fixture
async def hotel(db):
    """Partner with one room (base 100) and STD / BRKF (+15) / NRF (-10%) plans."""
    partner = await make_partner(db)
    room = await make_room(db, partner)
    brkf = await make_plan(db, room, "Bed & Breakfast", "BRKF", "ABSOLUTE", "15", priority=10)
    nrf = await make_plan(db, room, "Non-Refundable", "NRF", "PERCENT", "-10", priority=20)
    await db.commit()

    plans = {p.code: p.id for p in (await _plans(db, room.id))}
    return {
        "partner_id": partner.id,
        "room_id": room.id,
        "std_id": plans[STD_CODE],
        "brkf_id": brkf.id,
        "nrf_id": nrf.id,
    }


async def _plans(db: AsyncSession, room_id: int) -> list[RatePlan]:
    result = await db.execute(select(RatePlan).where(RatePlan.room_type_id == room_id))
    return list(result.scalars().all())


def fail_nth_insert(monkeypatch, n: int = 2):
    """Make the n-th INSERT executed on any AsyncSession raise OperationalError."""
    real_execute = AsyncSession.execute
    seen = {"inserts": 0}

    async def execute(self, statement, *args, **kwargs):
        if isinstance(statement, Insert):
            seen["inserts"] += 1
            if seen["inserts"] == n:
                raise OperationalError(str(statement), {}, Exception("disk I/O error"))
        return await real_execute(self, statement, *args, **kwargs)

    monkeypatch.setattr(AsyncSession, "execute", execute)
