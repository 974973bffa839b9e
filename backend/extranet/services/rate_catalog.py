"""Rate catalog — resolves STD and derived rate plans for room types."""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from extranet.models.room import STD_CODE, RatePlan
from extranet.services.pricing_rules import PlanRule, normalize_kind, to_decimal

logger = logging.getLogger(__name__)

STD_NAME_PREFIX = "standard"


@dataclass
class RatePlanSet:
    """STD plan id plus the active derived plans of one room type."""

    room_type_id: int
    std_plan_id: int | None = None
    derived_plans: list[PlanRule] = field(default_factory=list)

    @property
    def can_derive(self) -> bool:
        return self.std_plan_id is not None

    def to_dict(self) -> dict:
        return {
            "roomTypeId": self.room_type_id,
            "stdPlanId": self.std_plan_id,
            "derivedPlans": [p.to_dict() for p in self.derived_plans],
        }


@dataclass(frozen=True)
class PlanRef:
    """Detached copy of a RatePlan row, safe to use after a rollback."""

    id: int
    room_type_id: int
    code: str | None
    kind: str
    value: Decimal
    active: bool

    @classmethod
    def from_model(cls, plan: RatePlan) -> "PlanRef":
        return cls(
            id=plan.id,
            room_type_id=plan.room_type_id,
            code=plan.code,
            kind=plan.kind,
            value=plan.value,
            active=bool(plan.active),
        )

    @property
    def is_std(self) -> bool:
        return (self.code or "").upper() == STD_CODE


def to_rule(plan: RatePlan | PlanRef) -> PlanRule:
    return PlanRule(
        id=plan.id,
        kind=normalize_kind(plan.kind),
        value=to_decimal(plan.value) or Decimal("0"),
        code=(plan.code or "").upper() or None,
    )


def pick_std_plan(plans: list[RatePlan]) -> RatePlan | None:
    """Code match first, then a "Standard..." name; lowest id wins either way."""
    ordered = sorted(plans, key=lambda p: p.id)
    for plan in ordered:
        if plan.is_std:
            return plan
    for plan in ordered:
        if (plan.name or "").strip().lower().startswith(STD_NAME_PREFIX):
            return plan
    return None


def build_plan_set(room_type_id: int, plans: list[RatePlan]) -> RatePlanSet:
    std = pick_std_plan(plans)
    std_id = std.id if std else None

    derived = [
        p for p in plans
        if p.active and p.id != std_id and not p.is_std
    ]
    derived.sort(key=lambda p: (p.priority, p.id))

    return RatePlanSet(
        room_type_id=room_type_id,
        std_plan_id=std_id,
        derived_plans=[to_rule(p) for p in derived],
    )


class RateCatalog:
    """Looks up rate plans and their derivation rules."""

    async def get_plan_set(
        self,
        db: AsyncSession,
        room_type_id: int,
        partner_id: int,
    ) -> RatePlanSet:
        """STD plan id and active derived plans for one room type."""
        sets = await self.load_plan_sets(db, partner_id, [room_type_id])
        return sets[room_type_id]

    async def load_plan_sets(
        self,
        db: AsyncSession,
        partner_id: int,
        room_type_ids: list[int],
    ) -> dict[int, RatePlanSet]:
        """Batched form of get_plan_set; every requested room gets an entry."""
        by_room: dict[int, list[RatePlan]] = defaultdict(list)
        if room_type_ids:
            result = await db.execute(
                select(RatePlan)
                .where(
                    RatePlan.partner_id == partner_id,
                    RatePlan.room_type_id.in_(room_type_ids),
                )
                .order_by(RatePlan.id.asc())
            )
            for plan in result.scalars().all():
                by_room[plan.room_type_id].append(plan)

        sets = {rt_id: build_plan_set(rt_id, by_room.get(rt_id, [])) for rt_id in room_type_ids}

        missing_std = [rt_id for rt_id, s in sets.items() if not s.can_derive]
        if missing_std:
            logger.debug(f"No STD plan for room types {missing_std} (partner {partner_id})")
        return sets

    async def get_plan(self, db: AsyncSession, plan_id: int) -> PlanRef | None:
        result = await db.execute(select(RatePlan).where(RatePlan.id == plan_id))
        plan = result.scalar_one_or_none()
        return PlanRef.from_model(plan) if plan else None

    async def plan_priority(
        self,
        db: AsyncSession,
        room_type_ids: list[int],
    ) -> dict[int, list[int]]:
        """Plan ids per room ordered by (priority, id), inactive plans included.

        This is the fallback order used when a caller asks for a calendar
        without naming a rate plan.
        """
        order: dict[int, list[int]] = {rt_id: [] for rt_id in room_type_ids}
        if not room_type_ids:
            return order

        result = await db.execute(
            select(RatePlan.id, RatePlan.room_type_id)
            .where(RatePlan.room_type_id.in_(room_type_ids))
            .order_by(RatePlan.room_type_id.asc(), RatePlan.priority.asc(), RatePlan.id.asc())
        )
        for plan_id, rt_id in result.all():
            order[rt_id].append(plan_id)
        return order


rate_catalog = RateCatalog()
