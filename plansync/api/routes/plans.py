"""Read-only plan endpoints (search, stats, retailer listing)."""

import logging
from datetime import datetime
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy import String, cast, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from plansync.api.deps import get_database, get_registry
from plansync.db.models import Plan
from plansync.ingest.retailers import RetailerRegistry
from plansync.ingest.schemas import ELECTRICITY_FUEL_TYPES

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/energy-plans", tags=["plans"])

SEARCH_LIMIT = 100

# Distributor codes as used by the UI, mapped to the names retailers publish
DISTRIBUTOR_NAMES = {
    "AUSNET": "AusNet",
    "CITIPOWER": "Citipower",
    "JEMENA": "Jemena",
    "POWERCOR": "Powercor",
    "UNITED": "United",
    "AUSGRID": "Ausgrid",
    "ENDEAVOUR": "Endeavour",
    "ESSENTIAL": "Essential",
    "ENERGEX": "Energex",
    "ERGON": "Ergon",
    "SAPN": "Power Networks",
}


class CamelModel(BaseModel):
    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class TariffPeriodResponse(CamelModel):
    """Response model for one time-of-use block."""
    type: str
    display_name: str
    rate: float
    time_windows: Optional[List[Any]] = None
    sequence_order: int


class PlanResponse(CamelModel):
    """Response model for a plan."""
    id: str
    retailer_id: str
    retailer_name: str
    plan_name: str
    state: str
    fuel_type: str
    tariff_type: str
    plan_type: str
    distributors: Optional[List[str]] = None
    is_eligible: bool = True
    daily_supply_charge: float
    single_rate: Optional[float] = None
    peak_rate: Optional[float] = None
    peak_times: Optional[List[Any]] = None
    shoulder_rate: Optional[float] = None
    shoulder_times: Optional[List[Any]] = None
    off_peak_rate: Optional[float] = None
    off_peak_times: Optional[List[Any]] = None
    feed_in_tariff: Optional[float] = None
    has_battery_incentive: bool
    battery_incentive_value: Optional[float] = None
    has_vpp: bool
    vpp_credit_per_year: Optional[float] = None
    pay_on_time_discount: Optional[float] = None
    direct_debit_discount: Optional[float] = None
    connection_fee: Optional[float] = None
    disconnection_fee: Optional[float] = None
    late_payment_fee: Optional[float] = None
    paper_bill_fee: Optional[float] = None
    contract_length: Optional[int] = None
    exit_fees: Optional[float] = None
    green_power: bool
    carbon_neutral: bool
    is_ev_friendly: bool
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None
    last_updated: Optional[datetime] = None
    tariff_periods: List[TariffPeriodResponse] = []


class SearchResponse(CamelModel):
    success: bool = True
    count: int
    total_count: int
    filters: dict[str, Any]
    plans: List[PlanResponse]


class RetailerCount(BaseModel):
    retailer: str
    count: int


class StatsResponse(CamelModel):
    success: bool = True
    total: int
    by_retailer: List[RetailerCount]


class RetailerResponse(CamelModel):
    name: str
    slug: str
    base_uri: str
    priority: int
    market_share: Optional[float] = None


def is_eligible(plan: Plan, postcode: Optional[str]) -> bool:
    """Postcode eligibility from the plan's included / excluded lists."""
    if not postcode:
        return True
    included = plan.included_postcodes or []
    excluded = plan.excluded_postcodes or []
    if included and postcode not in included:
        return False
    return postcode not in excluded


@router.get("/search", response_model=SearchResponse)
async def search_plans(
    postcode: Optional[str] = None,
    distributor_code: Optional[str] = Query(None, alias="distributorCode"),
    has_battery: bool = Query(False, alias="hasBattery"),
    has_vpp: bool = Query(False, alias="hasVPP"),
    min_feed_in: Optional[float] = Query(None, alias="minFeedIn"),
    tariff_type: Optional[str] = Query(None, alias="tariffType"),
    state: Optional[str] = None,
    db: AsyncSession = Depends(get_database),
):
    """Search active electricity plans."""
    query = (
        select(Plan)
        .options(selectinload(Plan.tariff_periods))
        .where(Plan.is_active.is_(True), Plan.fuel_type.in_(ELECTRICITY_FUEL_TYPES))
    )

    if state:
        query = query.where(Plan.state == state.upper())
    if distributor_code:
        term = DISTRIBUTOR_NAMES.get(distributor_code.upper(), distributor_code)
        query = query.where(cast(Plan.distributors, String).ilike(f"%{term}%"))
    if has_battery:
        query = query.where(Plan.has_battery_incentive.is_(True))
    if has_vpp:
        query = query.where(Plan.has_vpp.is_(True))
    if tariff_type:
        query = query.where(Plan.tariff_type == tariff_type.upper())
    if min_feed_in is not None:
        query = query.where(Plan.feed_in_tariff >= min_feed_in)

    query = query.order_by(
        Plan.has_battery_incentive.desc(),
        Plan.has_vpp.desc(),
        Plan.feed_in_tariff.desc(),
        Plan.retailer_name.asc(),
    ).limit(SEARCH_LIMIT)

    result = await db.execute(query)
    plans = list(result.scalars().all())

    responses = []
    for plan in plans:
        eligible = is_eligible(plan, postcode)
        if postcode and not eligible:
            continue
        item = PlanResponse.model_validate(plan)
        item.is_eligible = eligible
        responses.append(item)

    logger.debug(f"Search matched {len(plans)} plans, {len(responses)} eligible")

    return SearchResponse(
        count=len(responses),
        total_count=len(plans),
        filters={
            "postcode": postcode,
            "distributorCode": distributor_code,
            "hasBatteryIncentive": has_battery,
            "hasVPP": has_vpp,
            "minFeedInTariff": min_feed_in,
            "tariffType": tariff_type,
            "state": state,
        },
        plans=responses,
    )


@router.get("/stats", response_model=StatsResponse)
async def plan_stats(db: AsyncSession = Depends(get_database)):
    """Active plan counts, total and per retailer."""
    total = await db.scalar(select(func.count(Plan.id)).where(Plan.is_active.is_(True)))

    count_col = func.count(Plan.id).label("count")
    rows = await db.execute(
        select(Plan.retailer_name, count_col)
        .where(Plan.is_active.is_(True))
        .group_by(Plan.retailer_name)
        .order_by(count_col.desc())
    )

    return StatsResponse(
        total=total or 0,
        by_retailer=[RetailerCount(retailer=name, count=count) for name, count in rows],
    )


@router.get("/retailers", response_model=List[RetailerResponse])
async def list_retailers(registry: RetailerRegistry = Depends(get_registry)):
    """Registered retailers, in registry order."""
    return [RetailerResponse.model_validate(r) for r in registry.all()]
