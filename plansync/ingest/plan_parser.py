"""Turn a decoded CDR plan detail into the columns the store keeps."""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from plansync.ingest.retailers import RetailerDescriptor
from plansync.ingest.schemas import (
    Discount,
    ElectricityContract,
    Fee,
    Incentive,
    PlanDetailPayload,
    TariffPeriodPayload,
)
from plansync.ingest.tariff_coverage import validate_coverage
from plansync.ingest.tariff_naming import RateBlock, name_rate_blocks

logger = logging.getLogger(__name__)

TARIFF_FLAT = "FLAT"
TARIFF_TIME_OF_USE = "TIME_OF_USE"
TARIFF_DEMAND = "DEMAND"

# (low, high, state), checked in order; ACT sits inside the NSW block
POSTCODE_RANGES: tuple[tuple[int, int, str], ...] = (
    (200, 299, "ACT"),
    (2600, 2618, "ACT"),
    (2900, 2920, "ACT"),
    (800, 999, "NT"),
    (1000, 2999, "NSW"),
    (3000, 3999, "VIC"),
    (8000, 8999, "VIC"),
    (4000, 4999, "QLD"),
    (9000, 9999, "QLD"),
    (5000, 5999, "SA"),
    (6000, 6999, "WA"),
    (7000, 7999, "TAS"),
)

TERM_MONTHS = {
    "1_YEAR": 12,
    "2_YEAR": 24,
    "3_YEAR": 36,
    "4_YEAR": 48,
    "5_YEAR": 60,
    "ONGOING": 0,
}

_DOLLARS_RE = re.compile(r"\$\s?(\d[\d,]*(?:\.\d+)?)")
_VPP_RE = re.compile(r"\bvpp\b|virtual power plant", re.IGNORECASE)
_BATTERY_RE = re.compile(r"\bbatter(y|ies)\b", re.IGNORECASE)


@dataclass
class ParsedTariffPeriod:
    type: str
    display_name: str
    rate: float
    time_windows: list[dict[str, Any]] = field(default_factory=list)
    sequence_order: int = 0


@dataclass
class ParsedPlan:
    """Typed representation of one plan, ready for the upserter."""

    id: str
    retailer_id: str
    retailer_name: str
    plan_name: str
    brand_id: Optional[str] = None
    description: Optional[str] = None
    state: str = "UNKNOWN"
    fuel_type: str = "ELECTRICITY"
    customer_type: Optional[str] = None
    tariff_type: str = TARIFF_FLAT
    plan_type: str = "MARKET"
    distributors: list[str] = field(default_factory=list)
    included_postcodes: Optional[list[str]] = None
    excluded_postcodes: Optional[list[str]] = None
    daily_supply_charge: float = 0.0
    single_rate: Optional[float] = None
    peak_rate: Optional[float] = None
    peak_times: Optional[list] = None
    shoulder_rate: Optional[float] = None
    shoulder_times: Optional[list] = None
    off_peak_rate: Optional[float] = None
    off_peak_times: Optional[list] = None
    feed_in_tariff: Optional[float] = None
    has_battery_incentive: bool = False
    battery_incentive_value: Optional[float] = None
    has_vpp: bool = False
    vpp_credit_per_year: Optional[float] = None
    pay_on_time_discount: Optional[float] = None
    direct_debit_discount: Optional[float] = None
    connection_fee: Optional[float] = None
    disconnection_fee: Optional[float] = None
    late_payment_fee: Optional[float] = None
    paper_bill_fee: Optional[float] = None
    exit_fees: Optional[float] = None
    discounts: list[dict] = field(default_factory=list)
    incentives: list[dict] = field(default_factory=list)
    fees: list[dict] = field(default_factory=list)
    eligibility: list[dict] = field(default_factory=list)
    green_power_details: list[dict] = field(default_factory=list)
    controlled_loads: list[dict] = field(default_factory=list)
    payment_options: list[str] = field(default_factory=list)
    bill_frequency: list[str] = field(default_factory=list)
    contract_length: Optional[int] = None
    cooling_off_days: Optional[int] = None
    on_expiry_description: Optional[str] = None
    variation_terms: Optional[str] = None
    green_power: bool = False
    carbon_neutral: bool = False
    is_ev_friendly: bool = False
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None
    last_updated: Optional[datetime] = None
    tariff_periods: list[ParsedTariffPeriod] = field(default_factory=list)

    def plan_columns(self) -> dict[str, Any]:
        """Every Plan column value (tariff periods excluded)."""
        columns = dict(self.__dict__)
        columns.pop("tariff_periods")
        return columns


def state_from_postcode(postcode: Optional[str]) -> str:
    """Map an Australian postcode to its state or territory."""
    if postcode is None:
        return "UNKNOWN"
    try:
        pc = int(str(postcode).strip())
    except ValueError:
        return "UNKNOWN"
    for low, high, state in POSTCODE_RANGES:
        if low <= pc <= high:
            return state
    return "UNKNOWN"


def contract_length_months(term_type: Optional[str]) -> Optional[int]:
    """Contract term in months (0 for ongoing), None when unrecognised."""
    return TERM_MONTHS.get((term_type or "").upper())


def _dollar_amount(*texts: Optional[str]) -> Optional[float]:
    for text in texts:
        if not text:
            continue
        match = _DOLLARS_RE.search(text)
        if match:
            try:
                return float(match.group(1).replace(",", ""))
            except ValueError:
                continue
    return None


def _windows(rate) -> list[dict[str, Any]]:
    return [w.model_dump(by_alias=True, exclude_none=True) for w in rate.time_of_use]


def _extract_discount(discounts: list[Discount], category: str) -> Optional[float]:
    """Percentage of bill for a discount category (PAY_ON_TIME, DIRECT_DEBIT)."""
    for discount in discounts:
        if (discount.category or "").upper() == category or (discount.type or "").upper() == category:
            if discount.percent_of_bill and discount.percent_of_bill.rate is not None:
                rate = discount.percent_of_bill.rate
                # CDR publishes fractions (0.05); the store keeps percent
                return round(rate * 100, 4) if rate <= 1 else rate
            if discount.percent_of_use and discount.percent_of_use.rate is not None:
                rate = discount.percent_of_use.rate
                return round(rate * 100, 4) if rate <= 1 else rate
    return None


def _fee(fees: list[Fee], fee_type: str) -> Optional[float]:
    for fee in fees:
        if (fee.type or "").upper() == fee_type:
            if fee.amount is not None:
                return fee.amount
            if fee.rate is not None:
                return fee.rate
    return None


def _incentive_flags(incentives: list[Incentive]) -> dict[str, Any]:
    flags: dict[str, Any] = {
        "has_battery_incentive": False,
        "battery_incentive_value": None,
        "has_vpp": False,
        "vpp_credit_per_year": None,
    }
    for incentive in incentives:
        text = " ".join(
            t for t in (incentive.display_name, incentive.description, incentive.eligibility) if t
        )
        if _VPP_RE.search(text):
            flags["has_vpp"] = True
            if flags["vpp_credit_per_year"] is None:
                flags["vpp_credit_per_year"] = _dollar_amount(incentive.display_name, incentive.description)
        elif _BATTERY_RE.search(text):
            flags["has_battery_incentive"] = True
            if flags["battery_incentive_value"] is None:
                flags["battery_incentive_value"] = _dollar_amount(incentive.display_name, incentive.description)
    # a VPP program is a battery incentive in its own right
    if flags["has_vpp"] and not flags["has_battery_incentive"]:
        flags["has_battery_incentive"] = True
    return flags


def _feed_in_tariff(contract: ElectricityContract) -> Optional[float]:
    for fit in contract.solar_feed_in_tariff:
        if (fit.payer_type or "").upper() != "RETAILER":
            continue
        if fit.single_tariff and fit.single_tariff.rates:
            return fit.single_tariff.rates[0].unit_price
    return None


def _parse_tariff(period: Optional[TariffPeriodPayload], columns: dict[str, Any]) -> list[ParsedTariffPeriod]:
    """Fill rate columns from the first tariff period and build TOU blocks."""
    if period is None:
        return []

    blocks: list[RateBlock] = []
    rate_kind = (period.rate_block_u_type or "").lower()

    if period.time_of_use_rates and rate_kind in ("timeofuserates", ""):
        for rate in period.time_of_use_rates:
            price = rate.unit_price
            windows = _windows(rate)
            rate_type = (rate.type or "").upper()
            if rate_type == "PEAK" and columns.get("peak_rate") is None:
                columns["peak_rate"], columns["peak_times"] = price, windows
            elif rate_type.startswith("SHOULDER") and columns.get("shoulder_rate") is None:
                columns["shoulder_rate"], columns["shoulder_times"] = price, windows
            elif rate_type == "OFF_PEAK" and columns.get("off_peak_rate") is None:
                columns["off_peak_rate"], columns["off_peak_times"] = price, windows
            if price is not None:
                blocks.append(RateBlock(type=rate_type or "UNKNOWN", rate=price, time_windows=windows))
    elif period.single_rate is not None:
        columns["single_rate"] = period.single_rate.unit_price

    if blocks:
        columns["tariff_type"] = TARIFF_TIME_OF_USE
    elif period.demand_charges:
        columns["tariff_type"] = TARIFF_DEMAND
    else:
        columns["tariff_type"] = TARIFF_FLAT

    names = name_rate_blocks(blocks)
    return [
        ParsedTariffPeriod(
            type=block.type,
            display_name=name,
            rate=block.rate,
            time_windows=block.time_windows,
            sequence_order=idx,
        )
        for idx, (block, name) in enumerate(zip(blocks, names))
    ]


def parse_plan_detail(retailer: RetailerDescriptor, detail: PlanDetailPayload) -> ParsedPlan:
    """
    Extract tariff, discount, incentive, fee and eligibility data from a plan.

    Args:
        retailer: Registry entry the plan was fetched from
        detail: Decoded plan detail document

    Returns:
        ParsedPlan ready to be upserted
    """
    contract = detail.electricity_contract or ElectricityContract()
    geography = detail.geography
    period = contract.tariff_period[0] if contract.tariff_period else None

    columns: dict[str, Any] = {}
    tariff_periods = _parse_tariff(period, columns)

    daily_supply = None
    if period is not None:
        daily_supply = period.daily_supply_charge
        if daily_supply is None:
            daily_supply = period.daily_supply_charges
        if daily_supply is None and period.single_rate is not None:
            daily_supply = period.single_rate.daily_supply_charge
    if daily_supply is None:
        daily_supply = contract.daily_supply_charges

    included = geography.included_postcodes if geography else []
    excluded = geography.excluded_postcodes if geography else []

    green_power_details = [g.to_blob() for g in contract.green_power_charges]
    carbon_neutral = any(
        tier.percent_green is not None and tier.percent_green >= 1.0
        for charge in contract.green_power_charges
        for tier in charge.tiers
    )

    plan = ParsedPlan(
        id=detail.plan_id,
        retailer_id=retailer.slug,
        retailer_name=detail.brand_name or retailer.name,
        plan_name=detail.display_name or detail.plan_id,
        brand_id=detail.brand,
        description=detail.description,
        state=state_from_postcode(included[0]) if included else "UNKNOWN",
        fuel_type=(detail.fuel_type or "ELECTRICITY").upper(),
        customer_type=detail.customer_type,
        plan_type=(detail.type or "MARKET").upper(),
        distributors=geography.distributors if geography else [],
        included_postcodes=included or None,
        excluded_postcodes=excluded or None,
        daily_supply_charge=daily_supply or 0.0,
        feed_in_tariff=_feed_in_tariff(contract),
        pay_on_time_discount=_extract_discount(contract.discounts, "PAY_ON_TIME"),
        direct_debit_discount=_extract_discount(contract.discounts, "DIRECT_DEBIT"),
        connection_fee=_fee(contract.fees, "CONNECTION"),
        disconnection_fee=_fee(contract.fees, "DISCONNECTION"),
        late_payment_fee=_fee(contract.fees, "LATE_PAYMENT"),
        paper_bill_fee=_fee(contract.fees, "PAPER_BILL"),
        exit_fees=_fee(contract.fees, "EXIT"),
        discounts=[d.to_blob() for d in contract.discounts],
        incentives=[i.to_blob() for i in contract.incentives],
        fees=[f.to_blob() for f in contract.fees],
        eligibility=[e.to_blob() for e in contract.eligibility],
        green_power_details=green_power_details,
        controlled_loads=[c.to_blob() for c in contract.controlled_load],
        payment_options=contract.payment_option,
        bill_frequency=contract.bill_frequency,
        contract_length=contract_length_months(contract.term_type),
        cooling_off_days=contract.cooling_off_days,
        on_expiry_description=contract.on_expiry_description,
        variation_terms=contract.variation,
        green_power=bool(green_power_details),
        carbon_neutral=carbon_neutral,
        valid_from=detail.effective_from,
        valid_to=detail.effective_to,
        last_updated=detail.last_updated,
        tariff_periods=tariff_periods,
        **columns,
        **_incentive_flags(contract.incentives),
    )
    plan.is_ev_friendly = any(p.display_name == "EV Charging" for p in tariff_periods)

    if plan.tariff_type == TARIFF_TIME_OF_USE:
        coverage = validate_coverage(
            [{"rate": p.rate, "time_windows": p.time_windows} for p in tariff_periods]
        )
        if not coverage.is_clean:
            logger.warning(
                f"Plan {plan.id}: TOU windows have {len(coverage.gaps)} gap(s) "
                f"and {len(coverage.overlaps)} overlap(s)"
            )

    return plan
