"""Pydantic decoders for CDR energy plan payloads.

Only fields the sync computes with are declared. Sub-structures stored as
opaque blobs (discounts, fees, eligibility, ...) allow extra keys so that
``to_blob`` hands back everything the retailer published.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

ELECTRICITY_FUEL_TYPES = frozenset({"ELECTRICITY", "DUAL"})


class PlanDecodeError(ValueError):
    """Raised when a CDR document cannot be decoded into a plan."""


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalise a datetime to naive UTC (the store keeps naive UTC)."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class CDRModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class CDRBlob(CDRModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_blob(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# ---------------------------------------------------------------------------
# Plan list
# ---------------------------------------------------------------------------


class Geography(CDRModel):
    excluded_postcodes: list[str] = Field(default_factory=list)
    included_postcodes: list[str] = Field(default_factory=list)
    distributors: list[str] = Field(default_factory=list)

    @field_validator("excluded_postcodes", "included_postcodes", "distributors", mode="before")
    @classmethod
    def stringify(cls, v):
        if v is None:
            return []
        return [str(item) for item in v]


class PlanSummaryPayload(CDRModel):
    """One entry of the plan-list endpoint (also the head of a plan detail)."""

    plan_id: str
    last_updated: Optional[datetime] = None
    effective_from: Optional[datetime] = None
    effective_to: Optional[datetime] = None
    display_name: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None
    fuel_type: Optional[str] = None
    brand: Optional[str] = None
    brand_name: Optional[str] = None
    customer_type: Optional[str] = None
    geography: Optional[Geography] = None

    @field_validator("last_updated", "effective_from", "effective_to", mode="after")
    @classmethod
    def naive_utc(cls, v):
        return to_naive_utc(v)

    @property
    def is_electricity(self) -> bool:
        return (self.fuel_type or "").upper() in ELECTRICITY_FUEL_TYPES


class PageMeta(CDRModel):
    total_records: Optional[int] = None
    total_pages: Optional[int] = None


class PlanListData(CDRModel):
    plans: list[dict[str, Any]] = Field(default_factory=list)


class PlanListPage(CDRModel):
    data: PlanListData = Field(default_factory=PlanListData)
    meta: PageMeta = Field(default_factory=PageMeta)

    @field_validator("data", "meta", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return {} if v is None else v


# ---------------------------------------------------------------------------
# Plan detail
# ---------------------------------------------------------------------------


class RateStep(CDRModel):
    unit_price: Optional[float] = None
    volume: Optional[float] = None


class TimeWindow(CDRModel):
    days: list[str] = Field(default_factory=list)
    start_time: Optional[str] = None
    end_time: Optional[str] = None


class TimeOfUseRate(CDRModel):
    display_name: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None
    rates: list[RateStep] = Field(default_factory=list)
    time_of_use: list[TimeWindow] = Field(default_factory=list)

    @property
    def unit_price(self) -> Optional[float]:
        return self.rates[0].unit_price if self.rates else None


class SingleRate(CDRModel):
    display_name: Optional[str] = None
    daily_supply_charge: Optional[float] = None
    rates: list[RateStep] = Field(default_factory=list)

    @property
    def unit_price(self) -> Optional[float]:
        return self.rates[0].unit_price if self.rates else None


class TariffPeriodPayload(CDRModel):
    display_name: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    daily_supply_charge: Optional[float] = None
    # pre-v2 documents used the plural form
    daily_supply_charges: Optional[float] = None
    rate_block_u_type: Optional[str] = Field(default=None, alias="rateBlockUType")
    single_rate: Optional[SingleRate] = None
    time_of_use_rates: list[TimeOfUseRate] = Field(default_factory=list)
    demand_charges: list[dict[str, Any]] = Field(default_factory=list)


class PercentRate(CDRModel):
    rate: Optional[float] = None


class Discount(CDRBlob):
    display_name: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None
    category: Optional[str] = None
    method_u_type: Optional[str] = Field(default=None, alias="methodUType")
    percent_of_bill: Optional[PercentRate] = None
    percent_of_use: Optional[PercentRate] = None


class Incentive(CDRBlob):
    display_name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    eligibility: Optional[str] = None


class Fee(CDRBlob):
    type: Optional[str] = None
    term: Optional[str] = None
    amount: Optional[float] = None
    rate: Optional[float] = None
    description: Optional[str] = None


class Eligibility(CDRBlob):
    type: Optional[str] = None
    information: Optional[str] = None
    description: Optional[str] = None


class GreenPowerTier(CDRBlob):
    percent_green: Optional[float] = None
    rate: Optional[float] = None
    amount: Optional[float] = None


class GreenPowerCharge(CDRBlob):
    display_name: Optional[str] = None
    scheme: Optional[str] = None
    type: Optional[str] = None
    tiers: list[GreenPowerTier] = Field(default_factory=list)


class SingleTariff(CDRModel):
    rates: list[RateStep] = Field(default_factory=list)


class FeedInTariff(CDRModel):
    display_name: Optional[str] = None
    scheme: Optional[str] = None
    payer_type: Optional[str] = None
    tariff_u_type: Optional[str] = Field(default=None, alias="tariffUType")
    single_tariff: Optional[SingleTariff] = None


class ElectricityContract(CDRModel):
    term_type: Optional[str] = None
    cooling_off_days: Optional[int] = None
    bill_frequency: list[str] = Field(default_factory=list)
    payment_option: list[str] = Field(default_factory=list)
    on_expiry_description: Optional[str] = None
    variation: Optional[str] = None
    daily_supply_charges: Optional[float] = None
    tariff_period: list[TariffPeriodPayload] = Field(default_factory=list)
    solar_feed_in_tariff: list[FeedInTariff] = Field(default_factory=list)
    discounts: list[Discount] = Field(default_factory=list)
    incentives: list[Incentive] = Field(default_factory=list)
    fees: list[Fee] = Field(default_factory=list)
    eligibility: list[Eligibility] = Field(default_factory=list)
    green_power_charges: list[GreenPowerCharge] = Field(default_factory=list)
    controlled_load: list[CDRBlob] = Field(default_factory=list)

    @field_validator(
        "bill_frequency",
        "payment_option",
        "tariff_period",
        "solar_feed_in_tariff",
        "discounts",
        "incentives",
        "fees",
        "eligibility",
        "green_power_charges",
        "controlled_load",
        mode="before",
    )
    @classmethod
    def none_to_list(cls, v):
        return [] if v is None else v


class PlanDetailPayload(PlanSummaryPayload):
    electricity_contract: Optional[ElectricityContract] = None


def decode_plan_list_page(payload: dict[str, Any]) -> PlanListPage:
    """Decode one plan-list page envelope."""
    try:
        return PlanListPage.model_validate(payload)
    except ValueError as e:
        raise PlanDecodeError(f"Malformed plan list page: {e}") from e


def decode_plan_summary(entry: dict[str, Any]) -> PlanSummaryPayload:
    """Decode a single plan-list entry."""
    try:
        return PlanSummaryPayload.model_validate(entry)
    except ValueError as e:
        raise PlanDecodeError(f"Malformed plan summary: {e}") from e


def decode_plan_detail(payload: dict[str, Any]) -> PlanDetailPayload:
    """Decode a plan detail envelope (``{"data": {...}}``)."""
    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, dict):
        raise PlanDecodeError("Plan detail response has no data object")
    try:
        return PlanDetailPayload.model_validate(data)
    except ValueError as e:
        raise PlanDecodeError(f"Malformed plan detail: {e}") from e
