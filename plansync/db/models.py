"""SQLAlchemy database models."""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# JSONB on Postgres, plain JSON elsewhere (sqlite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Plan(Base):
    """Retail electricity plan mirrored from a retailer's CDR endpoint."""

    __tablename__ = "plans"

    # Identity: upstream planId
    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    retailer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    brand_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    retailer_name: Mapped[str] = mapped_column(String(128), nullable=False)
    plan_name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    state: Mapped[str] = mapped_column(String(16), default="UNKNOWN", nullable=False)
    fuel_type: Mapped[str] = mapped_column(String(16), default="ELECTRICITY", nullable=False)
    customer_type: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    tariff_type: Mapped[str] = mapped_column(String(16), default="FLAT", nullable=False)
    plan_type: Mapped[str] = mapped_column(String(16), default="MARKET", nullable=False)

    # Geography
    distributors: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    included_postcodes: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    excluded_postcodes: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)

    # Pricing ($/day, $/kWh)
    daily_supply_charge: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    single_rate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    peak_rate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    peak_times: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    shoulder_rate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    shoulder_times: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    off_peak_rate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    off_peak_times: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    feed_in_tariff: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Incentives
    has_battery_incentive: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    battery_incentive_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    has_vpp: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    vpp_credit_per_year: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Discounts and fees
    pay_on_time_discount: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    direct_debit_discount: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    connection_fee: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    disconnection_fee: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    late_payment_fee: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    paper_bill_fee: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    exit_fees: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Opaque structures kept as extracted from the plan detail
    discounts: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    incentives: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    fees: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    eligibility: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    green_power_details: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    controlled_loads: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    payment_options: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    bill_frequency: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)

    # Contract terms
    contract_length: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # months
    cooling_off_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    on_expiry_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    variation_terms: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Features
    green_power: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    carbon_neutral: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_ev_friendly: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Tracking
    valid_from: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    valid_to: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    last_updated: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)  # upstream
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    # Relationships
    tariff_periods: Mapped[list["TariffPeriod"]] = relationship(
        "TariffPeriod",
        back_populates="plan",
        cascade="all, delete-orphan",
        order_by="TariffPeriod.sequence_order",
    )


class TariffPeriod(Base):
    """One time-of-use rate block of a plan."""

    __tablename__ = "tariff_periods"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    plan_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("plans.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    display_name: Mapped[str] = mapped_column(String(128), nullable=False)
    rate: Mapped[float] = mapped_column(Float, nullable=False)
    time_windows: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    sequence_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Relationships
    plan: Mapped["Plan"] = relationship("Plan", back_populates="tariff_periods")


class SyncCheckpoint(Base):
    """Ordered detail-fetch queue for a retailer, used to resume chunked syncs."""

    __tablename__ = "sync_checkpoints"

    retailer_slug: Mapped[str] = mapped_column(String(64), primary_key=True)
    plan_ids: Mapped[list] = mapped_column(JSONType, nullable=False)
    # plan-list lastUpdated per queued id (ISO text), stored instead of the detail value
    listed_updates: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    # request cursor that maps to plan_ids[0]
    cursor_offset: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    counts: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
