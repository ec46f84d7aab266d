"""Shared fixtures: in-memory database, fake CDR endpoints, payload builders."""

import math
from typing import Any, Optional

import httpx
import pytest
import respx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from plansync.db.models import Base
from plansync.ingest.cdr_client import CDRClient
from plansync.ingest.rate_limiter import RequestPacer
from plansync.ingest.retailers import RetailerDescriptor, RetailerRegistry

TEST_DATABASE_URL = "sqlite+aiosqlite://"
CDR_HOST = "cdr.test"

ALL_DAYS = ["MON", "TUE", "WED", "THU", "FRI", "SAT", "SUN"]


def make_retailer(slug: str = "test-energy", name: str = "Test Energy", priority: int = 1) -> RetailerDescriptor:
    return RetailerDescriptor(
        name=name,
        slug=slug,
        base_uri=f"https://{CDR_HOST}/{slug}/",
        priority=priority,
    )


def plan_summary(
    plan_id: str,
    last_updated: str = "2025-01-01T00:00:00Z",
    fuel_type: str = "ELECTRICITY",
    customer_type: str = "RESIDENTIAL",
) -> dict[str, Any]:
    return {
        "planId": plan_id,
        "lastUpdated": last_updated,
        "displayName": f"Plan {plan_id}",
        "brand": "test",
        "brandName": "Test Energy",
        "fuelType": fuel_type,
        "customerType": customer_type,
        "type": "MARKET",
        "effectiveFrom": "2025-01-01T00:00:00Z",
        "geography": {"distributors": ["Ausgrid"], "includedPostcodes": ["2000", "2010"]},
    }


def tou_rate(rate_type: str, price: str, *windows: tuple[str, str], days=None) -> dict[str, Any]:
    return {
        "type": rate_type,
        "rates": [{"unitPrice": price}],
        "timeOfUse": [
            {"days": days or ALL_DAYS, "startTime": start, "endTime": end} for start, end in windows
        ],
    }


def tou_contract(**overrides) -> dict[str, Any]:
    """A time-of-use contract whose windows cover every day exactly once."""
    contract = {
        "termType": "1_YEAR",
        "coolingOffDays": 10,
        "billFrequency": ["P1M"],
        "paymentOption": ["DIRECT_DEBIT", "CREDIT_CARD"],
        "onExpiryDescription": "Rolls onto a new plan",
        "variation": "Prices may vary with notice",
        "tariffPeriod": [
            {
                "displayName": "All year",
                "startDate": "01-01",
                "endDate": "12-31",
                "dailySupplyCharge": "1.10",
                "rateBlockUType": "timeOfUseRates",
                "timeOfUseRates": [
                    tou_rate("PEAK", "0.45", ("15:00", "21:00")),
                    tou_rate("SHOULDER", "0.30", ("07:00", "10:00"), ("14:00", "15:00"), ("21:00", "23:00")),
                    tou_rate("OFF_PEAK", "0.00", ("10:00", "14:00")),
                    tou_rate("OFF_PEAK", "0.18", ("23:00", "07:00")),
                ],
            }
        ],
        "solarFeedInTariff": [
            {"payerType": "GOVERNMENT", "singleTariff": {"rates": [{"unitPrice": "0.44"}]}},
            {"payerType": "RETAILER", "tariffUType": "singleTariff", "singleTariff": {"rates": [{"unitPrice": "0.05"}]}},
        ],
        "discounts": [
            {"displayName": "Pay on time", "type": "CONDITIONAL", "category": "PAY_ON_TIME",
             "methodUType": "percentOfBill", "percentOfBill": {"rate": "0.05"}},
            {"displayName": "Direct debit", "type": "CONDITIONAL", "category": "DIRECT_DEBIT",
             "methodUType": "percentOfBill", "percentOfBill": {"rate": "0.03"}},
        ],
        "incentives": [
            {"displayName": "VPP bonus", "description": "Join our Virtual Power Plant and earn $200 per year",
             "category": "ACCOUNT_CREDIT"},
            {"displayName": "Battery bonus", "description": "$300 credit when you install a battery",
             "category": "ACCOUNT_CREDIT"},
        ],
        "fees": [
            {"type": "CONNECTION", "term": "FIXED", "amount": "45.50"},
            {"type": "LATE_PAYMENT", "term": "FIXED", "amount": "12.00"},
            {"type": "PAPER_BILL", "term": "FIXED", "amount": "1.75"},
            {"type": "EXIT", "term": "FIXED", "amount": "0"},
        ],
        "eligibility": [{"type": "SPECIFIC_LOCATION", "information": "NSW only"}],
        "greenPowerCharges": [
            {"displayName": "GreenPower 100%", "scheme": "GREENPOWER", "type": "PERCENT_OF_USE",
             "tiers": [{"percentGreen": "1.0", "rate": "0.06"}]},
        ],
        "controlledLoad": [{"displayName": "Controlled load 1", "rateBlockUType": "singleRate"}],
    }
    contract.update(overrides)
    return contract


def flat_contract(**overrides) -> dict[str, Any]:
    contract = {
        "termType": "ONGOING",
        "tariffPeriod": [
            {
                "displayName": "All year",
                "dailySupplyCharges": "0.95",
                "rateBlockUType": "singleRate",
                "singleRate": {"displayName": "Anytime", "rates": [{"unitPrice": "0.29"}]},
            }
        ],
    }
    contract.update(overrides)
    return contract


def plan_detail(plan_id: str, contract: Optional[dict] = None, **summary_kwargs) -> dict[str, Any]:
    data = plan_summary(plan_id, **summary_kwargs)
    data["electricityContract"] = contract if contract is not None else flat_contract()
    return {"data": data, "links": {"self": f"https://{CDR_HOST}/plans/{plan_id}"}, "meta": {}}


class FakeCDR:
    """In-memory stand-in for the CDR plan-list and plan-detail endpoints."""

    def __init__(self, page_size: int = 1000):
        self.page_size = page_size
        self.summaries: dict[str, dict[str, dict]] = {}
        self.contracts: dict[str, dict] = {}
        self.detail_status: dict[str, int] = {}
        # per-plan changes to the detail document; a None value removes the key
        self.detail_patches: dict[str, dict] = {}
        self.list_status: dict[tuple[str, int], int] = {}
        self.detail_calls: list[str] = []
        self.list_calls: list[tuple[str, int]] = []
        self.requests: list[httpx.Request] = []

    def add_plan(self, slug: str, plan_id: str, contract: Optional[dict] = None, **summary_kwargs) -> None:
        self.summaries.setdefault(slug, {})[plan_id] = plan_summary(plan_id, **summary_kwargs)
        if contract is not None:
            self.contracts[plan_id] = contract

    def remove_plan(self, slug: str, plan_id: str) -> None:
        self.summaries.get(slug, {}).pop(plan_id, None)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        slug, _, rest = request.url.path.lstrip("/").partition("/")
        if rest.rstrip("/").endswith("energy/plans"):
            page = int(request.url.params.get("page", "1"))
            self.list_calls.append((slug, page))
            status = self.list_status.get((slug, page))
            if status is not None:
                return httpx.Response(status, json={"errors": []})
            plans = list(self.summaries.get(slug, {}).values())
            total_pages = max(1, math.ceil(len(plans) / self.page_size))
            chunk = plans[(page - 1) * self.page_size: page * self.page_size]
            return httpx.Response(
                200,
                json={
                    "data": {"plans": chunk},
                    "links": {},
                    "meta": {"totalRecords": len(plans), "totalPages": total_pages},
                },
            )

        plan_id = rest.rsplit("/", 1)[-1]
        self.detail_calls.append(plan_id)
        status = self.detail_status.get(plan_id)
        if status is not None:
            return httpx.Response(status, json={"errors": []})
        summary = self.summaries.get(slug, {}).get(plan_id)
        if summary is None:
            return httpx.Response(404, json={"errors": []})
        data = dict(summary)
        data["electricityContract"] = self.contracts.get(plan_id, flat_contract())
        for key, value in self.detail_patches.get(plan_id, {}).items():
            if value is None:
                data.pop(key, None)
            else:
                data[key] = value
        return httpx.Response(200, json={"data": data, "links": {}, "meta": {}})


@pytest.fixture
async def engine():
    """In-memory SQLite engine shared by every session of a test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
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
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def retailer() -> RetailerDescriptor:
    return make_retailer()


@pytest.fixture
def registry(retailer) -> RetailerRegistry:
    return RetailerRegistry([retailer])


@pytest.fixture
def fake_cdr() -> FakeCDR:
    return FakeCDR()


@pytest.fixture
def cdr_router(fake_cdr):
    """Route every request to the fake CDR host through ``fake_cdr``."""
    with respx.mock(assert_all_called=False) as router:
        router.route(host=CDR_HOST).mock(side_effect=fake_cdr.handler)
        yield router


@pytest.fixture
async def cdr_client(cdr_router):
    http_client = httpx.AsyncClient()
    client = CDRClient(http_client=http_client, pacer=RequestPacer(min_interval=0))
    yield client
    await http_client.aclose()
