"""Registry of CDR energy retailers and their plan API base URIs.

Base URIs follow the AER "Energy Retailer Base URIs and CDR Brands" list
(March 2025). Priority 1 is the Big 3 (~65% market share), priority 2 the
major tier-2 retailers, priority 3 everyone else.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from plansync.config import settings


@dataclass(frozen=True)
class RetailerDescriptor:
    """Static description of one retailer's CDR endpoint."""

    name: str
    slug: str
    base_uri: str
    priority: int
    market_share: Optional[float] = None


class UnknownRetailerError(LookupError):
    """Raised when a retailer slug is not registered."""

    def __init__(self, slug: str):
        super().__init__(f"Retailer '{slug}' not found")
        self.slug = slug


def _cdr(slug: str) -> str:
    return f"{settings.cdr_base_url.rstrip('/')}/{slug}/"


def _retailer(name: str, slug: str, priority: int, market_share: Optional[float] = None) -> RetailerDescriptor:
    return RetailerDescriptor(
        name=name,
        slug=slug,
        base_uri=_cdr(slug),
        priority=priority,
        market_share=market_share,
    )


TOP_RETAILERS: tuple[RetailerDescriptor, ...] = (
    # Big 3
    _retailer("Origin Energy", "origin", 1, 26.3),
    _retailer("AGL", "agl", 1, 20.0),
    _retailer("EnergyAustralia", "energyaustralia", 1, 18.0),
    # Major tier-2 retailers
    _retailer("Red Energy", "red-energy", 2),
    _retailer("Alinta", "alinta", 2),
    _retailer("Momentum Energy", "momentum", 2),
    _retailer("Powershop", "powershop", 2),
    _retailer("GloBird Energy", "globird", 2),
    _retailer("CovaU", "covau", 2),
    _retailer("ENGIE", "engie", 2),
)

ALL_RETAILERS: tuple[RetailerDescriptor, ...] = TOP_RETAILERS + (
    _retailer("1st Energy", "1st-energy", 3),
    _retailer("ActewAGL", "actewagl", 3),
    _retailer("Active Utilities Retail", "active-utilities", 3),
    _retailer("Altogether", "altogether", 3),
    _retailer("Amber Electric", "amber", 3),
    _retailer("Ampol Energy", "ampol", 3),
    _retailer("OVO Energy", "ovo-energy", 3),
)


class RetailerRegistry:
    """Lookup over a fixed retailer table."""

    def __init__(
        self,
        retailers: Iterable[RetailerDescriptor] = ALL_RETAILERS,
        default_set: Optional[Iterable[RetailerDescriptor]] = None,
    ):
        self._retailers: dict[str, RetailerDescriptor] = {}
        for retailer in retailers:
            if retailer.slug in self._retailers:
                raise ValueError(f"Duplicate retailer slug: {retailer.slug}")
            self._retailers[retailer.slug] = retailer
        self._default_set = tuple(default_set) if default_set is not None else None

    def get(self, slug: str) -> RetailerDescriptor:
        """
        Get a retailer by slug.

        Raises:
            UnknownRetailerError: If slug is not registered
        """
        try:
            return self._retailers[slug]
        except KeyError:
            raise UnknownRetailerError(slug) from None

    def all(self) -> list[RetailerDescriptor]:
        """All registered retailers in table order."""
        return list(self._retailers.values())

    def priority(self, tier: int) -> list[RetailerDescriptor]:
        """Retailers of one priority tier."""
        return [r for r in self._retailers.values() if r.priority == tier]

    def top(self) -> list[RetailerDescriptor]:
        """The default sync set (every retailer when none was given)."""
        if self._default_set is None:
            return self.all()
        return list(self._default_set)

    def resolve(
        self,
        slug: Optional[str] = None,
        priority_only: bool = False,
        all_retailers: bool = False,
    ) -> list[RetailerDescriptor]:
        """
        Resolve the retailers a sync invocation should cover.

        Args:
            slug: Single retailer slug (takes precedence)
            priority_only: Restrict to priority-1 retailers
            all_retailers: Every registered retailer instead of the top set

        Returns:
            Ordered list of retailers
        """
        if slug:
            return [self.get(slug)]
        if priority_only:
            return self.priority(1)
        if all_retailers:
            return self.all()
        return self.top()


def default_registry() -> RetailerRegistry:
    """Registry over every known retailer, syncing the top retailers by default."""
    return RetailerRegistry(ALL_RETAILERS, default_set=TOP_RETAILERS)
