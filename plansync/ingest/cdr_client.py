"""HTTP client for the public CDR energy plan endpoints."""

from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import urlencode

import httpx

from plansync.config import settings
from plansync.ingest.rate_limiter import RequestPacer
from plansync.ingest.retailers import RetailerDescriptor

logger = logging.getLogger(__name__)

# Transport errors that surface as CDRTransportError
TRANSPORT_EXC = (
    httpx.TimeoutException,
    httpx.ConnectError,
    httpx.RemoteProtocolError,
    httpx.ReadError,
)


class CDRError(RuntimeError):
    """Base class for CDR endpoint failures."""


class CDRResponseError(CDRError):
    """Raised when the endpoint answers with a non-2xx status."""

    def __init__(self, status_code: int, url: str, retry_after: Optional[int] = None):
        super().__init__(f"HTTP {status_code} for {url}")
        self.status_code = status_code
        self.url = url
        self.retry_after = retry_after


class CDRTransportError(CDRError):
    """Raised on timeouts and connection failures."""


class CDRDecodeError(CDRError):
    """Raised when a 2xx response body is not a JSON object."""


def list_headers() -> dict[str, str]:
    """Headers for Get Generic Plans (v1 only)."""
    return {
        "x-v": settings.cdr_list_version,
        "x-min-v": "1",
        "Accept": "application/json",
    }


def detail_headers() -> dict[str, str]:
    """Headers for Get Generic Plan Detail."""
    return {
        "x-v": settings.cdr_detail_version,
        "x-min-v": "1",
        "Accept": "application/json",
    }


class CDRClient:
    """Builds CDR plan-list / plan-detail requests and decodes responses.

    Holds a single httpx.AsyncClient for the life of the process. No retries
    are performed here; callers decide what a failure means.
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        pacer: Optional[RequestPacer] = None,
        timeout: Optional[float] = None,
    ):
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(
            timeout=timeout or settings.cdr_request_timeout,
            follow_redirects=True,
        )
        self.pacer = pacer

    async def close(self):
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._http_client.aclose()

    # ------------------------------------------------------------------
    # URL building
    # ------------------------------------------------------------------

    @staticmethod
    def plan_list_url(retailer: RetailerDescriptor, page: int = 1) -> str:
        """Plan-list URL for one page: ``?type=ALL&page-size=1000&page=N``."""
        params = urlencode(
            {
                "type": settings.cdr_plan_type,
                "page-size": str(settings.cdr_page_size),
                "page": str(page),
            }
        )
        return f"{retailer.base_uri}{settings.cdr_plan_endpoint}?{params}"

    @staticmethod
    def plan_detail_url(retailer: RetailerDescriptor, plan_id: str) -> str:
        """Plan detail URL for one plan id."""
        return f"{retailer.base_uri}{settings.cdr_plan_endpoint}/{plan_id}"

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def get_plan_list(self, retailer: RetailerDescriptor, page: int = 1) -> dict[str, Any]:
        """
        Fetch one page of a retailer's plan list.

        Raises:
            CDRResponseError: On non-2xx status
            CDRTransportError: On timeout / connection failure
        """
        return await self._get_json(self.plan_list_url(retailer, page), list_headers())

    async def get_plan_detail(self, retailer: RetailerDescriptor, plan_id: str) -> dict[str, Any]:
        """
        Fetch the detail document of one plan, paced per retailer.

        Raises:
            CDRResponseError: On non-2xx status
            CDRTransportError: On timeout / connection failure
        """
        if self.pacer is not None:
            await self.pacer.wait(retailer.slug)
        try:
            return await self._get_json(self.plan_detail_url(retailer, plan_id), detail_headers())
        except CDRResponseError as e:
            if e.status_code == 429 and self.pacer is not None:
                self.pacer.set_cooldown(retailer.slug, float(e.retry_after or 5))
            raise

    async def _get_json(self, url: str, headers: dict[str, str]) -> dict[str, Any]:
        try:
            resp = await self._http_client.get(url, headers=headers)
        except TRANSPORT_EXC as e:
            raise CDRTransportError(f"{type(e).__name__} for {url}") from e

        if not 200 <= resp.status_code < 300:
            retry_after = None
            if resp.status_code == 429:
                try:
                    retry_after = int(resp.headers.get("Retry-After", ""))
                except ValueError:
                    pass
            raise CDRResponseError(resp.status_code, url, retry_after=retry_after)

        try:
            payload = resp.json()
        except ValueError as e:
            raise CDRDecodeError(f"Invalid JSON from {url}") from e
        if not isinstance(payload, dict):
            raise CDRDecodeError(f"Expected a JSON object from {url}")
        return payload
