"""HTTP client for downloading the ICS feed - CalendarSwitch Lite version."""

import logging
from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from calendarswitch_lite.calendar.lite_models import LiteICSResponse
from calendarswitch_lite.core.exceptions import LiteICSFetchError

logger = logging.getLogger(__name__)

FETCH_FAILED = "Fetch failed"
FETCH_EXCEPTION = "Fetch exception"

DEFAULT_HEADERS = {
    "User-Agent": "calendarswitch-lite/1.0",
    "Accept": "text/calendar, text/plain;q=0.9, */*;q=0.8",
}


class LiteICSFetcher:
    """Async HTTP client for the feed. One GET per poll, no retries."""

    def __init__(self, settings: Any, shared_client: Optional[httpx.AsyncClient] = None) -> None:
        """Initialize ICS fetcher.

        Args:
            settings: Configuration (only ``request_timeout`` is read)
            shared_client: Optional externally owned client; it is never closed here
        """
        self.settings = settings
        self.client: Optional[httpx.AsyncClient] = shared_client
        self._use_shared_client = shared_client is not None
        logger.debug("Lite ICS fetcher initialized (shared_client: %s)", self._use_shared_client)

    async def __aenter__(self) -> "LiteICSFetcher":
        self._ensure_client()
        return self

    async def __aexit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client if this fetcher owns it."""
        if self.client is not None and not self._use_shared_client:
            if not self.client.is_closed:
                await self.client.aclose()
                logger.debug("Closed individual HTTP client")
            self.client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self.client is None or self.client.is_closed:
            request_timeout = float(getattr(self.settings, "request_timeout", 25))
            self.client = httpx.AsyncClient(
                timeout=httpx.Timeout(request_timeout),
                follow_redirects=True,
                headers=DEFAULT_HEADERS,
            )
        return self.client

    @staticmethod
    def _validate_url(url: Optional[str]) -> bool:
        """Only absolute http(s) URLs with a hostname are fetched."""
        if not url:
            return False
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            logger.debug("Blocked URL %r (scheme=%r)", url, parsed.scheme)
            return False
        return True

    async def _get(self, url: str) -> httpx.Response:
        client = self._ensure_client()
        response = await client.get(url)
        if response.status_code != 200:
            raise LiteICSFetchError(
                f"HTTP {response.status_code} from {url}", status_code=response.status_code
            )
        if not response.text:
            raise LiteICSFetchError(f"Empty body from {url}", status_code=response.status_code)
        return response

    async def fetch_ics(self, url: Optional[str]) -> LiteICSResponse:
        """Download the feed.

        A non-200 status or an empty body is a fetch failure; a transport error is a
        fetch exception. Neither raises.

        Returns:
            LiteICSResponse with ``error_message`` set to "Fetch failed" or
            "Fetch exception" when ``success`` is False
        """
        if not self._validate_url(url):
            logger.warning("Refusing to fetch invalid feed URL %r", url)
            return LiteICSResponse(success=False, error_message=FETCH_FAILED)

        logger.debug("Fetching ICS from %s", url)
        try:
            response = await self._get(url)
        except LiteICSFetchError as exc:
            logger.warning("%s: %s", FETCH_FAILED, exc)
            return LiteICSResponse(
                success=False, status_code=exc.status_code, error_message=FETCH_FAILED
            )
        except httpx.HTTPError as exc:
            logger.warning("%s: %s", FETCH_EXCEPTION, exc)
            return LiteICSResponse(success=False, error_message=FETCH_EXCEPTION)

        logger.debug("Fetched %d bytes from %s", len(response.content), url)
        return LiteICSResponse(
            success=True,
            content=response.text,
            status_code=response.status_code,
            headers=dict(response.headers),
        )
