from __future__ import annotations
import httpx, logging
from typing import Optional

from ..config import Settings, get_settings
from ..exceptions import FetchError
from ..extraction.html_cleaner import extract_title_and_text
from ..models import FetchedPage

logger = logging.getLogger(__name__)

_TEXT_TYPES = ("text/html", "application/xhtml+xml", "text/plain")
_PAYWALL_MARKERS = ("/login?", "/subscribe?", "/sso")


class HttpFetcher:
    """WebFetcher over httpx; HTML pages are reduced to clean text.

    Every failure surfaces as FetchError so the extractor can treat it as
    a zero-yield document.
    """

    def __init__(self, settings: Optional[Settings] = None, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings or get_settings()
        self._client = client

    def _client_or_new(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"User-Agent": self.settings.USER_AGENT},
                timeout=httpx.Timeout(self.settings.FETCH_TIMEOUT_SEC, connect=5.0),
                follow_redirects=True,
                max_redirects=5,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch(self, url: str) -> FetchedPage:
        try:
            r = await self._client_or_new().get(url)
        except httpx.HTTPError as e:
            raise FetchError(f"request failed: {e}", url=url) from e

        if r.status_code >= 400:
            raise FetchError(f"HTTP {r.status_code}", url=url, status_code=r.status_code)

        final_url = str(r.url)
        if any(m in final_url for m in _PAYWALL_MARKERS):
            raise FetchError("redirected to login or paywall", url=url, status_code=r.status_code)

        ct = (r.headers.get("content-type") or "").lower()
        if ct and not any(t in ct for t in _TEXT_TYPES):
            raise FetchError(f"unsupported content type {ct}", url=url, status_code=r.status_code)

        if "text/plain" in ct:
            title, text = None, r.text
        else:
            title, text = extract_title_and_text(r.text)

        logger.debug(f"Fetched {url}: {len(text)} chars")
        return FetchedPage(url=url, title=title, text=text, content_type=ct or None)
