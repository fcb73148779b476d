import httpx
import logging
from typing import Any, Dict, List, Optional
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type
from ..config import Settings, get_settings
from ..models import SearchHit
from ..monitoring_metrics import SEARCH_REQUESTS, SEARCH_ERRORS, SEARCH_LATENCY
from .search_models import SearchRequest

logger = logging.getLogger(__name__)

PROVIDER = "searxng"


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=8),
    retry=retry_if_exception_type((httpx.RequestError, httpx.HTTPStatusError)),
    reraise=True,
)
async def _make_searxng_request(client: httpx.AsyncClient, base_url: str, req: SearchRequest) -> Dict[str, Any]:
    """Make HTTP request to a SearXNG instance with retry logic"""
    params: Dict[str, Any] = {"q": req.query, "format": "json", "pageno": req.page}
    if req.language:
        params["language"] = req.language
    if req.engines:
        params["engines"] = ",".join(req.engines)
    if req.categories:
        params["categories"] = req.categories

    response = await client.get(f"{base_url}/search", params=params)
    response.raise_for_status()
    return response.json()


def _parse_searxng_response(data: Dict[str, Any]) -> List[SearchHit]:
    """Parse SearXNG JSON into SearchHit objects"""
    results = []

    if "results" not in data:
        logger.warning("No results field in SearXNG response")
        return results

    for item in data.get("results", []):
        url = item.get("url")
        if not url:
            continue
        results.append(SearchHit(
            title=item.get("title") or "",
            url=url,
            snippet=item.get("content") or "",
            published_date=item.get("publishedDate"),
            thumbnail=item.get("thumbnail") or item.get("img_src"),
            engine=item.get("engine"),
        ))

    return results


class SearxngSearch:
    """SearchBackend over the SearXNG JSON API.

    Failures are logged and counted; the caller receives an empty list.
    """

    def __init__(self, settings: Optional[Settings] = None, categories: Optional[str] = None,
                 engines: Optional[List[str]] = None, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings or get_settings()
        self.categories = categories
        self.engines = engines if engines is not None else self.settings.engines()
        self._client = client

    def _client_or_new(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.settings.HTTP_TIMEOUT_SECONDS,
                headers={"User-Agent": self.settings.USER_AGENT, "Accept": "application/json"},
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def query(self, text: str, page: int = 1) -> List[SearchHit]:
        req = SearchRequest(
            query=text,
            page=page,
            language=self.settings.SEARCH_LANGUAGE,
            engines=self.engines,
            categories=self.categories,
        )
        SEARCH_REQUESTS.labels(provider=PROVIDER).inc()

        with SEARCH_LATENCY.labels(provider=PROVIDER).time():
            try:
                data = await _make_searxng_request(self._client_or_new(), self.settings.SEARXNG_URL, req)
                results = _parse_searxng_response(data)
                logger.info(f"SearXNG returned {len(results)} results for query: {text}")
                return results
            except (httpx.HTTPError, ValueError) as e:
                logger.error(f"SearXNG search failed for query '{text}': {e}")
                SEARCH_ERRORS.labels(provider=PROVIDER).inc()
                return []


def news_search(settings: Optional[Settings] = None) -> SearxngSearch:
    settings = settings or get_settings()
    return SearxngSearch(settings, categories="news", engines=settings.news_engines())
