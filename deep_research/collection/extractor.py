"""Concurrent fetch-and-extract over ranked search candidates."""

import asyncio
import logging
from typing import List, Optional

from ..capabilities import ChatModel, WebFetcher
from ..config import Settings, get_settings
from ..exceptions import Cancelled, FetchError
from ..extraction.facts import FactExtractor
from ..models import ExtractedDocument, SearchCandidate
from ..monitoring_metrics import FETCH_FAILURES
from ..utils.cancel import CancelToken, is_cancelled

logger = logging.getLogger(__name__)


class ContentExtractor:
    """Fetch candidate pages and pull query-relevant facts and quotes.

    At most ``max_docs`` candidates are processed, ``concurrency`` at a time.
    Output follows candidate order; zero-yield and failed documents are
    dropped rather than failing the batch.
    """

    def __init__(self, fetcher: WebFetcher, chat: ChatModel, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.fetcher = fetcher
        self.facts = FactExtractor(chat, max_chars=self.settings.EXTRACT_MAX_CHARS)

    async def _extract_one(self, sem: asyncio.Semaphore, cand: SearchCandidate, query: str,
                           cancel: Optional[CancelToken]) -> Optional[ExtractedDocument]:
        async with sem:
            if is_cancelled(cancel):
                logger.debug(f"Cancelled before fetching {cand.url}")
                return None
            try:
                page = await asyncio.wait_for(self.fetcher.fetch(cand.url), timeout=self.settings.FETCH_TIMEOUT_SEC)
                result = await self.facts.extract(page.text, query, signal=cancel)
            except asyncio.TimeoutError:
                logger.warning(f"Timed out fetching {cand.url}")
                FETCH_FAILURES.labels(reason="timeout").inc()
                return None
            except FetchError as e:
                logger.warning(f"Fetch failed for {cand.url}: {e}")
                FETCH_FAILURES.labels(reason="fetch").inc()
                return None
            except Cancelled:
                return None
            except Exception as e:
                logger.warning(f"Extraction failed for {cand.url}: {e}")
                FETCH_FAILURES.labels(reason="extract").inc()
                return None

        facts = result.facts[: self.settings.MAX_FACTS_PER_DOC]
        quotes = result.quotes[: self.settings.MAX_QUOTES_PER_DOC]
        if not facts and not quotes:
            logger.debug(f"No facts or quotes from {cand.url}")
            return None
        return ExtractedDocument(url=cand.url, title=cand.title or page.title, facts=facts, quotes=quotes)

    async def extract(self, candidates: List[SearchCandidate], query: str,
                      cancel: Optional[CancelToken] = None) -> List[ExtractedDocument]:
        """
        Extract documents from the leading candidates.

        Args:
            candidates: Ranked candidates from the search expander
            query: The user's query; extraction is targeted at it
            cancel: Optional token; once set no new fetch starts

        Returns:
            Non-empty documents in candidate order
        """
        batch = candidates[: self.settings.EXTRACT_MAX_DOCS]
        if not batch:
            return []

        sem = asyncio.Semaphore(self.settings.EXTRACT_CONCURRENCY)
        results = await asyncio.gather(*(self._extract_one(sem, c, query, cancel) for c in batch))
        docs = [d for d in results if d is not None]
        logger.info(f"Extracted {len(docs)}/{len(batch)} documents")
        return docs
