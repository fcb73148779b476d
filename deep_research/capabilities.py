"""
Capability interfaces the research pipeline is written against.

Concrete adapters live in ``deep_research.tools`` and ``deep_research.llm``;
tests plug in in-memory fakes.
"""

from typing import TYPE_CHECKING, List, Optional, Protocol, runtime_checkable

from .models import ChatMessage, FetchedPage, SearchHit

if TYPE_CHECKING:
    from .orchestration.actions import Action
    from .orchestration.state import ResearchState
    from .utils.cancel import CancelToken


@runtime_checkable
class ChatModel(Protocol):
    async def invoke(self, messages: List[ChatMessage], signal: Optional["CancelToken"] = None) -> str:
        ...


@runtime_checkable
class EmbeddingModel(Protocol):
    async def embed(self, text: str) -> List[float]:
        ...

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        ...


@runtime_checkable
class SearchBackend(Protocol):
    async def query(self, text: str, page: int = 1) -> List[SearchHit]:
        ...


@runtime_checkable
class WebFetcher(Protocol):
    async def fetch(self, url: str) -> FetchedPage:
        """Return the page text or raise FetchError."""
        ...


@runtime_checkable
class ActionPolicy(Protocol):
    async def choose_next_action(self, state: "ResearchState") -> "Action":
        ...
