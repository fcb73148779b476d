from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Literal, Optional, List
from functools import lru_cache
from pathlib import Path

DEFAULT_LLM: str = "disabled"  # CI-safe default, no secrets required
PACKAGE_DIR = Path(__file__).resolve().parent


class Settings(BaseSettings):
    # ==== LLM provider ====
    LLM_PROVIDER: Literal["disabled", "openai", "anthropic"] = DEFAULT_LLM
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_API_BASE: Optional[str] = None
    ANTHROPIC_API_KEY: Optional[str] = None
    OPENAI_MODEL: str = Field("gpt-4o-mini", description="OpenAI model to use")
    ANTHROPIC_MODEL: str = Field("claude-3-5-haiku-latest", description="Anthropic model to use")
    LLM_TEMPERATURE: float = Field(0.2, ge=0, le=2)
    LLM_MAX_TOKENS: int = Field(2048, ge=1)

    # ==== Embeddings ====
    EMBEDDING_MODEL: str = "sentence-transformers/all-MiniLM-L6-v2"

    # ==== Search backend (SearXNG JSON API) ====
    SEARXNG_URL: str = "http://localhost:8080"
    SEARXNG_ENGINES: str = ""  # comma-separated, empty = instance defaults
    NEWS_ENGINES: str = "bing news,google news"
    SEARCH_LANGUAGE: str = "en"

    # ==== HTTP ====
    HTTP_TIMEOUT_SECONDS: int = Field(30, ge=5, le=120)
    FETCH_TIMEOUT_SEC: float = Field(20.0, gt=0)
    RETRY_MAX_TRIES: int = Field(3, ge=1, le=10)
    USER_AGENT: str = "deep-research/1.0 (+https://github.com/deep-research)"

    # ==== Iteration budgets ====
    SPEED_MAX_ACTIONS: int = Field(4, ge=1)
    BALANCED_MAX_ACTIONS: int = Field(6, ge=1)
    QUALITY_MAX_ACTIONS: int = Field(10, ge=1)
    WALL_CLOCK_LIMIT_SEC: float = Field(900.0, gt=0, description="Hard wall clock per research run")
    MAX_SUBQUESTIONS: int = Field(6, ge=1)

    # ==== Search expansion ====
    MAX_PER_SUBQ: int = Field(8, ge=1)
    MAX_TOTAL_CANDIDATES: int = Field(30, ge=1)
    MAX_PER_DOMAIN: int = Field(3, ge=1)

    # ==== Content extraction ====
    EXTRACT_MAX_DOCS: int = Field(12, ge=1)
    EXTRACT_CONCURRENCY: int = Field(3, ge=1, le=32)
    MAX_FACTS_PER_DOC: int = Field(8, ge=1, le=8)
    MAX_QUOTES_PER_DOC: int = Field(3, ge=0, le=3)
    EXTRACT_MAX_CHARS: int = Field(50_000, ge=1000)

    # ==== Clustering / synthesis ====
    DEFAULT_TARGET_CLUSTERS: int = Field(3, ge=1)
    CLUSTER_TEXT_MAX_CHARS: int = Field(2000, ge=100)
    COVERAGE_THRESHOLD: float = Field(0.45, ge=0, le=1, description="Member similarity needed to count as covering a subquestion")
    LOW_COVERAGE_THRESHOLD: float = Field(0.4, ge=0, le=1, description="Best coverage below this is reported as a gap")
    EXEC_NOVELTY_WEIGHT: float = 0.15
    SECTION_COVERAGE_WEIGHT: float = 0.2
    SECTION_NOVELTY_WEIGHT: float = 0.1

    # ==== Credibility ====
    BIAS_TABLE_PATH: str = str(PACKAGE_DIR / "resources" / "media_bias.csv")
    UNKNOWN_DOMAINS_LOG: str = "data/bias/unknown_domains.txt"

    # ==== Triangulation ====
    CLAIM_SIMILARITY_THRESHOLD: float = Field(0.75, ge=0, le=1)
    NEWS_PER_LANE: int = Field(3, ge=1)
    NEWS_MAX_UNKNOWN: int = Field(2, ge=0)
    NEWS_MIN_SOURCES: int = Field(3, ge=1)

    # ==== Observability ====
    LOG_LEVEL: str = "INFO"
    ENABLE_PROMETHEUS: bool = False
    PROMETHEUS_PORT: int = Field(9108, ge=1, le=65535)

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "allow"

    def model_post_init(self, __context):
        """Normalize values that are read case-insensitively elsewhere"""
        self.LOG_LEVEL = self.LOG_LEVEL.upper()
        self.SEARXNG_URL = self.SEARXNG_URL.rstrip("/")

    def missing_llm_keys(self) -> List[str]:
        """Names of the keys the selected provider needs but does not have."""
        if self.LLM_PROVIDER == "openai" and not self.OPENAI_API_KEY:
            return ["OPENAI_API_KEY"]
        if self.LLM_PROVIDER == "anthropic" and not self.ANTHROPIC_API_KEY:
            return ["ANTHROPIC_API_KEY"]
        return []

    def max_actions_for(self, mode: str) -> int:
        return {
            "speed": self.SPEED_MAX_ACTIONS,
            "balanced": self.BALANCED_MAX_ACTIONS,
            "quality": self.QUALITY_MAX_ACTIONS,
        }[mode]

    def engines(self) -> List[str]:
        return [e.strip() for e in self.SEARXNG_ENGINES.split(",") if e.strip()]

    def news_engines(self) -> List[str]:
        return [e.strip() for e in self.NEWS_ENGINES.split(",") if e.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


class _LazySettings:
    """Proxy that creates Settings on first attribute access."""
    _instance = None

    def __getattr__(self, name):
        if self._instance is None:
            self._instance = get_settings()
        return getattr(self._instance, name)

    def __repr__(self):
        return "<LazySettings>"


settings = _LazySettings()
