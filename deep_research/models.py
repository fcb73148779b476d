from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List, Dict, Literal
from enum import Enum


class ResearchMode(str, Enum):
    """Operating modes of the iteration controller"""
    SPEED = "speed"
    BALANCED = "balanced"
    QUALITY = "quality"


class Lane(str, Enum):
    """Political lane of a news outlet"""
    LEFT = "LEFT"
    RIGHT = "RIGHT"
    CENTER = "CENTER"
    UNKNOWN = "UNKNOWN"


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


# ---------------------------------------------------------------------------
# Search and extraction
# ---------------------------------------------------------------------------

class SearchHit(BaseModel):
    """Raw result returned by a search backend"""
    title: str = ""
    url: str
    snippet: str = ""
    published_date: Optional[str] = None
    thumbnail: Optional[str] = None
    engine: Optional[str] = None


class SearchCandidate(BaseModel):
    """Ranked search result, unique per URL within a run"""
    title: str = ""
    url: str
    snippet: str = ""
    score: float = 0.0


class FetchedPage(BaseModel):
    url: str
    title: Optional[str] = None
    text: str
    content_type: Optional[str] = None


class ExtractedDocument(BaseModel):
    """Facts and quotes pulled from one fetched page"""
    model_config = ConfigDict(frozen=True)

    url: str
    title: Optional[str] = None
    facts: List[str] = Field(default_factory=list, max_length=8)
    quotes: List[str] = Field(default_factory=list, max_length=3)

    @property
    def is_empty(self) -> bool:
        return not self.facts and not self.quotes


# ---------------------------------------------------------------------------
# Evidence, clusters and outline
# ---------------------------------------------------------------------------

class EvidenceSource(BaseModel):
    url: str
    title: Optional[str] = None


class EvidenceItem(BaseModel):
    """A deduplicated claim with every source that stated it"""
    claim: str
    sources: List[EvidenceSource] = Field(default_factory=list)
    examples: List[str] = Field(default_factory=list, max_length=3)
    support_count: int = Field(1, ge=1)

    def source_urls(self) -> List[str]:
        return [s.url for s in self.sources]


class Cluster(BaseModel):
    label: str
    doc_urls: List[str]
    summary: str = ""
    novelty_score: float = Field(0.0, ge=0, le=1)
    subquestion_scores: Dict[str, float] = Field(default_factory=dict)
    coverage_by_subquestion: Dict[str, float] = Field(default_factory=dict)
    coverage_score: float = Field(0.0, ge=0, le=1)


class OutlineSection(BaseModel):
    title: str
    bullets: List[str] = Field(default_factory=list)


class Outline(BaseModel):
    """Final cited answer structure"""
    sections: List[OutlineSection] = Field(default_factory=list)
    confidence_by_section: Dict[str, float] = Field(default_factory=dict)

    @field_validator("confidence_by_section")
    @classmethod
    def _clamp_confidence(cls, v: Dict[str, float]) -> Dict[str, float]:
        for title, score in v.items():
            if not 0.0 <= score <= 1.0:
                raise ValueError(f"confidence for {title!r} out of range: {score}")
        return v

    def section(self, title: str) -> Optional[OutlineSection]:
        for s in self.sections:
            if s.title == title:
                return s
        return None

    def to_markdown(self) -> str:
        lines: List[str] = []
        for s in self.sections:
            conf = self.confidence_by_section.get(s.title)
            heading = f"## {s.title}"
            if conf is not None:
                heading += f" (confidence {conf:.2f})"
            lines.append(heading)
            lines.extend(f"- {b}" for b in s.bullets)
            lines.append("")
        return "\n".join(lines).rstrip() + "\n"


class ResearchPlan(BaseModel):
    """Subquestions the run will search for"""
    query: str
    subquestions: List[str] = Field(default_factory=list)
    criteria: List[str] = Field(default_factory=list)
    notes: Optional[str] = None


# ---------------------------------------------------------------------------
# Credibility and triangulation
# ---------------------------------------------------------------------------

class SourceCredibility(BaseModel):
    model_config = ConfigDict(frozen=True)

    lane: Lane
    factual_reporting: float = Field(ge=0, le=1)
    credibility_rating: float = Field(ge=0, le=1)
    press_freedom: float = Field(ge=0, le=1)
    overall_score: float = Field(ge=0, le=1)


class NewsSource(BaseModel):
    id: str
    url: str
    title: str
    snippet: str = ""
    domain: str
    source_name: str
    timestamp: Optional[str] = None
    image_url: Optional[str] = None
    lane: Optional[Lane] = None
    credibility_score: Optional[float] = None


class NewsClaim(BaseModel):
    id: str
    source_id: str
    lane: Optional[Lane] = None
    text: str
    who: Optional[str] = None
    when: Optional[str] = None
    where: Optional[str] = None
    claim_type: Literal["fact", "opinion", "quote", "other"] = "other"
    confidence: Literal["low", "medium", "high"] = "medium"


class SupportingClaim(BaseModel):
    claim_id: str
    source_id: str
    lane: Optional[Lane] = None


class ClaimCluster(BaseModel):
    cluster_id: str
    representative_text: str
    lanes_covered: List[Lane]
    supporting_claims: List[SupportingClaim]
    agreement_level: Literal["high", "medium", "low"]


class LaneCount(BaseModel):
    lane: Lane
    count: int


class TriangulationResult(BaseModel):
    summary: str
    shared_facts: List[ClaimCluster] = Field(default_factory=list)
    conflicts: List[ClaimCluster] = Field(default_factory=list)
    unique_angles: List[ClaimCluster] = Field(default_factory=list)
    lanes: List[LaneCount] = Field(default_factory=list)
    sources: List[NewsSource] = Field(default_factory=list)
