from pydantic import BaseModel, Field
from typing import List, Optional


class SearchRequest(BaseModel):
    query: str
    page: int = Field(1, ge=1)
    language: Optional[str] = None
    engines: List[str] = Field(default_factory=list)
    categories: Optional[str] = None  # e.g. "news"
