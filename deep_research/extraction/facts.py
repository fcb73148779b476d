"""
Query-targeted fact and quote extraction from page text.

One chat model call per page; the reply is validated against
``FactExtraction`` and anything unparseable yields no facts.
"""

import logging
from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..capabilities import ChatModel
from ..llm.json_output import parse_json_reply
from ..models import ChatMessage
from ..utils.cancel import CancelToken

logger = logging.getLogger(__name__)

MAX_FACTS = 12
MAX_QUOTES = 6


class FactExtraction(BaseModel):
    """Schema of the extraction reply"""
    relevant: bool = False
    reason: str = ""
    facts: List[str] = Field(default_factory=list)
    quotes: List[str] = Field(default_factory=list)

    @field_validator("facts", "quotes", mode="before")
    @classmethod
    def _strings_only(cls, v):
        if not isinstance(v, list):
            return []
        return [s.strip() for s in v if isinstance(s, str) and s.strip()]

    @field_validator("facts")
    @classmethod
    def _cap_facts(cls, v):
        return v[:MAX_FACTS]

    @field_validator("quotes")
    @classmethod
    def _cap_quotes(cls, v):
        return [q[:200] for q in v[:MAX_QUOTES]]


def build_extraction_prompt(content: str, query: str, today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"""You extract short, atomic facts and direct quotes with provenance.

# Task
Given the user's query and webpage content, decide if the content is relevant. If relevant, return facts and quotes that best help answer the query. If not relevant, return empty arrays.

# Rules
- Facts: at most 25 words each, in your own words, one idea per item, no bullets
- Quotes: short direct quotes (at most 200 characters) copied verbatim
- Only include items that directly support the query

# Response format
Respond with a single JSON object:
{{"relevant": true|false, "reason": "<= 20 words", "facts": [up to {MAX_FACTS} strings], "quotes": [up to {MAX_QUOTES} strings]}}

Today's date is {today.isoformat()}

User query:
{query}

Web content:
{content}"""


class FactExtractor:
    """Extract facts and quotes relevant to a query from page text"""

    def __init__(self, chat: ChatModel, max_chars: int = 50_000):
        self.chat = chat
        self.max_chars = max_chars

    async def extract(self, content: str, query: str, signal: Optional[CancelToken] = None) -> FactExtraction:
        if not content or not content.strip():
            return FactExtraction(reason="No extractable content")

        prompt = build_extraction_prompt(content[: self.max_chars], query)
        reply = await self.chat.invoke([ChatMessage(role="system", content=prompt)], signal=signal)

        data = parse_json_reply(reply, expect="object")
        if data is None:
            logger.warning("Fact extraction reply was not JSON; treating page as empty")
            return FactExtraction(reason="unparseable reply")
        try:
            result = FactExtraction.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Fact extraction reply failed validation: {e}")
            return FactExtraction(reason="invalid reply")

        if not result.relevant:
            logger.debug(f"Content judged not relevant: {result.reason}")
            return FactExtraction(relevant=False, reason=result.reason)
        return result
