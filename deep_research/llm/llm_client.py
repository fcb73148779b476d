"""
LLM Client - ChatModel adapters for OpenAI and Anthropic

Provider SDKs are imported lazily so the core pipeline runs without them.
"""

import logging
from typing import List, Optional, Tuple

from ..config import Settings, get_settings
from ..exceptions import APIError, ConfigurationError, RateLimitError
from ..models import ChatMessage
from ..utils.cancel import CancelToken, cancellable

logger = logging.getLogger(__name__)


def _split_system(messages: List[ChatMessage]) -> Tuple[str, List[ChatMessage]]:
    system = "\n\n".join(m.content for m in messages if m.role == "system")
    rest = [m for m in messages if m.role != "system"]
    return system, rest


class OpenAIChatModel:
    """ChatModel over the OpenAI chat completions API"""

    provider = "openai"

    def __init__(self, settings: Settings):
        import openai
        self._openai = openai
        self.model_name = settings.OPENAI_MODEL
        self.temperature = settings.LLM_TEMPERATURE
        self.max_tokens = settings.LLM_MAX_TOKENS
        self._client = openai.AsyncOpenAI(
            api_key=settings.OPENAI_API_KEY,
            base_url=settings.OPENAI_API_BASE or None,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )

    async def invoke(self, messages: List[ChatMessage], signal: Optional[CancelToken] = None) -> str:
        try:
            response = await cancellable(self._client.chat.completions.create(
                model=self.model_name,
                messages=[{"role": m.role, "content": m.content} for m in messages],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            ), signal)
        except self._openai.RateLimitError as e:
            raise RateLimitError(str(e), provider=self.provider, status_code=429) from e
        except self._openai.APIError as e:
            raise APIError(str(e), provider=self.provider, status_code=getattr(e, "status_code", None)) from e
        return response.choices[0].message.content or ""


class AnthropicChatModel:
    """ChatModel over the Anthropic messages API"""

    provider = "anthropic"

    def __init__(self, settings: Settings):
        import anthropic
        self._anthropic = anthropic
        self.model_name = settings.ANTHROPIC_MODEL
        self.temperature = settings.LLM_TEMPERATURE
        self.max_tokens = settings.LLM_MAX_TOKENS
        self._client = anthropic.AsyncAnthropic(
            api_key=settings.ANTHROPIC_API_KEY,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )

    async def invoke(self, messages: List[ChatMessage], signal: Optional[CancelToken] = None) -> str:
        system, rest = _split_system(messages)
        kwargs = {}
        if system:
            kwargs["system"] = system
        try:
            message = await cancellable(self._client.messages.create(
                model=self.model_name,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                messages=[{"role": m.role, "content": m.content} for m in rest],
                **kwargs,
            ), signal)
        except self._anthropic.RateLimitError as e:
            raise RateLimitError(str(e), provider=self.provider, status_code=429) from e
        except self._anthropic.APIError as e:
            raise APIError(str(e), provider=self.provider, status_code=getattr(e, "status_code", None)) from e
        return "".join(block.text for block in message.content if getattr(block, "type", "") == "text")


def build_chat_model(settings: Optional[Settings] = None):
    """Build the ChatModel selected by LLM_PROVIDER.

    Raises:
        ConfigurationError: provider disabled or its API key missing
    """
    settings = settings or get_settings()
    if settings.LLM_PROVIDER == "disabled":
        raise ConfigurationError("LLM_PROVIDER is disabled; a chat model is required for research runs")
    missing = settings.missing_llm_keys()
    if missing:
        raise ConfigurationError(f"Missing API keys for LLM_PROVIDER={settings.LLM_PROVIDER}: {', '.join(missing)}")

    if settings.LLM_PROVIDER == "openai":
        model = OpenAIChatModel(settings)
    else:
        model = AnthropicChatModel(settings)
    logger.info(f"Using {model.provider} chat model {model.model_name}")
    return model
