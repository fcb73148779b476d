"""
LLM Module - chat model adapters and JSON reply parsing.

Provider SDKs are imported lazily so the package works without them.
"""

from .json_output import parse_json_reply
from .llm_client import AnthropicChatModel, OpenAIChatModel, build_chat_model

__all__ = ["AnthropicChatModel", "OpenAIChatModel", "build_chat_model", "parse_json_reply"]
