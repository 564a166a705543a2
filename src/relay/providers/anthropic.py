from __future__ import annotations

from typing import Any, Sequence

from ..config import Provider
from ..messages import to_anthropic_messages
from ..types import ChatMessage
from . import BaseProvider

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicProvider(BaseProvider):
    provider = Provider.ANTHROPIC
    label = "Anthropic"

    def build_request(
        self, messages: Sequence[ChatMessage], *, stream: bool
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        key = self._require_api_key()
        headers = {
            "Content-Type": "application/json",
            "x-api-key": key,
            "anthropic-version": ANTHROPIC_VERSION,
        }
        system, mapped = to_anthropic_messages(messages)
        payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.settings.max_tokens,
            "system": system,
            "messages": mapped,
            "stream": stream,
        }
        return self._endpoint("messages"), headers, payload

    @staticmethod
    def extract_reply(data: Any) -> str:
        if not isinstance(data, dict):
            return ""
        blocks = data.get("content")
        if not isinstance(blocks, list) or not blocks:
            return ""
        first = blocks[0]
        if not isinstance(first, dict):
            return ""
        text = first.get("text")
        return text if isinstance(text, str) else ""

    @staticmethod
    def extract_fragment(event: dict[str, Any]) -> str | None:
        # message_start, content_block_start, ping and the rest carry no text.
        if event.get("type") != "content_block_delta":
            return None
        delta = event.get("delta")
        if not isinstance(delta, dict):
            return None
        text = delta.get("text")
        return text if isinstance(text, str) else None
