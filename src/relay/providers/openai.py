from __future__ import annotations

from typing import Any, Sequence

from ..config import Provider
from ..messages import to_openai_messages
from ..types import ChatMessage
from . import BaseProvider


class OpenAICompatProvider(BaseProvider):
    provider = Provider.OPENAI
    label = "OpenAI"

    def build_request(
        self, messages: Sequence[ChatMessage], *, stream: bool
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        key = self._require_api_key()
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {key}",
        }
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": to_openai_messages(messages),
            "max_tokens": self.settings.max_tokens,
            "stream": stream,
        }
        return self._endpoint("chat/completions"), headers, payload

    @staticmethod
    def extract_reply(data: Any) -> str:
        if not isinstance(data, dict):
            return ""
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            return ""
        first = choices[0]
        if not isinstance(first, dict):
            return ""
        message = first.get("message")
        if not isinstance(message, dict):
            return ""
        content = message.get("content")
        return content if isinstance(content, str) else ""

    @staticmethod
    def extract_fragment(event: dict[str, Any]) -> str | None:
        choices = event.get("choices")
        if not isinstance(choices, list) or not choices:
            return None
        first = choices[0]
        if not isinstance(first, dict):
            return None
        delta = first.get("delta")
        if not isinstance(delta, dict):
            return None
        content = delta.get("content")
        return content if isinstance(content, str) else None
