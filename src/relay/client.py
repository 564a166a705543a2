"""Async client for the relay's own ``/api/chat`` endpoint.

It sends the access password when one is set, reports the quota-exemption
signal and yields canonical stream fragments. Counting quota is up to the
caller.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import BaseModel

from .access import ACCESS_PASSWORD_HEADER, QUOTA_EXEMPT_HEADER
from .streaming import DATA_PREFIX, DONE_SENTINEL, SSELineBuffer


class RelayRequestError(Exception):
    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"relay request failed ({status_code}): {body}")
        self.status_code = status_code
        self.body = body


@dataclass(frozen=True)
class ChatResult:
    content: str
    quota_exempt: bool


def _is_quota_exempt(headers: httpx.Headers) -> bool:
    return headers.get(QUOTA_EXEMPT_HEADER, "").strip().lower() == "true"


def _serialize_messages(messages: Iterable[Any]) -> list[dict[str, Any]]:
    serialized: list[dict[str, Any]] = []
    for message in messages:
        if isinstance(message, BaseModel):
            serialized.append(message.model_dump(mode="json"))
        else:
            serialized.append(dict(message))
    return serialized


def parse_sse_line(line: str) -> str | None:
    """Extract text from one stream line.

    Accepts canonical ``{"content": ...}`` events as well as raw OpenAI
    deltas and ``{"text": ...}`` payloads; non-JSON text is returned as-is.
    """
    data = line[len(DATA_PREFIX):] if line.startswith(DATA_PREFIX) else line
    if data == DONE_SENTINEL:
        return None
    try:
        parsed = json.loads(data)
    except json.JSONDecodeError:
        return data if data.strip() else None
    if not isinstance(parsed, dict):
        return None
    choices = parsed.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        delta = choices[0].get("delta")
        if isinstance(delta, dict):
            content = delta.get("content")
            if isinstance(content, str) and content:
                return content
    for key in ("content", "text"):
        value = parsed.get(key)
        if isinstance(value, str) and value:
            return value
    return None


class ChatStream:
    def __init__(self, response: httpx.Response) -> None:
        self._response = response
        self.quota_exempt = _is_quota_exempt(response.headers)
        self.content = ""

    async def __aiter__(self) -> AsyncIterator[str]:
        buffer = SSELineBuffer()
        async for chunk in self._response.aiter_bytes():
            for line in buffer.feed(chunk):
                fragment = self._accept(line)
                if fragment:
                    yield fragment
        # Unlike the gateway, the client keeps a final unterminated line.
        fragment = self._accept(buffer.pending)
        if fragment:
            yield fragment

    def _accept(self, line: str) -> str | None:
        stripped = line.strip()
        if not stripped:
            return None
        fragment = parse_sse_line(stripped)
        if fragment:
            self.content += fragment
        return fragment


class RelayClient:
    def __init__(
        self,
        base_url: str,
        *,
        access_password: str | None = None,
        timeout: float = 60.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.access_password = access_password
        self.timeout = timeout

    @property
    def chat_url(self) -> str:
        return f"{self.base_url}/api/chat"

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.access_password:
            headers[ACCESS_PASSWORD_HEADER] = self.access_password
        return headers

    async def chat(self, messages: Iterable[Any]) -> ChatResult:
        payload = {"messages": _serialize_messages(messages)}
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            r = await client.post(self.chat_url, headers=self._headers(), json=payload)
        if not r.is_success:
            raise RelayRequestError(r.status_code, r.text)
        data = r.json()
        content = data.get("content") or data.get("message") or ""
        return ChatResult(content=content, quota_exempt=_is_quota_exempt(r.headers))

    @asynccontextmanager
    async def stream_chat(self, messages: Iterable[Any]) -> AsyncIterator[ChatStream]:
        payload = {"messages": _serialize_messages(messages), "stream": True}
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            async with client.stream(
                "POST", self.chat_url, headers=self._headers(), json=payload
            ) as response:
                if not response.is_success:
                    body = await response.aread()
                    raise RelayRequestError(
                        response.status_code, body.decode("utf-8", errors="replace")
                    )
                yield ChatStream(response)
