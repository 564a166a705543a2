"""Pytest configuration: package importability and a fake upstream provider."""

from __future__ import annotations

import json
import sys
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Any

import httpx
import pytest

SRC_DIR = Path(__file__).resolve().parents[1] / "src"
SRC_STR = str(SRC_DIR)
if SRC_STR not in sys.path:
    sys.path.insert(0, SRC_STR)


def sse_response(chunks: list[bytes], *, status_code: int = 200) -> httpx.Response:
    async def body() -> AsyncIterator[bytes]:
        for chunk in chunks:
            yield chunk

    return httpx.Response(
        status_code,
        headers={"content-type": "text/event-stream"},
        content=body(),
    )


class FakeUpstream:
    """Records outgoing provider requests and answers with ``handler``."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.client_kwargs: list[dict[str, Any]] = []
        self.handler: Callable[[httpx.Request], httpx.Response] = lambda _request: httpx.Response(
            500, text="no handler configured"
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    @property
    def last_json(self) -> dict[str, Any]:
        return json.loads(self.requests[-1].content)

    def reply_json(self, payload: Any, *, status_code: int = 200) -> None:
        self.handler = lambda _request: httpx.Response(status_code, json=payload)

    def reply_text(self, text: str, *, status_code: int) -> None:
        self.handler = lambda _request: httpx.Response(status_code, text=text)

    def reply_stream(self, chunks: list[bytes]) -> None:
        self.handler = lambda _request: sse_response(chunks)


@pytest.fixture
def upstream(monkeypatch: pytest.MonkeyPatch) -> FakeUpstream:
    fake = FakeUpstream()
    real_async_client = httpx.AsyncClient

    def _client_factory(*args: Any, **kwargs: Any) -> httpx.AsyncClient:
        fake.client_kwargs.append(dict(kwargs))
        kwargs["transport"] = httpx.MockTransport(fake)
        return real_async_client(*args, **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", _client_factory)
    return fake
