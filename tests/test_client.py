import json

import httpx
import pytest

from conftest import sse_response
from relay.client import ChatResult, RelayClient, RelayRequestError, parse_sse_line
from relay.types import ChatMessage


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ('data: {"content": "hi"}', "hi"),
        ('data: {"choices": [{"delta": {"content": "delta"}}]}', "delta"),
        ('data: {"text": "plain"}', "plain"),
        ('{"content": "no prefix"}', "no prefix"),
        ("data: [DONE]", None),
        ('data: {"content": ""}', None),
        ("data: [1, 2]", None),
        ("data: raw words", "raw words"),
    ],
)
def test_parse_sse_line(line: str, expected: str | None) -> None:
    assert parse_sse_line(line) == expected


@pytest.mark.asyncio
async def test_chat_sends_password_and_reads_exemption(upstream) -> None:
    upstream.handler = lambda _request: httpx.Response(
        200, json={"content": "hello"}, headers={"X-Quota-Exempt": "true"}
    )
    client = RelayClient("https://relay.test/", access_password="secret")

    result = await client.chat([ChatMessage(role="user", content="hi"), {"role": "assistant", "content": "yo"}])

    assert result == ChatResult(content="hello", quota_exempt=True)
    request = upstream.requests[0]
    assert request.url == "https://relay.test/api/chat"
    assert request.headers["X-Access-Password"] == "secret"
    assert upstream.last_json == {
        "messages": [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "yo"}]
    }


@pytest.mark.asyncio
async def test_chat_without_password_omits_header(upstream) -> None:
    upstream.reply_json({"content": "hello"})
    result = await RelayClient("https://relay.test").chat([{"role": "user", "content": "hi"}])
    assert result.quota_exempt is False
    assert "X-Access-Password" not in upstream.requests[0].headers


@pytest.mark.asyncio
async def test_chat_error_raises_with_body(upstream) -> None:
    upstream.reply_text('{"error": "invalid access password"}', status_code=401)
    with pytest.raises(RelayRequestError) as excinfo:
        await RelayClient("https://relay.test").chat([{"role": "user", "content": "hi"}])
    assert excinfo.value.status_code == 401
    assert "invalid access password" in excinfo.value.body


@pytest.mark.asyncio
async def test_stream_chat_yields_fragments_and_accumulates(upstream) -> None:
    response = sse_response(
        [
            b'data: {"content": "gr',
            'aph"}\n\ndata: {"content": " TD →"}\n\n'.encode(),
            b"data: [DONE]\n\n",
            b'data: {"content": "tail"}',
        ]
    )
    response.headers["X-Quota-Exempt"] = "false"
    upstream.handler = lambda _request: response

    async with RelayClient("https://relay.test").stream_chat([{"role": "user", "content": "hi"}]) as stream:
        fragments = [fragment async for fragment in stream]

    assert fragments == ["graph", " TD →", "tail"]
    assert stream.content == "graph TD →tail"
    assert stream.quota_exempt is False
    assert json.loads(upstream.requests[0].content)["stream"] is True


@pytest.mark.asyncio
async def test_stream_chat_error_raises_before_yielding(upstream) -> None:
    upstream.reply_text('{"error": "AI_API_KEY not configured"}', status_code=500)
    with pytest.raises(RelayRequestError) as excinfo:
        async with RelayClient("https://relay.test").stream_chat([{"role": "user", "content": "hi"}]):
            pytest.fail("stream body should not be reached")
    assert excinfo.value.status_code == 500
