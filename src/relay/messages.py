import re
from typing import Any, Iterable, List

from typing_extensions import TypedDict

from .types import ChatMessage, ImageURLPart, TextPart

_DATA_URI_PATTERN = re.compile(r"^data:(image/[^;]+);base64,(.+)$", re.DOTALL)


class AnthropicImageSource(TypedDict):
    type: str
    media_type: str
    data: str


class AnthropicMessage(TypedDict):
    role: str
    content: str | list[dict[str, Any]]


def parse_data_uri(url: str) -> tuple[str, str] | None:
    match = _DATA_URI_PATTERN.match(url)
    if match is None:
        return None
    return match.group(1), match.group(2)


def to_openai_messages(messages: Iterable[ChatMessage]) -> List[dict[str, Any]]:
    # OpenAI accepts the canonical shape as-is, system messages included.
    return [message.model_dump(mode="json") for message in messages]


def _anthropic_part(part: TextPart | ImageURLPart) -> dict[str, Any]:
    if isinstance(part, TextPart):
        return {"type": "text", "text": part.text}
    url = part.image_url.url
    parsed = parse_data_uri(url) if url.startswith("data:") else None
    if parsed is not None:
        media_type, data = parsed
        source: AnthropicImageSource = {
            "type": "base64",
            "media_type": media_type,
            "data": data,
        }
        return {"type": "image", "source": source}
    # Anthropic only takes inline bytes; remote images degrade to a placeholder.
    return {"type": "text", "text": f"[Image URL: {url}]"}


def to_anthropic_content(
    parts: Iterable[TextPart | ImageURLPart],
) -> list[dict[str, Any]]:
    converted = (_anthropic_part(part) for part in parts)
    return [
        block
        for block in converted
        if block["type"] == "image" or block.get("text")
    ]


def to_anthropic_messages(
    messages: Iterable[ChatMessage],
) -> tuple[str, List[AnthropicMessage]]:
    """Split out the system prompt and reshape the rest for the Messages API."""
    system = ""
    system_seen = False
    mapped: List[AnthropicMessage] = []
    for message in messages:
        if message.role == "system":
            if not system_seen:
                system = message.text()
                system_seen = True
            continue
        if isinstance(message.content, str):
            content: str | list[dict[str, Any]] = message.content
        else:
            content = to_anthropic_content(message.content)
        mapped.append({"role": message.role, "content": content})
    return system, mapped
