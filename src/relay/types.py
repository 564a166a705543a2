from dataclasses import dataclass
from typing import Annotated, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class ImageURL(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    url: str


class TextPart(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    type: Literal["text"] = "text"
    text: str = ""


class ImageURLPart(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    type: Literal["image_url"] = "image_url"
    image_url: ImageURL


ContentPart = Annotated[Union[TextPart, ImageURLPart], Field(discriminator="type")]


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    role: Literal["system", "user", "assistant"]
    content: Union[str, List[ContentPart]]

    def text(self) -> str:
        """Concatenated text of the message, ignoring image parts."""
        if isinstance(self.content, str):
            return self.content
        return "".join(part.text for part in self.content if isinstance(part, TextPart))


class ChatRequest(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    messages: List[ChatMessage]
    stream: bool = False


@dataclass(frozen=True)
class AccessDecision:
    valid: bool
    exempt: bool
