import logging
from collections.abc import AsyncIterator
from typing import Any, ClassVar, Sequence

import httpx

from ..config import GatewaySettings, Provider
from ..types import ChatMessage

logger = logging.getLogger(__name__)


class RelayError(Exception):
    """Base class for failures the gateway reports as JSON errors."""


class ConfigurationError(RelayError):
    """Raised before any network call when required settings are missing."""


class UpstreamError(RelayError):
    """Raised when the upstream provider call fails or answers non-2xx."""

    def __init__(self, message: str, *, status_code: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    @classmethod
    def from_response(cls, provider_label: str, status_code: int, body: str) -> "UpstreamError":
        return cls(
            f"{provider_label} API error: {body}",
            status_code=status_code,
            body=body,
        )


class UpstreamStream:
    """Open upstream streaming response; owns the client that produced it."""

    def __init__(self, client: httpx.AsyncClient, response: httpx.Response) -> None:
        self._client = client
        self._response = response
        self._closed = False

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def closed(self) -> bool:
        return self._closed

    def aiter_bytes(self) -> AsyncIterator[bytes]:
        return self._response.aiter_bytes()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._response.aclose()
        finally:
            await self._client.aclose()


class BaseProvider:
    provider: ClassVar[Provider]
    label: ClassVar[str] = "Upstream"

    def __init__(self, settings: GatewaySettings):
        self.settings = settings
        self.model = settings.model

    def _require_api_key(self) -> str:
        key = self.settings.api_key
        if not key:
            raise ConfigurationError("AI_API_KEY not configured")
        return key

    def _timeout(self) -> httpx.Timeout:
        # AI_TIMEOUT_SECONDS unset leaves long completions unbounded.
        return httpx.Timeout(self.settings.timeout)

    def _endpoint(self, path: str) -> str:
        return f"{self.settings.base_url.rstrip('/')}/{path.lstrip('/')}"

    def build_request(
        self, messages: Sequence[ChatMessage], *, stream: bool
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        raise NotImplementedError

    @staticmethod
    def extract_reply(data: Any) -> str:
        raise NotImplementedError

    @staticmethod
    def extract_fragment(event: dict[str, Any]) -> str | None:
        raise NotImplementedError

    async def chat(self, messages: Sequence[ChatMessage]) -> str:
        url, headers, payload = self.build_request(messages, stream=False)
        try:
            async with httpx.AsyncClient(timeout=self._timeout()) as client:
                r = await client.post(url, headers=headers, json=payload)
        except httpx.HTTPError as exc:
            raise UpstreamError(f"{self.label} API request failed: {exc}") from exc
        if not r.is_success:
            raise UpstreamError.from_response(self.label, r.status_code, r.text)
        try:
            data = r.json()
        except ValueError as exc:
            raise UpstreamError(
                f"{self.label} API returned invalid JSON",
                status_code=r.status_code,
                body=r.text,
            ) from exc
        return self.extract_reply(data)

    async def open_stream(self, messages: Sequence[ChatMessage]) -> UpstreamStream:
        url, headers, payload = self.build_request(messages, stream=True)
        client = httpx.AsyncClient(timeout=self._timeout())
        try:
            request = client.build_request("POST", url, headers=headers, json=payload)
            response = await client.send(request, stream=True)
        except httpx.HTTPError as exc:
            await client.aclose()
            raise UpstreamError(f"{self.label} API request failed: {exc}") from exc
        except BaseException:
            await client.aclose()
            raise
        if not response.is_success:
            try:
                raw_body = await response.aread()
            except httpx.HTTPError as exc:
                raise UpstreamError(
                    f"{self.label} API error: status {response.status_code}",
                    status_code=response.status_code,
                ) from exc
            finally:
                await response.aclose()
                await client.aclose()
            raise UpstreamError.from_response(
                self.label,
                response.status_code,
                raw_body.decode("utf-8", errors="replace"),
            )
        logger.debug("upstream stream opened provider=%s status=%s", self.provider.value, response.status_code)
        return UpstreamStream(client, response)


from .anthropic import AnthropicProvider
from .openai import OpenAICompatProvider

_PROVIDER_FACTORIES: dict[Provider, type[BaseProvider]] = {
    Provider.OPENAI: OpenAICompatProvider,
    Provider.ANTHROPIC: AnthropicProvider,
}


def get_provider(settings: GatewaySettings) -> BaseProvider:
    factory = _PROVIDER_FACTORIES.get(settings.provider, OpenAICompatProvider)
    return factory(settings)


__all__ = [
    "RelayError",
    "ConfigurationError",
    "UpstreamError",
    "UpstreamStream",
    "BaseProvider",
    "OpenAICompatProvider",
    "AnthropicProvider",
    "get_provider",
]
