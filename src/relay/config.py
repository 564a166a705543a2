import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 64000
DEFAULT_TIMEOUT_SECONDS: float | None = None


class Provider(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"

    @classmethod
    def from_value(cls, raw: str | None) -> "Provider":
        if raw is None:
            return cls.OPENAI
        normalized = raw.strip().lower()
        if not normalized:
            return cls.OPENAI
        try:
            return cls(normalized)
        except ValueError:
            logger.warning("unknown AI_PROVIDER %r, falling back to openai", raw)
            return cls.OPENAI


DEFAULT_BASE_URLS: dict[Provider, str] = {
    Provider.OPENAI: "https://api.openai.com/v1",
    Provider.ANTHROPIC: "https://api.anthropic.com/v1",
}

DEFAULT_MODELS: dict[Provider, str] = {
    Provider.OPENAI: "gpt-4o",
    Provider.ANTHROPIC: "claude-sonnet-4-20250514",
}


@dataclass(frozen=True)
class GatewaySettings:
    provider: Provider = Provider.OPENAI
    base_url: str = DEFAULT_BASE_URLS[Provider.OPENAI]
    api_key: str | None = None
    model: str = DEFAULT_MODELS[Provider.OPENAI]
    access_password: str | None = None
    max_tokens: int = DEFAULT_MAX_TOKENS
    timeout: float | None = DEFAULT_TIMEOUT_SECONDS


def _env_str(environ: Mapping[str, str], name: str) -> str | None:
    raw = environ.get(name)
    if raw is None:
        return None
    value = raw.strip()
    return value or None


def _env_var_as_int(environ: Mapping[str, str], name: str, *, default: int) -> int:
    raw = environ.get(name)
    if raw is None:
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        return default
    return value if value > 0 else default


def _env_timeout(environ: Mapping[str, str], name: str) -> float | None:
    # None disables the httpx timeout; zero or negative values mean the same.
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return DEFAULT_TIMEOUT_SECONDS
    try:
        value = float(raw.strip())
    except ValueError:
        logger.warning("invalid %s=%r, upstream calls will not time out", name, raw)
        return DEFAULT_TIMEOUT_SECONDS
    return value if value > 0 else None


def load_settings(environ: Mapping[str, str] | None = None) -> GatewaySettings:
    """Read gateway settings from the process environment.

    A missing ``AI_API_KEY`` is not an error here; providers raise
    ``ConfigurationError`` when a request actually needs the key.
    """
    env = os.environ if environ is None else environ
    provider = Provider.from_value(env.get("AI_PROVIDER"))
    return GatewaySettings(
        provider=provider,
        base_url=_env_str(env, "AI_BASE_URL") or DEFAULT_BASE_URLS[provider],
        api_key=_env_str(env, "AI_API_KEY"),
        model=_env_str(env, "AI_MODEL_ID") or DEFAULT_MODELS[provider],
        access_password=_env_str(env, "ACCESS_PASSWORD"),
        max_tokens=_env_var_as_int(env, "AI_MAX_TOKENS", default=DEFAULT_MAX_TOKENS),
        timeout=_env_timeout(env, "AI_TIMEOUT_SECONDS"),
    )
