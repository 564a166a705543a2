import json
import logging
import uuid
from types import MappingProxyType
from typing import Any, Mapping

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError
from starlette.background import BackgroundTask
from starlette.exceptions import HTTPException as StarletteHTTPException

from .access import ACCESS_PASSWORD_HEADER, QUOTA_EXEMPT_HEADER, evaluate_access
from .config import GatewaySettings, load_settings
from .providers import RelayError, get_provider
from .streaming import relay_stream
from .types import ChatRequest

logger = logging.getLogger(__name__)

CORS_HEADERS: Mapping[str, str] = MappingProxyType(
    {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
        "Access-Control-Allow-Headers": f"Content-Type, {ACCESS_PASSWORD_HEADER}",
        "Access-Control-Expose-Headers": QUOTA_EXEMPT_HEADER,
    }
)

STREAM_HEADERS: Mapping[str, str] = MappingProxyType(
    {
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
    }
)


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code, headers=dict(CORS_HEADERS))


def _quota_headers(exempt: bool) -> dict[str, str]:
    return {QUOTA_EXEMPT_HEADER: "true" if exempt else "false"}


def _log_request_event(
    level: int,
    *,
    event: str,
    req_id: str,
    provider: str,
    stream: bool | None = None,
    detail: str | None = None,
) -> None:
    message = f"{event} req_id={req_id} provider={provider}"
    if stream is not None:
        message = f"{message} stream={'true' if stream else 'false'}"
    if detail:
        message = f"{message} detail={detail}"
    logger.log(level, message)


def _describe_validation_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    reason = first.get("msg") or "invalid value"
    if location:
        return f"Invalid request: {location}: {reason}"
    return f"Invalid request: {reason}"


async def _parse_chat_request(request: Request) -> ChatRequest:
    raw: Any = await request.json()
    return ChatRequest.model_validate(raw)


async def handle_chat(request: Request, settings: GatewaySettings) -> Response:
    req_id = uuid.uuid4().hex
    provider_name = settings.provider.value
    decision = evaluate_access(
        settings.access_password, request.headers.get(ACCESS_PASSWORD_HEADER)
    )
    if not decision.valid:
        _log_request_event(
            logging.WARNING,
            event="chat rejected",
            req_id=req_id,
            provider=provider_name,
            detail="access password mismatch",
        )
        return _error_response(401, "invalid access password")

    try:
        body = await _parse_chat_request(request)
    except ValidationError as exc:
        message = _describe_validation_error(exc)
        _log_request_event(
            logging.WARNING,
            event="chat invalid",
            req_id=req_id,
            provider=provider_name,
            detail=message,
        )
        return _error_response(400, message)
    except ValueError:
        # json.JSONDecodeError and UnicodeDecodeError both land here.
        _log_request_event(
            logging.WARNING,
            event="chat invalid",
            req_id=req_id,
            provider=provider_name,
            detail="body is not valid JSON",
        )
        return _error_response(400, "Invalid request: body must be a JSON object")

    provider = get_provider(settings)
    quota_headers = _quota_headers(decision.exempt)
    try:
        if body.stream:
            upstream = await provider.open_stream(body.messages)
        else:
            content = await provider.chat(body.messages)
    except RelayError as exc:
        _log_request_event(
            logging.ERROR,
            event="chat failure",
            req_id=req_id,
            provider=provider_name,
            stream=body.stream,
            detail=str(exc),
        )
        return _error_response(500, str(exc))
    except Exception as exc:
        logger.exception("chat internal error req_id=%s provider=%s", req_id, provider_name)
        return _error_response(500, str(exc) or exc.__class__.__name__)

    if body.stream:
        _log_request_event(
            logging.INFO,
            event="chat stream opened",
            req_id=req_id,
            provider=provider_name,
            stream=True,
        )
        headers = {**CORS_HEADERS, **STREAM_HEADERS, **quota_headers}
        # The body generator closes upstream only once iterated; the
        # background task covers a response dropped before its first frame.
        return StreamingResponse(
            relay_stream(upstream, provider.extract_fragment),
            media_type="text/event-stream",
            headers=headers,
            background=BackgroundTask(upstream.aclose),
        )

    _log_request_event(
        logging.INFO,
        event="chat success",
        req_id=req_id,
        provider=provider_name,
        stream=False,
    )
    return JSONResponse({"content": content}, headers={**CORS_HEADERS, **quota_headers})


def create_app(settings: GatewaySettings | None = None) -> FastAPI:
    resolved = settings if settings is not None else load_settings()
    app = FastAPI(title="llm-relay")
    app.state.settings = resolved

    if not resolved.access_password:
        logger.warning("access password not configured: every request is counted against quota")

    # CORSMiddleware skips requests without an Origin header and answers
    # preflights with 200; every response here carries the headers and
    # preflights get 204.
    @app.middleware("http")
    async def _apply_cors(request: Request, call_next: Any) -> Response:
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=dict(CORS_HEADERS))
        response = await call_next(request)
        response.headers.update(CORS_HEADERS)
        return response

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        # Unknown paths and wrong methods both surface as 404.
        if exc.status_code in (404, 405):
            return _error_response(404, "Not Found")
        detail = exc.detail if isinstance(exc.detail, str) else json.dumps(exc.detail)
        return _error_response(exc.status_code, detail)

    @app.get("/api/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/chat")
    async def chat(request: Request) -> Response:
        return await handle_chat(request, request.app.state.settings)

    return app


app = create_app()
