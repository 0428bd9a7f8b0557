import json
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import FileResponse, Response, StreamingResponse

from . import __version__
from .config import Settings, load_settings
from .errors import BadRequest, MethodNotAllowed, RelayError, UpstreamFailure, error_response
from .gateway import CompletionGateway
from .messages import parse_messages
from .plugins.city_plugin import CityPlugin
from .plugins.podcast_plugin import PodcastPlugin
from .plugins.weather_plugin import WeatherPlugin
from .tool_registry import ToolRegistry

logger = logging.getLogger(__name__)

# Get the templates directory (in the same package)
TEMPLATES_DIR = Path(__file__).parent / "templates"

RELAY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

DONE_FRAME = "data: [DONE]\n\n"


@dataclass
class RelayVariant:
    """One relay endpoint: its prompt, tools, step budget and body format."""

    name: str
    path: str
    system_prompt: str
    tools: Optional[ToolRegistry]
    max_steps: int
    protocol: str  # "data" (event-stream frames) or "text" (raw deltas)


def build_variants(settings: Settings) -> list:
    tools = ToolRegistry.from_plugins([WeatherPlugin(), PodcastPlugin(), CityPlugin()])
    return [
        RelayVariant(
            name="chat-simple",
            path="/api/chat-simple",
            system_prompt=settings.simple_system_prompt,
            tools=None,
            max_steps=1,
            protocol="text",
        ),
        RelayVariant(
            name="chat-with-tools",
            path="/api/chat-with-tools",
            system_prompt=settings.tools_system_prompt,
            tools=tools,
            max_steps=settings.max_steps,
            protocol="data",
        ),
    ]


def encode_sse(event: Dict[str, Any]) -> str:
    """Encode one stream event as a ``data:`` frame."""
    return f"data: {json.dumps(event, ensure_ascii=False)}\n\n"


def preflight_response(allow_origin: str) -> Response:
    return Response(
        status_code=200,
        headers={
            "Access-Control-Allow-Origin": allow_origin,
            "Access-Control-Allow-Methods": "POST, OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type, Authorization",
        },
    )


async def read_json_body(request: Request) -> Any:
    raw = await request.body()
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise BadRequest(f"Invalid JSON body: {e}") from e


async def _prepend(first: Optional[dict], events: AsyncIterator[dict]):
    try:
        if first is not None:
            yield first
            async for event in events:
                yield event
    finally:
        await events.aclose()


async def encode_event_stream(events: AsyncIterator[dict], name: str):
    try:
        async for event in events:
            yield encode_sse(event)
    except Exception as e:
        # Headers are already sent; report in-band
        logger.error(f"Stream failed in {name}: {e}")
        yield encode_sse({"type": "error", "errorText": str(e)})
    yield DONE_FRAME


async def encode_text_stream(events: AsyncIterator[dict], name: str):
    try:
        async for event in events:
            if event.get("type") == "text-delta":
                yield event["delta"]
    except Exception as e:
        logger.error(f"Stream failed in {name}: {e}")


async def relay(
    request: Request,
    variant: RelayVariant,
    gateway: CompletionGateway,
    settings: Settings,
) -> Response:
    """Forward a chat history to the completion service and stream the reply."""
    origin = settings.allow_origin
    logger.info(f"=== {variant.name} called: {request.method} ===")

    if request.method == "OPTIONS":
        return preflight_response(origin)
    if request.method != "POST":
        return error_response(MethodNotAllowed(), origin)

    request_id = uuid.uuid4().hex[:8]
    try:
        body = await read_json_body(request)
        messages = parse_messages(body)
        logger.info(
            f"Messages received: {len(messages)}",
            extra={
                "structured": {
                    "log_type": "request_received",
                    "request_id": request_id,
                    "variant": variant.name,
                    "message_count": len(messages),
                }
            },
        )
        if messages:
            logger.debug(f"Last message: {messages[-1].to_dict()}")

        events = gateway.stream_text(
            messages,
            variant.system_prompt,
            tools=variant.tools,
            max_steps=variant.max_steps,
            request_id=request_id,
        )
        # Pull the first event so connection and credential errors still
        # produce an error status instead of a broken stream
        first_event = await anext(events, None)
    except RelayError as e:
        logger.error(f"Error in {variant.name}: {e.message}")
        return error_response(e, origin)
    except Exception as e:
        logger.exception(f"Unexpected error in {variant.name}: {e}")
        return error_response(UpstreamFailure(str(e) or e.__class__.__name__), origin)

    stream = _prepend(first_event, events)
    if variant.protocol == "data":
        return StreamingResponse(
            encode_event_stream(stream, variant.name),
            media_type="text/event-stream",
            headers={
                "Access-Control-Allow-Origin": origin,
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
            },
        )
    return StreamingResponse(
        encode_text_stream(stream, variant.name),
        media_type="text/plain; charset=utf-8",
        headers={"Access-Control-Allow-Origin": origin},
    )


def create_app(
    settings: Settings | None = None, gateway: CompletionGateway | None = None
) -> FastAPI:
    settings = settings or load_settings()
    gateway = gateway or CompletionGateway(
        model=settings.model,
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
    )

    app = FastAPI(title="Chat Relay", version=__version__)
    app.state.settings = settings
    app.state.gateway = gateway

    def add_relay_route(variant: RelayVariant):
        async def endpoint(request: Request):
            return await relay(request, variant, gateway, settings)

        endpoint.__name__ = variant.name.replace("-", "_")
        app.add_api_route(variant.path, endpoint, methods=RELAY_METHODS)

    for variant in build_variants(settings):
        add_relay_route(variant)

    @app.options("/api/{path:path}")
    async def preflight(path: str):
        return preflight_response(settings.allow_origin)

    @app.get("/")
    async def get():
        return FileResponse(str(TEMPLATES_DIR / "index.html"))

    return app


app = create_app()
