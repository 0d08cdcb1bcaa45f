"""HTTP API: agent triggers, slide store snapshots and PDF export."""

import json
import logging
from contextlib import aclosing, asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import aiohttp
from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel, Field

from slidefox import __version__
from slidefox.agent_runtime import AgentRuntimeClient, AgentRuntimeError, sse_done, to_sse
from slidefox.core.messages import parse_messages
from slidefox.core.reconciler import reconcile_slides
from slidefox.core.store import SlideStore
from slidefox.core.tools import ImageFetcher, PdfExportError, SlideToolkit, ToolContext, export_pdf
from slidefox.default_definitions import DEFAULT_THEME, get_default_toolkit
from slidefox.ratelimit import RateLimiter, RateLimitResult, client_identifier, create_rate_limiter
from slidefox.settings import GlobalConfig, get_config

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

GENERIC_ERROR = "Something went wrong. Please try again."


class TriggerRequest(BaseModel):
    session_id: str = Field(alias="sessionId")
    trigger_name: str = Field(alias="triggerName")
    input: dict[str, Any] = Field(default_factory=dict)


class CreateSessionRequest(BaseModel):
    theme: Optional[str] = None


class RateLimitExceeded(Exception):
    def __init__(self, result: RateLimitResult):
        self.result = result


def get_store(request: Request) -> SlideStore:
    return request.app.state.store


def get_runtime(request: Request) -> AgentRuntimeClient:
    return request.app.state.runtime


def get_toolkit(request: Request) -> SlideToolkit:
    return request.app.state.toolkit


async def enforce_rate_limit(request: Request) -> None:
    limiter: Optional[RateLimiter] = request.app.state.limiter
    if limiter is None:
        return
    identifier = client_identifier(request.headers.get("x-forwarded-for"))
    result = await limiter.limit_request(identifier)
    if not result.success:
        logger.warning(f"🚫 Rate limit exceeded for {identifier}")
        raise RateLimitExceeded(result)


def create_app(
    config: Optional[GlobalConfig] = None,
    store: Optional[SlideStore] = None,
    runtime: Optional[AgentRuntimeClient] = None,
    limiter: Optional[RateLimiter] = None,
    image_fetcher_factory: Optional[Callable[[], ImageFetcher]] = None,
) -> FastAPI:
    """Build the application around explicitly provided collaborators.

    Anything not provided is built from ``config``.
    """
    config = config or get_config()

    if limiter is None and config.rate_limit.enabled:
        limiter = create_rate_limiter(
            config.rate_limit.redis_url,
            limit=config.rate_limit.limit,
            window_seconds=config.rate_limit.window_seconds,
            prefix=config.rate_limit.prefix,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting Slidefox API {__version__}")
        logger.info(f"Agent runtime URL: {config.runtime.base_url}")
        yield
        logger.info("Shutting down Slidefox API")
        await app.state.runtime.close()

    app = FastAPI(title="Slidefox", version=__version__, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.config = config
    app.state.store = store if store is not None else SlideStore(max_sessions=config.store.max_sessions)
    app.state.runtime = runtime or AgentRuntimeClient(
        config.runtime.base_url, config.runtime.api_key, config.runtime.request_timeout
    )
    app.state.limiter = limiter
    app.state.toolkit = get_default_toolkit()
    app.state.image_fetcher_factory = image_fetcher_factory or (
        lambda: ImageFetcher(timeout=config.export.fetch_timeout)
    )

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        return JSONResponse(
            {"error": "Rate limit exceeded. Please try again later."},
            status_code=429,
            headers=exc.result.headers(),
        )

    @app.get("/health")
    async def health():
        return {
            "service": "slidefox",
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": __version__,
        }

    @app.post("/api/sessions", dependencies=[Depends(enforce_rate_limit)])
    async def create_session(
        body: CreateSessionRequest, runtime: AgentRuntimeClient = Depends(get_runtime)
    ):
        try:
            session_id = await runtime.create_session(config.runtime.agent_id, {"THEME": body.theme or DEFAULT_THEME})
        except (AgentRuntimeError, aiohttp.ClientError) as e:
            logger.error(f"Failed to create session: {e}")
            return JSONResponse({"error": GENERIC_ERROR}, status_code=502)
        return {"sessionId": session_id}

    @app.get("/api/sessions/{session_id}/messages")
    async def session_messages(session_id: str, runtime: AgentRuntimeClient = Depends(get_runtime)):
        try:
            messages = await runtime.get_messages(session_id)
        except (AgentRuntimeError, aiohttp.ClientError) as e:
            logger.error(f"Failed to load messages for {session_id}: {e}")
            return JSONResponse({"error": GENERIC_ERROR}, status_code=502)
        return {"sessionId": session_id, "messages": messages}

    @app.post("/api/trigger", dependencies=[Depends(enforce_rate_limit)])
    async def trigger(
        body: TriggerRequest,
        request: Request,
        store: SlideStore = Depends(get_store),
        runtime: AgentRuntimeClient = Depends(get_runtime),
        toolkit: SlideToolkit = Depends(get_toolkit),
    ):
        tool_handlers, tool_schemas = None, None
        if config.runtime.register_slide_tools:
            tool_handlers = toolkit.bind(ToolContext(session_id=body.session_id, store=store))
            tool_schemas = toolkit.function_schemas()

        async def event_stream():
            events = runtime.trigger(body.session_id, body.trigger_name, body.input, tool_handlers, tool_schemas)
            try:
                async with aclosing(events):
                    async for event in events:
                        if await request.is_disconnected():
                            logger.info(f"⏹️ Client aborted trigger on session {body.session_id}")
                            return
                        yield to_sse(event)
            except (AgentRuntimeError, aiohttp.ClientError) as e:
                logger.error(f"Trigger failed for session {body.session_id}: {e}")
                yield to_sse({"type": "error", "message": GENERIC_ERROR})
            yield sse_done()

        return StreamingResponse(
            event_stream(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    @app.get("/api/presentation")
    async def get_presentation(
        session_id: Optional[str] = Query(default=None, alias="sessionId"),
        store: SlideStore = Depends(get_store),
    ):
        if not session_id:
            return JSONResponse({"error": "sessionId is required"}, status_code=400)

        presentation = store.get_presentation(session_id)
        if presentation is None:
            return {"sessionId": session_id, "slides": [], "exists": False}

        return {**presentation.to_json_dict(), "exists": True}

    @app.get("/api/deck")
    async def get_deck(
        session_id: Optional[str] = Query(default=None, alias="sessionId"),
        store: SlideStore = Depends(get_store),
        runtime: AgentRuntimeClient = Depends(get_runtime),
    ):
        if not session_id:
            return JSONResponse({"error": "sessionId is required"}, status_code=400)

        try:
            messages = parse_messages(await runtime.get_messages(session_id))
        except (AgentRuntimeError, aiohttp.ClientError) as e:
            logger.error(f"Failed to load messages for {session_id}: {e}")
            return JSONResponse({"error": GENERIC_ERROR}, status_code=502)

        snapshot = store.get_presentation(session_id)
        if snapshot is not None:
            snapshot = snapshot.model_copy(update={"exists": True})
        slides = reconcile_slides(messages, snapshot, config.runtime.image_tool_name)
        return {"sessionId": session_id, "slides": [slide.to_json_dict() for slide in slides]}

    @app.post("/api/slides/pdf")
    async def slides_pdf(request: Request):
        try:
            body = await request.json()
        except json.JSONDecodeError as e:
            logger.error(f"PDF generation error: {e}")
            return JSONResponse({"error": "Failed to generate PDF"}, status_code=500)

        slide_urls = body.get("slideUrls") if isinstance(body, dict) else None
        if not isinstance(slide_urls, list) or not slide_urls:
            return JSONResponse({"error": "No slide URLs provided"}, status_code=400)

        try:
            pdf_bytes = await export_pdf(
                [str(url) for url in slide_urls],
                fetcher=request.app.state.image_fetcher_factory(),
                page_mode=config.export.page_mode,
            )
        except PdfExportError as e:
            logger.error(f"PDF generation error: {e}")
            return JSONResponse({"error": "Failed to generate PDF"}, status_code=500)

        return Response(
            content=pdf_bytes,
            media_type="application/pdf",
            headers={"Content-Disposition": 'attachment; filename="presentation.pdf"'},
        )

    return app
