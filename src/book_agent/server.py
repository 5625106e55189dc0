#!/usr/bin/env python3
"""
server.py
HTTP front end for the book excerpt agent.

This app:
- Exposes /.well-known/agent.json (A2A agent card, alias /.well-known/agent-card)
- Exposes /a2a/{agent_id} for A2A JSON-RPC requests, streaming message/stream as SSE
- Exposes /api/extract-book as a plain REST endpoint
- Exposes /health

Run with: python -m src.book_agent.server

Environment:
- See config.py; settings can also come from a .env file
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Dict, Optional, Tuple

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
import uvicorn

from src.book_agent import config
from src.book_agent.a2a_protocol import (
    PARSE_ERROR,
    JSONRPCError,
    build_agent_card,
    make_error_response,
    validate_request,
)
from src.book_agent.agent import BookExtractorAgent, build_llm
from src.book_agent.catalog_client import CatalogClient
from src.book_agent.errors import BookAgentError, RateLimitError, ValidationError
from src.book_agent.logging_config import configure_logging
from src.book_agent.protocol_handler import A2AProtocolHandler
from src.book_agent.resilience import with_deadline
from src.book_agent.task_store import TaskStore, utc_now_iso
from src.book_agent.validation import parse_extraction_request

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


# ─── Rate Limiting ───────────────────────────────────────────────────────────

class RateLimiter:
    """Fixed-window request counter keyed by client address."""

    def __init__(self, max_requests: int, window_ms: int, clock=time.time):
        self.max_requests = max_requests
        self.window_ms = window_ms
        self._clock = clock
        self._windows: Dict[str, Tuple[float, int]] = {}

    def __len__(self) -> int:
        return len(self._windows)

    def check(self, identifier: str) -> Tuple[bool, float]:
        """
        Count one request for `identifier`.

        Returns:
            (allowed, reset_time) where reset_time is the epoch time in ms
            at which the current window ends
        """
        now = self._clock() * 1000
        self._prune(now)
        reset_time, count = self._windows.get(identifier, (0.0, 0))
        if now >= reset_time:
            reset_time, count = now + self.window_ms, 0

        count += 1
        self._windows[identifier] = (reset_time, count)
        return count <= self.max_requests, reset_time

    def _prune(self, now: float) -> None:
        expired = [key for key, (reset_time, _) in self._windows.items() if now >= reset_time]
        for key in expired:
            del self._windows[key]


# ─── Error Rendering ─────────────────────────────────────────────────────────

def error_payload(error: BookAgentError, request: Request) -> Dict:
    body = error.to_dict()
    body.update({"path": request.url.path, "method": request.method})
    if config.is_development() and error.__cause__ is not None:
        body["cause"] = repr(error.__cause__)
    return {"success": False, "error": body, "timestamp": utc_now_iso()}


def error_json(error: BookAgentError, request: Request) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content=error_payload(error, request))


# ─── Background Tasks ────────────────────────────────────────────────────────

async def sweep_expired_tasks(store: TaskStore, ttl_seconds: float, interval: float) -> None:
    """Periodically evict tasks older than the TTL."""
    while True:
        await asyncio.sleep(interval)
        try:
            store.evict_older_than(ttl_seconds)
        except Exception:
            logger.exception("Task sweep failed")


# ─── FastAPI App ─────────────────────────────────────────────────────────────

def create_app(
    handler: Optional[A2AProtocolHandler] = None,
    catalog_client: Optional[CatalogClient] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        handler: Protocol handler to use; built from the other parts if omitted
        catalog_client: Catalog client for the default agent
        rate_limiter: Overrides the limiter built from RATE_LIMIT_* settings
    """
    if handler is None:
        catalog_client = catalog_client or CatalogClient()
        agent = BookExtractorAgent(catalog_client, llm=build_llm())
        handler = A2AProtocolHandler(TaskStore(), agent)
    limiter = rate_limiter or RateLimiter(config.RATE_LIMIT_MAX, config.RATE_LIMIT_WINDOW_MS)
    agent_card = build_agent_card().to_dict()
    started_at = time.monotonic()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        config.validate_environment()
        logger.info(f"Starting {config.SERVICE_NAME} v{config.SERVICE_VERSION} ({config.APP_ENV})")

        sweeper = None
        if config.TASK_TTL_SECONDS > 0:
            sweeper = asyncio.create_task(
                sweep_expired_tasks(handler.store, config.TASK_TTL_SECONDS, config.TASK_SWEEP_INTERVAL)
            )
            logger.info(f"Evicting tasks older than {config.TASK_TTL_SECONDS}s")

        yield

        if sweeper is not None:
            sweeper.cancel()
        await handler.agent.client.close()
        logger.info(f"Shutting down {config.SERVICE_NAME}")

    app = FastAPI(
        title="A2A Book Agent",
        description="Extracts excerpts from public domain books over REST and A2A JSON-RPC",
        version=config.SERVICE_VERSION,
        lifespan=lifespan,
    )
    app.state.handler = handler

    @app.middleware("http")
    async def rate_limit_and_log(request: Request, call_next):
        client = request.client.host if request.client else "unknown"
        allowed, reset_time = limiter.check(client)
        if not allowed:
            logger.warning(f"Rate limit exceeded for {client}")
            response = error_json(RateLimitError(int(reset_time)), request)
        else:
            logger.info(
                f"Incoming request: {request.method} {request.url.path}",
                extra={"client": client, "user_agent": request.headers.get("user-agent", "Unknown")},
            )
            response = await call_next(request)

        for name, value in SECURITY_HEADERS.items():
            response.headers[name] = value
        if config.is_production():
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    # CORS wraps the rate limiter so preflight responses carry CORS headers
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.ALLOWED_ORIGINS if config.is_production() else ["*"],
        allow_credentials=config.is_production(),
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    )

    @app.exception_handler(BookAgentError)
    async def handle_book_agent_error(request: Request, exc: BookAgentError):
        logger.error(f"Error [{request.method} {request.url.path}]: {exc.code} {exc.message}")
        return error_json(exc, request)

    @app.get("/health")
    async def health_check():
        """Liveness and service metadata."""
        return {
            "status": "healthy",
            "timestamp": utc_now_iso(),
            "service": config.SERVICE_NAME,
            "version": config.SERVICE_VERSION,
            "environment": config.APP_ENV,
            "uptime": round(time.monotonic() - started_at, 3),
            "activeTasks": len(handler.store),
        }

    @app.get("/.well-known/agent.json")
    async def get_agent_card():
        """Return the A2A agent card for discovery."""
        return JSONResponse(content=agent_card)

    @app.get("/.well-known/agent-card")
    async def get_agent_card_alt():
        """Alternative endpoint for agent card (some clients use this path)."""
        return JSONResponse(content=agent_card)

    @app.post("/api/extract-book")
    async def extract_book(request: Request):
        """REST: {searchQuery} -> {success, data, timestamp}."""
        try:
            body = await request.json()
        except ValueError:
            # JSONDecodeError and UnicodeDecodeError
            raise ValidationError("Invalid JSON in request body")

        extraction = parse_extraction_request(body)
        logger.info(f"Processing book extraction request: {extraction.searchQuery!r}")

        try:
            result = await with_deadline(
                handler.agent.generate(f"Find a book with: query: {extraction.searchQuery}"),
                handler.request_timeout,
                "Book extraction request timed out",
            )
        except BookAgentError:
            raise
        except Exception as e:
            logger.exception(f"Error in book extraction for {extraction.searchQuery!r}")
            raise BookAgentError("Internal server error") from e

        return {"success": True, "data": result, "timestamp": utc_now_iso()}

    @app.post("/a2a/{agent_id}")
    async def handle_a2a(agent_id: str, request: Request):
        """Handle A2A JSON-RPC requests."""
        try:
            body = await request.json()
        except ValueError:
            return JSONResponse(
                content=make_error_response(PARSE_ERROR, "Parse error"),
                status_code=400
            )

        try:
            validate_request(body)
        except JSONRPCError as e:
            request_id = body.get("id") if isinstance(body, dict) else None
            return JSONResponse(content=e.to_response(request_id), status_code=400)

        logger.info(f"A2A request for {agent_id}: method={body['method']}, id={body.get('id')}")
        result = await handler.route_request(body)

        if isinstance(result, dict):
            return JSONResponse(content=result)
        return StreamingResponse(result, media_type="text/event-stream", headers=SSE_HEADERS)

    return app


# ─── Main ────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    configure_logging()
    port = config.get_port()
    logger.info(f"Agent card available at: http://localhost:{port}/.well-known/agent.json")
    logger.info(f"A2A endpoint: http://localhost:{port}/a2a/{config.AGENT_ID}")
    uvicorn.run(create_app(), host=config.HOST, port=port)
