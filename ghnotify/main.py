"""FastAPI GitHub webhook receiver that relays events to Telegram."""

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import BackgroundTasks, FastAPI, Header, Request
from fastapi.responses import JSONResponse

from ghnotify import __version__
from ghnotify.config import Config, Settings, settings
from ghnotify.dispatcher import Dispatcher, MessageClient
from ghnotify.errors import AuthError, ParseError
from ghnotify.events import EventKind, normalize
from ghnotify.routing import EventRouter
from ghnotify.telegram import TelegramClient
from ghnotify.verifier import verify

logger = logging.getLogger(__name__)


def reply(status: int, reason: Optional[str] = None, **extra: Any) -> JSONResponse:
    """Build the JSON body every endpoint answers with."""
    content: dict = {"version": __version__, "status": status}
    if reason is not None:
        content["reason"] = reason
    content.update(extra)
    return JSONResponse(status_code=status, content=content)


async def read_body(request: Request, limit: int) -> bytes:
    """Read the request body, refusing anything larger than ``limit`` bytes.

    Raises:
        ParseError: If the body exceeds the limit.
    """
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > limit:
        raise ParseError("overflow")

    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > limit:
            raise ParseError("overflow")
    return bytes(body)


def create_app(
    config: Config,
    runtime: Optional[Settings] = None,
    client: Optional[MessageClient] = None,
) -> FastAPI:
    """Create the webhook application.

    Args:
        config: Immutable configuration snapshot shared by every request.
        runtime: Runtime settings, defaults to the environment-loaded ones.
        client: Provider client, defaults to a ``TelegramClient``.

    Returns:
        The FastAPI application.
    """
    runtime = runtime or settings
    telegram = client or TelegramClient(
        config.telegram, timeout=runtime.dispatch_timeout_seconds
    )
    router = EventRouter(config)
    dispatcher = Dispatcher(
        telegram,
        max_attempts=runtime.dispatch_max_attempts,
        backoff_seconds=runtime.dispatch_backoff_seconds,
        timeout_seconds=runtime.dispatch_timeout_seconds,
        max_delay_seconds=runtime.dispatch_max_delay_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"🚀 github-webhook-notify {__version__} listening on {config.bind_address}")
        logger.info(f"Routes configured for: {router.registered_repositories}")
        yield
        close = getattr(telegram, "aclose", None)
        if close is not None:
            await close()

    app = FastAPI(title="github-webhook-notify", version=__version__, lifespan=lifespan)

    @app.exception_handler(AuthError)
    async def handle_auth_error(request: Request, exc: AuthError):
        peer = request.client.host if request.client else "-"
        logger.warning(f"Rejected delivery from {peer}: {exc.kind.value}")
        return reply(401, str(exc))

    @app.exception_handler(ParseError)
    async def handle_parse_error(request: Request, exc: ParseError):
        logger.warning(f"Malformed delivery: {exc}")
        return reply(400, str(exc))

    @app.get("/")
    async def index():
        """Liveness probe."""
        return reply(200)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": __version__,
            "repositories": len(router.registered_repositories),
            "wait_for_dispatch": runtime.wait_for_dispatch,
        }

    @app.post("/")
    async def handle_webhook(
        request: Request,
        background_tasks: BackgroundTasks,
        x_github_event: Optional[str] = Header(None),
        x_hub_signature_256: Optional[str] = Header(None),
        x_github_delivery: Optional[str] = Header(None),
        token: Optional[str] = None,
    ):
        """Verify, normalize and route a delivery, then dispatch it."""
        body = await read_body(request, runtime.max_body_bytes)
        verify(body, x_hub_signature_256, token, config.auth)

        if not x_github_event:
            raise ParseError("Missing X-GitHub-Event header")
        event = normalize(x_github_event, body)
        label = f"{event.name} {event.repository or '-'} ({x_github_delivery or '-'})"

        if event.kind is EventKind.PING:
            logger.info(f"Ping received: {label}")
            return reply(200, event.zen or "pong", event=event.name)

        if event.is_branch_lifecycle:
            logger.info(f"Skipped branch create/delete push: {label}")
            return reply(200, "skipped", event=event.name)

        decision = router.route(event)
        if decision.suppressed:
            logger.info(f"No destination for {label}, suppressed")
            return reply(200, "suppressed", event=event.name, chats=[])

        chats = sorted(decision.chats)
        logger.info(f"Routing {label} to {len(chats)} chat(s)")

        if runtime.wait_for_dispatch:
            outcomes = await dispatcher.dispatch_and_log(decision, label)
            delivered = sum(1 for o in outcomes if o.success)
            return reply(200, "delivered", event=event.name, chats=chats, delivered=delivered)

        background_tasks.add_task(dispatcher.dispatch_and_log, decision, label)
        return reply(200, "accepted", event=event.name, chats=chats)

    return app
