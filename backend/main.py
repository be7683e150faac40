from dotenv import load_dotenv
load_dotenv()

import asyncio
import contextlib
import logging
import signal
import sys
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.datastructures import MutableHeaders
from starlette.exceptions import HTTPException as StarletteHTTPException

from automation.factory import AutomationConnectionFactory
from broker.lifecycle import LifecycleManager
from broker.router import MessageRouter
from broker.stream_writer import StreamWriter
from config import Settings, load_settings
from errors import BrokerError, ConfigError
from routes import commands, health, stream
from store import SessionRegistry

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def cors_headers(allow_origin: str) -> dict:
    return {
        "Access-Control-Allow-Origin": allow_origin,
        "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type",
    }


class CORSHeadersMiddleware:
    """
    Stamps the CORS headers on every response, streaming ones included, and
    answers every OPTIONS request with an empty 200.
    """

    def __init__(self, app, allow_origin: str = "*"):
        self.app = app
        self.headers = cors_headers(allow_origin)

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        if scope["method"] == "OPTIONS":
            response = Response(status_code=200, headers=self.headers)
            await response(scope, receive, send)
            return

        async def send_with_cors(message):
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                for name, value in self.headers.items():
                    headers[name] = value
            await send(message)

        await self.app(scope, receive, send_with_cors)


def create_app(
    settings: Optional[Settings] = None,
    factory: Optional[AutomationConnectionFactory] = None,
) -> FastAPI:
    settings = settings or load_settings()
    factory = factory or AutomationConnectionFactory(settings.automation())

    registry = SessionRegistry()
    lifecycle = LifecycleManager(
        factory,
        registry=registry,
        writer=StreamWriter(keepalive_interval=settings.keepalive_interval),
        idle_timeout=settings.idle_timeout,
        reap_interval=settings.reap_interval,
    )

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI):
        await lifecycle.start()
        try:
            yield
        finally:
            await lifecycle.shutdown()

    app = FastAPI(title="Browser Session Broker", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.lifecycle = lifecycle
    app.state.message_router = MessageRouter(registry)

    app.add_middleware(CORSHeadersMiddleware, allow_origin=settings.cors_origin)

    @app.exception_handler(BrokerError)
    async def broker_error_handler(request: Request, exc: BrokerError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        # Unknown paths and unsupported methods look the same to clients
        if exc.status_code in (404, 405):
            return JSONResponse(status_code=404, content={"error": "not found"})
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": "invalid request"})

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception: %s %s", request.method, request.url.path)
        # Rendered outside the CORS middleware, so the headers go on here
        return JSONResponse(
            status_code=500,
            content={"error": "internal server error"},
            headers=cors_headers(settings.cors_origin),
        )

    app.include_router(stream.router)
    app.include_router(commands.router)
    app.include_router(health.router)

    return app


async def serve(settings: Settings, factory: Optional[AutomationConnectionFactory] = None) -> None:
    """
    Run the broker until SIGINT/SIGTERM.

    A signal first broadcasts teardown to every session, which ends their
    streams, then asks uvicorn to stop. Returning normally gives exit code 0.
    """
    app = create_app(settings, factory)
    lifecycle: LifecycleManager = app.state.lifecycle

    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        timeout_graceful_shutdown=5,
    )
    server = uvicorn.Server(config)

    loop = asyncio.get_running_loop()
    stopping: list[asyncio.Task] = []

    def _stop(*_: object) -> None:
        if stopping:
            return
        logger.info("Shutting down broker...")
        stopping.append(loop.create_task(lifecycle.shutdown()))
        server.should_exit = True

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _stop)
        except NotImplementedError:
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(_stop))

    logger.info("Broker listening on http://%s:%d", settings.host, settings.port)
    logger.info("  Stream endpoint:   GET  /stream")
    logger.info("  Command endpoint:  POST /commands?sessionId=<id>")
    logger.info("  Browser: %s, context mode: %s", settings.browser.value, settings.context_mode.value)

    # uvicorn's own signal capture would replace the handlers above
    serve_coro = server._serve() if hasattr(server, "_serve") else server.serve()
    await serve_coro
    if stopping:
        await asyncio.gather(*stopping)
    await lifecycle.shutdown()
    logger.info("Broker stopped")


def run() -> None:
    try:
        settings = load_settings()
    except ConfigError as exc:
        logging.basicConfig(level=logging.ERROR, format=LOG_FORMAT)
        logger.critical("%s", exc.message)
        sys.exit(2)

    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
    asyncio.run(serve(settings))


if __name__ == "__main__":
    run()
