"""
FastAPI application for toolstream.

Usage:
    # Development server with auto-reload
    uvicorn toolstream.api.main:app --reload --host 0.0.0.0 --port 8080

    # Debug mode (verbose logging)
    LOG_LEVEL=DEBUG uvicorn toolstream.api.main:app --reload --port 8080
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import config
from ..tracing import init_tracing_client, shutdown_tracing
from .dependencies import get_registry, get_upstream_client
from .routes import chat, health


def configure_logging():
    """Configure logging from the configured level (LOG_LEVEL)."""
    log_level = getattr(logging, config.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("toolstream").setLevel(log_level)


configure_logging()
logger = logging.getLogger(__name__)


def log_configuration() -> None:
    """Log the effective configuration banner."""
    command = config.tools.command
    logger.info("=" * 60)
    logger.info("UPSTREAM")
    logger.info(f"  Base URL: {config.upstream.base_url}")
    logger.info(f"  Default model: {config.upstream.model}")
    logger.info(f"  API key: {'set' if config.upstream.api_key else 'NOT SET'}")
    logger.info("-" * 60)
    logger.info("ORCHESTRATOR")
    logger.info(f"  Max rounds: {config.orchestrator.max_rounds}")
    logger.info(f"  Initial tools: {', '.join(config.orchestrator.initial_tools) or '-'}")
    logger.info(f"  Protocol prompt: {'ON' if config.orchestrator.system_prompt_enabled else 'OFF'}")
    logger.info(f"  Summarizer model: {config.summarizer.model or '(request model)'}")
    logger.info("-" * 60)
    logger.info("TOOLS")
    for name, tool in get_registry().all_tools().items():
        logger.info(f"  - {name} ({tool.schema.name}): {tool.schema.description[:60]}")
    if command.unrestricted:
        logger.warning("  Command policy: UNRESTRICTED (any shell command runs)")
    else:
        logger.info(f"  Command policy: {', '.join(command.allowed_commands)}")
    logger.info(f"  Light fixtures: {', '.join(config.tools.lights.fixtures)}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown events."""
    logger.info(f"Starting toolstream API server v{__version__}")
    log_configuration()

    logger.info("-" * 60)
    logger.info("LANGFUSE OBSERVABILITY")
    tracing_client = init_tracing_client(config.langfuse)
    if tracing_client.enabled:
        logger.info("  Status: ENABLED")
        logger.info(f"  Host: {config.langfuse.host or 'https://cloud.langfuse.com'}")
    else:
        logger.info("  Status: DISABLED")
        if tracing_client.error:
            logger.info(f"  Reason: {tracing_client.error}")
    logger.info("=" * 60)

    yield

    logger.info("Shutting down toolstream API server")
    shutdown_tracing()
    if get_upstream_client.cache_info().currsize:
        get_upstream_client().close()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    app = FastAPI(
        title="toolstream API",
        description=(
            "OpenAI-compatible streaming proxy that executes shell commands and "
            "light changes requested by the upstream model."
        ),
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, tags=["Health"])
    app.include_router(chat.router, tags=["Chat"])

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Log validation errors and answer 400 instead of 422."""
        logger.warning(
            f"Validation error on {request.method} {request.url.path}: {exc.errors()}"
        )
        body = await request.body()
        logger.debug(f"Request body: {body.decode('utf-8', errors='replace')[:1000]}")
        return JSONResponse(status_code=400, content={"detail": exc.errors()})

    return app


app = create_app()


def run_server():
    """Run the server with uvicorn."""
    import uvicorn

    uvicorn.run(
        "toolstream.api.main:app",
        host=config.server.host,
        port=config.server.port,
        reload=config.server.reload,
        workers=1 if config.server.reload else config.server.workers,
    )


if __name__ == "__main__":
    run_server()
