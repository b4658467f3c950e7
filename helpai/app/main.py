from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from helpai.app.api.diag import router as diag_router
from helpai.app.core.config import settings
from helpai.app.core.logging import get_log_context, get_logger, setup_logging
from helpai.app.exceptions import GatewayException
from helpai.app.services.llm import LLMRuntime, build_llm_runtime, set_llm_runtime


def create_app(runtime: Optional[LLMRuntime] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        runtime: Prebuilt LLM runtime (tests); built from settings otherwise

    Returns:
        Configured FastAPI application instance
    """
    setup_logging()
    logger = get_logger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Build the shared LLM runtime on startup and close it on shutdown."""
        llm = runtime or build_llm_runtime(settings)
        app.state.llm = llm
        set_llm_runtime(llm)

        if not llm.dispatcher.config.has_api_key and llm.dispatcher.provider.name != "mock":
            logger.warning("OPENAI_API_KEY is not set; model calls will fail with llm_setup_error")

        logger.info(
            "Application startup complete",
            extra={
                "provider": llm.dispatcher.provider.name,
                "debug_mode": settings.debug,
            },
        )

        yield

        await llm.aclose()
        set_llm_runtime(None)
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Help AI",
        description="Study assistant backend with gated access to the language model",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
        allow_headers=["*"],
        expose_headers=["Retry-After"],
        max_age=600,
    )

    app.include_router(diag_router)

    @app.exception_handler(GatewayException)
    async def gateway_exception_handler(request: Request, exc: GatewayException) -> JSONResponse:
        """Map backend exceptions to their HTTP status and JSON body."""
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            f"{type(exc).__name__} on {request.url.path}: {exc.message}",
            extra=get_log_context(status_code=exc.status_code),
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_response(),
            headers=exc.response_headers(),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled exceptions.

        Never returns a traceback to the client; in debug mode the exception
        message is included.
        """
        logger.exception(
            f"Unhandled exception on {request.url.path}",
            extra={
                "exception_type": type(exc).__name__,
                "exception_message": str(exc),
            },
        )

        if settings.debug:
            return JSONResponse(
                status_code=500,
                content={
                    "ok": False,
                    "error": "internal_error",
                    "detail": str(exc),
                    "exception_type": type(exc).__name__,
                },
            )

        return JSONResponse(
            status_code=500,
            content={"ok": False, "error": "internal_error", "detail": "Internal server error"},
        )

    return app


# Create the application instance
app = create_app()
