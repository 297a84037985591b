"""Community Comments API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import httpx
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.comments.hooks import PostCommitDispatcher
from src.comments.repository import CommentRepository
from src.comments.router import router as comments_router
from src.comments.service import CommentService
from src.config import get_settings
from src.core.context import get_request_id
from src.core.database import init_async_cassandra, shutdown_async_cassandra
from src.core.exceptions import ServiceError, http_status_for
from src.core.logging import configure_structlog, get_logger
from src.core.middleware import RequestContextMiddleware
from src.core.redis import init_redis, shutdown_redis
from src.events.publisher import EventPublisher
from src.health import router as health_router
from src.mentions.service import MentionService, register_mention_tasks
from src.posts.repository import PostRepository
from src.tasks.queue import TaskEnqueuer
from src.tasks.worker import TaskWorker
from src.users.profile_pictures import ProfilePictureResolver
from src.users.repository import UserRepository


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(settings, log_dir=Path(settings.log_dir))

logger = get_logger(__name__)

SHUTDOWN_DRAIN_TIMEOUT_SECONDS = 10.0


# Application state for dependency injection
class AppState:
    """Application state container."""

    cassandra_session: Any = None
    http_client: httpx.AsyncClient | None = None
    comment_service: CommentService | None = None
    mention_service: MentionService | None = None
    post_commit: PostCommitDispatcher | None = None
    task_worker: TaskWorker | None = None


app_state = AppState()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    # Initialize Redis (non-critical - events are dropped and tasks fail without it)
    redis_client = None
    try:
        redis_client = await init_redis()
        logger.info("redis_initialized")
    except Exception as e:
        logger.warning(
            "redis_init_skipped",
            error=str(e),
            message="Running without Redis - events and background tasks disabled",
        )

    app_state.post_commit = PostCommitDispatcher(
        max_attempts=settings.side_effect_max_attempts,
        backoff_seconds=settings.side_effect_backoff_seconds,
        inline=settings.side_effects_inline,
    )
    app_state.http_client = httpx.AsyncClient(
        timeout=settings.profile_picture_timeout_seconds
    )

    # Initialize Cassandra (async)
    try:
        app_state.cassandra_session = await init_async_cassandra()
        logger.info("cassandra_initialized")

        keyspace = settings.cassandra_keyspace
        users = UserRepository(app_state.cassandra_session, keyspace)

        app_state.comment_service = CommentService(
            comments=CommentRepository(app_state.cassandra_session, keyspace, users),
            users=users,
            posts=PostRepository(app_state.cassandra_session, keyspace),
            profile_pictures=ProfilePictureResolver(
                settings.profile_service_url,
                timeout=settings.profile_picture_timeout_seconds,
                client=app_state.http_client,
            ),
            events=EventPublisher(redis_client, settings.events_channel_prefix),
            tasks=TaskEnqueuer(redis_client, settings.task_queue_key),
            post_commit=app_state.post_commit,
            enrichment_concurrency=settings.author_enrichment_concurrency,
            max_text_length=settings.comment_max_length,
        )
        # Also set on app.state for dependency injection via request.app.state
        app.state.comment_service = app_state.comment_service
        logger.info("comment_service_initialized")

        app_state.mention_service = MentionService(
            session=app_state.cassandra_session,
            keyspace=keyspace,
        )
        logger.info("mention_service_initialized")
    except Exception as e:
        logger.warning(
            "database_init_skipped",
            error=str(e),
            message="Running without database connection",
        )

    # Background task worker (needs both Redis and the mention service)
    if settings.task_worker_enabled and redis_client and app_state.mention_service:
        app_state.task_worker = TaskWorker(
            redis_client,
            settings.task_queue_key,
            max_attempts=settings.task_max_attempts,
            poll_timeout=settings.task_poll_timeout_seconds,
        )
        register_mention_tasks(app_state.task_worker, app_state.mention_service)
        await app_state.task_worker.start()

    yield

    # Shutdown
    logger.info("shutting_down_application")
    if app_state.task_worker:
        await app_state.task_worker.stop()
    await app_state.post_commit.drain(timeout=SHUTDOWN_DRAIN_TIMEOUT_SECONDS)
    await app_state.http_client.aclose()
    await shutdown_redis()
    await shutdown_async_cassandra()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    # SECURITY: Always set debug=False to prevent Starlette's ServerErrorMiddleware
    # from exposing stack traces in responses. Our custom exception handlers will
    # log full details internally while returning safe error messages to users.
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Community Comments API",
        debug=False,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
    )

    # Request context middleware (must be added first - outermost)
    app.add_middleware(
        RequestContextMiddleware,
        log_requests=settings.log_requests,
        exclude_paths=settings.log_exclude_paths,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )

    def _get_request_id_safe(request: Request) -> str | None:
        """Get request_id from request state or context."""
        if hasattr(request.state, "request_id"):
            return request.state.request_id
        return get_request_id()

    def _error_response(
        request: Request, status_code: int, message: str, **extra: Any
    ) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=status_code,
            content={
                "error": True,
                "message": message,
                "status_code": status_code,
                "request_id": _get_request_id_safe(request),
                **extra,
            },
        )

    # Global exception handlers (security: never expose stack traces)
    @app.exception_handler(ServiceError)
    async def service_exception_handler(
        request: Request, exc: ServiceError
    ) -> ORJSONResponse:
        """Handle service errors that routes did not translate."""
        status_code = http_status_for(exc)

        logger.warning(
            "service_error",
            code=exc.code,
            status_code=status_code,
            path=request.url.path,
            method=request.method,
        )

        message = (
            exc.message
            if status_code < status.HTTP_500_INTERNAL_SERVER_ERROR
            else "Internal server error"
        )
        return _error_response(request, status_code, message, code=exc.code)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        """Handle HTTP exceptions with safe error messages."""
        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=str(exc.detail),
            path=request.url.path,
            method=request.method,
        )

        message = (
            str(exc.detail)
            if exc.status_code < status.HTTP_500_INTERNAL_SERVER_ERROR
            else "Internal server error"
        )
        response = _error_response(request, exc.status_code, message)
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        """Handle validation errors with safe error messages."""
        logger.warning(
            "validation_error",
            errors=exc.errors(),
            path=request.url.path,
            method=request.method,
        )

        return _error_response(
            request,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "Validation error",
            details=[
                {
                    "field": ".".join(str(loc) for loc in err.get("loc", [])),
                    "message": err.get("msg", "Invalid value"),
                }
                for err in exc.errors()
            ],
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        """Catch-all handler for unhandled exceptions.

        SECURITY: Never expose stack traces or internal error details to users.
        """
        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error_message=str(exc),
            path=request.url.path,
            method=request.method,
        )

        return _error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "An unexpected error occurred. Please try again later.",
        )

    app.include_router(health_router)
    app.include_router(comments_router)

    @app.get("/", include_in_schema=False)
    async def root(request: Request) -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": "Community Comments API",
            "version": settings.app_version,
            "docs": f"{request.url}docs",
        }

    return app


app = create_app()
