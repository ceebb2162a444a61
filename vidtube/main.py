from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from time import perf_counter

from fastapi import FastAPI, Request
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import Response

from vidtube.api.v1.router import api_router
from vidtube.core.errors import add_exception_handlers, success_response
from vidtube.core.logging import configure_logging
from vidtube.core.rate_limit import SlidingWindowLimiter
from vidtube.core.request_limits import BodySizeLimitMiddleware
from vidtube.core.settings import Settings, get_settings
from vidtube.db.session import Database
from vidtube.services.media_uploader import CloudinaryUploader

logger = logging.getLogger(__name__)


def _build_lifespan(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Application startup started")
        app.state.database = Database(settings.database_url)
        app.state.database.init_schema()
        if getattr(app.state, "media_uploader", None) is None:
            app.state.media_uploader = CloudinaryUploader(
                cloud_name=settings.cloudinary_cloud_name,
                api_key=settings.cloudinary_api_key,
                api_secret=settings.cloudinary_api_secret,
            )
        logger.info("Application startup completed")
        yield
        app.state.database.dispose()
        logger.info("Application shutdown completed")

    return lifespan


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(debug=settings.debug)
    logger.debug("Creating FastAPI app with API prefix: %s", settings.api_v1_prefix)
    app = FastAPI(
        title=settings.app_name,
        lifespan=_build_lifespan(settings),
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=settings.cors_origin,
                allow_credentials=True,
                allow_methods=["*"],
                allow_headers=["*"],
            ),
            Middleware(BodySizeLimitMiddleware, max_body_bytes=settings.max_body_bytes),
        ],
    )
    app.state.settings = settings
    app.state.auth_limiter = SlidingWindowLimiter(
        window_seconds=settings.auth_rate_limit_window_seconds,
        max_requests=settings.auth_rate_limit_max_requests,
    )
    logger.debug("CORS configured for origins: %s", settings.cors_origin)

    if settings.debug:
        @app.middleware("http")
        async def request_debug_logger(request: Request, call_next) -> Response:
            start = perf_counter()
            client_ip = request.client.host if request.client else "unknown"
            logger.debug("HTTP request started method=%s path=%s client_ip=%s", request.method, request.url.path, client_ip)
            response = await call_next(request)
            duration_ms = (perf_counter() - start) * 1000
            logger.debug(
                "HTTP request completed method=%s path=%s status=%s duration_ms=%.2f",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
            )
            return response

    add_exception_handlers(app)
    app.include_router(api_router, prefix=settings.api_v1_prefix)
    logger.debug("API routers registered")

    @app.get("/health")
    def health_check():
        return success_response({"ok": True}, "OK")

    return app


app = create_app()
