"""FastAPI application factory."""
from __future__ import annotations

from typing import List

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from market_notify.api.v1 import api_router
from market_notify.config import settings


tags_metadata: List[dict[str, str]] = [
    {"name": "auth", "description": "Register users and issue authentication tokens."},
    {"name": "users", "description": "Inspect the authenticated account."},
    {"name": "push", "description": "Register browser push subscriptions and dispatch notifications."},
    {
        "name": "notifications",
        "description": "Delivery strategy selection, unread counts, inbox and live event stream.",
    },
]


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance."""

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Notification dispatch and delivery for marketplace tenants and clients.",
        version="0.1.0",
        openapi_tags=tags_metadata,
        docs_url=f"{settings.API_V1_STR}/docs",
        redoc_url=f"{settings.API_V1_STR}/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": exc.errors(), "message": "Validation failed"},
        )

    app.include_router(api_router, prefix=settings.API_V1_STR)
    return app


app = create_app()
