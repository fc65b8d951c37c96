from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from facility_desk.application import WorkQueryService, build_work_query_service
from facility_desk.core.errors import WorkQueryError
from facility_desk.core.log import configure_logging
from facility_desk.core.settings import Settings
from facility_desk.core.validation import validation_error_from
from facility_desk.routes import work_queries


def create_app(settings: Settings | None = None, *, service: WorkQueryService | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    logger = configure_logging(settings.log_level)
    service = service or build_work_query_service(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("work query service ready")
        yield
        await service.aclose()

    app = FastAPI(title="Facility Desk Work Query API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.work_query_service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(WorkQueryError)
    async def handle_work_query_error(request: Request, exc: WorkQueryError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        error = validation_error_from(exc.errors())
        return JSONResponse(status_code=error.status_code, content=error.to_payload())

    app.include_router(work_queries.router, prefix="/api")

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Provide a lightweight landing page for container checks."""
        return JSONResponse(
            {
                "message": "Facility Desk Work Query API",
                "docs": "/docs",
                "health": "/api/work-queries/statuses",
            }
        )

    return app


app = create_app()
