from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from courtside.api.endpoints import american as american_endpoints
from courtside.api.endpoints import matches as match_endpoints
from courtside.api.endpoints import registrations as registration_endpoints
from courtside.api.endpoints import tournaments as tournament_endpoints
from courtside.core.config import settings
from courtside.core.database import engine
from courtside.core.errors import DataIntegrityError, TournamentError
from courtside.core.logging import configure_logging
from courtside.models import Base
from courtside.schemas.common import failure

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    logger.info("app_started", env=settings.APP_ENV)
    yield


async def tournament_error_handler(request: Request, exc: TournamentError) -> JSONResponse:
    if isinstance(exc, DataIntegrityError):
        logger.error("data_integrity_error", path=request.url.path, message=exc.message, errors=exc.errors)
    else:
        logger.info("request_rejected", path=request.url.path, error=type(exc).__name__, message=exc.message)
    return JSONResponse(status_code=exc.status_code, content=failure(exc.message, exc.errors))


async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=failure(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=failure("Request validation failed.", errors),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", path=request.url.path)
    errors = [f"{type(exc).__name__}: {exc}"] if settings.APP_ENV == "dev" else None
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=failure("An unexpected error occurred.", errors),
    )


def create_app() -> FastAPI:
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(title="Courtside Tournament API", lifespan=lifespan)

    app.add_exception_handler(TournamentError, tournament_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(tournament_endpoints.router, prefix="/api", tags=["Tournaments"])
    app.include_router(registration_endpoints.router, prefix="/api", tags=["Registrations"])
    app.include_router(match_endpoints.router, prefix="/api", tags=["Matches"])
    app.include_router(american_endpoints.router, prefix="/api", tags=["American"])

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("courtside.main:app", host="0.0.0.0", port=8000, reload=settings.APP_ENV == "dev")
