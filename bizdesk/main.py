import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from bizdesk.config import settings
from bizdesk.core.exceptions import (
    BizDeskException,
    UnauthorizedException,
    NotFoundException,
    ForbiddenException,
)
from bizdesk.routes import action_routes
from bizdesk.schemas.action_schemas import error_result

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,  # Disable in production
    redoc_url="/redoc" if settings.DEBUG else None,
)

# CORS middleware
cors_origins = settings.cors_origins_list
if cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def _error_response(status_code: int, exc: BizDeskException, headers: dict | None = None) -> JSONResponse:
    result = error_result(exc.message, code=exc.code, field=exc.field)
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"), headers=headers)


# Exception handlers for errors raised outside the executor (e.g. action lookup)
@app.exception_handler(UnauthorizedException)
async def unauthorized_exception_handler(request: Request, exc: UnauthorizedException):
    return _error_response(
        status.HTTP_401_UNAUTHORIZED, exc, headers={"WWW-Authenticate": "Bearer"}
    )


@app.exception_handler(NotFoundException)
async def not_found_exception_handler(request: Request, exc: NotFoundException):
    return _error_response(status.HTTP_404_NOT_FOUND, exc)


@app.exception_handler(ForbiddenException)
async def forbidden_exception_handler(request: Request, exc: ForbiddenException):
    return _error_response(status.HTTP_403_FORBIDDEN, exc)


@app.exception_handler(BizDeskException)
async def bizdesk_exception_handler(request: Request, exc: BizDeskException):
    return _error_response(status.HTTP_400_BAD_REQUEST, exc)


# Health check endpoint
@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": settings.APP_VERSION}


# Root endpoint
@app.get("/")
async def root():
    return {
        "message": "BizDesk API",
        "version": settings.APP_VERSION,
        "docs": "/docs" if settings.DEBUG else "Documentation disabled in production",
    }


app.include_router(action_routes.router, prefix="/api/actions", tags=["Actions"])
