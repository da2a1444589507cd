import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from feeledger.api.v1.auth.router import router as auth_router
from feeledger.api.v1.expenditures.router import router as expenditures_router
from feeledger.api.v1.fee_ledger.router import router as fee_ledger_router
from feeledger.api.v1.payment_categories.router import router as payment_categories_router
from feeledger.api.v1.reports.router import router as reports_router
from feeledger.api.v1.students.router import router as students_router
from feeledger.core.config import settings
from feeledger.core.exceptions import ServiceError
from feeledger.db.session import init_models

logger = logging.getLogger(__name__)

# Error kind reported for HTTP errors raised outside the service layer
HTTP_ERROR_KINDS = {
    status.HTTP_400_BAD_REQUEST: "ValidationError",
    status.HTTP_401_UNAUTHORIZED: "AuthenticationError",
    status.HTTP_403_FORBIDDEN: "ForbiddenError",
    status.HTTP_404_NOT_FOUND: "NotFoundError",
    status.HTTP_405_METHOD_NOT_ALLOWED: "MethodNotAllowed",
    status.HTTP_409_CONFLICT: "ConflictError",
}


def _error_body(message: str, kind: str, **extra) -> dict:
    return {"success": False, "message": message, "error": kind, **extra}


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.message, exc.kind))


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    kind = HTTP_ERROR_KINDS.get(exc.status_code, "HTTPError")
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(str(exc.detail), kind),
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
    message = f"{field}: {first.get('msg')}" if field else str(first.get("msg", "Invalid request"))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body(message, "ValidationError"),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    extra = {"trace": traceback.format_exception(type(exc), exc, exc.__traceback__)} if settings.debug else {}
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("Internal server error", "InternalError", **extra),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_models()
    logger.info("Database tables ready")
    yield


def create_app() -> FastAPI:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    app = FastAPI(title="Fee Ledger Backend", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # Routers
    app.include_router(auth_router)
    app.include_router(students_router)
    app.include_router(payment_categories_router)
    app.include_router(fee_ledger_router)
    app.include_router(expenditures_router)
    app.include_router(reports_router)

    @app.get("/api/health", tags=["health"])
    async def health() -> dict:
        return {"success": True, "message": "Fee ledger API is running"}

    return app


app = create_app()
