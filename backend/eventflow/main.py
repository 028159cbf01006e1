import logging
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from eventflow.core.config import settings, require_jwt_secret
from eventflow.core.database import check_db_connection, get_db
from eventflow.core.errors import AppError
from eventflow.core.rate_limit import limiter
from eventflow.routes.auth import router as auth_router
from eventflow.routes.events import router as events_router
from eventflow.routes.rsvp import router as rsvp_router
from eventflow.routes.verification import router as verification_router
from eventflow.services.image_storage import PUBLIC_PREFIX, upload_dir

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

require_jwt_secret()

app = FastAPI(title="EventFlow")
logger.info(
    "Startup config: ENV=%s EMAIL_ENABLED=%s provider=%s REQUIRE_VERIFIED_EMAIL=%s",
    settings.ENV,
    settings.EMAIL_ENABLED,
    (settings.EMAIL_PROVIDER or "resend"),
    settings.REQUIRE_VERIFIED_EMAIL,
)

_ERROR_CODE_BY_STATUS: dict[int, str] = {
    400: "VALIDATION_ERROR",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    413: "PAYLOAD_TOO_LARGE",
    422: "VALIDATION_ERROR",
    429: "RATE_LIMITED",
    500: "INTERNAL_ERROR",
}


def _error_code(status_code: int) -> str:
    return _ERROR_CODE_BY_STATUS.get(int(status_code), "HTTP_ERROR")


def _error_response(status_code: int, code: str, message: str, details: dict | None = None) -> JSONResponse:
    payload: dict = {"error": code, "message": message}
    if details:
        payload["details"] = details
    return JSONResponse(status_code=status_code, content=payload)


@app.exception_handler(AppError)
def app_error_handler(request: Request, exc: AppError):  # noqa: ARG001
    if exc.status_code >= 500:
        logger.warning("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return _error_response(exc.status_code, exc.code, exc.message, exc.details)


# Registered on the Starlette base class so router 404/405 responses share the shape.
@app.exception_handler(StarletteHTTPException)
def http_exception_handler(request: Request, exc: StarletteHTTPException):  # noqa: ARG001
    detail = exc.detail
    message: str
    details: dict | None = None

    if isinstance(detail, str):
        message = detail
    elif isinstance(detail, dict):
        msg = detail.get("message")
        message = msg if isinstance(msg, str) and msg else "Request failed"
        det = detail.get("details")
        details = det if isinstance(det, dict) else None
    else:
        message = str(detail) if detail is not None else "Request failed"

    return _error_response(exc.status_code, _error_code(exc.status_code), message, details)


@app.exception_handler(RequestValidationError)
def validation_exception_handler(request: Request, exc: RequestValidationError):  # noqa: ARG001
    return JSONResponse(
        status_code=422,
        content={
            "error": "VALIDATION_ERROR",
            "message": "Invalid request payload",
            "details": {"errors": jsonable_errors(exc)},
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    # pydantic may put non-serializable objects (e.g. ValueError) under "ctx".
    errors = []
    for err in exc.errors():
        item = {k: v for k, v in err.items() if k not in {"ctx", "input", "url"}}
        errors.append(item)
    return errors


@app.exception_handler(OperationalError)
def operational_error_handler(request: Request, exc: OperationalError):
    logger.exception("Database unavailable on %s %s", request.method, request.url.path)
    return _error_response(500, "TRANSIENT_ERROR", "Temporary failure, please retry")


if settings.ENABLE_RATE_LIMITING:
    app.state.limiter = limiter
    # Standard error shape for rate limits, instead of slowapi's default.
    app.add_exception_handler(
        RateLimitExceeded,
        lambda request, exc: JSONResponse(  # noqa: ARG005
            status_code=429,
            content={"error": "RATE_LIMITED", "message": "Too many requests"},
        ),
    )

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(verification_router)
app.include_router(events_router)
app.include_router(rsvp_router)

app.mount(PUBLIC_PREFIX, StaticFiles(directory=str(upload_dir()), check_dir=False), name="uploads")


@app.get("/api/health")
def health_check(db: Session = Depends(get_db)):
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": "connected" if check_db_connection(db) else "disconnected",
    }
