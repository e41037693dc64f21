import logging
import os
import re
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration
from slowapi.errors import RateLimitExceeded

from api.middleware import install_middleware
from api.rate_limit import limiter, rate_limit_exceeded_handler
from api.routes import router
from server import find_free_port, start_server
from storage import get_db, get_keychain

_logger = logging.getLogger(__name__)

_SENTRY_DSN = os.getenv("SENTRY_DSN", "")

# Identifiers that must never leave the machine inside an error report
_PHI_PATTERNS = [
    re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),                    # SSN
    re.compile(r"\b\d{1,2}[/-]\d{1,2}[/-]\d{2,4}\b"),        # dates
    re.compile(r"\b[A-Z]{1,2}\d{6,10}\b"),                    # MRN
    re.compile(r"\b\d{10}\b"),                                 # phone
    re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),  # email
    re.compile(r"(?i)(?:patient|name|pt)\s*[:=]\s*[^\n,;]{2,40}"),  # labeled patient name
    re.compile(r"(?i)\b(?:dob|date of birth|admitted|discharged)\s*[:=]?\s*[^\n]{1,30}"),  # labeled dates
]


def _scrub_phi(text: str) -> str:
    for pattern in _PHI_PATTERNS:
        text = pattern.sub("[REDACTED]", text)
    return text


def _before_send(event, hint):
    for exc_info in event.get("exception", {}).get("values", []):
        if exc_info.get("value"):
            exc_info["value"] = _scrub_phi(exc_info["value"])
    for bc in event.get("breadcrumbs", {}).get("values", []):
        if bc.get("message"):
            bc["message"] = _scrub_phi(bc["message"])
    # Request bodies carry clinical notes; drop them entirely
    event.get("request", {}).pop("data", None)
    return event


def _init_sentry() -> None:
    if not _SENTRY_DSN:
        return
    sentry_sdk.init(
        dsn=_SENTRY_DSN,
        environment=os.getenv("SENTRY_ENVIRONMENT", "development"),
        integrations=[FastApiIntegration(), StarletteIntegration()],
        before_send=_before_send,
        send_default_pii=False,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the SQLite store and keychain before serving requests."""
    get_db()
    get_keychain()
    yield


def create_app() -> FastAPI:
    _init_sentry()
    app = FastAPI(title="CardioBrief Sidecar", version="0.1.0", lifespan=lifespan)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    # CORS must be outermost so ALL responses (including 500s) get headers.
    install_middleware(app)

    # Catch-all so unhandled errors still return JSON with CORS headers.
    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        _logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error."},
        )

    app.include_router(router)
    return app


if __name__ == "__main__":
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    port = find_free_port()
    app = create_app()
    start_server(app, port)
