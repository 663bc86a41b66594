import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from smartbudget.core.config import settings
from smartbudget.core.rate_limit import limiter
from smartbudget.routers import budget, health, patterns
from smartbudget.services.pattern_approval import PatternNotFoundError
from smartbudget.services.smart_budget import PendingPatternsError

logging.basicConfig(
    level=getattr(logging, settings.api_log_level.upper()),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

logger = logging.getLogger(__name__)


# ─── Security headers middleware ───────────────────────────────────────────────
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if settings.environment != "development":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


app = FastAPI(
    title="SmartBudget API",
    version="0.1.0",
    docs_url="/docs" if settings.environment == "development" else None,
    redoc_url=None,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(SecurityHeadersMiddleware)

# ─── CORS ──────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=(
        ["http://localhost:3000", "http://localhost", f"http://{settings.domain}"]
        if settings.environment == "development"
        else [f"https://{settings.domain}"]
    ),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept", "Origin"],
)


# ─── Domain errors ────────────────────────────
@app.exception_handler(PendingPatternsError)
async def pending_patterns_handler(request: Request, exc: PendingPatternsError) -> JSONResponse:
    logger.info("Budget calculation blocked: %s", exc)
    return JSONResponse(
        status_code=409,
        content={
            "detail": str(exc),
            "pending_count": exc.pending_count,
            "next_action": "approve-patterns",
        },
    )


@app.exception_handler(PatternNotFoundError)
async def pattern_not_found_handler(request: Request, exc: PatternNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


# ─── Routers ──────────────────────────────────
app.include_router(health.router)
app.include_router(patterns.router, prefix="/api/v1")
app.include_router(budget.router, prefix="/api/v1")
