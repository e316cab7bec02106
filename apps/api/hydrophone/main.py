"""FastAPI application entry point."""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from hydrophone.core.config import settings
from hydrophone.core.errors import ConfirmationError, NotModified

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

# ============================================================================
# Sentry Integration (optional, for production error tracking)
# ============================================================================

if settings.SENTRY_DSN and settings.ENV != "dev":
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=0.1,
        send_default_pii=False,  # emails and keys stay out of Sentry
    )
    logger.info("Sentry initialized for error tracking")

# ============================================================================
# Rate Limiting
# ============================================================================

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from hydrophone.core.rate_limit import limiter

# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="Hydrophone",
    description="Confirmation and invitation email service",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=[
        "Content-Type",
        "Authorization",
        "X-Tidepool-Session-Token",
        "X-User-Language",
        "Accept-Language",
    ],
)


@app.exception_handler(ConfirmationError)
async def confirmation_error_handler(request: Request, exc: ConfirmationError):
    if isinstance(exc, NotModified):
        return Response(status_code=exc.status_code)
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# ============================================================================
# Routers
# ============================================================================

from hydrophone.routers import (
    account,
    careteam,
    clinics,
    notifications,
    password,
    patients,
    signup,
    teams,
)

app.include_router(account.router)
app.include_router(signup.router)
app.include_router(password.router)
app.include_router(clinics.router)
app.include_router(teams.router)
app.include_router(patients.router)
app.include_router(notifications.router)
# Last: its "/{user_id}/invited/{email}" route has a variable first segment
app.include_router(careteam.router)

# Template preview (ONLY mounted in preview mode)
if settings.PREVIEW_MODE:
    from hydrophone.routers import preview

    app.include_router(preview.router)
