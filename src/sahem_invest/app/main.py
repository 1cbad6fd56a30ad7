"""FastAPI application entry point for the Sahem Invest API."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sahem_invest.app.config import get_settings
from sahem_invest.domain.errors import PlatformError
from sahem_invest.domain.schemas import HealthResponse
from sahem_invest.infra.database import init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: initialize database on startup."""
    await init_db()
    yield


settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.debug else logging.WARNING,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

app = FastAPI(
    title="Sahem Invest API",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS middleware: allow all origins in debug mode for LAN/IP access
_cors_origins = settings.cors_origins_list
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=("*" not in _cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PlatformError)
async def platform_error_handler(request: Request, exc: PlatformError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.kind.value, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# ---------------------------------------------------------------------------
# Route includes
# ---------------------------------------------------------------------------
from sahem_invest.app.routes.auth import router as auth_router
from sahem_invest.app.routes.applications import router as applications_router
from sahem_invest.app.routes.deals import router as deals_router
from sahem_invest.app.routes.wallet import router as wallet_router
from sahem_invest.app.routes.notifications import router as notifications_router
from sahem_invest.app.routes.admin import router as admin_router

app.include_router(auth_router)
app.include_router(applications_router)
app.include_router(deals_router)
app.include_router(wallet_router)
app.include_router(notifications_router)
app.include_router(admin_router)


@app.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check():
    """Return service health status."""
    return HealthResponse(status="ok", service="sahem-invest")


def run() -> None:
    """Run the application with uvicorn (used by project.scripts entry point)."""
    uvicorn.run(
        "sahem_invest.app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
