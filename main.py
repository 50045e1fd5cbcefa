import json
import os
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.auth.views import router as auth_router
from api.audit_plans.views import router as audit_plans_router
from api.audit_assets.views import router as audit_assets_router
from api.corrective_actions.views import router as corrective_actions_router
from api.employee_audit.views import router as employee_audit_router
from config import settings, MODE
from core.logging import RequestIdMiddleware, setup_logging

setup_logging()
log = structlog.get_logger(__name__)


def get_cors_origins() -> list[str]:
    """CORS origins from CORS_ORIGINS (JSON array or comma-separated), else the portal URL."""
    cors_env = os.environ.get("CORS_ORIGINS", "")

    if cors_env:
        try:
            origins = json.loads(cors_env)
            if isinstance(origins, list):
                return origins
        except json.JSONDecodeError:
            return [o.strip() for o in cors_env.split(",") if o.strip()]

    return [settings.FRONTEND_URL]


@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info("startup", mode=MODE)
    yield
    log.info("shutdown")


app = FastAPI(
    title="Asset Audit API",
    description="Audit plans, employee self-audits, corrective actions and asset resolution",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestIdMiddleware)

# Authentication endpoints
app.include_router(auth_router, prefix="/api/v1")

# Business endpoints
app.include_router(audit_plans_router, prefix="/api/v1")
app.include_router(audit_assets_router, prefix="/api/v1")
app.include_router(corrective_actions_router, prefix="/api/v1")
app.include_router(employee_audit_router, prefix="/api/v1")


# Health check endpoint
@app.get("/health", tags=["system"])
async def health_check():
    """Health check endpoint for monitoring."""
    return {"status": "healthy"}
