from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from tenant_idp.api.health import router as health_router
from tenant_idp.api.login import router as login_router
from tenant_idp.api.me import router as me_router
from tenant_idp.api.metrics_endpoint import router as metrics_router
from tenant_idp.api.oauth import router as oauth_router
from tenant_idp.core.config import SETTINGS
from tenant_idp.core.errors import register_exception_handlers
from tenant_idp.core.logging import setup_logging
from tenant_idp.db.engine import lifespan_db
from tenant_idp.db.redis import lifespan_redis
from tenant_idp.middleware.metrics import MetricsMiddleware
from tenant_idp.middleware.request_context import RequestContextMiddleware

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # Nested so teardown runs in reverse order.
    async with lifespan_db():
        async with lifespan_redis():
            yield


app = FastAPI(
    title="tenant-idp",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

register_exception_handlers(app)

# Middleware execution order: last-added runs first (outermost layer).
# RequestContext (outermost) → Metrics → route handler
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(login_router)
app.include_router(oauth_router)
app.include_router(me_router)

logger.info(
    "tenant-idp started  env=%s log_level=%s port=%d redis=%s database=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "on" if SETTINGS.redis_url else "off",
    "on" if SETTINGS.database_url else "off",
)
