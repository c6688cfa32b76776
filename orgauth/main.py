"""FastAPI main application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from orgauth.core.config import settings
from orgauth.core.middleware import setup_middleware
from orgauth.core.exceptions import AccessControlError, InternalError
from orgauth.api.auth import router as auth_router
from orgauth.api.organizations import router as organizations_router
from orgauth.api.roles import permissions_router, router as roles_router
from orgauth.api.users import router as users_router
from orgauth.services.cache_service import cache_service

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("orgauth")


def run_seeds() -> None:
    from orgauth.db.base import Base
    from orgauth.db.session import SessionLocal, engine
    from orgauth.db.seeds.seed_rbac import seed_rbac
    from orgauth.db.seeds.seed_super_admin import seed_super_admin
    import orgauth.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_rbac(db)
        seed_super_admin(db)
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Starting %s", settings.APP_NAME)
    if settings.SEED_ON_STARTUP:
        run_seeds()

    if cache_service.health_check():
        logger.info("Redis connected")
    else:
        logger.warning("Redis not available; sessions and permission caching will fail")

    yield

    logger.info("Shutting down %s", settings.APP_NAME)


app = FastAPI(
    title=settings.APP_NAME,
    description="Multi-tenant access control and authorization",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Middleware
setup_middleware(app)


@app.exception_handler(AccessControlError)
async def access_control_exception_handler(request: Request, exc: AccessControlError):
    if isinstance(exc, InternalError):
        logger.error(
            "Internal error %s on %s %s: %r",
            exc.context, request.method, request.url.path, exc.cause,
        )
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message},
        headers=headers,
    )


# Register routers
app.include_router(auth_router, prefix="/api")
app.include_router(users_router, prefix="/api")
app.include_router(roles_router, prefix="/api")
app.include_router(permissions_router, prefix="/api")
app.include_router(organizations_router, prefix="/api")


@app.get("/api/health")
async def health():
    """Quick health check endpoint."""
    return {"status": "ok", "redis": cache_service.health_check()}
