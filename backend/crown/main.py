from __future__ import annotations
import uuid
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from crown.config import settings
from crown.errors import CrownError
from crown.logging_setup import configure_logging
from crown.routes.system import router as system_router
from crown.routes.auth import router as auth_router
from crown.routes.contests import router as contests_router
from crown.routes.submissions import router as submissions_router
from crown.routes.tiktok import router as tiktok_router
from crown.routes.media import router as media_router
from crown.routes.admin import router as admin_router
from crown.routes.realtime import router as realtime_router
from crown.services import storage
from crown.services.auth_provider import get_auth_provider
from crown.services.backend_client import get_backend_client
from crown.services.state_store import get_state_store
from crown.services.tiktok_connection import get_connection_registry
import structlog

configure_logging()
log = structlog.get_logger()

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    log.info("startup", env=settings.environment, version=settings.app_version, git_sha=settings.git_sha)
    try:
        storage.ensure_buckets()
    except Exception as e:
        # uploads fail loudly later; the rest of the API still works
        log.warning("storage.unavailable", error=str(e))
    yield
    # Shutdown
    await get_connection_registry().close()
    await get_backend_client().close()
    await get_auth_provider().close()
    store = get_state_store()
    if hasattr(store, "close"):
        await store.close()
    log.info("shutdown")

app = FastAPI(
    title=f"{settings.app_display_name} API",
    version=settings.app_version,
    lifespan=lifespan,
    description=f"{settings.app_display_name} API for TikTok music contests",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.environment == "dev" else settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(system_router)
app.include_router(auth_router)
app.include_router(contests_router)
app.include_router(submissions_router)
app.include_router(tiktok_router)
app.include_router(media_router)
app.include_router(admin_router)
app.include_router(realtime_router)

@app.exception_handler(CrownError)
async def crown_error_handler(request: Request, exc: CrownError):
    log.info("request.domain_error", code=exc.code, status=exc.status_code, path=request.url.path)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = rid
    structlog.contextvars.bind_contextvars(request_id=rid)
    response: Response = await call_next(request)
    response.headers["X-Request-ID"] = rid
    structlog.contextvars.clear_contextvars()
    return response
