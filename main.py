import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from app.core.config import settings
from app.api.v1.auth import router as auth_router
from app.api.v1.users import router as users_router
from app.api.v1.leaves import router as leaves_router
from app.api.v1.quick_action import router as quick_action_router
from app.api.v1.attendance import router as attendance_router
from app.api.v1.dashboard import router as dashboard_router
from app.db.mongo import get_mongo_client, close_mongo_client
from app.db.mongo_indexes import ensure_indexes
from app.services.bootstrap import ensure_sysadmin

logger = logging.getLogger("uvicorn.error")

app = FastAPI(title="LeaveFlow Backend")

# CORS for local frontend dev
# Build CORS allowlist from local dev + configured origins
_base_origins = {
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
}
if settings.FRONTEND_BASE_URL:
    _base_origins.add(settings.FRONTEND_BASE_URL)
for o in settings.ALLOWED_ORIGINS:
    _base_origins.add(o)
# Normalize by stripping trailing slashes to match Origin header format
_allowed_origins = sorted({o.rstrip('/') for o in _base_origins if o})

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_origin_regex=r"^http(s)?://(localhost|127\.0\.0\.1)(:\d+)?$",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PyMongoError)
async def mongo_error_handler(request: Request, exc: PyMongoError):
    logger.error("Database error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "Database unavailable"})


@app.get("/")
def read_root():
    return {"message": "Welcome to LeaveFlow Backend"}


@app.get("/health")
def health_check():
    return {"status": "ok"}


# Mount API routers
app.include_router(auth_router, prefix="/api/v1")
app.include_router(users_router, prefix="/api/v1")
app.include_router(leaves_router, prefix="/api/v1")
app.include_router(quick_action_router, prefix="/api/v1")
app.include_router(attendance_router, prefix="/api/v1")
app.include_router(dashboard_router, prefix="/api/v1")


@app.on_event("startup")
async def on_startup():
    # Initialize Mongo client
    get_mongo_client()
    # Create required indexes (non-fatal on failure)
    try:
        await ensure_indexes()
    except PyMongoError as exc:
        logger.warning("Mongo index initialization failed: %s", exc)
    await ensure_sysadmin()


@app.on_event("shutdown")
async def on_shutdown():
    # Close Mongo client
    close_mongo_client()
