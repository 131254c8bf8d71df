import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from crewdesk.core.config import settings
from crewdesk.core.exception_handlers import register_exception_handlers
from crewdesk.api.v1.jobs import router as jobs_router
from crewdesk.api.v1.worklogs import router as worklogs_router
from crewdesk.api.v1.streams import router as streams_router
from crewdesk.db.mongo import get_mongo_client, close_mongo_client
from crewdesk.db.mongo_indexes import ensure_indexes

logger = logging.getLogger("uvicorn.error")

app = FastAPI(title="CrewDesk Backend")

# Build CORS allowlist from local dev + configured origins
_base_origins = {
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

register_exception_handlers(app)


@app.get("/")
def read_root():
    return {"message": "Welcome to CrewDesk Backend"}


@app.get("/health")
def health_check():
    return {"status": "ok", "store": settings.STORE_BACKEND}


# Mount API routers
app.include_router(jobs_router, prefix="/api/v1")
app.include_router(worklogs_router, prefix="/api/v1")
app.include_router(streams_router, prefix="/api/v1")


@app.on_event("startup")
async def on_startup():
    if settings.STORE_BACKEND == "memory":
        logger.warning("Using the in-memory document store; data is lost on restart")
        return
    # Initialize Mongo client
    get_mongo_client()
    # Create required indexes (non-fatal on failure)
    try:
        await ensure_indexes()
    except Exception as exc:
        logger.warning("Mongo index initialization failed: %s", exc)


@app.on_event("shutdown")
async def on_shutdown():
    if settings.STORE_BACKEND != "memory":
        close_mongo_client()
