# campus_parking/main.py
"""
FastAPI application entry point.
Includes security middleware, global error handlers, all routers, and the
startup / shutdown hooks that build the parking core and flush its storage.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from campus_parking.routers import alerts, backups, events, exceptions, health, parking_stats, sessions, vehicles
from campus_parking.database import SessionLocal, create_tables
from campus_parking.config import settings
from campus_parking.errors import CrossAggregateInconsistency, ParkingError, ValidationError
from campus_parking.services.parking_core import ParkingCore, get_core, set_core
from campus_parking.utils.logger import get_logger
import time

logger = get_logger(__name__)

app = FastAPI(
    title="Campus Parking Core API",
    description="Vehicle registry, parking sessions, LPR exception queue and statistics.",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS (allow the dashboard to call the API) ──────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],   # Restrict to dashboard origin in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── API Key Middleware ───────────────────────────────────────────────────────
class APIKeyMiddleware(BaseHTTPMiddleware):
    """
    Optional lightweight API key auth.
    The LPR webhook (/api/v1/events/lpr) is excluded; gate readers send no key.
    Set API_KEY in .env. Leave empty to disable auth.
    """
    async def dispatch(self, request: Request, call_next):
        open_paths = {"/api/v1/events/lpr", "/api/v1/health", "/docs", "/redoc", "/openapi.json"}
        if request.url.path in open_paths or not settings.API_KEY:
            return await call_next(request)

        api_key = request.headers.get("X-API-Key") or request.query_params.get("api_key")
        if api_key != settings.API_KEY:
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Invalid or missing API key"},
            )
        return await call_next(request)


if settings.API_KEY:
    app.add_middleware(APIKeyMiddleware)


# ── Request Timing Middleware ────────────────────────────────────────────────
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    duration = round((time.time() - start) * 1000, 2)
    logger.debug(f"{request.method} {request.url.path} → {response.status_code} ({duration}ms)")
    return response


# ── Error Handlers ───────────────────────────────────────────────────────────
@app.exception_handler(ParkingError)
async def parking_error_handler(request: Request, exc: ParkingError):
    content = {"detail": exc.message, "error": type(exc).__name__}
    if isinstance(exc, ValidationError) and exc.errors:
        content["errors"] = exc.errors
    if isinstance(exc, CrossAggregateInconsistency):
        content["exception_id"] = exc.exception_id
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


# ── Routers ──────────────────────────────────────────────────────────────────
app.include_router(vehicles.router,      prefix="/api/v1", tags=["🚗 Vehicles"])
app.include_router(sessions.router,      prefix="/api/v1", tags=["🅿️  Sessions"])
app.include_router(exceptions.router,    prefix="/api/v1", tags=["⚠️  LPR Exceptions"])
app.include_router(parking_stats.router, prefix="/api/v1", tags=["📊 Stats"])
app.include_router(events.router,        prefix="/api/v1", tags=["📡 LPR Events"])
app.include_router(alerts.router,        prefix="/api/v1", tags=["🔔 Alerts"])
app.include_router(backups.router,       prefix="/api/v1", tags=["💾 Backups"])
app.include_router(health.router,        prefix="/api/v1", tags=["💚 Health"])


# ── Startup ───────────────────────────────────────────────────────────────────
@app.on_event("startup")
async def startup():
    logger.info("🚀 Campus Parking backend starting up...")
    create_tables()
    logger.info("✅ Database tables ready")

    core = ParkingCore(SessionLocal)
    core.load_all()
    core.storage.start_flush_loop()
    set_core(core)
    logger.info(f"🅿️  {settings.TOTAL_SPOTS} spots, gates {', '.join(settings.GATES)}")
    logger.info(f"🌐 Listening on http://{settings.BACKEND_IP}:{settings.BACKEND_PORT}")
    logger.info("📖 API docs at /docs")


@app.on_event("shutdown")
async def shutdown():
    logger.info("🛑 Campus Parking backend shutting down...")
    await get_core().shutdown()
    set_core(None)
