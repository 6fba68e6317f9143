from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.httpsredirect import HTTPSRedirectMiddleware
from fastapi.responses import JSONResponse
from config import settings
from utils.errors import DashboardError
import uvicorn
import logging
import traceback
import os

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Import routes
from routes import (
    directory_router,
    reconciliation_router,
    settlements_router,
    orders_router,
    withdrawals_router,
    wallets_router,
    preferences_router,
    audit_router,
)

# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="COD reconciliation, settlements, order editing and wallet approvals over Tookan",
    docs_url="/docs",
    redoc_url="/redoc"
)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "*",
    "Access-Control-Allow-Headers": "*",
}

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=False,  # Must be False when allow_origins=["*"]
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=3600,
)

# TLS terminates at the hosting proxy
if os.getenv("RENDER") or os.getenv("RAILWAY_ENVIRONMENT") or os.getenv("FORCE_HTTPS"):
    app.add_middleware(HTTPSRedirectMiddleware)


# Validation / business rule / conflict / not found / remote unavailable
@app.exception_handler(DashboardError)
async def dashboard_error_handler(request: Request, exc: DashboardError):
    if exc.status_code >= 500:
        logger.warning(f"⚠️ {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} refused ({exc.error_type}): {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers=CORS_HEADERS,
    )


# Global exception handler with CORS headers
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global exception: {str(exc)}", exc_info=True)
    logger.error(f"Traceback: {traceback.format_exc()}")
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "message": "Internal server error",
            "detail": str(exc) if settings.DEBUG else "An error occurred"
        },
        headers=CORS_HEADERS,
    )


# HTTPException handler with CORS headers
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "message": exc.detail,
        },
        headers=CORS_HEADERS,
    )


# Health check endpoint
@app.get("/")
def root():
    return {
        "success": True,
        "message": f"{settings.APP_NAME} is running",
        "version": settings.APP_VERSION
    }


@app.get("/health")
def health_check():
    from utils.cache import cache
    return {
        "success": True,
        "message": "Service is healthy",
        "status": "ok",
        "cache": "connected" if cache.ping() else "disabled",
    }


@app.get("/health/db")
def health_check_db():
    """Check local database connectivity"""
    from database import check_db_connection
    if check_db_connection():
        return {
            "success": True,
            "message": "Database connection successful",
            "status": "ok"
        }
    return JSONResponse(
        status_code=503,
        content={
            "success": False,
            "message": "Database connection failed",
            "status": "error"
        },
    )


# Include routers with /api prefix
app.include_router(directory_router, prefix="/api")
app.include_router(reconciliation_router, prefix="/api")
app.include_router(settlements_router, prefix="/api")
app.include_router(orders_router, prefix="/api")
app.include_router(withdrawals_router, prefix="/api")
app.include_router(wallets_router, prefix="/api")
app.include_router(preferences_router, prefix="/api")
app.include_router(audit_router, prefix="/api")


# Startup event
@app.on_event("startup")
def startup_event():
    logger.info("=" * 70)
    logger.info(f"🚀 {settings.APP_NAME} v{settings.APP_VERSION} is starting...")
    logger.info(f"📚 Documentation available at: /docs")
    logger.info(f"🚚 Tookan: {settings.TOOKAN_BASE_URL} ({'key set' if settings.TOOKAN_API_KEY else 'NO API KEY'})")
    logger.info(f"🗄️ Hosted database: {settings.SUPABASE_URL or 'NOT CONFIGURED'}")
    logger.info(f"⏱️ Remote timeout {settings.REMOTE_TIMEOUT_SECONDS}s, conflict poll every {settings.CONFLICT_POLL_SECONDS}s")

    from utils.cache import cache
    if cache.enabled:
        logger.info("✅ Redis directory cache is connected and ready!")
    else:
        logger.info("ℹ️ Redis caching is disabled or unreachable")

    try:
        from database import init_db
        logger.info("📊 Initializing local database tables...")
        init_db()
    except Exception as e:
        logger.error(f"❌ Database initialization failed: {str(e)}", exc_info=True)

    logger.info("✅ API ready to receive requests")
    logger.info("=" * 70)


# Shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    from services.order_monitor import monitor_registry
    from services.supabase_client import supabase
    from services.tookan_client import tookan

    monitor_registry.close_all()
    await tookan.aclose()
    await supabase.aclose()
    logger.info(f"👋 Shutting down {settings.APP_NAME}...")


# Run the application
if __name__ == "__main__":
    port = int(os.getenv("PORT", "8000"))
    uvicorn.run(
        "app:app",
        host="0.0.0.0",
        port=port,
        reload=settings.DEBUG,
        log_level="info"
    )
