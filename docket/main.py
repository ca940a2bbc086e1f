import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import models  # noqa: F401  (registers tables on Base)
from .config import FRONTEND_URL
from .database import Base, detect_schema_features, engine
from .email_service import EmailConfigurationError
from .routes.email_webhooks import router as email_webhooks_router
from .routes.reminders import router as reminders_router
from .utils.dates import utcnow

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

# Production databases are managed by the scripts in migrations/
AUTO_CREATE_TABLES = os.getenv("AUTO_CREATE_TABLES", "true").lower() == "true"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    if AUTO_CREATE_TABLES:
        try:
            Base.metadata.create_all(bind=engine, checkfirst=True)
            logger.info("Database tables created successfully")
        except Exception as e:
            # Ignore "already exists" errors from race conditions between workers
            error_msg = str(e)
            if "already exists" in error_msg or "duplicate key" in error_msg:
                logger.info("Database tables already exist (created by another worker)")
            else:
                logger.error(f"Failed to create database tables: {e}")

    # Probe optional email tables once; routes read the cached result
    detect_schema_features.cache_clear()
    detect_schema_features(engine)

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="Docket Notifications API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(EmailConfigurationError)
async def email_configuration_exception_handler(request: Request, exc: EmailConfigurationError):
    logger.error(f"❌ {request.url.path} unavailable: {exc}")
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": str(exc), "timestamp": utcnow().isoformat()},
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    try:
        response = await call_next(request)
        return response
    except Exception as e:
        logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
        raise


# CORS Configuration
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", f"{FRONTEND_URL},http://localhost:3000").split(",")

logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

# Routes
app.include_router(email_webhooks_router)
app.include_router(reminders_router)


@app.get("/")
def root():
    return {"message": "Docket Notifications API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}
