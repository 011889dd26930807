import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .config import REMINDER_TENANT_PREFIXES
from .database import engine
from .domain.reminders import router as reminders_router
from .models import get_tenant_models, is_valid_table_prefix

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


def create_tenant_tables(bind, table_prefixes: list[str]) -> None:
    for prefix in table_prefixes:
        if not is_valid_table_prefix(prefix):
            logger.warning(f"Skipping invalid tenant prefix: {prefix!r}")
            continue
        try:
            get_tenant_models(prefix).create_all(bind)
            logger.info(f"Database tables ready for tenant {prefix or '(default)'}")
        except Exception as e:
            # Ignore "already exists" errors from race conditions between workers
            error_msg = str(e)
            if "already exists" in error_msg or "duplicate key" in error_msg:
                logger.info(f"Tables for tenant {prefix or '(default)'} created by another worker")
            else:
                logger.error(f"Failed to create database tables for tenant {prefix!r}: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    create_tenant_tables(engine, REMINDER_TENANT_PREFIXES)
    yield
    logger.info("Application shutting down...")


app = FastAPI(title="Salon Reminders API", version="1.0.0", lifespan=lifespan)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    try:
        response = await call_next(request)
        return response
    except Exception as e:
        logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
        raise


ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:5173,http://localhost:3000",
).split(",")

logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(reminders_router)


@app.get("/")
def root():
    return {"message": "Salon Reminders API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}
