"""Main FastAPI application for the Learnverse auth API."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app import db
from app.config import ENVIRONMENT, FRONTEND_ORIGIN
from app.errors import AuthError, auth_error_handler
from app.rate_limit import limiter
from app.redis_client import close_redis, get_redis
from app.routers import auth, health

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await db.init_db()
    get_redis()
    logger.info("Learnverse auth API started (%s)", ENVIRONMENT)
    try:
        yield
    finally:
        await close_redis()
        await db.close_db()


app = FastAPI(
    title="Learnverse Auth API",
    description="Email OTP sign-up, login with lockout, and password reset",
    version=health.VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(AuthError, auth_error_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_ORIGIN],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(auth.router)
