import logging
import os
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

from bestday.core.config import settings
from bestday.core.logging import LOGGER_NAME, configure_logging
from bestday.core.middleware.request_id import RequestIdMiddleware
from bestday.core.validation import validate_env
from bestday.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from bestday.api import admin_jobs, admin_streaks, coins, health, streaks

configure_logging(settings.ENV)
validate_env()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger(LOGGER_NAME)
    logger.info("Starting Best Day backend...")
    app.state.startup_time = time.time()
    try:
        yield
    finally:
        logging.getLogger(LOGGER_NAME).info("Stopping Best Day backend...")


app = FastAPI(title="Best Day - Rewards Backend", lifespan=lifespan)

app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(streaks.router)
app.include_router(coins.router)
app.include_router(admin_streaks.router)
app.include_router(admin_jobs.router)
app.include_router(health.router)
