from fastapi import FastAPI # pip install "fastapi[standard]"
import uvicorn
import threading
import os
from contextlib import asynccontextmanager
from typing import Optional
from starlette.middleware.base import BaseHTTPMiddleware
from fastapi.middleware.cors import CORSMiddleware
from fusion_gate.db.database import engine
from fusion_gate.db import models
from fusion_gate.log import logging_config
from fusion_gate.log.system_log import _rotation_thread, system_logger
from fusion_gate.api import health_check, log_security_event, security_events, signup
from fusion_gate.middleware import logger
from fusion_gate.middleware.rate_limit import edge_rate_limit
from fusion_gate.security.gate import RequestBlocked, request_blocked_handler
from fusion_gate.security.rate_limiter import FixedWindowRateLimiter, build_rate_limiter
from dotenv import load_dotenv

load_dotenv()


PORT = int(os.getenv("PORT_HOST", "8000"))

# Comma separated list of origins allowed to call the API from a browser
CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if origin.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create the tables when they do not exist yet
    models.Base.metadata.create_all(engine)

    # Daily log rotation threads, started once per process (never at import)
    threading.Thread(target=_rotation_thread, name="DailySystemLogRotationThread", daemon=True).start()
    threading.Thread(target=logging_config._rotation_thread, name="DailyAccessLogRotationThread", daemon=True).start()

    system_logger.info("Fusion gate started")
    yield
    system_logger.info("Fusion gate stopped")


def create_app(rate_limiter: Optional[FixedWindowRateLimiter] = None) -> FastAPI:
    """
    Build the application
    - `rate_limiter`: edge limiter to use, built from RATE_LIMIT_BACKEND when omitted (tests inject one with a fake clock)
    """
    app = FastAPI(
        title="Fusion Gate",
        docs_url="/docs",
        redoc_url=None,
        lifespan=lifespan,
    )

    # Counters of the edge limiter live on the app, one limiter per process
    app.state.rate_limiter = rate_limiter or build_rate_limiter()

    # Edge rate limiting first, the access log wraps it so 429 answers are logged too
    app.middleware("http")(edge_rate_limit)
    app.add_middleware(BaseHTTPMiddleware, dispatch=logger.log_requests)

    app.add_exception_handler(RequestBlocked, request_blocked_handler)

    app.include_router(health_check.router)
    app.include_router(signup.router)
    app.include_router(log_security_event.router)
    app.include_router(security_events.router)

    app.add_middleware(
        CORSMiddleware,
        allow_origins = CORS_ORIGINS,
        allow_credentials = True,
        allow_methods = ["*"],
        allow_headers = ["*"]
    )

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("fusion_gate.main:app", host="0.0.0.0", port=PORT)

    # Or from the src folder: `fastapi dev fusion_gate/main.py` for the developer mode
