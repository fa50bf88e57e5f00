from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.session import Session
from redis.exceptions import RedisError
from fusion_gate.db.database import get_db
from fusion_gate.security.rate_limit_store import RedisRateLimitStore


router = APIRouter(
    tags= ["Health"]
)


@router.get("/healthz", summary="Liveness check")
async def healthz():
    """
    Basic liveness of the process.
    """
    return {"status": "ok"}

@router.get("/readyz", summary="Readiness check")
def readyz(request: Request, db: Session = Depends(get_db)):
    """
    Readiness: database, plus Redis when the rate limiter keeps its counters there.
    200 when everything is ok, 503 otherwise.
    """
    checks = {}

    try:
        db.execute(text("SELECT 1"))
        checks["db"] = "ok"
    except SQLAlchemyError as e:
        checks["db"] = f"error: {e.__class__.__name__}"

    store = request.app.state.rate_limiter.store
    if isinstance(store, RedisRateLimitStore):
        try:
            store.ping()
            checks["redis"] = "ok"
        except RedisError as e:
            checks["redis"] = f"error: {e.__class__.__name__}"

    ok = all(val == "ok" for val in checks.values())
    return JSONResponse(
        status_code=200 if ok else 503,
        content={"status": "ok" if ok else "error", "checks": checks},
    )
