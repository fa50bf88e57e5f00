import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from redis.exceptions import ConnectionError as RedisConnectionError

from fusion_gate.auth.oauth2 import create_access_token
from fusion_gate.db import models  # noqa: F401  (registers the security_events table)
from fusion_gate.db.database import Base, get_db
from fusion_gate.main import create_app
from fusion_gate.security.rate_limit_store import InMemoryRateLimitStore
from fusion_gate.security.rate_limiter import FixedWindowRateLimiter


class FakeClock:
    """
    Millisecond clock moved by hand, shared by the store and the limiter
    """
    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def engine():
    """
    In-memory SQLite, one connection shared by the test and the app (StaticPool)
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def broken_db_session():
    """
    Session on a database without the security_events table: every query fails
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rate_limiter(clock):
    return FixedWindowRateLimiter(InMemoryRateLimitStore(clock=clock), clock=clock)


@pytest.fixture
def app(db_session, rate_limiter):
    app = create_app(rate_limiter=rate_limiter)

    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


def bearer(privilege: str) -> dict:
    token = create_access_token({"ID": "42", "Email": "ops@fusion.test", "Privilege": privilege})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers():
    return bearer("admin")


@pytest.fixture
def auth_headers():
    """Factory: auth_headers("creator") -> Authorization header for that privilege"""
    return bearer


class DownRedis:
    """Redis client whose every call fails like an unreachable server"""

    def __init__(self):
        self.calls = 0

    def _fail(self, *args, **kwargs):
        self.calls += 1
        raise RedisConnectionError("connection refused")

    get = hmget = hset = pexpire = delete = ping = _fail

    def register_script(self, script):
        # Calling the script fails like any other command
        return self._fail


@pytest.fixture
def down_redis():
    return DownRedis()
