import os
import pytest
from datetime import datetime, timedelta, timezone
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
import sqlite3
import json

os.environ.setdefault("AI_MODE", "mock")

from lunaplan.main import app
from lunaplan.db import Base, get_db
from lunaplan.models import Account
from lunaplan.settings import settings

# --- Test Database Setup ---

from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.compiler import compiles

@compiles(JSONB, 'sqlite')
def compile_jsonb(element, compiler, **kw):
    return "JSON"

# Register adapters for SQLite to handle list/dict as JSON
sqlite3.register_adapter(list, json.dumps)
sqlite3.register_adapter(dict, json.dumps)

SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool # Important for in-memory to share connection across threads/sessions
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Sunday, so it is also the start of the plan week
FIXED_NOW = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)

USER_ID = "11111111-1111-1111-1111-111111111111"
OTHER_USER_ID = "22222222-2222-2222-2222-222222222222"


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)

@pytest.fixture
def client():
    """Test client with DB override."""
    app.dependency_overrides[get_db] = override_get_db
    app.state.limiter.reset()
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()

@pytest.fixture
def db_session():
    """Direct database session for setup."""
    session = TestingSessionLocal()
    yield session
    session.close()

@pytest.fixture
def session_factory():
    """Independent sessions over the shared in-memory connection."""
    return TestingSessionLocal

@pytest.fixture
def clock():
    """Mutable clock: tests advance it with clock.now = ..."""
    class Clock:
        now = FIXED_NOW

        def __call__(self):
            return self.now

    return Clock()

@pytest.fixture
def premium_user(db_session):
    db_session.add(Account(user_id=USER_ID, subscription_status="active"))
    db_session.commit()
    return USER_ID


@pytest.fixture
def other_user_id():
    return OTHER_USER_ID

@pytest.fixture
def make_token():
    """Sign an access token the way the auth backend does."""
    def _make(user_id: str = USER_ID, expires_in: timedelta = timedelta(hours=1), secret: str = None, **extra) -> str:
        claims = {
            "sub": user_id,
            "aud": settings.jwt_audience,
            "exp": datetime.now(timezone.utc) + expires_in,
            **extra,
        }
        return jwt.encode(claims, secret or settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return _make

@pytest.fixture
def auth_headers(make_token):
    return {"Authorization": f"Bearer {make_token(USER_ID)}"}

import fakeredis
import fakeredis.aioredis
from lunaplan.infra import redis_client

@pytest.fixture(autouse=True)
def mock_redis(monkeypatch):
    server = fakeredis.FakeServer()
    # Async fake client on its own server
    async_redis = fakeredis.aioredis.FakeRedis(server=server, decode_responses=True)

    # Force the clients into the infra module
    redis_client._redis_async = async_redis

    yield async_redis

    # Cleanup
    redis_client._redis_async = None

@pytest.fixture
def make_snapshot():
    """Snapshot for a user 10 days into a regular 28-day cycle on FIXED_NOW."""
    from lunaplan.planner.aggregator import analyze_cycle_patterns, default_exercise_data, default_nutrition_data
    from lunaplan.planner.cycle import calculate_phase
    from lunaplan.schemas import CycleDataSnapshot, CycleSettingsSnapshot, UserDataSnapshot, UserPreferences

    today = FIXED_NOW.date()

    def _make(last_period=today - timedelta(days=10), user_id=USER_ID) -> UserDataSnapshot:
        return UserDataSnapshot(
            user_id=user_id,
            cycle_data=CycleDataSnapshot(
                current_phase=calculate_phase(last_period, today),
                cycle_settings=CycleSettingsSnapshot(last_period_date=last_period),
                cycle_patterns=analyze_cycle_patterns([]),
            ),
            exercise_data=default_exercise_data(),
            nutrition_data=default_nutrition_data(),
            user_preferences=UserPreferences(),
        )
    return _make
