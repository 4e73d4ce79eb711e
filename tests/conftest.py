"""
Pytest configuration for testing
"""

import json
import os
import tempfile
import uuid
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy.orm import sessionmaker

_tmp_dir = tempfile.mkdtemp(prefix="schoolai-tests-")

# Create mock Firebase credentials before any imports
credentials_path = os.path.join(_tmp_dir, "test-creds.json")
with open(credentials_path, "w") as f:
    json.dump({
        "type": "service_account",
        "project_id": "test-project",
        "client_email": "test@test-project.iam.gserviceaccount.com",
    }, f)

# Set up environment variables for testing before any imports
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_tmp_dir, 'app.db')}"
os.environ["FIREBASE_PROJECT_ID"] = "test-project"
os.environ["FIREBASE_CREDENTIALS_PATH"] = credentials_path
os.environ["ANALYTICS_ENABLED"] = "false"
os.environ["PLAN_CACHE_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["OPENAI_API_KEY"] = ""
os.environ["QUOTA_TIMEZONE"] = "UTC"
os.environ["REDIS_URL"] = "redis://localhost:6379/1"
os.environ["REDIS_PASSWORD"] = ""


FIXED_NOW = datetime(2026, 3, 10, 14, 30, tzinfo=timezone.utc)


# Mock Firebase Admin before it's imported
@pytest.fixture(autouse=True)
def mock_firebase_admin(monkeypatch):
    """Mock Firebase Admin SDK to avoid initialization issues in tests"""
    mock_credentials = MagicMock()
    monkeypatch.setattr("firebase_admin.credentials.Certificate", mock_credentials.Certificate)

    mock_init = MagicMock()
    monkeypatch.setattr("firebase_admin.initialize_app", mock_init)

    mock_firestore = MagicMock()
    monkeypatch.setattr("firebase_admin.firestore.client", mock_firestore)

    yield mock_firestore


@pytest.fixture(scope="function")
def db_engine(tmp_path):
    """File-backed SQLite database per test, so several threads can share it"""
    from app.core.database import Base, build_engine
    from app import models  # noqa: F401

    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    """Create a new database session for a test"""
    session = session_factory()

    yield session

    session.rollback()
    session.close()


@pytest.fixture
def analytics():
    from app.services.analytics_service import AnalyticsService
    return MagicMock(spec=AnalyticsService)


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def make_user(db_session):
    """Factory creating active student accounts"""
    from app.models.user import User

    def _make_user(user_id=None, email=None, role="student", account_status="active"):
        user_id = user_id or f"user-{uuid.uuid4().hex[:8]}"
        user = User(
            id=user_id,
            email=email or f"{user_id}@example.com",
            name="Test Student",
            role=role,
            account_status=account_status,
            preferences={},
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make_user


@pytest.fixture
def user(make_user):
    return make_user(user_id="student-1", email="student@example.com")


@pytest.fixture
def plans(db_session, analytics):
    """Seeded plan catalog keyed by name"""
    from app.models.plan import Plan
    from app.services.subscription_service import PlanCatalog

    PlanCatalog(analytics=analytics).seed_plans(db_session)
    return {plan.name: plan for plan in db_session.query(Plan).all()}


@pytest.fixture
def subscribe(db_session, analytics):
    """Put a user on a named plan"""
    from app.services.subscription_service import SubscriptionService

    def _subscribe(user_id, plan_name, **kwargs):
        return SubscriptionService(analytics=analytics).grant_subscription(db_session, user_id, plan_name, **kwargs)

    return _subscribe
