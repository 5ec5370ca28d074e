"""
Pytest configuration for MindForge tests.

Environment is set before any mindforge import: temp SQLite database,
temp log dir, test secrets. API tests authenticate by overriding the
get_current_user dependency.
"""

import os
import tempfile

_test_data_dir = tempfile.mkdtemp(prefix="mindforge_test_")
os.environ["MINDFORGE_DEBUG"] = "false"
os.environ["MINDFORGE_AUTH_ENABLED"] = "true"
os.environ["MINDFORGE_DATA_DIRECTORY"] = _test_data_dir
os.environ["MINDFORGE_LOG_DIR"] = os.path.join(_test_data_dir, "logs")
os.environ["DATABASE_URL"] = f"sqlite:///{_test_data_dir}/test.db"
os.environ["MINDFORGE_ANTHROPIC_API_KEY"] = "sk-ant-test-key"
os.environ["MINDFORGE_OPENAI_API_KEY"] = "sk-test-key"
os.environ["MINDFORGE_STRIPE_SECRET_KEY"] = "sk_test_123"
os.environ["MINDFORGE_STRIPE_WEBHOOK_SECRET"] = "whsec_stripe_test"
os.environ["MINDFORGE_STRIPE_PRICE_MONTHLY"] = "price_monthly_test"
os.environ["MINDFORGE_STRIPE_PRICE_YEARLY"] = "price_yearly_test"
os.environ["MINDFORGE_CLERK_WEBHOOK_SECRET"] = "whsec_dGVzdC1jbGVyay13ZWJob29rLXNlY3JldA=="
os.environ["MINDFORGE_CLERK_JWKS_URL"] = "https://clerk.test/.well-known/jwks.json"

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel

from mindforge.auth.clerk_auth import AuthenticatedUser, get_current_user
from mindforge.core.database import get_engine, init_db
from mindforge.core.errors.registry import error_registry
from mindforge.main import app
from mindforge.models import User
from mindforge.models.user import SUBSCRIPTION_ACTIVE

init_db()
error_registry.load()


@pytest.fixture(autouse=True)
def clean_tables():
    """Empty every table after each test."""
    yield
    with get_engine().begin() as conn:
        for table in reversed(SQLModel.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture
def db():
    with Session(get_engine()) as session:
        yield session


@pytest.fixture
def make_user(db):
    """Insert a user row; ``subscribed=True`` makes it a Pro user."""
    def _make(user_id: str = "user_test", subscribed: bool = False, **fields) -> User:
        user = User(id=user_id, **fields)
        if subscribed:
            user.subscription_status = SUBSCRIPTION_ACTIVE
            user.subscription_plan = "monthly"
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


@pytest.fixture
def current_user():
    """Mutable holder for the identity the test client authenticates as."""
    return {"user_id": "user_test"}


@pytest.fixture
def client(current_user):
    app.dependency_overrides[get_current_user] = lambda: AuthenticatedUser(
        user_id=current_user["user_id"], email=f"{current_user['user_id']}@example.com"
    )
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def anon_client():
    """Client without an auth override."""
    app.dependency_overrides.clear()
    return TestClient(app)
