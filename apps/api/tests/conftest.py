"""
Test configuration and fixtures.

Provides:
- In-memory SQLite schema created once per run
- Database session with savepoint (rollback after each test)
- Organization, staff user, client and document request factories
- HTTPX AsyncClient with session cookie and CSRF header
"""
import os
import tempfile
import uuid
from dataclasses import dataclass
from typing import AsyncGenerator, Generator

# Settings are read at import time; configure before importing the app.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["TESTING"] = "1"
os.environ["ENV"] = "test"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["APP_BASE_URL"] = "https://portal.test"
os.environ["STORAGE_BACKEND"] = "local"
os.environ["LOCAL_STORAGE_PATH"] = tempfile.mkdtemp(prefix="portal-uploads-")
os.environ["RESEND_API_KEY"] = ""
os.environ["EMAIL_FROM"] = ""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from app.core.deps import COOKIE_NAME, CRON_SECRET_HEADER, get_db
from app.core.security import create_session_token
from app.db.base import Base
from app.db.models import Client, DocumentRequest, Organization, User
from app.db.session import SessionLocal, engine
from app.main import app
from factories import make_client, make_document

CRON_SECRET = "test-cron-secret"


# =============================================================================
# Database Fixtures (Savepoint pattern)
# =============================================================================

@pytest.fixture(scope="session", autouse=True)
def schema() -> Generator[None, None, None]:
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Session bound to an outer transaction that is rolled back after the test.

    commit() and rollback() in app code act on a savepoint, so services can
    manage their own transactions without leaking rows between tests.
    """
    connection = engine.connect()
    transaction = connection.begin()
    session = SessionLocal(bind=connection, join_transaction_mode="create_savepoint")

    yield session

    session.close()
    transaction.rollback()
    connection.close()


# =============================================================================
# Tenant & client fixtures
# =============================================================================

@pytest.fixture(scope="function")
def test_org(db: Session) -> Organization:
    org = Organization(
        id=uuid.uuid4(),
        name="Test Practice",
        slug=f"test-org-{uuid.uuid4().hex[:8]}",
    )
    db.add(org)
    db.commit()
    return org


@pytest.fixture(scope="function")
def test_user(db: Session, test_org: Organization) -> User:
    user = User(
        id=uuid.uuid4(),
        organization_id=test_org.id,
        email=f"staff-{uuid.uuid4().hex[:8]}@test.com",
        display_name="Test Staff",
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture(scope="function")
def test_client_record(db: Session, test_org: Organization) -> Client:
    return make_client(db, test_org)


@pytest.fixture(scope="function")
def test_documents(db: Session, test_client_record: Client) -> list[DocumentRequest]:
    return [
        make_document(db, test_client_record, "Bank statement", sort_order=0),
        make_document(db, test_client_record, "Payslip", sort_order=1),
    ]


# =============================================================================
# Auth Fixtures
# =============================================================================

@dataclass
class TestAuth:
    """Test authentication context."""
    user: User
    org: Organization
    token: str
    cookie_name: str = COOKIE_NAME


@pytest.fixture(scope="function")
def test_auth(test_user: User, test_org: Organization) -> TestAuth:
    token = create_session_token(
        user_id=test_user.id,
        org_id=test_org.id,
        token_version=test_user.token_version,
    )
    return TestAuth(user=test_user, org=test_org, token=token)


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated AsyncClient for public (portal, cron) endpoints."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def authed_client(
    db: Session,
    test_auth: TestAuth,
) -> AsyncGenerator[AsyncClient, None]:
    """Authenticated AsyncClient with JWT cookie and CSRF header."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        cookies={test_auth.cookie_name: test_auth.token},
        headers={"X-Requested-With": "XMLHttpRequest"},  # CSRF header
    ) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def cron_headers() -> dict[str, str]:
    return {CRON_SECRET_HEADER: CRON_SECRET}
