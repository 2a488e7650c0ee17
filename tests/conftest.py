"""
Test configuration and fixtures.

Every test gets a fresh in-memory SQLite database shared by the test session
and the API (StaticPool keeps the single connection alive).
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_CREATE_DB"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ENABLE_CLEANUP_SWEEPER"] = "false"
os.environ["JWT_SECRET"] = "test-jwt-secret-for-testing-only"
os.environ["SMTP_HOST"] = ""
os.environ["SMTP_USER"] = ""
os.environ["SMTP_PASSWORD"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ispdesk.auth.security import create_access_token
from ispdesk.db import Base, get_db
from ispdesk.main import app
from ispdesk.models.models import User
from ispdesk.services import permissions as perms


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_user(db, email, role=perms.USER, approved=True, page_permissions=None, name=None):
    user = User(
        email=email,
        name=name or email.split("@")[0],
        role=role,
        approved=approved,
        page_permissions=page_permissions or [],
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def headers_for(user_or_email, name=None):
    email = getattr(user_or_email, "email", user_or_email)
    return {"Authorization": f"Bearer {create_access_token(email, name)}"}


@pytest.fixture
def superadmin(db_session):
    return make_user(db_session, "owner@iconic.test", role=perms.SUPERADMIN, page_permissions=perms.full_permissions())


@pytest.fixture
def superadmin_headers(superadmin):
    return headers_for(superadmin)


@pytest.fixture
def admin(db_session):
    """Admin with full rights on the operational pages but no delete on equipment."""
    pages = ["tickets", "expenses", "stations", "station-tasks", "users"]
    page_permissions = [{"pageId": p, "permissions": list(perms.PERMISSION_TYPES)} for p in pages]
    page_permissions.append({"pageId": "equipment", "permissions": ["view", "add", "edit"]})
    return make_user(db_session, "admin@iconic.test", role=perms.ADMIN, page_permissions=page_permissions)


@pytest.fixture
def admin_headers(admin):
    return headers_for(admin)


@pytest.fixture
def viewer(db_session):
    return make_user(
        db_session,
        "viewer@iconic.test",
        page_permissions=[{"pageId": "tickets", "permissions": ["view"]}],
    )


@pytest.fixture
def viewer_headers(viewer):
    return headers_for(viewer)


@pytest.fixture
def pending_headers(db_session):
    user = make_user(db_session, "pending@iconic.test", approved=False)
    return headers_for(user)
