"""
Shared fixtures for all tests.
"""
import os

# The app engine must never point at a real database during tests
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("SEED_ADMIN_EMAIL", "")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app import models  # noqa: F401
from app.models.property import Property
from app.models.user import UserRole
from app.services.auth import create_access_token, create_user

# In-memory SQLite test database
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

PASSWORD = "Password123!"


@pytest.fixture(scope="function")
def db():
    """
    Fresh database for each test: tables are created up front and dropped at the end.
    """
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db):
    """
    FastAPI test client whose get_db yields the test session.
    """
    from app.main import app

    def override_get_db():
        try:
            yield db
        finally:
            # The db fixture closes the session
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def users(db):
    """One user per role, keyed by role name."""
    out = {}
    for role in UserRole:
        out[role.value] = create_user(db, f"{role.value}@example.com", PASSWORD, role, full_name=f"Test {role.value}")
    db.commit()
    return out


@pytest.fixture
def auth_headers(users):
    """auth_headers("manager") -> Authorization header for that role."""
    def _headers(role: str = "manager") -> dict:
        user = users[role]
        return {"Authorization": f"Bearer {create_access_token(user.id, user.email, user.role)}"}
    return _headers


@pytest.fixture
def manager(users):
    return users["manager"]


@pytest.fixture
def make_property(db):
    def _make(name: str = "Villa Mimosa", city: str | None = "Nice") -> Property:
        prop = Property(name=name, city=city)
        db.add(prop)
        db.commit()
        db.refresh(prop)
        return prop
    return _make
