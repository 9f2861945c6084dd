"""Shared fixtures: in-memory database, API client and user factories."""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tracker_core import crud, models
from tracker_core.api.database import get_db
from tracker_core.api.main import app
from tracker_core.api.security import create_access_token, hash_password

TEST_PASSWORD = "Passw0rd!"
# Hashing once keeps the suite fast
TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    models.Base.metadata.create_all(bind=engine)
    yield engine
    models.Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def _make_user(role=models.UserRole.USER, email=None, is_active=True):
        suffix = uuid4().hex[:8]
        user = crud.create_user(
            db,
            username=f"user-{suffix}",
            email=email or f"user-{suffix}@company.com",
            password_hash=TEST_PASSWORD_HASH,
            full_name=f"User {suffix}",
            role=role,
        )
        if not is_active:
            user = crud.set_user_active(db, user.id, False)
        return user

    return _make_user


@pytest.fixture
def admin(make_user):
    return make_user(models.UserRole.ADMIN)


@pytest.fixture
def scrum_master(make_user):
    return make_user(models.UserRole.SCRUM_MASTER)


@pytest.fixture
def team(db, admin):
    return crud.create_team(db, name="Alpha Squad", user_id=admin.id)


@pytest.fixture
def project(db, team, admin):
    return crud.create_project(db, key="ECOMM", name="E-Commerce Platform", team_id=team.id, user_id=admin.id)


@pytest.fixture
def auth_headers():
    def _auth_headers(user) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _auth_headers
