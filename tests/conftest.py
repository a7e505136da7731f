"""
Shared fixtures for the CodeQuest backend tests.

Every test gets its own file-backed SQLite database so that thread-based
tests can open several connections to the same data. The API client
overrides the ``get_db`` and ``get_identity`` dependencies; Appwrite is
never contacted.
"""

import os

# Must be set before db.py builds its module-level engine
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import main
import setup_db
from db import Base, make_engine
from logic.progression import ProgressionEngine
from logic.store import StatisticsStore
from models.user import User
from models.user_statistics import UserStatistics

TEST_IDENTITY = {
    "appwrite_id": "appwrite-user-1",
    "email": "ada@example.com",
    "username": "ada",
    "full_name": "Ada Lovelace",
    "avatar_url": None,
    "verified": True,
}


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'codequest.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def session(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def make_user(session):
    def _make_user(appwrite_id="appwrite-user-1", username="ada", with_statistics=False, **stats):
        user = User(appwrite_id=appwrite_id, email=f"{username}@example.com", username=username)
        session.add(user)
        session.flush()
        if with_statistics or stats:
            session.add(UserStatistics(user_id=user.id, **stats))
        session.commit()
        return user.id

    return _make_user


@pytest.fixture
def store(session):
    return StatisticsStore(session)


@pytest.fixture
def progression(store):
    return ProgressionEngine(store)


@pytest.fixture
def curriculum(session):
    setup_db.seed(session)
    return session


@pytest.fixture
def anonymous_client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    main.app.dependency_overrides[main.get_db] = override_get_db
    with TestClient(main.app) as client:
        yield client
    main.app.dependency_overrides.clear()


@pytest.fixture
def client(anonymous_client):
    main.app.dependency_overrides[main.get_identity] = lambda: dict(TEST_IDENTITY)
    return anonymous_client


@pytest.fixture
def synced_client(client):
    response = client.post("/auth/sync")
    assert response.status_code == 200
    return client
