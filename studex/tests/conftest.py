import os

# settings are read at import time by studex.db.session
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["NOTIFICATION_INBOX_ENABLED"] = "true"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

# FORCE model registration
import studex.models  # noqa

from studex.db.base import Base
from studex.db.session import build_engine, get_db
from studex.tests.helpers import principal


@pytest.fixture(scope="function")
def engine(tmp_path):
    eng = build_engine(f"sqlite:///{tmp_path / 'studex.db'}", connect_args={"timeout": 30})
    Base.metadata.create_all(eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture(scope="function")
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(session_factory):
    from studex.main import create_app

    app = create_app()

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c


@pytest.fixture
def client_p():
    return principal("client-1", "client")


@pytest.fixture
def freelancer_p():
    return principal("freelancer-1", "freelancer")


@pytest.fixture
def admin_p():
    return principal("admin-1", "admin")
