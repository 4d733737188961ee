"""
Shared fixtures: a throwaway SQLite database per test and a TestClient whose
store dependency points at it.
"""
import itertools
import os
import tempfile

_TMP_ROOT = tempfile.mkdtemp(prefix="contentcal-tests-")
os.environ["DATABASE_URL"] = f"sqlite+pysqlite:///{_TMP_ROOT}/unused.db"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["UPLOAD_DIR"] = os.path.join(_TMP_ROOT, "uploads")
os.environ["PUBLIC_BASE_URL"] = "http://testserver"
os.environ["TRACING_ENABLED"] = "false"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from backend.app import models  # noqa: F401,E402
from backend.app.config import get_settings  # noqa: E402
from backend.app.db import Base, get_session, init_engine  # noqa: E402
from backend.app.dependencies import get_store  # noqa: E402
from backend.app.main import app  # noqa: E402
from backend.app.schemas import ProjectCreate, Role, UserCreate  # noqa: E402
from backend.app.security import create_session_token, get_password_hash  # noqa: E402
from backend.app.storage_db import DatabaseStore  # noqa: E402

PASSWORD = "s3cret-pass"


@pytest.fixture(scope="session")
def password_hash():
    return get_password_hash(PASSWORD)


@pytest.fixture()
def engine(tmp_path):
    engine = init_engine(f"sqlite+pysqlite:///{tmp_path / 'contentcal.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(
        bind=engine, autoflush=False, autocommit=False, expire_on_commit=False
    )


@pytest.fixture()
def store(session_factory):
    session = session_factory()
    yield DatabaseStore(session)
    session.close()


@pytest.fixture()
def client(session_factory):
    def _override_store():
        with get_session(session_factory) as session:
            yield DatabaseStore(session)

    app.dependency_overrides[get_store] = _override_store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(session_factory, password_hash):
    """Create a committed user and return it with ready-made auth headers."""
    counter = itertools.count(1)

    def _make(role=Role.TEAM_MEMBER, username=None):
        n = next(counter)
        username = username or f"{role.value}{n}"
        with get_session(session_factory) as session:
            user = DatabaseStore(session).create_user(
                UserCreate(
                    username=username,
                    password=PASSWORD,
                    role=role,
                    full_name=f"User {n}",
                    email=f"{username}@agency.io",
                ),
                password_hash,
            )
        token = create_session_token(user.id, user.role, get_settings())
        return user, {"Authorization": f"Bearer {token}"}

    return _make


@pytest.fixture()
def make_project(session_factory):
    def _make(project_id, name=None):
        with get_session(session_factory) as session:
            return DatabaseStore(session).create_project(
                ProjectCreate(id=project_id, name=name or project_id.title())
            )

    return _make
