import pytest
from fastapi.testclient import TestClient
from sqlalchemy import StaticPool, create_engine
from sqlalchemy.dialects.sqlite import base as sqlite_base
from sqlalchemy.orm import sessionmaker

import portal.models  # noqa: F401  register models with Base.metadata
from portal.core.config import settings
from portal.core.database import Base, get_db
from portal.main import app as fastapi_app
from portal.models import Profile
from portal.services.auth import create_access_token, hash_password

# Enable debug mode for tests (allows non-HTTPS cookies in TestClient)
settings.DEBUG = True

# ---------------------------------------------------------------------------
# SQLite compatibility for PostgreSQL-specific types (JSONB)
# ---------------------------------------------------------------------------
sqlite_base.SQLiteTypeCompiler.visit_JSONB = lambda self, type_, **kw: self.visit_JSON(type_, **kw)

# In-memory SQLite for tests, no PostgreSQL needed
TEST_DATABASE_URL = "sqlite://"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def setup_db():
    """Create all tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch):
    """Point document storage at a per-test temporary directory."""
    path = tmp_path / "uploads"
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(path))
    return path


@pytest.fixture
def db():
    """Provide a test database session."""
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db):
    """TestClient with overridden DB dependency."""

    def _override_get_db():
        try:
            yield db
        finally:
            pass

    fastapi_app.dependency_overrides[get_db] = _override_get_db
    yield TestClient(fastapi_app)
    fastapi_app.dependency_overrides.clear()


def _make_profile(db, **overrides) -> Profile:
    defaults = {
        "first_name": "Test",
        "last_name": "Student",
        "email": "student@example.com",
        "password_hash": hash_password("strongpassword123"),
    }
    defaults.update(overrides)
    profile = Profile(**defaults)
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


@pytest.fixture
def student(db) -> Profile:
    return _make_profile(db, student_id="S-1001")


@pytest.fixture
def admin(db) -> Profile:
    return _make_profile(
        db,
        first_name="Ada",
        last_name="Admin",
        email="admin@example.com",
        role=Profile.ROLE_ADMIN,
        approved=True,
    )


@pytest.fixture
def student_headers(student) -> dict:
    return {"Authorization": f"Bearer {create_access_token(student.id)}"}


@pytest.fixture
def admin_headers(admin) -> dict:
    return {"Authorization": f"Bearer {create_access_token(admin.id)}"}
