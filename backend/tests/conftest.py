import os
import sys
import tempfile
from pathlib import Path

# Add backend directory to Python path FIRST
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Keep the module-level engine away from the default location
_scratch_dir = tempfile.mkdtemp(prefix="files_manager_tests_")
os.environ.setdefault("FILES_MANAGER_DATABASE_URL", f"sqlite:///{_scratch_dir}/default.db")
os.environ.setdefault("FILES_MANAGER_STORAGE_DIR", f"{_scratch_dir}/blobs")
os.environ.setdefault("FILES_MANAGER_LOG_DIR", f"{_scratch_dir}/logs")
os.environ.setdefault("FILES_MANAGER_EMBEDDED_WORKERS", "false")

# Now import after path is set
import io
import base64
from datetime import datetime, timedelta

import pytest
from PIL import Image
from sqlalchemy.orm import sessionmaker

import models  # noqa: F401  registers the mappers on Base
from config.settings import Settings
from database import Base, build_engine
from services.blob_storage import LocalBlobStorage
from services.file_catalog import FileCatalog
from services.file_service import FileService
from services.job_queue import JobQueue
from services.session_store import SessionStore
from services.user_service import UserService


class FakeClock:
    """Callable clock the tests move forward by hand"""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so several sessions see each other's commits"""
    engine = build_engine(f"sqlite:///{tmp_path}/test.db")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def storage(tmp_path):
    return LocalBlobStorage(tmp_path / "blobs")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path}/test.db",
        storage_dir=str(tmp_path / "blobs"),
        log_dir=str(tmp_path / "logs"),
        embedded_workers=False,
        job_backoff_seconds=0,
        worker_poll_interval=0.01,
    )


@pytest.fixture
def session_store(db_session, clock):
    return SessionStore(db_session, clock=clock)


@pytest.fixture
def catalog(db_session, storage, clock):
    return FileCatalog(db_session, storage, clock=clock)


@pytest.fixture
def queue(db_session, clock):
    return JobQueue(db_session, backoff_seconds=2.0, visibility_timeout=300, poll_interval=0.01,
                    clock=clock, worker_id="test-worker")


@pytest.fixture
def file_service(catalog, queue):
    return FileService(catalog, queue)


@pytest.fixture
def make_user(db_session):
    """Create users with distinct emails"""
    service = UserService(db_session)
    counter = {"n": 0}

    def _make(email: str | None = None, password: str = "secret"):
        counter["n"] += 1
        return service.register(email or f"user{counter['n']}@example.com", password)

    return _make


@pytest.fixture
def image_bytes():
    """Encode an RGB test image in the given format"""
    def _make(width: int = 800, height: int = 600, image_format: str = "PNG") -> bytes:
        buffer = io.BytesIO()
        Image.new("RGB", (width, height), color=(200, 40, 40)).save(buffer, format=image_format)
        return buffer.getvalue()

    return _make


@pytest.fixture
def png_b64(image_bytes):
    return base64.b64encode(image_bytes()).decode("ascii")


@pytest.fixture
def client(session_factory, settings, storage):
    """TestClient bound to the test database; lifespan (and workers) not started"""
    from fastapi.testclient import TestClient
    from config.settings import get_settings
    from database import get_db
    from dependencies import get_blob_storage
    from main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_blob_storage] = lambda: storage

    yield TestClient(app)

    app.dependency_overrides.clear()
