import asyncio
import base64
import io
import threading

import pytest
from PIL import Image

from constants import JobState, FailureCategory, ROOT_PARENT_ID
from exceptions import StoreUnavailableError
from models import Job, Thumbnail
from services.blob_storage import LocalBlobStorage
from services.file_catalog import FileCatalog
from services.file_service import FileService
from services.job_queue import JobQueue
from services.thumbnail_generator import PillowRenderer
from services.worker_pool import WorkerPool
from utils.logging_utils import get_logging_context
from workers.thumbnail_worker import ThumbnailWorker


class FlakyRenderer(PillowRenderer):
    """Fails for chosen widths, renders the rest"""

    def __init__(self, broken_sizes):
        super().__init__()
        self.broken_sizes = set(broken_sizes)

    def render(self, data, target_width):
        if target_width in self.broken_sizes:
            raise OSError(f"cannot write mode P as JPEG at {target_width}")
        return super().render(data, target_width)


def make_worker(session_factory, storage, clock, renderer=None):
    return ThumbnailWorker(
        session_factory=session_factory,
        storage=storage,
        renderer=renderer or PillowRenderer(),
        worker_id="thumbnail-test",
        queue_options={"backoff_seconds": 0, "poll_interval": 0.01},
        clock=clock,
    )


@pytest.fixture
def worker(session_factory, storage, clock):
    return make_worker(session_factory, storage, clock)


def _job_for(db_session, file_id):
    db_session.expire_all()
    return db_session.query(Job).filter(Job.file_id == file_id).order_by(Job.created_at.desc()).first()


def test_upload_to_thumbnails_end_to_end(file_service, worker, storage, catalog, db_session,
                                         make_user, image_bytes):
    user = make_user()
    data = base64.b64encode(image_bytes(1000, 500)).decode()
    entry = file_service.upload(user.id, "photo.png", "image", ROOT_PARENT_ID, False, data)
    stem = entry.storage_ref[:-len(".png")]

    assert asyncio.run(worker.run_once()) == "acked"

    db_session.expire_all()
    refs = catalog.get(entry.id).thumbnail_refs
    assert refs == {
        500: f"{stem}_500.png",
        250: f"{stem}_250.png",
        100: f"{stem}_100.png",
    }
    for size, path in refs.items():
        with Image.open(io.BytesIO(storage.get(path))) as rendition:
            assert rendition.size == (size, size // 2)
            assert rendition.format == "PNG"

    assert _job_for(db_session, entry.id).state == JobState.DONE.value
    assert asyncio.run(worker.run_once()) is None


def test_jpeg_source_keeps_format_and_extension(catalog, queue, worker, storage, db_session,
                                                make_user, image_bytes):
    user = make_user()
    entry = catalog.create_file(user.id, "shot.JPG", "image", ROOT_PARENT_ID, image_bytes(800, 600, "JPEG"))
    queue.enqueue(entry.id, user.id)

    assert asyncio.run(worker.run_once()) == "acked"

    db_session.expire_all()
    path = catalog.get(entry.id).thumbnail_refs[250]
    assert path.endswith("_250.jpg")
    with Image.open(io.BytesIO(storage.get(path))) as rendition:
        assert rendition.format == "JPEG"
        assert rendition.size == (250, 188)


def test_file_without_extension(catalog, queue, worker, db_session, make_user, image_bytes):
    user = make_user()
    entry = catalog.create_file(user.id, "scan", "image", ROOT_PARENT_ID, image_bytes())
    queue.enqueue(entry.id, user.id)

    asyncio.run(worker.run_once())

    db_session.expire_all()
    assert catalog.get(entry.id).thumbnail_refs[100] == f"{entry.storage_ref}_100"


def test_redelivery_does_not_duplicate_renditions(catalog, queue, worker, db_session,
                                                  make_user, image_bytes):
    user = make_user()
    entry = catalog.create_file(user.id, "p.png", "image", ROOT_PARENT_ID, image_bytes())
    queue.enqueue(entry.id, user.id)
    queue.enqueue(entry.id, user.id)

    assert asyncio.run(worker.run_once()) == "acked"
    assert asyncio.run(worker.run_once()) == "acked"

    assert db_session.query(Thumbnail).filter(Thumbnail.file_id == entry.id).count() == 3


@pytest.mark.parametrize("file_id,user_id", [(None, "user"), ("file", None)])
def test_malformed_job_is_dead_lettered_without_retry(queue, worker, db_session, file_id, user_id):
    job = queue.enqueue(file_id, user_id)

    assert asyncio.run(worker.run_once()) == "failed"

    db_session.expire_all()
    dead = db_session.get(Job, job.id)
    assert dead.state == JobState.DEAD.value
    assert dead.retries == 0
    assert dead.failure_category == FailureCategory.JOB_MALFORMED.value


def test_job_for_someone_elses_file_is_dead_lettered(catalog, queue, worker, db_session,
                                                     make_user, image_bytes):
    owner, other = make_user(), make_user()
    entry = catalog.create_file(owner.id, "p.png", "image", ROOT_PARENT_ID, image_bytes())
    job = queue.enqueue(entry.id, other.id)

    assert asyncio.run(worker.run_once()) == "failed"

    db_session.expire_all()
    dead = db_session.get(Job, job.id)
    assert dead.state == JobState.DEAD.value
    assert dead.failure_category == FailureCategory.SOURCE_MISSING.value


def test_missing_original_blob_is_dead_lettered(catalog, queue, worker, storage, db_session,
                                                make_user, image_bytes):
    user = make_user()
    entry = catalog.create_file(user.id, "p.png", "image", ROOT_PARENT_ID, image_bytes())
    storage.delete(entry.storage_ref)
    job = queue.enqueue(entry.id, user.id)

    assert asyncio.run(worker.run_once()) == "failed"

    db_session.expire_all()
    dead = db_session.get(Job, job.id)
    assert dead.state == JobState.DEAD.value
    assert dead.retries == 0
    assert dead.failure_category == FailureCategory.SOURCE_MISSING.value


def test_single_size_failure_still_acks_with_other_sizes(session_factory, storage, clock, catalog, queue,
                                                         db_session, make_user, image_bytes):
    worker = make_worker(session_factory, storage, clock, renderer=FlakyRenderer({250}))
    user = make_user()
    entry = catalog.create_file(user.id, "p.png", "image", ROOT_PARENT_ID, image_bytes())
    queue.enqueue(entry.id, user.id)

    assert asyncio.run(worker.run_once()) == "acked"

    db_session.expire_all()
    assert sorted(catalog.get(entry.id).thumbnail_refs) == [100, 500]
    assert _job_for(db_session, entry.id).state == JobState.DONE.value


def test_every_size_failing_still_acks(session_factory, storage, clock, catalog, queue,
                                       db_session, make_user, image_bytes):
    worker = make_worker(session_factory, storage, clock, renderer=FlakyRenderer({500, 250, 100}))
    user = make_user()
    entry = catalog.create_file(user.id, "p.png", "image", ROOT_PARENT_ID, image_bytes())
    queue.enqueue(entry.id, user.id)

    assert asyncio.run(worker.run_once()) == "acked"

    db_session.expire_all()
    assert catalog.get(entry.id).thumbnail_refs == {}


def test_catalog_outage_during_attach_requeues(catalog, queue, worker, db_session,
                                               make_user, image_bytes, monkeypatch):
    user = make_user()
    entry = catalog.create_file(user.id, "p.png", "image", ROOT_PARENT_ID, image_bytes())
    job = queue.enqueue(entry.id, user.id)

    def unavailable(self, file_id, renditions):
        raise StoreUnavailableError("Attach thumbnails")

    monkeypatch.setattr(FileCatalog, "attach_thumbnails", unavailable)
    assert asyncio.run(worker.run_once()) == "failed"

    db_session.expire_all()
    requeued = db_session.get(Job, job.id)
    assert requeued.state == JobState.QUEUED.value
    assert requeued.retries == 1
    assert requeued.failure_category == FailureCategory.STORE_UNAVAILABLE.value

    monkeypatch.undo()
    assert asyncio.run(worker.run_once()) == "acked"
    db_session.expire_all()
    assert len(catalog.get(entry.id).thumbnail_refs) == 3


def test_two_transient_failures_then_success(catalog, queue, worker, db_session,
                                             make_user, image_bytes, monkeypatch):
    user = make_user()
    entry = catalog.create_file(user.id, "p.png", "image", ROOT_PARENT_ID, image_bytes())
    job = queue.enqueue(entry.id, user.id)
    original = FileCatalog.attach_thumbnails
    calls = {"n": 0}

    def flaky(self, file_id, renditions):
        calls["n"] += 1
        if calls["n"] <= 2:
            raise StoreUnavailableError("Attach thumbnails")
        return original(self, file_id, renditions)

    monkeypatch.setattr(FileCatalog, "attach_thumbnails", flaky)

    results = [asyncio.run(worker.run_once()) for _ in range(3)]

    assert results == ["failed", "failed", "acked"]
    db_session.expire_all()
    done = db_session.get(Job, job.id)
    assert done.state == JobState.DONE.value
    assert done.deliveries == 3


def test_worker_pool_processes_uploads_and_stops(settings, session_factory, storage, db_session,
                                                 make_user, png_b64):
    user = make_user()
    uploads = FileService(FileCatalog(db_session, storage), JobQueue(db_session))
    entry = uploads.upload(user.id, "p.png", "image", ROOT_PARENT_ID, False, png_b64)

    async def scenario():
        pool = WorkerPool(settings, session_factory=session_factory, storage=storage)
        await pool.start()
        try:
            for _ in range(250):
                job = _job_for(db_session, entry.id)
                if job.state == JobState.DONE.value:
                    return job
                await asyncio.sleep(0.02)
        finally:
            await pool.stop()
            assert pool.running is False
        return _job_for(db_session, entry.id)

    job = asyncio.run(scenario())
    assert job.state == JobState.DONE.value
    assert job.worker_id == "thumbnail-1"


class RecordingStorage(LocalBlobStorage):
    """Notes which thread each read and write ran on"""

    def __init__(self, root_dir):
        super().__init__(root_dir)
        self.threads = []

    def get(self, path):
        self.threads.append(("get", threading.get_ident()))
        return super().get(path)

    def put(self, path, data):
        self.threads.append(("put", threading.get_ident()))
        return super().put(path, data)


class ContextRecordingRenderer(PillowRenderer):
    """Keeps the logging context seen inside each render call"""

    def __init__(self):
        super().__init__()
        self.contexts = []

    def render(self, data, target_width):
        self.contexts.append(get_logging_context())
        return super().render(data, target_width)


def test_blob_io_runs_off_the_event_loop(session_factory, storage, clock, catalog, queue,
                                         make_user, image_bytes):
    user = make_user()
    entry = catalog.create_file(user.id, "p.png", "image", ROOT_PARENT_ID, image_bytes())
    queue.enqueue(entry.id, user.id)
    recording = RecordingStorage(storage.root)
    worker = ThumbnailWorker(session_factory, recording, PillowRenderer(), worker_id="thumbnail-test", clock=clock)

    assert asyncio.run(worker.run_once()) == "acked"

    loop_thread = threading.get_ident()
    assert [op for op, _ in recording.threads] == ["get", "put", "put", "put"]
    assert all(thread != loop_thread for _, thread in recording.threads)


def test_render_sees_job_logging_context(session_factory, storage, clock, catalog, queue,
                                         make_user, image_bytes):
    user = make_user()
    entry = catalog.create_file(user.id, "p.png", "image", ROOT_PARENT_ID, image_bytes())
    job = queue.enqueue(entry.id, user.id)
    renderer = ContextRecordingRenderer()
    worker = make_worker(session_factory, storage, clock, renderer=renderer)

    assert asyncio.run(worker.run_once()) == "acked"

    assert len(renderer.contexts) == 3
    for context in renderer.contexts:
        assert context["job_id"] == job.id
        assert context["file_id"] == entry.id
        assert context["worker"] == "thumbnail-test"
