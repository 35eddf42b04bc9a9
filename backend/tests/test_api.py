import asyncio
import base64

import pytest

from models import Job
from services.thumbnail_generator import PillowRenderer
from workers.thumbnail_worker import ThumbnailWorker


@pytest.fixture
def signup(client):
    """Register a user and return (email, password)"""
    counter = {"n": 0}

    def _signup(password: str = "secret"):
        counter["n"] += 1
        email = f"api{counter['n']}@example.com"
        response = client.post("/users", json={"email": email, "password": password})
        assert response.status_code == 201
        return email, password

    return _signup


@pytest.fixture
def login(client, signup):
    """Register a user and return auth headers for them"""
    def _login():
        email, password = signup()
        response = client.get("/connect", auth=(email, password))
        assert response.status_code == 200
        return {"X-Token": response.json()["token"]}

    return _login


def _upload(client, headers, **body):
    return client.post("/files", json=body, headers=headers)


def test_status_and_stats(client, login):
    assert client.get("/status").json() == {"db": True, "storage": True}

    headers = login()
    _upload(client, headers, name="docs", type="folder")

    assert client.get("/stats").json() == {"users": 1, "files": 1}


def test_create_user_validation(client, signup):
    assert client.post("/users", json={"password": "x"}).json()["detail"] == "Missing email"
    assert client.post("/users", json={"email": "a@b.c"}).json()["detail"] == "Missing password"

    created = client.post("/users", json={"email": "a@b.c", "password": "x"})
    assert created.status_code == 201
    assert set(created.json()) == {"id", "email"}

    duplicate = client.post("/users", json={"email": "a@b.c", "password": "y"})
    assert duplicate.status_code == 400
    assert duplicate.json()["detail"] == "Already exist"


def test_connect_me_disconnect(client, signup):
    email, password = signup()

    assert client.get("/connect").status_code == 401
    assert client.get("/connect", auth=(email, "wrong")).status_code == 401

    token = client.get("/connect", auth=(email, password)).json()["token"]
    headers = {"X-Token": token}

    me = client.get("/users/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["email"] == email

    assert client.get("/disconnect", headers=headers).status_code == 204
    assert client.get("/users/me", headers=headers).status_code == 401
    assert client.get("/disconnect", headers=headers).status_code == 401


def test_upload_requires_token(client):
    assert _upload(client, {}, name="docs", type="folder").status_code == 401
    assert _upload(client, {"X-Token": "bogus"}, name="docs", type="folder").status_code == 401


def test_upload_validation_messages(client, login):
    headers = login()
    plain = _upload(client, headers, name="a.txt", type="file",
                    data=base64.b64encode(b"hi").decode()).json()

    cases = [
        ({"type": "folder"}, "Missing name"),
        ({"name": "x"}, "Missing type"),
        ({"name": "x", "type": "video"}, "Missing type"),
        ({"name": "x", "type": "file"}, "Missing data"),
        ({"name": "x", "type": "folder", "parentId": "nope"}, "Parent not found"),
        ({"name": "x", "type": "folder", "parentId": plain["id"]}, "Parent is not a folder"),
    ]
    for body, message in cases:
        response = _upload(client, headers, **body)
        assert response.status_code == 400, body
        assert response.json()["detail"] == message


def test_image_under_plain_file_creates_nothing(client, login, session_factory, png_b64):
    headers = login()
    plain = _upload(client, headers, name="a.txt", type="file",
                    data=base64.b64encode(b"hi").decode()).json()

    response = _upload(client, headers, name="p.png", type="image", parentId=plain["id"], data=png_b64)

    assert response.status_code == 400
    assert response.json()["detail"] == "Parent is not a folder"
    assert client.get("/stats").json()["files"] == 1
    db = session_factory()
    try:
        assert db.query(Job).count() == 0
    finally:
        db.close()


def test_image_upload_queues_one_thumbnail_job(client, login, session_factory, png_b64):
    headers = login()
    folder = _upload(client, headers, name="pics", type="folder").json()

    response = _upload(client, headers, name="p.png", type="image", parentId=folder["id"], data=png_b64)

    assert response.status_code == 201
    body = response.json()
    assert body["parentId"] == folder["id"]
    assert body["isPublic"] is False
    assert body["type"] == "image"

    db = session_factory()
    try:
        jobs = db.query(Job).all()
        assert [(job.file_id, job.user_id) for job in jobs] == [(body["id"], body["userId"])]
    finally:
        db.close()


def test_show_and_index_are_owner_scoped(client, login):
    alice, bob = login(), login()
    folder = _upload(client, alice, name="docs", type="folder").json()

    assert client.get(f"/files/{folder['id']}", headers=alice).status_code == 200
    assert client.get(f"/files/{folder['id']}", headers=bob).status_code == 404

    assert [f["name"] for f in client.get("/files", headers=alice).json()] == ["docs"]
    assert client.get("/files", headers=bob).json() == []


def test_index_paginates_by_twenty(client, login):
    headers = login()
    folder = _upload(client, headers, name="docs", type="folder").json()
    for i in range(23):
        _upload(client, headers, name=f"d{i}", type="folder", parentId=folder["id"])

    first = client.get("/files", params={"parentId": folder["id"]}, headers=headers).json()
    second = client.get("/files", params={"parentId": folder["id"], "page": 1}, headers=headers).json()

    assert len(first) == 20
    assert [f["name"] for f in second] == ["d20", "d21", "d22"]


def test_publish_unpublish(client, login):
    alice, bob = login(), login()
    entry = _upload(client, alice, name="a.txt", type="file", data=base64.b64encode(b"hi").decode()).json()

    assert client.put(f"/files/{entry['id']}/publish", headers=bob).status_code == 404
    assert client.put("/files/missing/publish", headers=alice).status_code == 404

    published = client.put(f"/files/{entry['id']}/publish", headers=alice)
    assert published.status_code == 200
    assert published.json()["isPublic"] is True

    # Public entries are readable by anyone but still only mutable by the owner
    assert client.put(f"/files/{entry['id']}/unpublish", headers=bob).status_code == 404
    assert client.put(f"/files/{entry['id']}/unpublish").status_code == 401

    unpublished = client.put(f"/files/{entry['id']}/unpublish", headers=alice)
    assert unpublished.json()["isPublic"] is False


def test_file_data_visibility(client, login):
    alice, bob = login(), login()
    entry = _upload(client, alice, name="a.txt", type="file", data=base64.b64encode(b"hello").decode()).json()
    url = f"/files/{entry['id']}/data"

    assert client.get(url).status_code == 404
    assert client.get(url, headers=bob).status_code == 404

    owned = client.get(url, headers=alice)
    assert owned.status_code == 200
    assert owned.content == b"hello"
    assert owned.headers["content-type"].startswith("text/plain")

    client.put(f"/files/{entry['id']}/publish", headers=alice)
    assert client.get(url).content == b"hello"


def test_folder_data_is_bad_request(client, login):
    headers = login()
    folder = _upload(client, headers, name="docs", type="folder").json()

    response = client.get(f"/files/{folder['id']}/data", headers=headers)

    assert response.status_code == 400
    assert response.json()["detail"] == "A folder doesn't have content"


def test_thumbnail_served_after_worker_runs(client, login, session_factory, storage, png_b64):
    headers = login()
    entry = _upload(client, headers, name="p.png", type="image", data=png_b64, isPublic=True).json()
    url = f"/files/{entry['id']}/data"

    assert client.get(url, params={"size": 250}).status_code == 404

    worker = ThumbnailWorker(session_factory, storage, PillowRenderer(), worker_id="api-test")
    assert asyncio.run(worker.run_once()) == "acked"

    thumb = client.get(url, params={"size": 250})
    assert thumb.status_code == 200
    assert thumb.headers["content-type"] == "image/png"
    assert len(thumb.content) < len(client.get(url).content)
    # Unknown sizes fall back to the original
    assert client.get(url, params={"size": 42}).content == client.get(url).content


def test_dead_letters_are_scoped_to_caller(client, login, session_factory):
    alice, bob = login(), login()
    alice_id = client.get("/users/me", headers=alice).json()["id"]

    db = session_factory()
    try:
        db.add(Job(file_id=None, user_id=alice_id, state="DEAD", retries=0,
                   error_message="Missing fileId", failure_category="JOB_MALFORMED"))
        db.commit()
    finally:
        db.close()

    [dead] = client.get("/jobs/dead-letters", headers=alice).json()
    assert dead["failureLabel"] == "Malformed Job"
    assert client.get("/jobs/dead-letters", headers=bob).json() == []

    assert client.post(f"/jobs/dead-letters/{dead['id']}/requeue", headers=bob).status_code == 404
    requeued = client.post(f"/jobs/dead-letters/{dead['id']}/requeue", headers=alice)
    assert requeued.status_code == 200
    assert client.get("/jobs/stats", headers=alice).json()["counts"]["QUEUED"] == 1
