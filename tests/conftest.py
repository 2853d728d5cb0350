import os
import tempfile

# main.py creates its data and upload folders on import
os.environ.setdefault("STOCKROOM_BASE_DIR", tempfile.mkdtemp(prefix="stockroom-tests-"))

import pytest
from fastapi.testclient import TestClient

from database import DocumentStore, get_store
from images import ImageStore, get_images


@pytest.fixture()
def store(tmp_path):
    store = DocumentStore(tmp_path / "data")
    store.initialize()
    return store


@pytest.fixture()
def images(tmp_path):
    return ImageStore(tmp_path / "uploads")


@pytest.fixture()
def client(store, images):
    from main import app

    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_images] = lambda: images
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def registered(client):
    """Register a user and return (user_id, auth headers)."""
    resp = client.post(
        "/api/register",
        json={"email": "ada@cornershop.com", "password": "Strong@123", "name": "Ada", "businessName": "Corner Shop"},
    )
    assert resp.status_code == 200
    user_id = resp.json()["user"]["id"]
    return user_id, {"Authorization": f"Bearer {user_id}"}
