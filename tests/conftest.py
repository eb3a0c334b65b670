import os
from collections import defaultdict
from collections.abc import AsyncIterator, Iterator
from unittest.mock import patch

os.environ.setdefault("APPWRITE_ENDPOINT", "https://storage.test/v1")
os.environ.setdefault("APPWRITE_PROJECT_ID", "test-project")
os.environ.setdefault("APPWRITE_BUCKET_ID", "test-bucket")
os.environ.setdefault("APPWRITE_API_KEY", "test-key")

import pytest
from httpx import ASGITransport, AsyncClient
from src.core.auth import get_current_user
from src.main import app
from src.services import blob_storage
from tests.fakes import FakeCollection, FakeDB, FakeStorage
from tests.helpers import TEST_USER


@pytest.fixture
def fake_db() -> Iterator[FakeDB]:
    db: FakeDB = defaultdict(FakeCollection)
    with (
        patch("src.services.upload_journal.get_collection", side_effect=lambda name: db[name]),
        patch("src.services.owner_records.get_collection", side_effect=lambda name: db[name]),
    ):
        yield db


@pytest.fixture
def fake_storage() -> Iterator[FakeStorage]:
    storage = FakeStorage()
    with (
        patch.object(blob_storage, "create_file", storage.create_file),
        patch.object(blob_storage, "delete_file", storage.delete_file),
        patch.object(blob_storage, "list_files", storage.list_files),
    ):
        yield storage


@pytest.fixture
async def client() -> AsyncIterator[AsyncClient]:
    app.dependency_overrides[get_current_user] = lambda: TEST_USER
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
            yield c
    finally:
        app.dependency_overrides.clear()
