from collections.abc import Callable, Iterator

import httpx
import pytest

from src.core.exceptions import StorageError
from src.services import blob_storage

Handler = Callable[[httpx.Request], httpx.Response]
Install = Callable[[Handler], list[httpx.Request]]


@pytest.fixture
def mock_appwrite() -> Iterator[Install]:
    original = blob_storage._client
    seen: list[httpx.Request] = []

    def install(handler: Handler) -> list[httpx.Request]:
        def _record(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return handler(request)

        blob_storage._client = httpx.AsyncClient(
            transport=httpx.MockTransport(_record),
            base_url=blob_storage.settings.appwrite_endpoint,
            headers={
                "X-Appwrite-Project": blob_storage.settings.appwrite_project_id,
                "X-Appwrite-Key": blob_storage.settings.appwrite_api_key,
            },
        )
        return seen

    try:
        yield install
    finally:
        blob_storage._client = original


class TestFileViewUrl:
    def test_url_format(self) -> None:
        url = blob_storage.file_view_url("abc123")
        assert url == "https://storage.test/v1/storage/buckets/test-bucket/files/abc123/view?project=test-project"

    def test_extracted_id_matches(self) -> None:
        blob_id = blob_storage.generate_blob_id()
        assert blob_storage.extract_blob_id(blob_storage.file_view_url(blob_id)) == blob_id


class TestExtractBlobId:
    def test_segment_between_files_and_next_slash(self) -> None:
        url = "https://cloud.appwrite.io/v1/storage/buckets/b1/files/68f0a1b2c3/view?project=p"
        assert blob_storage.extract_blob_id(url) == "68f0a1b2c3"

    def test_no_trailing_slash_returns_empty(self) -> None:
        assert blob_storage.extract_blob_id("https://x/storage/buckets/b1/files/abc") == ""

    def test_unrelated_url_returns_empty(self) -> None:
        assert blob_storage.extract_blob_id("https://example.com/pic.jpg") == ""


class TestGenerateBlobId:
    def test_uniqueness(self) -> None:
        ids = {blob_storage.generate_blob_id() for _ in range(100)}
        assert len(ids) == 100

    def test_valid_appwrite_id(self) -> None:
        blob_id = blob_storage.generate_blob_id()
        assert len(blob_id) <= 36
        assert blob_id.isalnum()


class TestCreateFile:
    async def test_single_request(self, mock_appwrite: Install) -> None:
        seen = mock_appwrite(lambda req: httpx.Response(201, json={"$id": "blob1"}))

        blob = await blob_storage.create_file(b"\x89PNG-data", "a.png", "image/png", blob_id="blob1")

        assert blob.blob_id == "blob1"
        assert "/files/blob1/" in blob.public_url
        assert len(seen) == 1
        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/v1/storage/buckets/test-bucket/files"
        assert request.headers["X-Appwrite-Project"] == "test-project"
        assert request.headers["X-Appwrite-Key"] == "test-key"
        body = request.content
        assert b'name="fileId"' in body
        assert b'read("any")' in body

    async def test_chunked_upload(self, mock_appwrite: Install, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(blob_storage.settings, "storage_chunk_size", 4)
        seen = mock_appwrite(lambda req: httpx.Response(201, json={"$id": "big"}))

        await blob_storage.create_file(b"0123456789", "a.jpg", "image/jpeg", blob_id="big")

        assert [r.headers["Content-Range"] for r in seen] == ["bytes 0-3/10", "bytes 4-7/10", "bytes 8-9/10"]
        assert all(r.headers["x-appwrite-id"] == "big" for r in seen)

    async def test_error_status_raises(self, mock_appwrite: Install) -> None:
        mock_appwrite(lambda req: httpx.Response(401, json={"message": "bad key"}))
        with pytest.raises(StorageError, match="bad key"):
            await blob_storage.create_file(b"data", "a.png", "image/png")

    async def test_transport_error_raises(self, mock_appwrite: Install) -> None:
        def _boom(req: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=req)

        mock_appwrite(_boom)
        with pytest.raises(StorageError):
            await blob_storage.create_file(b"data", "a.png", "image/png")


class TestDeleteFile:
    async def test_delete_success(self, mock_appwrite: Install) -> None:
        seen = mock_appwrite(lambda req: httpx.Response(204))
        assert await blob_storage.delete_file("blob1") is True
        assert seen[0].method == "DELETE"
        assert seen[0].url.path.endswith("/files/blob1")

    async def test_delete_missing_is_not_an_error(self, mock_appwrite: Install) -> None:
        mock_appwrite(lambda req: httpx.Response(404, json={"message": "not found"}))
        assert await blob_storage.delete_file("gone") is False

    async def test_delete_server_error_raises(self, mock_appwrite: Install) -> None:
        mock_appwrite(lambda req: httpx.Response(500, text="oops"))
        with pytest.raises(StorageError):
            await blob_storage.delete_file("blob1")


class TestListFiles:
    async def test_list(self, mock_appwrite: Install) -> None:
        mock_appwrite(lambda req: httpx.Response(200, json={"total": 1, "files": [{"$id": "a"}]}))
        assert await blob_storage.list_files() == [{"$id": "a"}]


class TestClientLifecycle:
    async def test_close_when_client_exists(self) -> None:
        original = blob_storage._client
        try:
            blob_storage._client = None
            client = blob_storage.get_http_client()
            assert blob_storage.get_http_client() is client
            await blob_storage.close_client()
            assert blob_storage._client is None
            assert client.is_closed
        finally:
            blob_storage._client = original

    async def test_close_when_no_client(self) -> None:
        original = blob_storage._client
        try:
            blob_storage._client = None
            await blob_storage.close_client()
            assert blob_storage._client is None
        finally:
            blob_storage._client = original
