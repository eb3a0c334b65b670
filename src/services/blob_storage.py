import re
import uuid
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from src.config import settings
from src.core.exceptions import StorageError

logger = structlog.get_logger()

PUBLIC_READ = 'read("any")'

_FILE_ID_RE = re.compile(r"/files/([^/]+)/")

_client: httpx.AsyncClient | None = None


@dataclass(frozen=True)
class StoredBlob:
    blob_id: str
    public_url: str


def get_http_client() -> httpx.AsyncClient:
    global _client
    if _client is None:
        _client = httpx.AsyncClient(
            base_url=settings.appwrite_endpoint.rstrip("/"),
            headers={
                "X-Appwrite-Project": settings.appwrite_project_id,
                "X-Appwrite-Key": settings.appwrite_api_key,
            },
            timeout=settings.storage_timeout,
        )
    return _client


def generate_blob_id() -> str:
    return uuid.uuid4().hex


def file_view_url(blob_id: str) -> str:
    endpoint = settings.appwrite_endpoint.rstrip("/")
    return (
        f"{endpoint}/storage/buckets/{settings.appwrite_bucket_id}/files/{blob_id}/view"
        f"?project={settings.appwrite_project_id}"
    )


def extract_blob_id(image_url: str) -> str:
    match = _FILE_ID_RE.search(image_url)
    return match.group(1) if match else ""


def _files_path() -> str:
    return f"/storage/buckets/{settings.appwrite_bucket_id}/files"


def _raise_for_status(response: httpx.Response, action: str) -> None:
    if response.is_success:
        return
    try:
        message = response.json().get("message", response.text)
    except ValueError:
        message = response.text
    raise StorageError(f"{action} failed with status {response.status_code}: {message}")


async def create_file(data: bytes, filename: str, mime_type: str, blob_id: str | None = None) -> StoredBlob:
    blob_id = blob_id or generate_blob_id()
    client = get_http_client()
    form = {"fileId": blob_id, "permissions[]": [PUBLIC_READ]}
    total = len(data)
    chunk_size = settings.storage_chunk_size

    try:
        if total <= chunk_size:
            response = await client.post(
                _files_path(),
                data=form,
                files={"file": (filename, data, mime_type)},
            )
            _raise_for_status(response, "create_file")
        else:
            for start in range(0, total, chunk_size):
                end = min(start + chunk_size, total) - 1
                response = await client.post(
                    _files_path(),
                    data=form,
                    files={"file": (filename, data[start : end + 1], mime_type)},
                    headers={"Content-Range": f"bytes {start}-{end}/{total}", "x-appwrite-id": blob_id},
                )
                _raise_for_status(response, "create_file")
    except httpx.HTTPError as e:
        raise StorageError(f"create_file failed: {e}") from e

    created_id = response.json().get("$id", blob_id)
    logger.info("blob_created", blob_id=created_id, size=total, mime_type=mime_type)
    return StoredBlob(blob_id=created_id, public_url=file_view_url(created_id))


async def delete_file(blob_id: str) -> bool:
    """Delete a blob. Returns False when it was already gone."""
    client = get_http_client()
    try:
        response = await client.delete(f"{_files_path()}/{blob_id}")
    except httpx.HTTPError as e:
        raise StorageError(f"delete_file failed: {e}") from e

    if response.status_code == 404:
        logger.info("blob_already_deleted", blob_id=blob_id)
        return False
    _raise_for_status(response, "delete_file")
    logger.info("blob_deleted", blob_id=blob_id)
    return True


async def list_files() -> list[dict[str, Any]]:
    client = get_http_client()
    try:
        response = await client.get(_files_path())
    except httpx.HTTPError as e:
        raise StorageError(f"list_files failed: {e}") from e
    _raise_for_status(response, "list_files")
    return response.json().get("files", [])


async def close_client() -> None:
    global _client
    if _client:
        await _client.aclose()
        _client = None
