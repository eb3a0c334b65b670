from datetime import datetime, timedelta, timezone
from typing import Any

import structlog
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ASCENDING, ReturnDocument

from src.config import settings
from src.core.exceptions import InvalidTransitionError
from src.db.mongo import get_collection
from src.models.owner import Owner
from src.models.upload_job import UploadJob, UploadState, can_transition

logger = structlog.get_logger()


def _collection() -> AsyncIOMotorCollection:
    return get_collection(settings.mongo_upload_jobs_collection)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _log_transition(blob_id: str, source: UploadState, target: UploadState, **extra: Any) -> None:
    logger.info(
        "upload_state_transition",
        blob_id=blob_id,
        from_state=source.value,
        to_state=target.value,
        **extra,
    )


async def ensure_indexes() -> None:
    await _collection().create_index([("state", ASCENDING), ("updated_at", ASCENDING)])


async def open_job(blob_id: str, owner: Owner, image_url: str) -> UploadJob:
    """Record the upload intent before any bytes reach storage."""
    now = _now()
    job = UploadJob(
        blob_id=blob_id,
        owner=owner,
        image_url=image_url,
        state=UploadState.UPLOADING,
        created_at=now,
        updated_at=now,
    )
    await _collection().insert_one(job.to_document())
    _log_transition(blob_id, UploadState.VALIDATING, UploadState.UPLOADING, owner=owner.kind.value)
    return job


async def transition(
    blob_id: str,
    source: UploadState | set[UploadState],
    target: UploadState,
    error: str | None = None,
    stale_before: datetime | None = None,
) -> UploadJob | None:
    """Atomically move a job out of ``source`` into ``target``.

    Returns the updated job, or None when no job was in an expected source
    state (another worker already claimed it, or it never existed).
    """
    sources = {source} if isinstance(source, UploadState) else set(source)
    for src in sources:
        if not can_transition(src, target):
            raise InvalidTransitionError(f"{src.value} -> {target.value}")

    query: dict[str, Any] = {"_id": blob_id, "state": {"$in": [s.value for s in sources]}}
    if stale_before is not None:
        query["updated_at"] = {"$lt": stale_before}

    update: dict[str, Any] = {"$set": {"state": target.value, "updated_at": _now(), "error": error}}
    if target is UploadState.PERSISTING:
        update["$inc"] = {"attempts": 1}

    doc = await _collection().find_one_and_update(query, update, return_document=ReturnDocument.BEFORE)
    if doc is None:
        logger.warning("upload_transition_skipped", blob_id=blob_id, to_state=target.value)
        return None

    previous = UploadState(doc["state"])
    _log_transition(blob_id, previous, target, error=error)
    job = UploadJob.from_document(doc)
    job.state = target
    job.error = error
    if target is UploadState.PERSISTING:
        job.attempts += 1
    return job


async def get_job(blob_id: str) -> UploadJob | None:
    doc = await _collection().find_one({"_id": blob_id})
    return UploadJob.from_document(doc) if doc else None


def stale_cutoff(older_than: float | None = None) -> datetime:
    return _now() - timedelta(seconds=older_than if older_than is not None else settings.journal_stale_after)


async def find_stale_jobs(states: set[UploadState], cutoff: datetime) -> list[UploadJob]:
    cursor = _collection().find({"state": {"$in": [s.value for s in states]}, "updated_at": {"$lt": cutoff}})
    return [UploadJob.from_document(doc) async for doc in cursor]
