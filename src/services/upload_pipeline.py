import asyncio
import contextlib
from datetime import datetime

import structlog
from pymongo.errors import PyMongoError

from src.config import settings
from src.core.exceptions import RecordNotFoundError, StorageError
from src.models.owner import Owner
from src.models.upload_job import UploadJob, UploadState
from src.services import blob_storage, owner_records, upload_journal
from src.services.image_intake import ImagePayload

logger = structlog.get_logger()


async def upload_image(owner: Owner, payload: ImagePayload) -> UploadJob:
    blob_id = blob_storage.generate_blob_id()
    image_url = blob_storage.file_view_url(blob_id)
    await upload_journal.open_job(blob_id, owner, image_url)

    try:
        blob = await blob_storage.create_file(payload.data, payload.filename, payload.mime_type, blob_id=blob_id)
    except StorageError as e:
        logger.error("blob_upload_failed", blob_id=blob_id, owner=owner.kind.value, error=str(e))
        await upload_journal.transition(blob_id, UploadState.UPLOADING, UploadState.UPLOAD_FAILED, error=str(e))
        raise

    job = await upload_journal.transition(blob.blob_id, UploadState.UPLOADING, UploadState.RESPONDED)
    if job is None:
        raise StorageError(f"Upload job {blob_id} vanished from the journal")
    logger.info(
        "image_uploaded",
        blob_id=blob.blob_id,
        owner=owner.kind.value,
        size=payload.size,
        width=payload.width,
        height=payload.height,
    )
    return job


async def _finish_rollback(blob_id: str, reason: str | None) -> UploadState:
    try:
        await blob_storage.delete_file(blob_id)
    except StorageError as e:
        logger.error("rollback_delete_failed", blob_id=blob_id, error=str(e), original_error=reason)
        return UploadState.ROLLING_BACK

    try:
        await upload_journal.transition(blob_id, UploadState.ROLLING_BACK, UploadState.ROLLED_BACK, error=reason)
    except PyMongoError as e:
        # The blob is gone but the job stays in rolling_back, so recovery only retries the delete.
        logger.error("rollback_journal_failed", blob_id=blob_id, error=str(e), original_error=reason)
        return UploadState.ROLLING_BACK
    return UploadState.ROLLED_BACK


async def _rollback(job: UploadJob, reason: str) -> UploadState | None:
    try:
        claimed = await upload_journal.transition(
            job.blob_id, UploadState.PERSISTING, UploadState.ROLLING_BACK, error=reason
        )
    except PyMongoError as e:
        # Nothing is deleted until rolling_back is on record; the job stays persisting with its blob.
        logger.error("rollback_not_started", blob_id=job.blob_id, error=str(e), original_error=reason)
        return UploadState.PERSISTING
    if claimed is None:
        return None
    return await _finish_rollback(job.blob_id, reason)


async def persist_upload(
    blob_id: str,
    sources: set[UploadState] | None = None,
    stale_before: datetime | None = None,
) -> UploadState | None:
    """Attach the uploaded image to its owner, deleting the blob if that fails.

    Safe to run more than once for the same blob: the claim is atomic and the
    record update is idempotent.
    """
    job = await upload_journal.transition(
        blob_id,
        sources or {UploadState.RESPONDED},
        UploadState.PERSISTING,
        stale_before=stale_before,
    )
    if job is None:
        return None

    try:
        await owner_records.attach_image(job.owner, job.image_url)
    except (RecordNotFoundError, PyMongoError) as e:
        logger.error("record_patch_failed", blob_id=blob_id, owner=job.owner.kind.value, error=str(e))
        return await _rollback(job, str(e))

    await upload_journal.transition(blob_id, UploadState.PERSISTING, UploadState.COMMITTED)
    return UploadState.COMMITTED


async def delete_image(owner: Owner, image_url: str) -> None:
    blob_id = blob_storage.extract_blob_id(image_url)
    if not blob_id:
        raise ValueError("Invalid imageUrl")

    await blob_storage.delete_file(blob_id)
    try:
        await owner_records.detach_image(owner, image_url)
    except RecordNotFoundError:
        logger.warning("image_detach_no_record", blob_id=blob_id, owner=owner.kind.value)
    logger.info("image_deleted", blob_id=blob_id, owner=owner.kind.value)


async def recover_stale_jobs(older_than: float | None = None) -> dict[str, int]:
    cutoff = upload_journal.stale_cutoff(older_than)
    summary = {"abandoned": 0, "rolled_back": 0, "persisted": 0}

    for job in await upload_journal.find_stale_jobs({UploadState.UPLOADING}, cutoff):
        try:
            await blob_storage.delete_file(job.blob_id)
        except StorageError as e:
            logger.error("abandoned_upload_cleanup_failed", blob_id=job.blob_id, error=str(e))
            continue
        moved = await upload_journal.transition(
            job.blob_id,
            UploadState.UPLOADING,
            UploadState.ROLLED_BACK,
            error="abandoned before response",
            stale_before=cutoff,
        )
        if moved:
            summary["abandoned"] += 1

    for job in await upload_journal.find_stale_jobs({UploadState.ROLLING_BACK}, cutoff):
        claimed = await upload_journal.transition(
            job.blob_id,
            UploadState.ROLLING_BACK,
            UploadState.ROLLING_BACK,
            error=job.error,
            stale_before=cutoff,
        )
        if claimed and await _finish_rollback(job.blob_id, job.error) is UploadState.ROLLED_BACK:
            summary["rolled_back"] += 1

    for job in await upload_journal.find_stale_jobs({UploadState.RESPONDED, UploadState.PERSISTING}, cutoff):
        state = await persist_upload(
            job.blob_id,
            sources={UploadState.RESPONDED, UploadState.PERSISTING},
            stale_before=cutoff,
        )
        if state is not None:
            summary["persisted"] += 1

    if any(summary.values()):
        logger.info("upload_journal_recovered", **summary)
    return summary


async def run_journal_sweeper(stop: asyncio.Event) -> None:
    while not stop.is_set():
        try:
            await recover_stale_jobs()
        except (StorageError, PyMongoError) as e:
            logger.error("journal_sweep_failed", error=str(e))
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(stop.wait(), timeout=settings.journal_sweep_interval)
