import time
import uuid
from typing import Any

import structlog
from fastapi import APIRouter, BackgroundTasks, Body, Depends, File, Form, UploadFile
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from pymongo.errors import PyMongoError

from src.core.auth import AuthenticatedUser, get_current_user
from src.core.exceptions import AppError, InvalidOwnerError, StorageError
from src.models.owner import Owner, parse_owner
from src.schemas.images import (
    ImageDeleteRequest,
    ImageDeleteResponse,
    ImageUploadResponse,
    UploadHealthResponse,
    WarmupResponse,
)
from src.services import blob_storage, image_intake, upload_pipeline

logger = structlog.get_logger()

router = APIRouter(prefix="/upload")


def _owner_or_400(kind: str | None, pet_id: str | None, user: AuthenticatedUser) -> Owner:
    try:
        return parse_owner(kind, pet_id, user.id)
    except InvalidOwnerError as e:
        raise AppError(status_code=400, detail=str(e)) from e


@router.get("/health", response_model=UploadHealthResponse)
async def upload_health(user: AuthenticatedUser = Depends(get_current_user)) -> UploadHealthResponse:
    return UploadHealthResponse(now=int(time.time() * 1000))


@router.get("/warmup", response_model=WarmupResponse)
async def warmup(user: AuthenticatedUser = Depends(get_current_user)) -> WarmupResponse | JSONResponse:
    started = time.perf_counter()
    try:
        await blob_storage.list_files()
    except StorageError as e:
        logger.warning("storage_warmup_failed", error=str(e))
        return JSONResponse(status_code=500, content={"ok": False, "error": "warmup failed"})
    logger.info("storage_warmed_up", duration_ms=round((time.perf_counter() - started) * 1000, 1))
    return WarmupResponse()


@router.post("/image", response_model=ImageUploadResponse)
async def upload_image(
    background_tasks: BackgroundTasks,
    file: UploadFile | None = File(None),
    type: str | None = Form(None),
    pet_id: str | None = Form(None, alias="petId"),
    user: AuthenticatedUser = Depends(get_current_user),
) -> ImageUploadResponse:
    if file is None:
        raise AppError(status_code=400, detail="No file uploaded")
    if type not in ("pet", "business", "profile"):
        raise AppError(status_code=400, detail="Invalid or missing 'type' field")
    if not image_intake.is_allowed_mime_type(file.content_type):
        raise AppError(status_code=400, detail="Unsupported file type")
    owner = _owner_or_400(type, pet_id, user)

    payload = await image_intake.read_image(file)

    try:
        job = await upload_pipeline.upload_image(owner, payload)
    except StorageError as e:
        raise AppError(status_code=502, detail="Failed to upload image") from e

    # Runs after the response is sent, regardless of the client connection.
    background_tasks.add_task(upload_pipeline.persist_upload, job.blob_id)

    return ImageUploadResponse(
        file_id=job.blob_id,
        image_url=job.image_url,
        name=f"{owner.kind.value}_{user.id}_{uuid.uuid4()}",
    )


@router.delete("/image", response_model=ImageDeleteResponse)
async def delete_image(
    payload: Any = Body(None),
    user: AuthenticatedUser = Depends(get_current_user),
) -> ImageDeleteResponse:
    # Missing, empty or mistyped bodies all answer 400.
    try:
        body = ImageDeleteRequest.model_validate(payload or {})
    except ValidationError as e:
        raise AppError(status_code=400, detail="Missing required fields (imageUrl, type)") from e
    if not body.image_url or not body.type:
        raise AppError(status_code=400, detail="Missing required fields (imageUrl, type)")
    owner = _owner_or_400(body.type, body.pet_id, user)
    if not blob_storage.extract_blob_id(body.image_url):
        raise AppError(status_code=400, detail="Invalid imageUrl")

    try:
        await upload_pipeline.delete_image(owner, body.image_url)
    except (StorageError, PyMongoError) as e:
        logger.error("image_delete_failed", image_url=body.image_url, error=str(e))
        raise AppError(status_code=500, detail="Failed to delete image") from e

    return ImageDeleteResponse()
