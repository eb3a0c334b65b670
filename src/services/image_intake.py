from dataclasses import dataclass
from io import BytesIO

import structlog
from fastapi import UploadFile
from PIL import Image

from src.config import settings
from src.core.exceptions import AppError

logger = structlog.get_logger()

READ_CHUNK = 1024 * 1024

FORMAT_TO_MEDIA_TYPE = {
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
}

MEDIA_TYPE_TO_EXT = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}


@dataclass(frozen=True)
class ImagePayload:
    data: bytes
    mime_type: str
    filename: str
    width: int
    height: int

    @property
    def size(self) -> int:
        return len(self.data)


def detect_image_format(image_bytes: bytes) -> str | None:
    if image_bytes[:8] == b"\x89PNG\r\n\x1a\n":
        return "png"
    if image_bytes[:3] == b"\xff\xd8\xff":
        return "jpeg"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "webp"
    return None


def is_allowed_mime_type(mime_type: str | None) -> bool:
    return mime_type in settings.allowed_mime_types


def check_declared_size(upload: UploadFile) -> None:
    if upload.size is not None and upload.size > settings.max_upload_bytes:
        raise AppError(status_code=413, detail="File too large")


async def read_limited(upload: UploadFile, limit: int) -> bytes:
    buffer = bytearray()
    while chunk := await upload.read(READ_CHUNK):
        buffer.extend(chunk)
        if len(buffer) > limit:
            raise AppError(status_code=413, detail="File too large")
    return bytes(buffer)


def inspect_image(data: bytes, declared_mime: str) -> tuple[int, int]:
    fmt = detect_image_format(data)
    if fmt is None or FORMAT_TO_MEDIA_TYPE[fmt] != declared_mime:
        raise AppError(status_code=400, detail="File content does not match declared type")
    try:
        img = Image.open(BytesIO(data))
        img.verify()
    except Exception as e:
        logger.warning("image_verify_failed", mime_type=declared_mime, error=str(e))
        raise AppError(status_code=400, detail="Corrupted image") from e
    return img.size


async def read_image(upload: UploadFile) -> ImagePayload:
    """Read and verify an already type-checked upload, enforcing the byte ceiling."""
    mime_type = upload.content_type or ""
    check_declared_size(upload)
    data = await read_limited(upload, settings.max_upload_bytes)
    if not data:
        raise AppError(status_code=400, detail="Empty file")
    width, height = inspect_image(data, mime_type)
    return ImagePayload(
        data=data,
        mime_type=mime_type,
        filename=upload.filename or f"upload.{MEDIA_TYPE_TO_EXT[mime_type]}",
        width=width,
        height=height,
    )
