import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from src.config import settings

logger = structlog.get_logger()


class BodyLimitMiddleware(BaseHTTPMiddleware):
    """Refuse oversized uploads from Content-Length before the multipart body is parsed."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.method == "POST" and request.url.path.startswith("/upload/"):
            declared = request.headers.get("content-length")
            limit = settings.max_upload_bytes + settings.multipart_overhead_bytes
            if declared and declared.isdigit() and int(declared) > limit:
                logger.warning("upload_rejected_by_length", content_length=int(declared), limit=limit)
                return JSONResponse(status_code=413, content={"detail": "File too large"})
        return await call_next(request)
