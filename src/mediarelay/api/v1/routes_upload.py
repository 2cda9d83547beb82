"""Upload API routes."""

import logging
import math
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import Message

from mediarelay.core.config import settings
from mediarelay.models.upload import ErrorResponse, UploadSuccessResponse
from mediarelay.services.upload.exceptions import (
    NoFileProvidedError,
    RateLimitedError,
    SizeExceededError,
)
from mediarelay.services.upload.pipeline import UploadPipeline, UploadResult
from mediarelay.services.upload.validation import InboundFile

router = APIRouter(prefix="/api", tags=["upload"])
logger = logging.getLogger(__name__)

FILE_FIELD = "file"


def get_upload_pipeline(request: Request) -> UploadPipeline:
    """Pipeline wired by create_app()."""
    return request.app.state.upload_pipeline


def get_client_key(request: Request) -> str:
    """Identify the caller for rate limiting."""
    if settings.TRUST_PROXY_HEADERS:
        forwarded = request.headers.get("x-forwarded-for", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def get_declared_length(request: Request) -> Optional[int]:
    """Content-Length of the request body, if the client sent a valid one."""
    raw = request.headers.get("content-length")
    if raw is None:
        return None
    try:
        length = int(raw)
    except ValueError:
        return None
    return length if length >= 0 else None


def limit_request_body(request: Request, max_body_bytes: int) -> Request:
    """Wrap request so reading more than max_body_bytes of body fails.

    Chunked requests carry no Content-Length, so the cap is enforced on the
    ASGI receive channel before the form parser spools anything.

    Raises:
        SizeExceededError: From the body stream, as soon as the cap is crossed
    """
    received = 0

    async def receive() -> Message:
        nonlocal received
        message = await request.receive()
        if message["type"] == "http.request":
            received += len(message.get("body", b""))
            if received > max_body_bytes:
                raise SizeExceededError(
                    f"Request body exceeded {max_body_bytes} bytes while streaming"
                )
        return message

    return Request(request.scope, receive=receive)


def _rate_limit_headers(result: UploadResult) -> Dict[str, str]:
    if result.rate_limit is None:
        return {}
    return {
        "X-RateLimit-Limit": str(result.rate_limit.limit),
        "X-RateLimit-Remaining": str(result.rate_limit.remaining),
    }


def build_response(result: UploadResult) -> JSONResponse:
    """Translate a pipeline result into the HTTP response."""
    headers = _rate_limit_headers(result)

    if result.success:
        body = UploadSuccessResponse(url=result.public_url, filename=result.storage_name)
        return JSONResponse(status_code=200, content=body.model_dump(), headers=headers)

    error = result.error
    if isinstance(error, RateLimitedError):
        headers["Retry-After"] = str(max(1, math.ceil(error.retry_after)))
    body = ErrorResponse(error=error.public_message, code=error.category)
    return JSONResponse(status_code=error.status_code, content=body.model_dump(), headers=headers)


@router.post(
    "/upload",
    response_model=UploadSuccessResponse,
    responses={
        400: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def upload_file(
    request: Request, pipeline: UploadPipeline = Depends(get_upload_pipeline)
) -> JSONResponse:
    """Validate a single uploaded media file and relay it to the remote store."""

    # The body is parsed only once the pipeline has admitted the request
    async def load_file() -> Optional[InboundFile]:
        limited = limit_request_body(request, pipeline.policy.max_request_bytes)
        try:
            form = await limited.form(max_files=1)
        except StarletteHTTPException as e:
            raise NoFileProvidedError(f"Unparseable form body: {e.detail}") from e

        upload = form.get(FILE_FIELD)
        if not isinstance(upload, UploadFile):
            return None
        return InboundFile(
            filename=upload.filename,
            content_type=upload.content_type,
            size=upload.size,
            file=upload.file,
        )

    result = await pipeline.process(
        client_key=get_client_key(request),
        load_file=load_file,
        declared_length=get_declared_length(request),
    )
    return build_response(result)
