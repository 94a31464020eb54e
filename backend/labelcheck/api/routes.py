"""API route definitions."""

import time
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.datastructures import UploadFile as StarletteUploadFile

from ..models import (
    BatchVerificationResponse,
    ErrorResponse,
    ExpectedLabel,
    ExtractLabelJSONRequest,
    ExtractLabelResponse,
    HealthResponse,
    VerifyLabelResponse,
)
from ..services import (
    BatchProcessor,
    ExtractLabelError,
    InvalidInputError,
    LabelPipeline,
    match_expected,
    parse_expected_data,
    parse_expected_map,
    summarize,
)
from ..services.image_service import decode_data_url
from ..config import get_settings
from .. import __version__

logger = logging.getLogger(__name__)
router = APIRouter()

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid input"},
    429: {"model": ErrorResponse, "description": "All models at capacity"},
    500: {"model": ErrorResponse, "description": "Missing configuration"},
    502: {"model": ErrorResponse, "description": "Upstream model failure"},
}


@lru_cache
def get_pipeline() -> LabelPipeline:
    """Shared pipeline instance; overridden in tests."""
    return LabelPipeline(get_settings())


def error_response(status: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status, content=ErrorResponse(error=error).model_dump())


@dataclass
class LabelInput:
    """Image and expected data read from either a multipart or JSON request."""
    image_bytes: Optional[bytes] = None
    mime_type: Optional[str] = None
    image_url: Optional[str] = None
    expected: Optional[ExpectedLabel] = None
    image_name: Optional[str] = None


async def read_label_input(request: Request) -> LabelInput:
    """
    Read the request body.

    JSON bodies carry ``imageDataUrl`` (a base64 data URL or hosted image URL),
    optional ``expected`` and ``imageName``. Multipart bodies carry an ``image``
    file and an optional ``expected`` JSON string. Malformed expected data is
    dropped with a warning, not rejected.

    Raises:
        InvalidInputError: missing image or unreadable body.
    """
    content_type = request.headers.get("content-type", "")

    if "application/json" in content_type:
        try:
            payload = await request.json()
        except ValueError:
            raise InvalidInputError("Invalid JSON payload")
        try:
            body = ExtractLabelJSONRequest.model_validate(payload or {})
        except ValidationError:
            raise InvalidInputError("Invalid JSON payload")
        if not body.image_data_url:
            raise InvalidInputError("imageDataUrl is required")

        label_input = LabelInput(expected=parse_expected_data(body.expected), image_name=body.image_name)
        if body.image_data_url.startswith("data:"):
            label_input.image_bytes, label_input.mime_type = decode_data_url(body.image_data_url)
        else:
            label_input.image_url = body.image_data_url
        return label_input

    form = await request.form()
    image = form.get("image")
    if not isinstance(image, StarletteUploadFile):
        raise InvalidInputError("Image file is required")
    expected_raw = form.get("expected")
    return LabelInput(
        image_bytes=await image.read(),
        mime_type=image.content_type or None,
        expected=parse_expected_data(expected_raw if isinstance(expected_raw, str) else None),
        image_name=image.filename,
    )


@router.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check(pipeline: LabelPipeline = Depends(get_pipeline)):
    """Check API health and whether a model endpoint is configured."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        model_configured=pipeline.is_configured,
    )


@router.post(
    "/extract-label",
    response_model=ExtractLabelResponse,
    responses=ERROR_RESPONSES,
    tags=["Extraction"],
)
async def extract_label(request: Request, pipeline: LabelPipeline = Depends(get_pipeline)):
    """
    Extract label fields from one image.

    When expected data is supplied, every extraction attempt is scored and
    the attempts are merged field by field; the aggregate decision is
    returned as ``evaluation``.
    """
    try:
        label_input = await read_label_input(request)
    except InvalidInputError as e:
        return error_response(e.status_code, e.message)

    if label_input.image_url is not None:
        result = await pipeline.extract_from_image_url(
            label_input.image_url, label_input.expected, label_input.image_name
        )
    else:
        result = await pipeline.extract_from_bytes(
            label_input.image_bytes, label_input.mime_type, label_input.expected, label_input.image_name
        )

    if isinstance(result, ExtractLabelError):
        return error_response(result.status, result.error)
    return ExtractLabelResponse(label=result.label, evaluation=result.evaluation)


@router.post(
    "/verify",
    response_model=VerifyLabelResponse,
    responses=ERROR_RESPONSES,
    tags=["Verification"],
)
async def verify_label(request: Request, pipeline: LabelPipeline = Depends(get_pipeline)):
    """
    Verify a single label image against application data.

    Same inputs as ``/extract-label`` but expected data is required. Returns
    the merged label, the aggregate decision, and a per-field report.
    """
    start_time = time.time()
    try:
        label_input = await read_label_input(request)
    except InvalidInputError as e:
        return error_response(e.status_code, e.message)

    if label_input.expected is None:
        return error_response(400, "Expected label data is required")

    result = await pipeline.verify(
        label_input.expected,
        image_bytes=label_input.image_bytes,
        mime_type=label_input.mime_type,
        image_url=label_input.image_url,
        image_name=label_input.image_name,
    )
    if isinstance(result, ExtractLabelError):
        return error_response(result.status, result.error)

    return VerifyLabelResponse(
        label=result.label,
        evaluation=result.evaluation,
        report=result.report,
        processing_time_ms=int((time.time() - start_time) * 1000),
    )


@router.post(
    "/verify/batch",
    response_model=BatchVerificationResponse,
    responses=ERROR_RESPONSES,
    tags=["Verification"],
)
async def verify_batch(
    images: List[UploadFile] = File(..., description="Label image files"),
    expected: Optional[str] = Form(None, description="JSON object mapping filename to expected label data"),
    pipeline: LabelPipeline = Depends(get_pipeline),
):
    """
    Verify multiple label images.

    ``expected`` is a JSON object keyed by image filename. Images without an
    entry are extracted but not verified; entries without an image are
    reported as errors.
    """
    start_time = time.time()
    settings = get_settings()

    if len(images) > settings.max_batch_size:
        return error_response(400, f"Too many files. Maximum batch size is {settings.max_batch_size} files.")

    try:
        expected_map = parse_expected_map(expected)
    except InvalidInputError as e:
        return error_response(e.status_code, e.message)

    image_data: dict[str, Tuple[bytes, Optional[str]]] = {}
    for upload_file in images:
        filename = upload_file.filename or f"image-{len(image_data) + 1}"
        if filename in image_data:
            return error_response(400, f"Duplicate image filename: '{filename}'")
        image_data[filename] = (await upload_file.read(), upload_file.content_type or None)

    items, unmatched = match_expected(image_data, expected_map)
    processor = BatchProcessor(pipeline, settings.batch_parallel_limit)
    results = await processor.process_batch(items) + unmatched

    passed, warnings, failed = summarize(results)
    return BatchVerificationResponse(
        total=len(results),
        passed=passed,
        warnings=warnings,
        failed=failed,
        results=results,
        processing_time_ms=int((time.time() - start_time) * 1000),
    )
