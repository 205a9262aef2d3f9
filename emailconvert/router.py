"""
HTTP routes for the /api endpoints.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from .config import CloudinaryConfig, UploadLimits
from .orchestrator import convert
from .utils.archive import entries_from_form
from .utils.error_handling import ErrorCode, create_error_response
from .utils.html_rewriter import HtmlRewriter
from .utils.logging_config import get_logger
from .utils.uploader import ContentAddressedUploader

logger = get_logger()

router = APIRouter(prefix="/api", tags=["email"])


def get_uploader(request: Request) -> ContentAddressedUploader:
    """Uploader built at startup; overridden in tests."""
    return request.app.state.uploader


def get_upload_limits(request: Request) -> UploadLimits:
    return getattr(request.app.state, "upload_limits", None) or UploadLimits()


def get_cloudinary_config(request: Request) -> CloudinaryConfig:
    return getattr(request.app.state, "cloudinary_config", None) or CloudinaryConfig.from_env()


@router.get("/health")
async def health(config: CloudinaryConfig = Depends(get_cloudinary_config)):
    """Report which Cloudinary settings are present, without their values."""
    return config.describe()


@router.post("/process")
async def process_bundle(
    request: Request,
    uploader: ContentAddressedUploader = Depends(get_uploader),
    limits: UploadLimits = Depends(get_upload_limits)
):
    """
    Convert an uploaded email bundle.

    Accepts multipart files under any field names: the extracted export
    (HTML plus ``images/...`` files) or a single ZIP of it.
    """
    try:
        form = await request.form()
    except Exception as e:
        return create_error_response(ErrorCode.INVALID_REQUEST, details=f"Upload error: {e}")

    try:
        entries = await entries_from_form(form, limits)
    finally:
        await form.close()

    result = await convert(entries, uploader, HtmlRewriter())

    payload = result.to_dict()
    payload["folder"] = uploader.folder
    return JSONResponse(content=payload)
