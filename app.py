from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from emailconvert.config import (
    CloudinaryConfig,
    ConfigurationError,
    UploadLimits,
    get_allowed_origin,
    get_upload_concurrency,
)
from emailconvert.router import router as api_router
from emailconvert.utils.cloudinary_backend import CloudinaryBackend
from emailconvert.utils.error_handling import (
    ConversionError,
    ErrorCode,
    conversion_error_response,
    create_error_response,
)
from emailconvert.utils.http_client import (
    ServiceType,
    get_http_client_factory,
    lifespan_http_clients,
)
from emailconvert.utils.logging_config import get_logger
from emailconvert.utils.uploader import ContentAddressedUploader


# Set up logging
logger = get_logger()


def log_configuration(config: CloudinaryConfig):
    """Log the Cloudinary configuration status without exposing secrets."""
    logger.info("Cloudinary Configuration:")
    logger.info(f"  Cloud Name: {config.cloud_name}")
    logger.info(f"  API Key: {'SET' if config.api_key else 'NOT SET'}")
    if config.unsigned:
        logger.info(f"  Upload Mode: Unsigned (using preset {config.upload_preset})")
    else:
        logger.info("  Upload Mode: Signed (using API key + secret)")
    logger.info(f"  Existing asset lookup: {'enabled' if config.signed else 'disabled'}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the storage backend and uploader from the environment."""
    config = CloudinaryConfig.from_env()
    try:
        config.validate()
    except ConfigurationError as e:
        logger.critical(f"ERROR: {e}")
        raise

    log_configuration(config)

    factory = get_http_client_factory()
    client = factory.create_client(ServiceType.CLOUDINARY)
    backend = CloudinaryBackend(config, client, retry_config=factory.get_retry_config())

    app.state.cloudinary_config = config
    app.state.upload_limits = UploadLimits.from_env()
    app.state.uploader = ContentAddressedUploader(backend, max_concurrency=get_upload_concurrency())

    async with lifespan_http_clients():
        yield


app = FastAPI(lifespan=lifespan)

# CORS: restrict to the configured origin; falls back to * for local dev
allowed_origin = get_allowed_origin()
if not allowed_origin:
    logger.warning("WARNING: ALLOWED_ORIGIN is not set. Falling back to allow all origins.")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[allowed_origin or "*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)

app.include_router(api_router)


@app.exception_handler(ConversionError)
async def conversion_error_handler(request: Request, exc: ConversionError):
    return conversion_error_response(exc)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error: {exc}")
    return create_error_response(ErrorCode.INTERNAL_ERROR, details="Internal server error")


@app.get("/ping")
async def general_ping():
    return {"success": True, "data": "PONG!"}
