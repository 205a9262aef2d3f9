"""
Configuration for the email conversion service.

This module defines the constants that drive image collection and document
selection, the ingestion size limits, and the Cloudinary credentials the
storage backend is built from.
"""

import os
from dataclasses import dataclass
from typing import Dict, Optional, Tuple


# Image file extensions eligible for upload (compared lowercase, no dot)
IMAGE_EXTENSIONS = {
    "png",
    "jpg",
    "jpeg",
    "gif",
    "webp"
}

# Directory segment every image reference is keyed from
IMAGES_PREFIX = "images/"

# Multipart field that tags a file as an image regardless of its path
IMAGES_FIELD_NAME = "images"

# Preferred email body names, in priority order
DOCUMENT_PREFERENCES: Tuple[str, ...] = (
    "index.html",
    "email.html",
)

DOCUMENT_EXTENSION = ".html"

# Storage folder for uploaded images and length of the content identifier
STORAGE_FOLDER = "emails"
CONTENT_ID_LENGTH = 16

DEFAULT_CLOUDINARY_API_BASE = "https://api.cloudinary.com"

DEFAULT_MAX_FILE_BYTES = 10 * 1024 * 1024   # 10MB per file
DEFAULT_MAX_TOTAL_BYTES = 50 * 1024 * 1024  # 50MB per request
DEFAULT_UPLOAD_CONCURRENCY = None  # every upload of a request starts at once


class ConfigurationError(Exception):
    """Raised when the service cannot start with the given environment."""
    pass


@dataclass(frozen=True)
class UploadLimits:
    """Size limits enforced on incoming files before conversion starts."""

    max_file_bytes: int = DEFAULT_MAX_FILE_BYTES
    max_total_bytes: int = DEFAULT_MAX_TOTAL_BYTES

    @classmethod
    def from_env(cls) -> 'UploadLimits':
        """Create upload limits from environment variables."""
        return cls(
            max_file_bytes=int(os.getenv('EMAILCONVERT_MAX_FILE_BYTES', str(DEFAULT_MAX_FILE_BYTES))),
            max_total_bytes=int(os.getenv('EMAILCONVERT_MAX_TOTAL_BYTES', str(DEFAULT_MAX_TOTAL_BYTES)))
        )


@dataclass(frozen=True)
class CloudinaryConfig:
    """
    Cloudinary account settings.

    Two credential modes are supported:
    - unsigned: API key plus an upload preset
    - signed: API key plus API secret

    When an upload preset is configured, uploads are unsigned even if a
    secret is also present. Existence lookup needs the Admin API and is only
    available when both key and secret are set.
    """

    cloud_name: str = ""
    api_key: str = ""
    api_secret: str = ""
    upload_preset: str = ""
    api_base: str = DEFAULT_CLOUDINARY_API_BASE

    @classmethod
    def from_env(cls) -> 'CloudinaryConfig':
        """Create Cloudinary config from environment variables."""
        return cls(
            cloud_name=os.getenv('CLOUDINARY_CLOUD_NAME', '').strip(),
            api_key=os.getenv('CLOUDINARY_API_KEY', '').strip(),
            api_secret=os.getenv('CLOUDINARY_API_SECRET', '').strip(),
            upload_preset=os.getenv('CLOUDINARY_UPLOAD_PRESET', '').strip(),
            api_base=os.getenv('CLOUDINARY_API_BASE', DEFAULT_CLOUDINARY_API_BASE).rstrip('/')
        )

    @property
    def unsigned(self) -> bool:
        return bool(self.upload_preset)

    @property
    def signed(self) -> bool:
        return bool(self.api_key and self.api_secret)

    @property
    def upload_mode(self) -> str:
        return "unsigned" if self.unsigned else "signed"

    def validate(self) -> None:
        """
        Check that the settings are complete enough to upload.

        Raises:
            ConfigurationError: If a required setting is missing
        """
        if not self.cloud_name:
            raise ConfigurationError("Missing CLOUDINARY_CLOUD_NAME")

        if not self.api_key:
            raise ConfigurationError(
                "Missing CLOUDINARY_API_KEY (required for both signed and unsigned uploads)"
            )

        if not self.unsigned and not self.signed:
            raise ConfigurationError(
                "Missing Cloudinary authentication configuration. Set either "
                "CLOUDINARY_API_SECRET (signed uploads) or CLOUDINARY_UPLOAD_PRESET (unsigned uploads)"
            )

    def describe(self) -> Dict[str, object]:
        """Summarize the configuration without exposing secret values."""
        return {
            "cloudinary_configured": bool(self.cloud_name),
            "upload_mode": self.upload_mode,
            "has_cloud_name": bool(self.cloud_name),
            "has_api_key": bool(self.api_key),
            "has_api_secret": bool(self.api_secret),
            "has_upload_preset": bool(self.upload_preset),
        }


def get_allowed_origin() -> Optional[str]:
    """Get the CORS origin from the environment, or None to allow all."""
    origin = os.getenv('ALLOWED_ORIGIN', '').strip().lower()
    return origin or None


def get_upload_concurrency() -> Optional[int]:
    """Get the optional cap on concurrent uploads per request; unset or 0 means no cap."""
    value = os.getenv('EMAILCONVERT_UPLOAD_CONCURRENCY', '').strip()
    if not value or int(value) <= 0:
        return DEFAULT_UPLOAD_CONCURRENCY
    return int(value)
