"""
Image collection: filters archive entries down to uploadable images.
"""

import hashlib
from dataclasses import dataclass
from typing import Iterable, List

from ..config import CONTENT_ID_LENGTH, IMAGE_EXTENSIONS, IMAGES_FIELD_NAME
from .archive import ArchiveEntry
from .error_handling import EmptyAsset, NoImagesFound
from .logging_config import get_logger
from .paths import basename, extension, is_images_path, logical_image_path, normalize_image_path

logger = get_logger()


@dataclass(frozen=True)
class ImageAsset:
    """An image ready for upload, keyed by path and by content."""

    path: str
    normalized_path: str
    content_hash: str
    data: bytes

    @property
    def filename(self) -> str:
        return basename(self.path)


def content_identifier(data: bytes, length: int = CONTENT_ID_LENGTH) -> str:
    """Stable identifier derived from the bytes alone: a SHA-256 hex prefix."""
    return hashlib.sha256(data).hexdigest()[:length]


def is_image_file(path: str) -> bool:
    return extension(path) in IMAGE_EXTENSIONS


def is_collectable(entry: ArchiveEntry) -> bool:
    """
    Whether an entry belongs to the bundle's image set.

    Either signal is enough: a path under ``images/`` (archive ingestion) or
    the ``images`` multipart field (direct upload).
    """
    if entry.is_directory or not is_image_file(entry.path):
        return False
    return is_images_path(normalize_image_path(entry.path)) or entry.field_name == IMAGES_FIELD_NAME


def collect_images(entries: Iterable[ArchiveEntry]) -> List[ArchiveEntry]:
    """
    Return the entries eligible for upload, in input order.

    Raises:
        NoImagesFound: If no entry qualifies
    """
    images = [entry for entry in entries if is_collectable(entry)]
    if not images:
        raise NoImagesFound("No image files found in images/ directory")

    logger.debug(f"Collected {len(images)} images")
    return images


def build_image_asset(entry: ArchiveEntry) -> ImageAsset:
    """
    Turn a collected entry into an uploadable asset.

    The asset is keyed by its logical ``images/<name>`` path regardless of
    how deeply it was nested in the archive.

    Raises:
        EmptyAsset: If the entry has no content
    """
    if not entry.content:
        raise EmptyAsset(basename(entry.path))

    return ImageAsset(
        path=entry.path,
        normalized_path=logical_image_path(entry.path),
        content_hash=content_identifier(entry.content),
        data=entry.content
    )
