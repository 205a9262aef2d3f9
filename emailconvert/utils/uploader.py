"""
Content-addressed image upload.

Images are stored under a key derived from their bytes, so the same image
is uploaded once no matter how many files or requests carry it.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

from ..config import CONTENT_ID_LENGTH, DEFAULT_UPLOAD_CONCURRENCY, STORAGE_FOLDER
from .error_handling import EmptyAsset, UploadAuthFailed, UploadError
from .image_collector import ImageAsset, content_identifier
from .logging_config import get_logger

logger = get_logger()


class StorageBackend(ABC):
    """
    Storage capability used by the uploader.

    ``store`` must be safe to call more than once with the same key and
    bytes. ``probe_exists`` is optional; backends that cannot look up
    existing content leave ``supports_lookup`` false.
    """

    supports_lookup: bool = False

    async def probe_exists(self, key: str) -> Optional[str]:
        """Return the URL stored under ``key``, or None when nothing is there."""
        return None

    @abstractmethod
    async def store(self, key: str, data: bytes, filename: str = "") -> str:
        """Store ``data`` under ``key`` and return its permanent URL."""


class _UploadSkipped(UploadError):
    """An upload that was not started because authentication already failed."""


class ContentAddressedUploader:
    """Uploads image bytes once per unique content and reuses prior uploads."""

    def __init__(
        self,
        backend: StorageBackend,
        folder: str = STORAGE_FOLDER,
        id_length: int = CONTENT_ID_LENGTH,
        max_concurrency: Optional[int] = DEFAULT_UPLOAD_CONCURRENCY
    ):
        self.backend = backend
        self.folder = folder
        self.id_length = id_length
        self.max_concurrency = max(1, max_concurrency) if max_concurrency else None

    def storage_key(self, content_id: str) -> str:
        return f"{self.folder}/{content_id}"

    async def upload(self, data: bytes, filename: str = "") -> str:
        """
        Upload bytes under their content key and return the permanent URL.

        When the backend can look up existing content, a hit returns the
        stored URL without uploading again; a miss falls through to ``store``.

        Raises:
            EmptyAsset: If ``data`` is empty
            UploadAuthFailed: If the backend rejects the credentials
            UploadTransportFailed: If the backend cannot store the bytes
        """
        if not data:
            raise EmptyAsset(filename or "image")

        key = self.storage_key(content_identifier(data, self.id_length))

        if self.backend.supports_lookup:
            existing = await self.backend.probe_exists(key)
            if existing:
                logger.info(f"Reusing existing asset for {filename or key}: {existing}")
                return existing

        logger.info(f"Uploading {filename or key} as {key} ({len(data)} bytes)")
        url = await self.backend.store(key, data, filename)
        logger.info(f"Uploaded {filename or key}: {url}")
        return url

    async def upload_many(self, assets: Sequence[ImageAsset]) -> Dict[str, str]:
        """
        Upload a request's images concurrently, once per unique content.

        All uploads are allowed to settle before any error is raised, so
        in-flight siblings of a failed upload still complete. Once the
        backend has rejected the credentials, uploads that have not started
        yet are skipped.
        ``max_concurrency`` caps how many uploads run at once; without it
        every unique upload is issued immediately.

        Returns:
            Mapping of content hash to URL

        Raises:
            UploadAuthFailed: If any upload was rejected for credentials
            ConversionError: The first other upload failure, in submission order
        """
        unique: Dict[str, ImageAsset] = {}
        for asset in assets:
            unique.setdefault(asset.content_hash, asset)

        if len(unique) < len(assets):
            logger.info(f"Deduplicated {len(assets)} images to {len(unique)} uploads")

        semaphore = asyncio.Semaphore(self.max_concurrency) if self.max_concurrency else None
        auth_failed = asyncio.Event()

        async def _start(asset: ImageAsset) -> str:
            if auth_failed.is_set():
                raise _UploadSkipped(f"Skipped {asset.filename} after authentication failure")
            try:
                return await self.upload(asset.data, asset.filename)
            except UploadAuthFailed:
                auth_failed.set()
                raise

        async def _upload_one(asset: ImageAsset) -> str:
            if semaphore is None:
                return await _start(asset)
            async with semaphore:
                return await _start(asset)

        ordered: List[ImageAsset] = list(unique.values())
        results = await asyncio.gather(
            *(_upload_one(asset) for asset in ordered),
            return_exceptions=True
        )

        errors = [result for result in results if isinstance(result, BaseException)]
        if errors:
            for asset, result in zip(ordered, results):
                if isinstance(result, BaseException) and not isinstance(result, _UploadSkipped):
                    logger.error(f"Error uploading {asset.filename}: {result}")
            auth_errors = [error for error in errors if isinstance(error, UploadAuthFailed)]
            raise auth_errors[0] if auth_errors else errors[0]

        return {asset.content_hash: url for asset, url in zip(ordered, results)}
