"""
Cloudinary storage backend over the REST API.

Uploads go to the Upload API (signed with the API secret, or unsigned with
an upload preset). Existence lookup uses the Admin API and therefore needs
both the API key and secret.
"""

import hashlib
import time
from typing import Dict, Optional

import httpx

from ..config import CloudinaryConfig
from .error_handling import UploadAuthFailed, UploadTransportFailed
from .http_client import RetryConfig, retry_request
from .logging_config import get_logger
from .uploader import StorageBackend

logger = get_logger()

# Messages Cloudinary returns for credential problems on otherwise valid requests
AUTH_ERROR_MARKERS = (
    "invalid api key",
    "invalid signature",
    "invalid upload preset",
    "upload preset not found",
    "unknown api key",
)


def sign_params(params: Dict[str, str], api_secret: str) -> str:
    """
    Compute a Cloudinary request signature.

    Parameters are sorted by name, joined as ``k=v`` with ``&``, suffixed
    with the API secret and hashed with SHA-1.
    """
    to_sign = "&".join(f"{key}={params[key]}" for key in sorted(params) if params[key] != "")
    return hashlib.sha1((to_sign + api_secret).encode("utf-8")).hexdigest()


def _error_message(response: httpx.Response) -> str:
    """Extract Cloudinary's error message from a response body."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:500] or f"HTTP {response.status_code}"

    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str):
        return error
    return f"HTTP {response.status_code}"


class CloudinaryBackend(StorageBackend):
    """Cloudinary implementation of the storage capability."""

    def __init__(
        self,
        config: CloudinaryConfig,
        client: httpx.AsyncClient,
        retry_config: Optional[RetryConfig] = None,
        clock=time.time
    ):
        self.config = config
        self.client = client
        self.retry_config = retry_config or RetryConfig.from_env()
        self._clock = clock

    @property
    def supports_lookup(self) -> bool:
        return self.config.signed

    @property
    def upload_url(self) -> str:
        return f"{self.config.api_base}/v1_1/{self.config.cloud_name}/image/upload"

    def resource_url(self, key: str) -> str:
        return f"{self.config.api_base}/v1_1/{self.config.cloud_name}/resources/image/upload/{key}"

    def _raise_for_response(self, response: httpx.Response, key: str, operation: str):
        message = _error_message(response)
        if response.status_code in (401, 403) or any(marker in message.lower() for marker in AUTH_ERROR_MARKERS):
            raise UploadAuthFailed(
                f"Cloudinary authentication failed. Please check your API credentials "
                f"and upload preset. Original error: {message}",
                key=key
            )
        raise UploadTransportFailed(
            f"Cloudinary {operation} failed for {key} ({response.status_code}): {message}",
            key=key,
            upstream_status=response.status_code
        )

    def _secure_url(self, response: httpx.Response, key: str, operation: str) -> Optional[str]:
        try:
            body = response.json()
        except ValueError:
            raise UploadTransportFailed(
                f"Cloudinary {operation} for {key} returned a non-JSON response: {response.text[:200]}",
                key=key,
                upstream_status=response.status_code
            )
        if not isinstance(body, dict):
            return None
        return body.get("secure_url")

    async def _send(self, method: str, url: str, key: str, operation: str, **kwargs) -> httpx.Response:
        try:
            return await retry_request(
                lambda: self.client.request(method, url, **kwargs),
                self.retry_config,
                logger
            )
        except httpx.HTTPError as e:
            raise UploadTransportFailed(
                f"Cloudinary {operation} failed for {key}: {type(e).__name__}: {e}",
                key=key
            )

    async def probe_exists(self, key: str) -> Optional[str]:
        """Look up an existing resource; a 404 means it has not been uploaded yet."""
        response = await self._send(
            "GET",
            self.resource_url(key),
            key,
            "lookup",
            auth=(self.config.api_key, self.config.api_secret)
        )

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            self._raise_for_response(response, key, "lookup")

        url = self._secure_url(response, key, "lookup")
        if not url:
            # Resource exists but carries no URL; upload again
            logger.warning(f"Lookup for {key} returned no secure_url")
            return None
        return url

    def _form_fields(self, key: str) -> Dict[str, str]:
        if self.config.unsigned:
            fields = {
                "public_id": key,
                "upload_preset": self.config.upload_preset,
            }
            if self.config.api_key:
                fields["api_key"] = self.config.api_key
            return fields

        signed = {
            "public_id": key,
            "timestamp": str(int(self._clock())),
        }
        return {
            **signed,
            "api_key": self.config.api_key,
            "signature": sign_params(signed, self.config.api_secret),
        }

    async def store(self, key: str, data: bytes, filename: str = "") -> str:
        """Upload bytes under ``key``; uploading identical bytes again is harmless."""
        response = await self._send(
            "POST",
            self.upload_url,
            key,
            "upload",
            data=self._form_fields(key),
            files={"file": (filename or key.rsplit("/", 1)[-1], data)}
        )

        if response.status_code != 200:
            self._raise_for_response(response, key, "upload")

        url = self._secure_url(response, key, "upload")
        if not url:
            raise UploadTransportFailed(
                f"Upload of {key} succeeded but no URL returned from Cloudinary",
                key=key
            )
        return url
