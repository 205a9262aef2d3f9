"""
Centralized HTTP client factory for the storage backend.

This module creates and tracks the ``httpx`` clients the service uses and
provides the retry helper that wraps calls to remote APIs.
"""

import asyncio
import logging
import os
import random
from contextlib import asynccontextmanager
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class RetryConfig:
    """Configuration for HTTP request retry behavior."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 0.5,
        max_delay: float = 10.0,
        backoff_factor: float = 2.0,
        jitter: bool = True,
        retry_on_status_codes: Optional[list] = None,
        retry_on_exceptions: Optional[list] = None
    ):
        """
        Initialize retry configuration.

        Args:
            max_attempts: Maximum number of attempts (including the initial request)
            base_delay: Base delay in seconds between retries
            max_delay: Maximum delay in seconds between retries
            backoff_factor: Exponential backoff multiplier
            jitter: Whether to add random jitter to delay
            retry_on_status_codes: HTTP status codes to retry on
            retry_on_exceptions: Exception types to retry on
        """
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.backoff_factor = backoff_factor
        self.jitter = jitter

        self.retry_on_status_codes = retry_on_status_codes or [500, 502, 503, 504, 408, 429]
        self.retry_on_exceptions = retry_on_exceptions or [
            httpx.ConnectError,
            httpx.ConnectTimeout,
            httpx.ReadTimeout,
            httpx.PoolTimeout,
            httpx.NetworkError
        ]

    @classmethod
    def from_env(cls) -> 'RetryConfig':
        """Create retry config from environment variables."""
        return cls(
            max_attempts=int(os.getenv('EMAILCONVERT_RETRY_MAX_ATTEMPTS', '3')),
            base_delay=float(os.getenv('EMAILCONVERT_RETRY_BASE_DELAY', '0.5')),
            max_delay=float(os.getenv('EMAILCONVERT_RETRY_MAX_DELAY', '10.0')),
            backoff_factor=float(os.getenv('EMAILCONVERT_RETRY_BACKOFF_FACTOR', '2.0')),
            jitter=os.getenv('EMAILCONVERT_RETRY_JITTER', 'true').lower() == 'true'
        )


async def retry_request(
    func: Callable[[], Awaitable[httpx.Response]],
    config: RetryConfig,
    logger: Optional[logging.Logger] = None
) -> httpx.Response:
    """
    Execute a request function with retry logic.

    A response whose status is retryable is retried until attempts run out,
    after which that last response is returned for the caller to inspect.

    Raises:
        The last network exception if all attempts failed with one
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    for attempt in range(config.max_attempts):
        is_last = attempt == config.max_attempts - 1
        try:
            response = await func()
        except tuple(config.retry_on_exceptions) as e:
            if is_last:
                logger.error(f"Request failed after {config.max_attempts} attempts: {e}")
                raise
            logger.warning(
                f"Request failed with {type(e).__name__}: {e}, "
                f"retrying ({attempt + 1}/{config.max_attempts})"
            )
            await _delay_before_retry(attempt, config)
            continue

        if response.status_code in config.retry_on_status_codes and not is_last:
            logger.warning(
                f"Request failed with status {response.status_code}, "
                f"retrying ({attempt + 1}/{config.max_attempts})"
            )
            await _delay_before_retry(attempt, config)
            continue

        if attempt > 0:
            logger.info(f"Request finished on attempt {attempt + 1}")
        return response

    raise RuntimeError("Retry logic failed unexpectedly")


async def _delay_before_retry(attempt: int, config: RetryConfig):
    """Sleep with exponential backoff before the next attempt."""
    delay = min(config.base_delay * (config.backoff_factor ** attempt), config.max_delay)

    if config.jitter:
        # Random jitter of +/-25% of the delay
        jitter_range = delay * 0.25
        delay = max(0.05, delay + random.uniform(-jitter_range, jitter_range))

    logger.debug(f"Waiting {delay:.2f}s before retry")
    await asyncio.sleep(delay)


class ServiceType(Enum):
    """Service types for HTTP client configuration."""
    CLOUDINARY = "cloudinary"


class HTTPClientFactory:
    """
    Factory for creating and managing HTTP clients.

    Clients share connection limits and timeouts; every client created here
    is closed by ``close_all_clients``.
    """

    def __init__(self):
        self._clients: Dict[ServiceType, httpx.AsyncClient] = {}
        self._timeout = None
        self._retry_config = None

    def _get_connection_limits(self) -> httpx.Limits:
        return httpx.Limits(
            max_keepalive_connections=20,
            max_connections=100,
            keepalive_expiry=30.0
        )

    def _get_timeout(self) -> httpx.Timeout:
        """Get timeout configuration from environment or defaults."""
        if self._timeout is None:
            read_timeout = float(os.getenv('EMAILCONVERT_HTTP_TIMEOUT', '60'))
            self._timeout = httpx.Timeout(
                connect=10.0,
                read=read_timeout,
                write=120.0,  # Image bodies can be several MB
                pool=10.0
            )
        return self._timeout

    def get_retry_config(self) -> RetryConfig:
        if self._retry_config is None:
            self._retry_config = RetryConfig.from_env()
        return self._retry_config

    def create_client(
        self,
        service_type: ServiceType,
        **overrides
    ) -> httpx.AsyncClient:
        """
        Create an HTTP client for a service.

        Args:
            service_type: Type of service the client will be used for
            **overrides: Override default client configuration

        Returns:
            Configured AsyncClient instance
        """
        config = {
            'timeout': self._get_timeout(),
            'limits': self._get_connection_limits(),
            'follow_redirects': False,
        }
        config.update(overrides)

        client = httpx.AsyncClient(**config)
        self._clients[service_type] = client
        return client

    async def close_all_clients(self):
        """Close all managed clients."""
        for client in self._clients.values():
            try:
                await client.aclose()
            except Exception as e:
                logger.warning(f"Error closing HTTP client: {e}")

        self._clients.clear()


# Global factory instance
_http_factory = HTTPClientFactory()


def get_http_client_factory() -> HTTPClientFactory:
    """Get the global HTTP client factory instance."""
    return _http_factory


@asynccontextmanager
async def lifespan_http_clients():
    """
    Context manager that closes every factory client on exit.

    Use this in the FastAPI lifespan to ensure proper client cleanup.
    """
    try:
        yield
    finally:
        await _http_factory.close_all_clients()
