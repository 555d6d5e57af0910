"""
Base HTTP client shared by all provider clients.

Bounded concurrency, exponential backoff with jitter and standardized error
classification. The aggregator puts an overall time bound on each provider
call, so retry budgets here are deliberately small.
"""
import asyncio
import logging
import random
from abc import ABC
from typing import Any, Dict, Optional

import httpx

from rockguard.core.api_errors import (
    APIError,
    FatalError,
    RateLimitError,
    RetryableError,
    classify_http_error,
)

logger = logging.getLogger(__name__)


class BaseAPIClient(ABC):
    """
    Base class for provider API clients.

    Subclasses set SOURCE_NAME and BASE_URL and implement provider-specific
    methods on top of get_json().
    """

    SOURCE_NAME: str = "unknown"
    BASE_URL: str = ""

    DEFAULT_MAX_CONCURRENCY: int = 4
    DEFAULT_TIMEOUT: float = 10.0
    DEFAULT_CONNECT_TIMEOUT: float = 5.0
    DEFAULT_MAX_RETRIES: int = 2
    DEFAULT_BACKOFF_FACTOR: float = 2.0
    DEFAULT_MAX_BACKOFF: float = 10.0
    DEFAULT_JITTER_FACTOR: float = 0.25

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
        timeout: float = DEFAULT_TIMEOUT,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    ):
        """
        Initialize the provider client.

        Args:
            base_url: Override for BASE_URL (configured per provider)
            api_key: Optional API key for authentication
            max_concurrency: Maximum concurrent requests (semaphore size)
            max_retries: Maximum attempts per request
            backoff_factor: Exponential backoff multiplier
            timeout: Request timeout in seconds
            connect_timeout: Connection timeout in seconds
        """
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.api_key = api_key
        self.max_concurrency = max_concurrency
        self.max_retries = max(1, max_retries)
        self.backoff_factor = backoff_factor
        self.timeout = timeout
        self.connect_timeout = connect_timeout

        self.semaphore = asyncio.Semaphore(max_concurrency)
        self._client: Optional[httpx.AsyncClient] = None

        logger.info(
            f"Initialized {self.SOURCE_NAME} client: "
            f"base_url={self.base_url}, "
            f"api_key_present={api_key is not None}, "
            f"max_retries={self.max_retries}"
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the pooled HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=self.connect_timeout),
                follow_redirects=True,
                headers=self._build_headers(),
                limits=httpx.Limits(
                    max_connections=self.max_concurrency * 2,
                    max_keepalive_connections=self.max_concurrency
                )
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.debug(f"{self.SOURCE_NAME} client closed")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _build_headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/json",
            "User-Agent": f"RockGuard/{self.SOURCE_NAME}-client"
        }

    def _add_auth_to_params(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Override to add provider-specific auth parameters."""
        return params

    async def _backoff(self, attempt: int, base_delay: float = 0.5) -> None:
        """Exponential backoff with +/-25% jitter."""
        delay = min(base_delay * (self.backoff_factor ** attempt), self.DEFAULT_MAX_BACKOFF)
        jitter = delay * self.DEFAULT_JITTER_FACTOR * (2 * random.random() - 1)
        delay_with_jitter = max(0.05, delay + jitter)
        logger.debug(f"Backing off for {delay_with_jitter:.2f}s (attempt {attempt + 1})")
        await asyncio.sleep(delay_with_jitter)

    def _url(self, path: str) -> str:
        if path.startswith("http"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    async def get_json(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        resource_id: str = "unknown",
    ) -> Dict[str, Any]:
        """
        GET a JSON document with retry logic.

        Args:
            path: Path relative to the base URL, or an absolute URL
            params: Query parameters
            resource_id: Identifier for logging

        Returns:
            Parsed JSON response

        Raises:
            APIError: On unrecoverable errors or exhausted retries
        """
        url = self._url(path)
        params = self._add_auth_to_params(dict(params or {}))

        async with self.semaphore:
            client = await self._get_client()
            last_error: Optional[APIError] = None

            for attempt in range(self.max_retries):
                is_last = attempt == self.max_retries - 1
                try:
                    logger.debug(
                        f"[{self.SOURCE_NAME}] GET {resource_id} "
                        f"(attempt {attempt + 1}/{self.max_retries})"
                    )
                    response = await client.get(url, params=params)
                    response.raise_for_status()
                    data = response.json()
                    if not isinstance(data, dict):
                        raise FatalError(
                            message=f"Expected a JSON object, got {type(data).__name__}",
                            source=self.SOURCE_NAME,
                        )
                    return data

                except httpx.HTTPStatusError as e:
                    error = classify_http_error(
                        e.response.status_code,
                        e.response.text[:500],
                        self.SOURCE_NAME
                    )
                    if isinstance(error, RateLimitError) and not is_last:
                        retry_after = e.response.headers.get("Retry-After")
                        wait_time = float(retry_after) if retry_after else error.retry_after
                        logger.warning(f"[{self.SOURCE_NAME}] Rate limited. Waiting {wait_time}s")
                        await asyncio.sleep(wait_time)
                        last_error = error
                        continue
                    if error.retryable and not is_last:
                        logger.warning(f"[{self.SOURCE_NAME}] Retryable HTTP error: {error}")
                        await self._backoff(attempt)
                        last_error = error
                        continue
                    raise error

                except httpx.RequestError as e:
                    last_error = RetryableError(
                        message=f"Request failed: {e}",
                        source=self.SOURCE_NAME
                    )
                    if not is_last:
                        logger.warning(
                            f"[{self.SOURCE_NAME}] Request error (attempt {attempt + 1}): {e}"
                        )
                        await self._backoff(attempt)
                        continue
                    raise last_error

                except ValueError as e:
                    # json.JSONDecodeError is a ValueError
                    raise FatalError(
                        message=f"Malformed JSON from {resource_id}: {e}",
                        source=self.SOURCE_NAME,
                    )

            if last_error:
                raise last_error
            raise APIError(
                message=f"Failed to fetch {resource_id} after {self.max_retries} attempts",
                source=self.SOURCE_NAME
            )
