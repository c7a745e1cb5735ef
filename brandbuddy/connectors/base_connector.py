"""
Base connector for the JSON feeds that back every page
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple
import asyncio
import json

import aiohttp

from brandbuddy.utils.cache import _MISS, get_cached, set_cached
from brandbuddy.utils.logger import log
from brandbuddy.utils.retry import calculate_backoff, is_retryable_error


class ConfigurationError(Exception):
    """A feed's base URL or token is missing from the environment"""


class FeedError(Exception):
    """The feed answered with a non-2xx status or an unparseable body, or could not be reached"""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class FeedConnector(ABC):
    """
    Base class for feed connectors.

    Every feed is a GET endpoint that takes ``token`` and ``limit`` query
    parameters and answers ``{"data": [...], ...}``. Only ``data`` is read.
    """

    # Retry configuration (can be overridden by subclasses or tests)
    RETRY_MAX_ATTEMPTS = 3
    RETRY_BASE_DELAY = 0.5  # seconds
    RETRY_MAX_DELAY = 8.0  # seconds

    # Environment variable names reported in configuration errors
    ENV_NAMES: Tuple[str, str] = ("", "")

    def __init__(
        self,
        name: str,
        base_url: Optional[str],
        token: Optional[str],
        cache_seconds: int = 0
    ):
        self.name = name
        self.base_url = base_url
        self.token = token
        self.cache_seconds = cache_seconds
        self.fetch_count = 0
        self.error_count = 0
        self.retry_count = 0

    @abstractmethod
    def build_params(self, **kwargs) -> Dict[str, Any]:
        """Query parameters for one page of the feed (token excluded)"""
        pass

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url) and bool(self.token)

    def require_configuration(self):
        if not self.is_configured:
            raise ConfigurationError(
                f"{self.ENV_NAMES[0]} and {self.ENV_NAMES[1]} environment variables are required"
            )

    async def fetch_records(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        **kwargs
    ) -> List[Dict]:
        """
        Fetch one page of records.

        Raises:
            ConfigurationError: base URL or token missing
            FeedError: non-2xx response, or the network kept failing after retries
        """
        self.require_configuration()

        params = {"token": self.token, **self.build_params(**kwargs)}
        cache_key = f"{self.name}:{self.base_url}:{json.dumps(self.build_params(**kwargs), sort_keys=True)}"
        cached = get_cached(cache_key)
        if cached is not _MISS:
            log.debug(f"{self.name} feed served from cache ({len(cached)} records)")
            return cached

        log.info(f"Fetching {self.name} feed (limit={params.get('limit')})")

        try:
            records = await self._retry_operation(
                lambda: self._get(params, session),
                operation_name="fetch"
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.error_count += 1
            raise FeedError(f"{self.name} feed unreachable: {e}") from e
        except FeedError:
            self.error_count += 1
            raise

        self.fetch_count += 1
        log.info(f"Fetched {len(records)} records from {self.name} feed")
        set_cached(cache_key, records, self.cache_seconds)
        return records

    async def _get(self, params: Dict[str, Any], session: Optional[aiohttp.ClientSession]) -> List[Dict]:
        if session is None:
            async with aiohttp.ClientSession() as own_session:
                return await self._get(params, own_session)

        async with session.get(self.base_url, params=params) as response:
            if not 200 <= response.status < 300:
                raise FeedError(f"HTTP {response.status}: {response.reason}", status=response.status)
            try:
                payload = await response.json(content_type=None)
            except (json.JSONDecodeError, ValueError, aiohttp.ContentTypeError) as e:
                log.warning(f"{self.name} feed returned malformed JSON: {e}")
                raise FeedError(f"{self.name} feed returned malformed JSON") from e

        if not isinstance(payload, dict):
            raise FeedError(f"{self.name} feed returned {type(payload).__name__}, expected an object")

        # A missing data key is an empty page; any other shape is unusable
        data = payload.get("data")
        if data is None:
            return []
        if not isinstance(data, list):
            raise FeedError(f"{self.name} feed data is {type(data).__name__}, expected a list")
        return [record for record in data if isinstance(record, dict)]

    async def _retry_operation(self, operation, operation_name: str = "operation") -> Any:
        """Execute an async operation, retrying transient failures with backoff."""
        for attempt in range(1, self.RETRY_MAX_ATTEMPTS + 1):
            try:
                result = await operation()
                if attempt > 1:
                    self.retry_count += attempt - 1
                return result

            except Exception as e:
                if attempt >= self.RETRY_MAX_ATTEMPTS or not is_retryable_error(e):
                    raise

                delay = calculate_backoff(
                    attempt,
                    base_delay=self.RETRY_BASE_DELAY,
                    max_delay=self.RETRY_MAX_DELAY
                )
                log.warning(
                    f"{self.name} {operation_name} attempt {attempt} failed: {e}. "
                    f"Retrying in {delay:.1f}s..."
                )
                await asyncio.sleep(delay)

        raise RuntimeError("Retry exhausted")

    def get_status(self) -> Dict[str, Any]:
        """Get connector status (never includes the token)"""
        return {
            "name": self.name,
            "configured": self.is_configured,
            "fetch_count": self.fetch_count,
            "error_count": self.error_count,
            "retry_count": self.retry_count,
            "retry_config": {
                "max_attempts": self.RETRY_MAX_ATTEMPTS,
                "base_delay": self.RETRY_BASE_DELAY,
                "max_delay": self.RETRY_MAX_DELAY
            }
        }
