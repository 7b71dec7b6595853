"""
HTTP client for the Câmara dos Deputados open data API.

This module provides resilient extraction with:
- Linear backoff retries through RetryExecutor
- Status code mapping onto the extraction error taxonomy
- Cooperative rate limiting (tasks sleep, the event loop never spins)
- Page-following for the paginated list endpoints
"""

import asyncio
import re
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional
import httpx
from ingestion.retry import RetryExecutor
from core.exceptions import (
    APIExtractionError,
    BadRequestError,
    NetworkError,
    RateLimitError,
    ResourceNotFoundError,
)
import logging

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


def replace_path(template: str, values: Dict[str, Any]) -> str:
    """
    Substitute {placeholder} tokens in an endpoint path.

    Raises:
        ValueError: A placeholder has no value
    """
    def substitute(match):
        name = match.group(1)
        if name not in values or values[name] is None:
            raise ValueError(f"Missing value for path parameter '{name}' in '{template}'")
        return str(values[name])

    return _PLACEHOLDER.sub(substitute, template)


class RateLimiter:
    """Minimum interval between request starts, shared by all tasks of a client"""

    def __init__(
        self,
        requests_per_second: float,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self.min_interval = 1.0 / requests_per_second if requests_per_second > 0 else 0.0
        self._sleep = sleep
        # Created on first use so it binds to the loop that awaits it
        self._lock: Optional[asyncio.Lock] = None
        self._last_request = 0.0

    async def wait(self) -> None:
        if self.min_interval <= 0:
            return
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            elapsed = time.monotonic() - self._last_request
            if elapsed < self.min_interval:
                await self._sleep(self.min_interval - elapsed)
            self._last_request = time.monotonic()


class CamaraAPIClient:
    """
    Async client for the open data REST API.

    Features:
    - JSON GET with path substitution done by the caller via replace_path
    - 400/404 fail fast, 429/5xx/timeouts retried with linear backoff
    - get_all_pages follows pagina/itens until a short or empty page

    Attributes:
        max_retries: Attempts per request, first included (default: 3)
        retry_delay: Base delay of the linear backoff (default: 1.0)
        items_per_page: Page size for paginated endpoints (default: 75)
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        requests_per_second: float = 2.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        items_per_page: int = 75,
        max_pages: int = 100,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.items_per_page = items_per_page
        self.max_pages = max_pages
        self.retry = RetryExecutor(sleep=sleep)
        self.rate_limiter = RateLimiter(requests_per_second, sleep=sleep)
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers={"Accept": "application/json"},
            transport=transport
        )

    async def __aenter__(self) -> "CamaraAPIClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request_once(self, path: str, params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Single GET with status mapping; no retries"""
        await self.rate_limiter.wait()

        context = {"api_path": path, "params": params or {}}

        try:
            response = await self._client.get(path, params=params)
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request timed out: {path}", context=context, original_exception=e)
        except httpx.TransportError as e:
            raise NetworkError(f"Transport error: {path}", context=context, original_exception=e)

        status = response.status_code
        if status >= 400:
            context["status_code"] = status
            context["response_body"] = response.text[:500]

        if status == 400:
            raise BadRequestError(f"Bad request: {path}", context=context)
        if status == 404:
            raise ResourceNotFoundError(f"Resource not found: {path}", context=context)
        if status == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                f"Rate limited: {path}",
                context=context,
                retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None
            )
        if status >= 500:
            raise NetworkError(f"Server error {status}: {path}", context=context)
        if status >= 400:
            raise APIExtractionError(f"Unexpected status {status}: {path}", context=context)

        try:
            body = response.json()
        except ValueError as e:
            raise APIExtractionError(f"Invalid JSON from {path}", context=context, original_exception=e)

        if not isinstance(body, dict):
            raise APIExtractionError(f"Expected a JSON object from {path}", context=context)

        return body

    async def get(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        context: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        GET a JSON object, retrying transient failures.

        Raises:
            BadRequestError, ResourceNotFoundError: Not retried
            RetryExhaustedError: Transient failures on every attempt
        """
        return await self.retry.execute(
            lambda: self._request_once(path, params),
            max_attempts=self.max_retries,
            base_delay=self.retry_delay,
            context=context or f"GET {path}",
            details={"api_path": path}
        )

    async def get_all_pages(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        context: Optional[str] = None,
        max_pages: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Collect the 'dados' arrays of every page of a list endpoint.

        Stops at an empty page, a page shorter than the page size, or
        max_pages.
        """
        max_pages = max_pages or self.max_pages
        items: List[Dict[str, Any]] = []

        for page in range(1, max_pages + 1):
            page_params = dict(params or {})
            page_params["pagina"] = page
            page_params["itens"] = self.items_per_page

            body = await self.get(path, page_params, context=f"{context or path} page {page}")
            data = body.get("dados") or []
            items.extend(data)

            if len(data) < self.items_per_page:
                break
        else:
            logger.warning(f"Stopped {context or path} at max_pages={max_pages}")

        logger.debug(f"Fetched {len(items)} items from {path}")
        return items
