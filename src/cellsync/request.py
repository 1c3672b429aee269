"""Request lifecycle — one outbound HTTP call reduced to a uniform outcome.

RequestManager issues calls through an httpx.AsyncClient. Each call is
bounded by a cancellation timer (asyncio.wait_for): whichever comes first,
the timeout or the response, wins and the other is dropped. Nothing is
raised to the caller; every failure becomes a Failure outcome.

State for callers:
- loading: Cell[bool], True while any call is between issue and outcome.
- error: Cell[str | None], last failure message, cleared when a call starts.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Generic, Mapping, TypeVar, Union

import httpx

from cellsync.cell import Cell
from cellsync.config import get_settings
from cellsync.errors import NetworkError, RequestEncodeError, RequestError, RequestTimeoutError

T = TypeVar("T")

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {"Content-Type": "application/json"}


@dataclass(frozen=True)
class Success(Generic[T]):
    payload: T
    status: int

    ok: ClassVar[bool] = True


@dataclass(frozen=True)
class Failure:
    message: str
    status: int | None = None
    cause: RequestError | None = field(default=None, compare=False, repr=False)

    ok: ClassVar[bool] = False


RequestOutcome = Union[Success[Any], Failure]


class RequestManager:
    """HTTP calls with timeout cancellation and loading/error state.

    Usage:
        async with RequestManager("https://api.example.com", timeout=2.0) as api:
            outcome = await api.get("/users/1")
            if outcome.ok:
                render(outcome.payload)
            else:
                show(outcome.message)
    """

    def __init__(
        self,
        base_url: str | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self.base_url = settings.base_url if base_url is None else base_url
        self.timeout = settings.request_timeout if timeout is None else timeout
        self.headers = httpx.Headers(DEFAULT_HEADERS)
        if headers:
            self.headers.update(headers)
        # The cancellation timer owns the deadline, so httpx's own timeout is off.
        self._client = httpx.AsyncClient(base_url=self.base_url, transport=transport, timeout=None)
        self._in_flight = 0
        self.loading: Cell[bool] = Cell(False)
        self.error: Cell[str | None] = Cell(None)

    async def request(
        self,
        url: str,
        *,
        method: str = "GET",
        headers: Mapping[str, str] | None = None,
        content: str | bytes | None = None,
        timeout: float | None = None,
    ) -> RequestOutcome:
        """Issue one call. Always returns a Success or Failure."""
        limit = self.timeout if timeout is None else timeout
        merged = httpx.Headers(self.headers)
        if headers:
            merged.update(headers)

        self.error.set(None)
        self._in_flight += 1
        self.loading.set(True)
        try:
            outcome = await self._perform(method.upper(), url, merged, content, limit)
            if not outcome.ok:
                self.error.set(outcome.message)
            return outcome
        finally:
            self._in_flight -= 1
            if self._in_flight == 0:
                self.loading.set(False)

    async def _perform(
        self, method: str, url: str, headers: httpx.Headers, content: str | bytes | None, limit: float
    ) -> RequestOutcome:
        logger.debug("%s %s (timeout %ss)", method, url, limit)
        try:
            response = await asyncio.wait_for(
                self._client.request(method, url, headers=headers, content=content),
                timeout=limit,
            )
        except (TimeoutError, httpx.TimeoutException):
            return self._failure(method, url, RequestTimeoutError(f"Request timed out after {limit}s"))
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            return self._failure(method, url, NetworkError(str(e) or type(e).__name__))
        except Exception as e:
            logger.exception("%s %s raised in transport", method, url)
            cause = NetworkError(f"{type(e).__name__}: {e}")
            return Failure(str(cause), None, cause)

        status = response.status_code
        if not response.is_success:
            return self._failure(method, url, None, f"HTTP {status}: {response.reason_phrase}", status)
        if not response.content:
            return Success(None, status)
        try:
            payload = response.json()
        except ValueError as e:
            return self._failure(method, url, None, f"Invalid JSON response: {e}", status)
        logger.debug("%s %s -> %d", method, url, status)
        return Success(payload, status)

    def _failure(
        self,
        method: str,
        url: str,
        cause: RequestError | None,
        message: str | None = None,
        status: int | None = None,
    ) -> Failure:
        message = message if message is not None else str(cause)
        logger.warning("%s %s failed: %s", method, url, message)
        return Failure(message, status, cause)

    # --- Convenience wrappers ---

    async def get(self, url: str, **kwargs: Any) -> RequestOutcome:
        return await self.request(url, method="GET", **kwargs)

    async def post(self, url: str, data: Any = None, **kwargs: Any) -> RequestOutcome:
        return await self._send_body("POST", url, data, **kwargs)

    async def put(self, url: str, data: Any = None, **kwargs: Any) -> RequestOutcome:
        return await self._send_body("PUT", url, data, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> RequestOutcome:
        return await self.request(url, method="DELETE", **kwargs)

    async def _send_body(self, method: str, url: str, data: Any, **kwargs: Any) -> RequestOutcome:
        try:
            content = _encode_body(data)
        except (TypeError, ValueError) as e:
            failure = self._failure(method, url, RequestEncodeError(f"Cannot encode request body: {e}"))
            self.error.set(failure.message)
            return failure
        return await self.request(url, method=method, content=content, **kwargs)

    # --- Lifecycle ---

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> RequestManager:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()


def _encode_body(data: Any) -> str | None:
    return None if data is None else json.dumps(data)
