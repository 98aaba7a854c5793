from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Mapping, Optional

import httpx
from tenacity import RetryCallState, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from appy.config import Settings
from appy.domain import ApiError

logger = logging.getLogger(__name__)

# POST creates entities; repeating it after a lost response could create duplicates.
_RETRYABLE_METHODS = {"GET", "PUT", "DELETE"}


def _short_exc(retry_state: RetryCallState) -> str | None:
    if retry_state.outcome is None or not retry_state.outcome.failed:
        return None
    exc = retry_state.outcome.exception()
    if exc is None:
        return None
    # No traceback between attempts: type and message only.
    msg = str(exc).strip()
    return f"{type(exc).__name__}: {msg}" if msg else type(exc).__name__


def _log_before_attempt(retry_state: RetryCallState) -> None:
    logger.debug("Request attempt %s: start", retry_state.attempt_number)


def _log_after_attempt(retry_state: RetryCallState) -> None:
    if retry_state.outcome is not None and retry_state.outcome.failed:
        reason = _short_exc(retry_state)
        if reason:
            logger.warning("Request attempt %s failed (%s)", retry_state.attempt_number, reason)
        else:
            logger.warning("Request attempt %s failed", retry_state.attempt_number)


def _log_before_sleep(retry_state: RetryCallState) -> None:
    sleep_seconds = getattr(retry_state.next_action, "sleep", None)
    next_attempt = retry_state.attempt_number + 1

    if sleep_seconds is None:
        logger.info("Waiting before request attempt %s", next_attempt)
        return

    logger.info("Waiting %.1f s before request attempt %s", sleep_seconds, next_attempt)


def _encode_param(value: Any) -> Any:
    if isinstance(value, (dt.date, dt.datetime, dt.time)):
        return value.isoformat()
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def encode_params(params: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    if not params:
        return {}
    return {k: _encode_param(v) for k, v in params.items() if v is not None}


class ApiClient:
    """Thin async JSON client for the booking backend.

    Non-2xx responses raise ApiError; transport errors are retried for
    idempotent methods and re-raised after the last attempt.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout_seconds: float = 20.0,
        retry_attempts: int = 2,
        retry_wait_seconds: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if retry_attempts < 1:
            raise ValueError("retry_attempts must be >= 1")

        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self.retry_attempts = retry_attempts
        self.retry_wait_seconds = retry_wait_seconds
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout_seconds,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> ApiClient:
        return cls(
            settings.api_url,
            token=settings.api_token,
            timeout_seconds=settings.api_timeout_seconds,
            retry_attempts=settings.api_retry_attempts,
            **kwargs,
        )

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _send(self, method: str, path: str, params: dict[str, Any], json: Any) -> Any:
        r = await self._client.request(method, path, params=params, json=json)
        if r.is_error:
            try:
                payload = r.json()
            except ValueError:
                payload = r.text
            raise ApiError(r.status_code, payload)

        if not r.content:
            return None
        return r.json()

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json: Any = None,
    ) -> Any:
        method = method.upper()
        attempts = self.retry_attempts if method in _RETRYABLE_METHODS else 1

        decorated = retry(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=self.retry_wait_seconds, max=4 * self.retry_wait_seconds),
            retry=retry_if_exception_type(httpx.TransportError),
            before=_log_before_attempt,
            after=_log_after_attempt,
            before_sleep=_log_before_sleep,
            reraise=True,
        )(self._send)

        return await decorated(method, path, encode_params(params), json)

    async def get(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json: Any = None, params: Optional[Mapping[str, Any]] = None) -> Any:
        return await self.request("POST", path, params=params, json=json)

    async def put(self, path: str, json: Any = None, params: Optional[Mapping[str, Any]] = None) -> Any:
        return await self.request("PUT", path, params=params, json=json)

    async def delete(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        return await self.request("DELETE", path, params=params)
