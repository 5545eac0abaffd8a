"""Outbound HTTP execution with bounded exponential-backoff retry.

Calls go out through `requests` (no vendor SDKs). Each attempt is logged with
its status, elapsed time and a truncated payload. Transport and HTTP failures
are retried `retries` times with the delay doubling after every attempt;
when retries run out an ApiError carrying the status and raw body is raised.
401/403 responses are raised immediately so callers can short-circuit on
authentication problems instead of hammering the API.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

import requests

logger = logging.getLogger(__name__)

AUTH_FAILURE_STATUSES = (401, 403)
LOG_PAYLOAD_LIMIT = 500

# (endpoint label, elapsed milliseconds, success)
AttemptObserver = Callable[[str, int, bool], Awaitable[None]]


class ApiError(Exception):
    """An outbound call failed after all retries."""

    def __init__(self, message: str, status_code: int, response: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response = response

    @property
    def is_auth_failure(self) -> bool:
        return self.status_code in AUTH_FAILURE_STATUSES


class AuthenticationError(ApiError):
    """The remote API rejected our credentials (HTTP 401/403)."""


@dataclass
class RequestSpec:
    """Everything needed to perform one outbound call."""

    method: str
    url: str
    endpoint: str = "default"
    headers: Dict[str, str] = field(default_factory=dict)
    params: Optional[Dict[str, Any]] = None
    json: Optional[Any] = None
    timeout: float = 30.0


def _truncate(value: Any, limit: int = LOG_PAYLOAD_LIMIT) -> str:
    text = value if isinstance(value, str) else repr(value)
    if len(text) <= limit:
        return text
    return text[:limit] + "...(truncated)"


def _response_body(response: Optional[requests.Response]) -> Any:
    if response is None:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def _send(spec: RequestSpec) -> requests.Response:
    resp = requests.request(
        spec.method.upper(),
        spec.url,
        headers=spec.headers,
        params=spec.params,
        json=spec.json,
        timeout=spec.timeout,
    )
    resp.raise_for_status()
    return resp


async def _notify(observer: Optional[AttemptObserver], spec: RequestSpec, started: float, ok: bool) -> None:
    if observer is None:
        return
    elapsed_ms = int((time.monotonic() - started) * 1000)
    try:
        await observer(spec.endpoint, elapsed_ms, ok)
    except Exception:
        logger.warning("API attempt observer failed for %s", spec.endpoint, exc_info=True)


async def execute(
    spec: RequestSpec,
    retries: int = 1,
    delay: float = 5.0,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    observer: Optional[AttemptObserver] = None,
) -> requests.Response:
    """Perform `spec`, retrying failures with exponential backoff.

    Args:
        spec: The request to send.
        retries: Retries left after this attempt.
        delay: Seconds to wait before the next attempt; doubles each retry.
        sleep: Awaitable sleep used between attempts (injectable for tests).
        observer: Optional async callback receiving per-attempt stats.

    Returns:
        The successful `requests.Response` (status < 400).

    Raises:
        ApiError: retries exhausted, or the API answered 401/403.
    """
    started = time.monotonic()
    try:
        # requests is blocking; keep the event loop free while it runs
        response = await asyncio.to_thread(_send, spec)
    except requests.RequestException as exc:
        await _notify(observer, spec, started, False)
        failed = exc.response
        status = failed.status_code if failed is not None else 500
        body = _response_body(failed)
        logger.error(
            "API error %s %s [%s]: status=%s message=%s body=%s",
            spec.method.upper(), spec.url, spec.endpoint, status, exc, _truncate(body),
        )
        if status in AUTH_FAILURE_STATUSES:
            raise ApiError(str(exc), status, body) from exc
        if retries > 0:
            logger.warning(
                "Request to %s failed, retrying in %.1fs (%d retries left)",
                spec.endpoint, delay, retries,
            )
            await sleep(delay)
            return await execute(
                spec, retries - 1, delay * 2, sleep=sleep, observer=observer
            )
        raise ApiError(str(exc), status, body) from exc

    await _notify(observer, spec, started, True)
    logger.info(
        "API response %s %s [%s]: status=%s payload=%s",
        spec.method.upper(), spec.url, spec.endpoint, response.status_code,
        _truncate(response.text),
    )
    return response
