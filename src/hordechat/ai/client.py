"""Async client for the Horde asynchronous text generation API."""

from __future__ import annotations

import asyncio
import json
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Mapping

import httpx
from tenacity import AsyncRetrying, RetryCallState, before_sleep_log, retry_if_exception_type, stop_never

from .ai_types import JobCheck, JobOptions, JobStatus
from .errors import (
    JobCancelledError,
    JobFaultedError,
    JobImpossibleError,
    RateLimitedError,
    ServiceRejectedError,
)

if TYPE_CHECKING:  # pragma: no cover
    from .orchestration.types import CancellationToken

LOGGER = logging.getLogger(__name__)

ANONYMOUS_API_KEY = "0000000000"
DEFAULT_BASE_URL = "https://koboldai.net/api/v2"
DEFAULT_CLIENT_AGENT = "hordechat:0.1.0:https://github.com/hordechat/hordechat"

Sleep = Callable[[float], Awaitable[None]]
PollCallback = Callable[[JobCheck], None]


@dataclass(slots=True)
class ClientSettings:
    """Subset of settings required to configure the Horde client."""

    api_key: str = ANONYMOUS_API_KEY
    base_url: str = DEFAULT_BASE_URL
    client_agent: str = DEFAULT_CLIENT_AGENT
    request_timeout: float | None = 30.0
    poll_interval: float = 1.5
    default_retry_after: float = 0.0
    debug_logging: bool = False


def parse_retry_after(
    value: str | None,
    *,
    default: float = 0.0,
    now: datetime | None = None,
) -> float:
    """Convert a ``Retry-After`` hint into a non-negative delay in seconds.

    Accepts a (possibly fractional) number of seconds or an absolute timestamp,
    either as an HTTP-date or ISO-8601.
    """

    if value is None:
        return default
    hint = value.strip()
    if not hint:
        return default

    try:
        seconds = float(hint)
    except ValueError:
        pass
    else:
        if math.isnan(seconds) or math.isinf(seconds):
            return default
        return max(0.0, seconds)

    when = _parse_timestamp(hint)
    if when is None:
        LOGGER.debug("Unparseable Retry-After hint %r; waiting %.2fs", hint, default)
        return default
    reference = now or datetime.now(timezone.utc)
    return max(0.0, (when - reference).total_seconds())


def _parse_timestamp(hint: str) -> datetime | None:
    when: datetime | None
    try:
        when = parsedate_to_datetime(hint)
    except (TypeError, ValueError, IndexError):
        try:
            when = datetime.fromisoformat(hint.replace("Z", "+00:00"))
        except ValueError:
            return None
    if when is None:
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return when


def _wait_for_retry_hint(retry_state: RetryCallState) -> float:
    outcome = retry_state.outcome
    error = outcome.exception() if outcome is not None else None
    if isinstance(error, RateLimitedError):
        return error.retry_after
    return 0.0


class HordeClient:
    """Submits, polls and cancels remote generation jobs.

    Every request transparently retries on HTTP 429, sleeping exactly the
    server's wait hint before resubmitting the identical call. There is no
    retry ceiling.
    """

    def __init__(
        self,
        settings: ClientSettings | None = None,
        *,
        options: JobOptions | None = None,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleep | None = None,
    ) -> None:
        self._settings = settings or ClientSettings()
        self._options = options or JobOptions()
        self._owns_client = client is None
        self._client = client or self._build_client(self._settings, transport)
        self._sleep = sleep or asyncio.sleep

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    @property
    def options(self) -> JobOptions:
        return self._options

    async def create_job(self, prompt: str, options: JobOptions | None = None) -> str:
        """Submit ``prompt`` and return the remote job id."""

        payload = (options or self._options).to_payload(prompt)
        if self._settings.debug_logging:
            self._log_prompt_payload(payload)
        response = await self._request("POST", "/generate/async", payload=payload)
        body = self._expect(response, 202)
        job_id = str(body.get("id") or "")
        if not job_id:
            raise ServiceRejectedError(
                message="Job submission was accepted without a job id",
                status_code=response.status_code,
            )
        LOGGER.debug("Submitted generation job %s (prompt length=%d)", job_id, len(prompt))
        return job_id

    async def check_job(self, job_id: str) -> JobCheck:
        response = await self._request("GET", f"/generate/check/{job_id}")
        return JobCheck.from_payload(self._expect(response, 200))

    async def get_job(self, job_id: str) -> JobStatus:
        response = await self._request("GET", f"/generate/status/{job_id}")
        return JobStatus.from_payload(self._expect(response, 200))

    async def cancel_job(self, job_id: str) -> JobStatus:
        """Ask the service to drop ``job_id``.

        Only local polling is guaranteed to stop; a worker that already picked
        the job up may keep computing.
        """

        response = await self._request("DELETE", f"/generate/status/{job_id}")
        status = JobStatus.from_payload(self._expect(response, 200))
        LOGGER.debug("Cancelled generation job %s", job_id)
        return status

    async def wait_for_job(
        self,
        job_id: str,
        *,
        cancel_token: CancellationToken | None = None,
        on_poll: PollCallback | None = None,
    ) -> JobStatus:
        """Poll ``job_id`` until it is done and return its full status.

        The token is consulted before every status call; once ``done`` has
        been observed the finished result is fetched regardless of it.
        """

        interval = max(0.0, self._settings.poll_interval)
        while True:
            if cancel_token is not None:
                if await cancel_token.wait(interval):
                    raise JobCancelledError(job_id=job_id)
            else:
                await self._sleep(interval)

            check = await self.check_job(job_id)
            if on_poll is not None:
                on_poll(check)
            if check.faulted:
                raise JobFaultedError(job_id=job_id)
            if not check.is_possible:
                raise JobImpossibleError(job_id=job_id)
            if check.done:
                return await self.get_job(job_id)
            LOGGER.debug(
                "Job %s pending (queue position=%s, wait time=%ss)",
                job_id,
                check.queue_position,
                check.wait_time,
            )

    async def aclose(self) -> None:
        """Close the underlying HTTP client when this instance created it."""

        if self._owns_client:
            await self._client.aclose()

    def _build_client(
        self,
        settings: ClientSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=settings.base_url,
            timeout=settings.request_timeout,
            transport=transport,
            headers={
                "apikey": settings.api_key or ANONYMOUS_API_KEY,
                "Client-Agent": settings.client_agent,
                "Content-Type": "application/json",
            },
        )

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            sleep=self._sleep,
            reraise=True,
            stop=stop_never,
            wait=_wait_for_retry_hint,
            retry=retry_if_exception_type(RateLimitedError),
            before_sleep=before_sleep_log(LOGGER, logging.INFO),
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        payload: Mapping[str, Any] | None = None,
    ) -> httpx.Response:
        response: httpx.Response | None = None
        async for attempt in self._retrying():
            with attempt:
                response = await self._client.request(method, path, json=payload)
                if response.status_code == httpx.codes.TOO_MANY_REQUESTS:
                    raise RateLimitedError(
                        retry_after=parse_retry_after(
                            response.headers.get("retry-after"),
                            default=self._settings.default_retry_after,
                        ),
                    )
        assert response is not None
        return response

    def _expect(self, response: httpx.Response, status_code: int) -> dict[str, Any]:
        body = self._decode(response)
        if response.status_code != status_code:
            message = body.get("message") if isinstance(body.get("message"), str) else None
            raise ServiceRejectedError(
                message=message or response.text or response.reason_phrase or "Request rejected",
                status_code=response.status_code,
                details={k: v for k, v in body.items() if k != "message"},
            )
        return body

    @staticmethod
    def _decode(response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    def _log_prompt_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("Horde job payload (unserializable): %s", payload)
        else:
            LOGGER.debug("Horde job payload:\n%s", serialized)


__all__ = [
    "ANONYMOUS_API_KEY",
    "DEFAULT_BASE_URL",
    "ClientSettings",
    "HordeClient",
    "parse_retry_after",
]
