"""Shared test helpers and stub classes.

Import from here instead of duplicating these classes in individual test files.
"""

from __future__ import annotations

import asyncio
from typing import Callable

from hordechat.ai.ai_types import Generation, JobCheck, JobOptions, JobStatus
from hordechat.ai.errors import HordeError, JobCancelledError
from hordechat.ai.orchestration.types import CancellationToken

START_MS = 1_700_000_000_000.0


class FakeClock:
    """Manually advanced wall clock returning milliseconds."""

    def __init__(self, start: float = START_MS) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds * 1000.0
        return self.now


class FakeJobClient:
    """In-memory stand-in for :class:`HordeClient` driven by the test.

    Jobs stay pending until :meth:`finish` or :meth:`fail` is called. Setting
    ``cancel_gate`` holds remote cancellation until the event is set.

    Example:
        from typing import cast
        from hordechat.ai.client import HordeClient

        client = cast(HordeClient, FakeJobClient())
    """

    def __init__(self) -> None:
        self.prompts: list[str] = []
        self.cancelled: list[str] = []
        self.closed = False
        self.cancel_gate: asyncio.Event | None = None
        self.reject_next: HordeError | None = None
        self._results: dict[str, asyncio.Future[JobStatus]] = {}

    async def create_job(self, prompt: str, options: JobOptions | None = None) -> str:
        if self.reject_next is not None:
            error, self.reject_next = self.reject_next, None
            raise error
        self.prompts.append(prompt)
        job_id = f"job-{len(self.prompts)}"
        self._results[job_id] = asyncio.get_running_loop().create_future()
        return job_id

    def finish(self, job_id: str, text: str) -> None:
        self._results[job_id].set_result(
            JobStatus(finished=1, done=True, generations=[Generation(text=text)])
        )

    def fail(self, job_id: str, error: Exception) -> None:
        self._results[job_id].set_exception(error)

    async def wait_for_job(
        self,
        job_id: str,
        *,
        cancel_token: CancellationToken | None = None,
        on_poll: Callable[[JobCheck], None] | None = None,
    ) -> JobStatus:
        result = self._results[job_id]
        if on_poll is not None:
            on_poll(JobCheck(queue_position=1))
        if cancel_token is None:
            return await result
        if not result.done():
            waiter = asyncio.ensure_future(cancel_token.wait())
            try:
                await asyncio.wait({result, waiter}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                waiter.cancel()
        if result.done():
            return result.result()
        raise JobCancelledError(job_id=job_id)

    async def cancel_job(self, job_id: str) -> JobStatus:
        self.cancelled.append(job_id)
        if self.cancel_gate is not None:
            await self.cancel_gate.wait()
        return JobStatus()

    async def aclose(self) -> None:
        self.closed = True


async def wait_until(predicate: Callable[[], object], *, timeout: float = 1.0) -> None:
    """Yield to the event loop until ``predicate`` holds."""

    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0)

    await asyncio.wait_for(_poll(), timeout)


async def settle(rounds: int = 10) -> None:
    """Give background tasks a few loop iterations to run."""

    for _ in range(rounds):
        await asyncio.sleep(0)
