"""Generation orchestrator tying memory, prompts and remote jobs together.

One orchestrator serves one conversation. Inbound messages are remembered
synchronously; generation runs as a background session that submits a job,
polls it to completion and reports replies through lifecycle callbacks.
Input arriving mid-generation cancels the active job and is coalesced into a
single continuation once that job's cancellation (or completion) is
acknowledged, so at most one remote job is ever active.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import re
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Sequence

import httpx

from ..client import ANONYMOUS_API_KEY, ClientSettings, HordeClient
from ..ai_types import JobOptions
from ..errors import GenerationFailedError, HordeError, JobCancelledError
from ..memory.buffers import ConversationMemory
from ..prompts import build_prompt
from .output_parser import PLACEHOLDER_REPLY, parse_reply
from .types import CancellationToken, ChatBotConfig, GenerationJob, GenerationPhase

LOGGER = logging.getLogger(__name__)

LifecycleCallback = Callable[[], "Awaitable[Any] | None"]
MessagesCallback = Callable[[Sequence[str]], "Awaitable[Any] | None"]
Clock = Callable[[], float]


def _now_ms() -> float:
    return time.time() * 1000.0


class _Outcome(Enum):
    DONE = "done"
    CANCELLED = "cancelled"


class ChatOrchestrator:
    """State machine driving generation for a single conversation.

    Callbacks:
        on_start_generating: Fired on the transition from idle to generating.
        on_stop_generating: Fired on the final transition back to idle.
        on_generated_messages: Receives the reply list of every finished or
            failed cycle.
    """

    def __init__(
        self,
        config: ChatBotConfig,
        *,
        client: HordeClient | None = None,
        memory: ConversationMemory | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._config = config
        self._owns_client = client is None
        self._client = client or HordeClient(
            ClientSettings(api_key=config.api_key or ANONYMOUS_API_KEY),
            options=JobOptions(models=list(config.allowed_models)),
        )
        self._memory = memory if memory is not None else ConversationMemory()
        self._clock = clock or _now_ms
        self._mention_pattern = re.compile(
            rf"(?<!\w){re.escape(config.name)}(?!\w)", re.IGNORECASE
        )

        self._phase = GenerationPhase.IDLE
        self._continuation_requested = False
        self._token: CancellationToken | None = None
        self._active_job: GenerationJob | None = None
        self._task: asyncio.Task[None] | None = None
        self._session = 0
        self._callback_tasks: set[asyncio.Future[Any]] = set()

        self.on_start_generating: LifecycleCallback | None = None
        self.on_stop_generating: LifecycleCallback | None = None
        self.on_generated_messages: MessagesCallback | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def name(self) -> str:
        return self._config.name

    @property
    def config(self) -> ChatBotConfig:
        return self._config

    @property
    def memory(self) -> ConversationMemory:
        return self._memory

    @property
    def phase(self) -> GenerationPhase:
        return self._phase

    @property
    def is_generating(self) -> bool:
        return self._phase is GenerationPhase.GENERATING

    @property
    def cancelling(self) -> bool:
        return self.is_generating and self._token is not None and self._token.cancelled

    @property
    def continuation_requested(self) -> bool:
        return self.is_generating and self._continuation_requested

    @property
    def active_job(self) -> GenerationJob | None:
        return self._active_job

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def push_message(
        self,
        speaker: str,
        text: str,
        timestamp: float | None = None,
        *,
        force: bool = False,
    ) -> None:
        """Remember a message and decide whether to start, cancel or coalesce.

        Must be called from a running event loop. Never raises generation
        errors; those surface as a placeholder reply.
        """

        self._memory.append(speaker, text, self._clock() if timestamp is None else timestamp)
        if not force and not self.wants_reply(text):
            LOGGER.debug("Remembered message from %s without a mention", speaker)
            return

        if self._phase is GenerationPhase.IDLE:
            self._start_session()
            return

        self._continuation_requested = True
        if not self.cancelling:
            LOGGER.debug(
                "New input while generating; cancelling job %s",
                self._active_job.id if self._active_job else "(pending)",
            )
            assert self._token is not None
            self._token.cancel()

    def wants_reply(self, text: str) -> bool:
        """Return whether ``text`` should trigger generation."""

        if not self._config.mention_only:
            return True
        return self._mention_pattern.search(text) is not None

    def cancel(self) -> None:
        """Cancel the active job without continuing; the cycle ends with a placeholder."""

        if not self.is_generating or self._token is None:
            return
        self._continuation_requested = False
        self._token.cancel()

    def clear_memory(self) -> None:
        """Forget the conversation and force the orchestrator back to idle."""

        self._continuation_requested = False
        self._memory.clear()
        if self._phase is GenerationPhase.GENERATING:
            LOGGER.debug("Memory cleared mid-generation; abandoning session %d", self._session)
            self._session += 1
            if self._token is not None:
                self._token.cancel()
            self._finish()

    def create_prompt(self) -> str:
        """Evict stale memory and render the next generation prompt."""

        self._memory.evict(
            self._clock(),
            self._config.memory_time_limit_ms,
            self._config.memory_space_limit,
        )
        return build_prompt(
            self.name,
            self._memory.snapshot(),
            persona=self._config.persona,
            hello=self._config.hello,
        )

    async def join(self) -> None:
        """Wait until the current generation session and its callbacks settle."""

        while self._task is not None and not self._task.done():
            await asyncio.wait({self._task})
        if self._callback_tasks:
            await asyncio.wait(set(self._callback_tasks))

    async def aclose(self) -> None:
        """Abandon any session silently and release the job client."""

        self._session += 1
        self._continuation_requested = False
        if self._token is not None:
            self._token.cancel()
        job = self._active_job
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if job is not None and job.is_active:
            job.mark_cancelled()
            await self._cancel_remote(job.id)
        self._phase = GenerationPhase.IDLE
        self._token = None
        self._active_job = None
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Session loop
    # ------------------------------------------------------------------
    def _start_session(self) -> None:
        loop = asyncio.get_running_loop()
        self._session += 1
        self._phase = GenerationPhase.GENERATING
        self._continuation_requested = False
        self._token = CancellationToken()
        previous = self._task
        self._task = loop.create_task(self._run_session(self._session, self._token, previous))
        LOGGER.debug("Started generation session %d", self._session)
        self._fire(self.on_start_generating)

    async def _run_session(
        self,
        session: int,
        token: CancellationToken,
        previous: asyncio.Task[None] | None,
    ) -> None:
        if previous is not None and not previous.done():
            # A prior job may still be acknowledging its cancellation.
            await asyncio.wait({previous})

        while session == self._session:
            try:
                outcome, replies = await self._generate_once(token)
            except GenerationFailedError as exc:
                LOGGER.warning("Generation failed: %s", exc)
                self._fail(session)
                return
            except Exception:
                LOGGER.exception("Unexpected error during generation")
                self._fail(session)
                return

            if session != self._session:
                return
            if outcome is _Outcome.DONE:
                self._deliver(replies)
                if session != self._session:
                    return

            if self._continuation_requested:
                self._continuation_requested = False
                token = CancellationToken()
                self._token = token
                LOGGER.debug("Continuing session %d with refreshed memory", session)
                continue

            if outcome is _Outcome.CANCELLED:
                self._deliver([PLACEHOLDER_REPLY])
                if session != self._session:
                    return
            self._finish()
            return

    async def _generate_once(self, token: CancellationToken) -> tuple[_Outcome, list[str]]:
        if token.cancelled:
            # Superseded before submission; nothing remote to cancel.
            return _Outcome.CANCELLED, []
        prompt = self.create_prompt()
        try:
            job_id = await self._client.create_job(prompt)
        except (HordeError, httpx.HTTPError) as exc:
            raise GenerationFailedError(message=str(exc)) from exc

        job = GenerationJob(id=job_id, prompt=prompt)
        self._active_job = job
        try:
            status = await self._client.wait_for_job(
                job_id,
                cancel_token=token,
                on_poll=lambda check: job.mark_polling(check.queue_position),
            )
        except JobCancelledError:
            job.mark_cancelled()
            await self._cancel_remote(job_id)
            return _Outcome.CANCELLED, []
        except (HordeError, httpx.HTTPError) as exc:
            job.mark_faulted(str(exc))
            raise GenerationFailedError(message=str(exc), details={"job_id": job_id}) from exc
        finally:
            if self._active_job is job:
                self._active_job = None

        job.mark_done()
        return _Outcome.DONE, parse_reply(status.text, self.name)

    async def _cancel_remote(self, job_id: str) -> None:
        try:
            await self._client.cancel_job(job_id)
        except (HordeError, httpx.HTTPError) as exc:
            LOGGER.debug("Remote cancel of job %s failed: %s", job_id, exc)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def _deliver(self, replies: Sequence[str]) -> None:
        for reply in replies:
            self._memory.append(self.name, reply, self._clock())
        self._fire(self.on_generated_messages, list(replies))

    def _fail(self, session: int) -> None:
        if session != self._session:
            return
        self._continuation_requested = False
        self._deliver([PLACEHOLDER_REPLY])
        if session == self._session:
            self._finish()

    def _finish(self) -> None:
        self._phase = GenerationPhase.IDLE
        self._token = None
        self._continuation_requested = False
        LOGGER.debug("Generation stopped")
        self._fire(self.on_stop_generating)

    def _fire(self, callback: Callable[..., Any] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            result = callback(*args)
        except Exception:
            LOGGER.warning("Lifecycle callback %r failed", callback, exc_info=True)
            return
        if inspect.isawaitable(result):
            future = asyncio.ensure_future(result)
            self._callback_tasks.add(future)
            future.add_done_callback(self._on_callback_done)

    def _on_callback_done(self, future: asyncio.Future[Any]) -> None:
        self._callback_tasks.discard(future)
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            LOGGER.warning("Lifecycle callback failed: %s", error, exc_info=error)


__all__ = ["ChatOrchestrator"]
