"""State models shared by the generation orchestrator."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Sequence


@dataclass(slots=True)
class ChatBotConfig:
    """Init-time configuration supplied by the collaborator layer."""

    name: str
    persona: str | None = None
    hello: str | None = None
    api_key: str | None = None
    memory_time_limit_minutes: float | None = 10.0
    memory_space_limit: int | None = None
    allowed_models: Sequence[str] = ()
    mention_only: bool = False

    @property
    def memory_time_limit_ms(self) -> float | None:
        if self.memory_time_limit_minutes is None:
            return None
        return float(self.memory_time_limit_minutes) * 60_000.0


class GenerationPhase(str, Enum):
    """Top-level orchestrator phase."""

    IDLE = "idle"
    GENERATING = "generating"


class JobState(str, Enum):
    """Lifecycle of a single remote generation job."""

    SUBMITTED = "submitted"
    POLLING = "polling"
    DONE = "done"
    FAULTED = "faulted"
    CANCELLED = "cancelled"


_ACTIVE_JOB_STATES = frozenset({JobState.SUBMITTED, JobState.POLLING})


@dataclass(slots=True)
class GenerationJob:
    """Remote job owned by the orchestrator for its lifetime."""

    id: str
    prompt: str
    state: JobState = JobState.SUBMITTED
    queue_position: int | None = None
    error: str | None = None

    @property
    def is_active(self) -> bool:
        return self.state in _ACTIVE_JOB_STATES

    def mark_polling(self, queue_position: int | None = None) -> None:
        if self.is_active:
            self.state = JobState.POLLING
            self.queue_position = queue_position

    def mark_done(self) -> None:
        self.state = JobState.DONE

    def mark_faulted(self, error: str | None = None) -> None:
        self.state = JobState.FAULTED
        self.error = error

    def mark_cancelled(self) -> None:
        self.state = JobState.CANCELLED


@dataclass(eq=False, slots=True)
class CancellationToken:
    """One-shot cancellation signal handed to a single job's poll loop."""

    _event: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self, timeout: float | None = None) -> bool:
        """Wait up to ``timeout`` seconds; return whether the token fired."""

        if self._event.is_set():
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True


__all__ = [
    "ChatBotConfig",
    "GenerationPhase",
    "JobState",
    "GenerationJob",
    "CancellationToken",
]
