"""Rolling conversation memory used to build generation prompts."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Mapping

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MemoryEntry:
    """Single conversation turn stored inside :class:`ConversationMemory`."""

    speaker: str
    text: str
    timestamp: float

    def to_dict(self) -> dict[str, Any]:
        return {"speaker": self.speaker, "text": self.text, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> MemoryEntry:
        return cls(
            speaker=str(payload.get("speaker", "")),
            text=str(payload.get("text", "")),
            timestamp=float(payload.get("timestamp", 0.0)),
        )


class ConversationMemory:
    """Insertion-ordered, time- and size-bounded log of conversation turns.

    Timestamps are wall-clock milliseconds and never decrease along the log.
    """

    def __init__(
        self,
        initial_entries: Iterable[MemoryEntry | Mapping[str, Any]] | None = None,
    ) -> None:
        self._entries: list[MemoryEntry] = []
        if initial_entries:
            for entry in initial_entries:
                if not isinstance(entry, MemoryEntry):
                    entry = MemoryEntry.from_dict(entry)
                self.append(entry.speaker, entry.text, entry.timestamp)

    def append(self, speaker: str, text: str, timestamp: float) -> MemoryEntry:
        last = self.last_timestamp
        if last is not None and timestamp < last:
            LOGGER.debug("Clamping out-of-order timestamp %s to %s", timestamp, last)
            timestamp = last
        entry = MemoryEntry(speaker=speaker, text=text, timestamp=float(timestamp))
        self._entries.append(entry)
        return entry

    def evict(
        self,
        now: float,
        time_limit: float | None,
        space_limit: int | None,
    ) -> int:
        """Drop expired entries, then keep only the ``space_limit`` newest.

        ``time_limit`` is in milliseconds. ``None`` disables either bound.
        Returns the number of entries removed.
        """

        before = len(self._entries)
        entries = self._entries
        if time_limit is not None:
            cutoff = now - time_limit
            entries = [entry for entry in entries if entry.timestamp >= cutoff]
        if space_limit is not None:
            keep = max(0, int(space_limit))
            entries = entries[-keep:] if keep else []
        self._entries = entries
        removed = before - len(entries)
        if removed:
            LOGGER.debug("Evicted %d memory entr%s", removed, "y" if removed == 1 else "ies")
        return removed

    def clear(self) -> None:
        self._entries.clear()

    def snapshot(self) -> tuple[MemoryEntry, ...]:
        return tuple(self._entries)

    @property
    def last_timestamp(self) -> float | None:
        return self._entries[-1].timestamp if self._entries else None

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[MemoryEntry]:
        return iter(tuple(self._entries))


__all__ = ["MemoryEntry", "ConversationMemory"]
