"""Prompt template for persona-style chat generation.

Renders the bot's persona, an optional scripted greeting and the remembered
conversation into the plain-text format expected by KoboldAI chat models::

    Bot's Persona: <persona>
    <START>
    User: Hello Bot!
    Bot: <hello>
    User: hi there
    Bot:
"""

from __future__ import annotations

from typing import Iterable

from .memory.buffers import MemoryEntry

START_DELIMITER = "<START>"
DEFAULT_HELLO_SPEAKER = "User"


def first_other_speaker(name: str, entries: Iterable[MemoryEntry]) -> str:
    """Return the first remembered speaker who is not ``name``."""

    for entry in entries:
        if entry.speaker != name:
            return entry.speaker
    return DEFAULT_HELLO_SPEAKER


def build_prompt(
    name: str,
    entries: Iterable[MemoryEntry],
    *,
    persona: str | None = None,
    hello: str | None = None,
) -> str:
    """Render the generation prompt; pure and deterministic."""

    history = tuple(entries)
    lines: list[str] = []
    if persona:
        lines.append(f"{name}'s Persona: {persona}")
    lines.append(START_DELIMITER)
    if hello:
        lines.append(f"{first_other_speaker(name, history)}: Hello {name}!")
        lines.append(f"{name}: {hello}")
    lines.extend(f"{entry.speaker}: {entry.text}" for entry in history)
    lines.append(f"{name}:")
    return "\n".join(lines)


__all__ = ["build_prompt", "first_other_speaker", "START_DELIMITER", "DEFAULT_HELLO_SPEAKER"]
