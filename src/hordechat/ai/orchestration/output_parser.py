"""Extract the bot's reply lines from raw generated text."""

from __future__ import annotations

PLACEHOLDER_REPLY = "..."


def parse_reply(text: str, name: str) -> list[str]:
    """Return the ordered reply lines spoken by ``name``.

    The first line is always the reply. Following lines are kept, minus the
    ``"<name>: "`` prefix, only while they carry that prefix; the first line
    without it is where the model started impersonating someone else, and
    nothing after it is examined.
    """

    body = (text or "").strip()
    if not body:
        return [PLACEHOLDER_REPLY]

    lines = [line.strip() for line in body.split("\n")]

    replies = [lines[0] or PLACEHOLDER_REPLY]
    prefix = f"{name}: "
    for line in lines[1:]:
        if not line.startswith(prefix):
            break
        replies.append(line[len(prefix):].strip())
    return replies


__all__ = ["parse_reply", "PLACEHOLDER_REPLY"]
