"""Chat with a Horde-backed persona bot from the terminal."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any, AsyncIterator, Sequence, TextIO

from ..ai.client import HordeClient
from ..ai.orchestration import ChatOrchestrator
from ..ai.prompts import build_prompt
from ..services.settings import Settings, load_settings
from ..utils.logging import setup_logging

PROMPT_COMMAND = "/prompt"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Chat with a persona bot through the Horde text API.")
    parser.add_argument("--settings", type=Path, help="Optional JSON settings file.")
    parser.add_argument("--name", help="Name the bot speaks as.")
    parser.add_argument("--persona", help="Persona description placed at the top of the prompt.")
    parser.add_argument("--hello", help="Scripted greeting the bot opens with.")
    parser.add_argument("--api-key", dest="api_key", help="Horde API key (anonymous when omitted).")
    parser.add_argument(
        "--models",
        help="Comma-separated model allow-list.",
    )
    parser.add_argument(
        "--memory-minutes",
        dest="memory_time_limit_minutes",
        type=float,
        help="Forget messages older than this many minutes.",
    )
    parser.add_argument(
        "--memory-limit",
        dest="memory_space_limit",
        type=int,
        help="Remember at most this many messages.",
    )
    parser.add_argument(
        "--mention-only",
        dest="mention_only",
        action="store_const",
        const=True,
        help="Only reply to messages that mention the bot by name.",
    )
    parser.add_argument("--forget-command", dest="forget_command", help="Message text that clears memory.")
    parser.add_argument("--speaker", default="User", help="Name used for your messages.")
    parser.add_argument(
        "--show-prompt",
        action="store_true",
        help="Print the opening prompt and exit without contacting the service.",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level for the log file.")
    parser.add_argument("--no-log-file", action="store_true", help="Log to stderr instead of a file.")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.no_log_file:
        setup_logging(args.log_level, log_file=False, console=True)
    else:
        setup_logging(args.log_level, console=False)

    settings = load_settings(args.settings, overrides=cli_overrides(args))
    if args.show_prompt:
        print(
            build_prompt(
                settings.name,
                (),
                persona=settings.persona,
                hello=settings.hello,
            )
        )
        return 0

    try:
        asyncio.run(run_console(settings, speaker=args.speaker))
    except KeyboardInterrupt:  # pragma: no cover - interactive exit
        return 130
    return 0


def cli_overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {
        "name": args.name,
        "persona": args.persona,
        "hello": args.hello,
        "api_key": args.api_key,
        "memory_time_limit_minutes": args.memory_time_limit_minutes,
        "memory_space_limit": args.memory_space_limit,
        "mention_only": args.mention_only,
        "forget_command": args.forget_command,
    }
    if args.models:
        overrides["allowed_models"] = [item.strip() for item in args.models.split(",") if item.strip()]
    return {key: value for key, value in overrides.items() if value is not None}


async def run_console(
    settings: Settings,
    *,
    speaker: str = "User",
    lines: AsyncIterator[str] | None = None,
    out: TextIO | None = None,
    client: HordeClient | None = None,
) -> None:
    """Feed ``lines`` to an orchestrator and print its replies until input ends."""

    stream = out or sys.stdout
    job_client = client or HordeClient(settings.to_client_settings(), options=settings.to_job_options())
    orchestrator = ChatOrchestrator(settings.to_chatbot_config(), client=job_client)

    def _emit(text: str) -> None:
        print(text, file=stream, flush=True)

    def _on_replies(replies: Sequence[str]) -> None:
        for reply in replies:
            _emit(f"{orchestrator.name}: {reply}")

    orchestrator.on_start_generating = lambda: _emit(f"({orchestrator.name} is typing...)")
    orchestrator.on_generated_messages = _on_replies

    try:
        async for raw in lines if lines is not None else _stdin_lines():
            text = raw.strip()
            if not text:
                continue
            if settings.forget_command and text == settings.forget_command:
                orchestrator.clear_memory()
                _emit("(memory cleared)")
                continue
            if text == PROMPT_COMMAND:
                _emit(orchestrator.create_prompt())
                continue
            orchestrator.push_message(speaker, text)
        await orchestrator.join()
    finally:
        await orchestrator.aclose()
        await job_client.aclose()


async def _stdin_lines(source: TextIO | None = None) -> AsyncIterator[str]:
    stream = source or sys.stdin
    loop = asyncio.get_running_loop()
    while True:
        line = await loop.run_in_executor(None, stream.readline)
        if not line:
            return
        yield line


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
