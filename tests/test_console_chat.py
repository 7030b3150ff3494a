"""Tests for the terminal chat script."""

from __future__ import annotations

import io
from pathlib import Path
from typing import AsyncIterator, cast

import pytest

from hordechat.ai.client import HordeClient
from hordechat.scripts import console_chat
from hordechat.services.settings import Settings
from tests.helpers import FakeJobClient, wait_until


@pytest.mark.asyncio
async def test_run_console_prints_replies_and_handles_commands() -> None:
    fake_client = FakeJobClient()
    out = io.StringIO()

    async def _lines() -> AsyncIterator[str]:
        yield "hello Bot\n"
        await wait_until(lambda: fake_client.prompts)
        fake_client.finish("job-1", "Hi there\nBot: Nice to meet you")
        await wait_until(lambda: "Nice to meet you" in out.getvalue())
        yield "   \n"
        yield "/prompt\n"
        yield "/forget\n"
        yield "/prompt\n"

    await console_chat.run_console(
        Settings(name="Bot", forget_command="/forget"),
        lines=_lines(),
        out=out,
        client=cast(HordeClient, fake_client),
    )

    assert out.getvalue().splitlines() == [
        "(Bot is typing...)",
        "Bot: Hi there",
        "Bot: Nice to meet you",
        "<START>",
        "User: hello Bot",
        "Bot: Hi there",
        "Bot: Nice to meet you",
        "Bot:",
        "(memory cleared)",
        "<START>",
        "Bot:",
    ]
    assert fake_client.closed


@pytest.mark.asyncio
async def test_stdin_lines_reads_until_eof() -> None:
    collected = [line async for line in console_chat._stdin_lines(io.StringIO("one\ntwo\n"))]

    assert collected == ["one\n", "two\n"]


def test_show_prompt_prints_opening_prompt(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.delenv("CHATBOT_PERSONA", raising=False)
    monkeypatch.setattr(console_chat, "setup_logging", lambda *args, **kwargs: None)
    exit_code = console_chat.main(
        [
            "--settings",
            str(tmp_path / "missing.json"),
            "--name",
            "Ada",
            "--persona",
            "A patient tester.",
            "--hello",
            "Hi!",
            "--show-prompt",
            "--no-log-file",
        ]
    )

    assert exit_code == 0
    assert capsys.readouterr().out.splitlines() == [
        "Ada's Persona: A patient tester.",
        "<START>",
        "User: Hello Ada!",
        "Ada: Hi!",
        "Ada:",
    ]


def test_cli_overrides_only_include_given_flags() -> None:
    args = console_chat.build_parser().parse_args(
        ["--models", "tiny, small,,", "--memory-limit", "5", "--mention-only"]
    )

    assert console_chat.cli_overrides(args) == {
        "allowed_models": ["tiny", "small"],
        "memory_space_limit": 5,
        "mention_only": True,
    }
