"""Tests for assistant output parsing, CLI arguments and line buffering."""

from __future__ import annotations

import pytest

from procmux.assistant.args import build_assistant_args, format_command_for_logging
from procmux.assistant.parser import (
    classify_record,
    is_interactive_prompt,
    is_status_text,
    parse_line,
    parse_status_text,
)
from procmux.protocol.inbound import ToolsSettings
from procmux.utils.text import LineBuffer, strip_ansi


class TestParseLine:
    """Tests for parse_line."""

    def test_blank_line_is_skipped(self):
        assert parse_line("   ") is None

    def test_json_object_is_a_record(self):
        parsed = parse_line('{"type": "result", "result": "ok"}\n')

        assert parsed is not None
        assert parsed.kind == "record"
        assert parsed.record == {"type": "result", "result": "ok"}

    def test_plain_text(self):
        parsed = parse_line("Compiling...")

        assert parsed is not None
        assert parsed.kind == "text"
        assert parsed.text == "Compiling..."

    def test_broken_json_is_malformed(self):
        parsed = parse_line('{"type": "assis')

        assert parsed is not None
        assert parsed.kind == "malformed"

    def test_json_array_is_malformed(self):
        """Only objects are records."""
        parsed = parse_line("[1, 2]")

        assert parsed is not None
        assert parsed.kind == "malformed"


class TestClassifyRecord:
    """Tests for classify_record."""

    def test_assistant_text(self):
        record = {"type": "assistant", "message": {"content": [{"type": "text", "text": "hi"}]}}

        assert classify_record(record) == "assistant"

    def test_assistant_with_tool_use(self):
        record = {
            "type": "assistant",
            "message": {"content": [{"type": "text", "text": "reading"}, {"type": "tool_use", "name": "Read"}]},
        }

        assert classify_record(record) == "tool-use"

    def test_result(self):
        assert classify_record({"type": "result"}) == "result"

    @pytest.mark.parametrize(
        "record",
        [{"type": "status"}, {"type": "progress"}, {"type": "system", "subtype": "status"}],
    )
    def test_status_records(self, record: dict):
        assert classify_record(record) == "status"

    def test_everything_else_is_response(self):
        assert classify_record({"type": "system", "subtype": "init"}) == "response"
        assert classify_record({"type": "user"}) == "response"


class TestStatusText:
    """Tests for spinner/status line handling."""

    def test_detects_spinner_line(self):
        assert is_status_text("✻ Thinking… (esc to interrupt)")

    def test_plain_output_is_not_status(self):
        assert not is_status_text("Hello there")

    def test_extracts_action_and_tokens(self):
        action, tokens = parse_status_text("\x1b[2m✻ Pondering… (⚒ 1024 tokens · esc to interrupt)\x1b[0m")

        assert action == "Pondering"
        assert tokens == 1024

    def test_defaults_when_unparseable(self):
        assert parse_status_text("esc to interrupt") == ("Working", None)


class TestInteractivePrompt:
    """Tests for is_interactive_prompt."""

    @pytest.mark.parametrize(
        "text",
        [
            "Do you want to create a.txt",
            "Continue?",
            "❯",
            "Select:\n 1. Yes\n 2. No",
        ],
    )
    def test_prompts(self, text: str):
        assert is_interactive_prompt(text)

    def test_ordinary_partial_output_is_not_a_prompt(self):
        assert not is_interactive_prompt("Downloading packages")

    def test_empty_is_not_a_prompt(self):
        assert not is_interactive_prompt("\x1b[0m  ")


class TestBuildAssistantArgs:
    """Tests for build_assistant_args."""

    def test_fresh_session(self):
        args = build_assistant_args("hello", session_id="s1", resume=False, model="sonnet")

        assert args == [
            "--print",
            "hello",
            "--session-id",
            "s1",
            "--output-format",
            "stream-json",
            "--verbose",
            "--model",
            "sonnet",
        ]

    def test_resume_omits_model(self):
        """Resumed sessions keep the model they were started with."""
        args = build_assistant_args("again", session_id="s1", resume=True, model="sonnet")

        assert args[args.index("--resume") + 1] == "s1"
        assert "--model" not in args
        assert "--session-id" not in args

    def test_blank_prompt_omits_print(self):
        args = build_assistant_args("   ", session_id="s1", resume=False, model="sonnet")

        assert "--print" not in args

    def test_tool_flags_are_passed_through(self):
        tools = ToolsSettings(allowed_tools=["Read", "Bash(git log:*)"], disallowed_tools=["Write"])

        args = build_assistant_args("x", session_id="s1", resume=False, model="m", tools=tools)

        assert args.count("--allowedTools") == 2
        assert "Bash(git log:*)" in args
        assert args[args.index("--disallowedTools") + 1] == "Write"

    def test_skip_permissions_overrides_tool_lists(self):
        tools = ToolsSettings(allowed_tools=["Read"], skip_permissions=True)

        args = build_assistant_args("x", session_id="s1", resume=False, model="m", tools=tools)

        assert "--dangerously-skip-permissions" in args
        assert "--allowedTools" not in args

    def test_format_command_quotes_spaces(self):
        assert format_command_for_logging(["claude", "--print", "two words"]) == 'claude --print "two words"'


class TestLineBuffer:
    """Tests for LineBuffer."""

    def test_holds_partial_lines(self):
        buffer = LineBuffer()

        assert buffer.feed(b"hel") == []
        assert buffer.feed(b"lo\nwor") == ["hello"]
        assert buffer.pending == "wor"
        assert buffer.remainder() == "wor"

    def test_strips_carriage_returns(self):
        buffer = LineBuffer()

        assert buffer.feed(b"a\r\nb\r\n") == ["a", "b"]

    def test_multibyte_character_split_across_chunks(self):
        """A UTF-8 sequence cut between reads is reassembled."""
        encoded = "✻ done\n".encode()
        buffer = LineBuffer()

        first = buffer.feed(encoded[:1])
        second = buffer.feed(encoded[1:])

        assert first == []
        assert second == ["✻ done"]

    def test_strip_ansi(self):
        assert strip_ansi("\x1b[1;32mgreen\x1b[0m") == "green"
