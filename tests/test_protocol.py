"""Tests for the envelope protocol and its JSON codec."""

from __future__ import annotations

import json

import pytest

from procmux.exceptions import MalformedEnvelopeError, UnknownEnvelopeTypeError
from procmux.models import DevServerStatus
from procmux.protocol import decode_inbound, decode_outbound, encode_envelope
from procmux.protocol.envelope import (
    ErrorEnvelope,
    ExitData,
    ExitEnvelope,
    OutputEnvelope,
    ServerStatusData,
    SessionIdData,
    SessionIdEnvelope,
    StatusEnvelope,
)
from procmux.protocol.inbound import (
    ClaudeCommandMessage,
    InputMessage,
    ResizeMessage,
    ServerStartMessage,
)


class TestEncodeEnvelope:
    """Tests for outbound encoding."""

    def test_unset_fields_are_omitted(self):
        """Only fields that were set appear on the wire."""
        wire = json.loads(encode_envelope(OutputEnvelope(data="hello")))

        assert wire == {"type": "output", "data": "hello"}

    def test_type_comes_first(self):
        """The type tag leads the object."""
        text = encode_envelope(ErrorEnvelope(error="boom", session_id="s1"))

        assert text.startswith('{"type":"error"')

    def test_wire_uses_camel_case_aliases(self):
        """sessionId and isNewSession use their wire names."""
        envelope = SessionIdEnvelope(session_id="abc", data=SessionIdData(is_new_session=True))

        wire = json.loads(encode_envelope(envelope))

        assert wire == {"type": "session-id", "sessionId": "abc", "data": {"isNewSession": True}}

    def test_explicit_null_exit_code_is_kept(self):
        """A signal-killed process reports exitCode null rather than omitting it."""
        envelope = ExitEnvelope(session_id="s1", exit_code=None, data=ExitData(signal=9))

        wire = json.loads(encode_envelope(envelope))

        assert "exitCode" in wire
        assert wire["exitCode"] is None
        assert wire["data"]["signal"] == 9

    def test_non_ascii_is_not_escaped(self):
        """Terminal output keeps its characters."""
        text = encode_envelope(OutputEnvelope(data="✻ ok"))

        assert "✻" in text


class TestDecodeInbound:
    """Tests for inbound decoding."""

    def test_decodes_input(self):
        """input messages carry raw keystrokes."""
        message = decode_inbound('{"type": "input", "data": "ls\\r"}')

        assert isinstance(message, InputMessage)
        assert message.data == "ls\r"

    def test_decodes_resize(self):
        message = decode_inbound('{"type": "resize", "cols": 120, "rows": 40}')

        assert isinstance(message, ResizeMessage)
        assert (message.cols, message.rows) == (120, 40)

    def test_decodes_claude_command_options(self):
        """Nested option aliases are accepted."""
        raw = json.dumps(
            {
                "type": "claude-command",
                "command": "hi",
                "options": {
                    "projectPath": "/srv/app",
                    "sessionId": "s1",
                    "resume": True,
                    "toolsSettings": {"allowedTools": ["Read"], "skipPermissions": False},
                },
            }
        )

        message = decode_inbound(raw)

        assert isinstance(message, ClaudeCommandMessage)
        assert message.options.project_path == "/srv/app"
        assert message.options.resume is True
        assert message.options.tools_settings.allowed_tools == ["Read"]

    def test_accepts_bytes(self):
        message = decode_inbound(b'{"type": "server:start", "projectPath": "/p", "script": "dev"}')

        assert isinstance(message, ServerStartMessage)
        assert message.script == "dev"

    def test_extra_keys_are_ignored(self):
        """Newer clients may send fields this server does not know."""
        message = decode_inbound('{"type": "input", "data": "x", "clientTs": 123}')

        assert isinstance(message, InputMessage)

    def test_unknown_type_raises(self):
        with pytest.raises(UnknownEnvelopeTypeError) as exc_info:
            decode_inbound('{"type": "launch-missiles"}')

        assert exc_info.value.envelope_type == "launch-missiles"

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "[1, 2, 3]",
            '{"data": "no type"}',
            '{"type": 7}',
        ],
    )
    def test_malformed_frames_raise(self, raw: str):
        with pytest.raises(MalformedEnvelopeError):
            decode_inbound(raw)

    def test_schema_mismatch_raises_malformed(self):
        """A known type with missing required fields is malformed."""
        with pytest.raises(MalformedEnvelopeError):
            decode_inbound('{"type": "resize", "cols": 80}')

    def test_out_of_range_resize_is_malformed(self):
        with pytest.raises(MalformedEnvelopeError):
            decode_inbound('{"type": "resize", "cols": 0, "rows": 24}')

    def test_error_keeps_truncated_raw_frame(self):
        """The offending frame is kept (truncated) for logging."""
        raw = '{"type": "input"' + "x" * 500

        with pytest.raises(MalformedEnvelopeError) as exc_info:
            decode_inbound(raw)

        assert exc_info.value.raw is not None
        assert len(exc_info.value.raw) == 200


class TestDecodeOutbound:
    """Tests for decoding server frames (client side)."""

    def test_decodes_devserver_status(self):
        frame = encode_envelope(
            StatusEnvelope(data=ServerStatusData(project_path="/p", status=DevServerStatus.RUNNING, url="http://x"))
        )

        envelope = decode_outbound(frame)

        assert isinstance(envelope, StatusEnvelope)
        assert isinstance(envelope.data, ServerStatusData)
        assert envelope.data.status is DevServerStatus.RUNNING

    def test_unknown_outbound_type_is_malformed(self):
        with pytest.raises(MalformedEnvelopeError):
            decode_outbound('{"type": "nope"}')
