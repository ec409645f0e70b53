"""Assistant CLI argument construction."""

from __future__ import annotations

__all__ = ["build_assistant_args", "format_command_for_logging"]

from procmux.protocol.inbound import ToolsSettings


def build_assistant_args(
    prompt: str | None,
    *,
    session_id: str,
    resume: bool,
    model: str,
    tools: ToolsSettings | None = None,
) -> list[str]:
    """Build the CLI arguments for one run.

    Args:
        prompt: User prompt; blank prompts start the CLI without --print.
        session_id: Identity to resume, or the fresh identity to assign.
        resume: Resume ``session_id`` instead of starting a new session.
        model: Model for fresh sessions (resumed sessions keep theirs).
        tools: Permission flags, passed through uninterpreted.
    """
    args: list[str] = []

    if prompt and prompt.strip():
        args += ["--print", prompt]

    if resume:
        args += ["--resume", session_id]
    else:
        args += ["--session-id", session_id]

    args += ["--output-format", "stream-json", "--verbose"]

    if not resume:
        args += ["--model", model]

    if tools is not None:
        if tools.skip_permissions:
            args.append("--dangerously-skip-permissions")
        else:
            for tool in tools.allowed_tools:
                args += ["--allowedTools", tool]
            for tool in tools.disallowed_tools:
                args += ["--disallowedTools", tool]

    return args


def format_command_for_logging(command: list[str]) -> str:
    """Render argv on one line, quoting arguments that contain spaces."""
    parts = []
    for arg in command:
        clean = arg.replace("\n", "\\n").replace("\r", "\\r")
        parts.append(f'"{clean}"' if " " in clean else clean)
    return " ".join(parts)
