"""Shared fixtures for procmux tests.

Real child processes are used throughout: ``sys.executable`` stands in for
the assistant CLI and for the dev-server runner, and /bin/sh for shells.
"""

from __future__ import annotations

import asyncio
import json
import stat
import sys
from collections.abc import AsyncIterator, Awaitable, Callable
from pathlib import Path
from typing import Any

import pytest

from procmux.config import SupervisorConfig
from procmux.connection import Connection, ConnectionContext
from procmux.exceptions import ConnectionClosedError
from procmux.protocol.envelope import Envelope
from procmux.supervisor import ProcessSupervisor

WaitUntil = Callable[..., Awaitable[None]]


# =============================================================================
# Fakes
# =============================================================================


class FakeTransport:
    """In-memory duplex transport.

    Frames pushed with push() are returned by receive_text(); disconnect()
    makes the next receive raise ConnectionClosedError. Sent frames are
    decoded into ``sent``.
    """

    def __init__(self) -> None:
        self.inbound: asyncio.Queue[str | None] = asyncio.Queue()
        self.sent: list[dict[str, Any]] = []
        self.accepted = False
        self.closed = False
        self.close_code: int | None = None

    async def accept(self) -> None:
        self.accepted = True

    async def receive_text(self) -> str:
        item = await self.inbound.get()
        if item is None:
            raise ConnectionClosedError(1000)
        return item

    async def send_text(self, text: str) -> None:
        if self.closed:
            raise ConnectionClosedError()
        self.sent.append(json.loads(text))

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed = True
        self.close_code = code

    def push(self, message: dict[str, Any] | str) -> None:
        self.inbound.put_nowait(message if isinstance(message, str) else json.dumps(message))

    def disconnect(self) -> None:
        self.inbound.put_nowait(None)

    def of_type(self, envelope_type: str) -> list[dict[str, Any]]:
        return [m for m in self.sent if m["type"] == envelope_type]

    def output_text(self) -> str:
        return "".join(m["data"] for m in self.of_type("output"))


class Recorder:
    """Envelope sink that keeps wire dicts."""

    def __init__(self) -> None:
        self.envelopes: list[dict[str, Any]] = []

    async def __call__(self, envelope: Envelope) -> None:
        self.envelopes.append(envelope.to_wire())

    def types(self) -> list[str]:
        return [e["type"] for e in self.envelopes]

    def of_type(self, envelope_type: str) -> list[dict[str, Any]]:
        return [e for e in self.envelopes if e["type"] == envelope_type]


class RecordingSubscriber:
    """Broadcast subscriber that accepts everything."""

    def __init__(self, subscriber_id: str = "sub-1", accept: bool = True) -> None:
        self.id = subscriber_id
        self.accept = accept
        self.envelopes: list[dict[str, Any]] = []

    def offer(self, envelope: Envelope) -> bool:
        if not self.accept:
            return False
        self.envelopes.append(envelope.to_wire())
        return True

    def statuses(self) -> list[str]:
        return [e["data"]["status"] for e in self.envelopes if e["type"] == "status"]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def subscriber() -> RecordingSubscriber:
    return RecordingSubscriber()


@pytest.fixture
def fake_transport_factory() -> type[FakeTransport]:
    return FakeTransport


@pytest.fixture
def subscriber_factory() -> type[RecordingSubscriber]:
    return RecordingSubscriber


@pytest.fixture
async def connection(transport: FakeTransport) -> AsyncIterator[Connection]:
    """Started connection over a fake transport."""
    conn = Connection(transport, ConnectionContext.new("/test"))
    conn.start()
    yield conn
    await conn.close()


@pytest.fixture
async def supervisor() -> AsyncIterator[ProcessSupervisor]:
    """Supervisor with a short grace period; reaps leftovers after the test."""
    sup = ProcessSupervisor(SupervisorConfig(grace_period_seconds=0.5))
    yield sup
    await sup.shutdown()


@pytest.fixture
def wait_until() -> WaitUntil:
    """Poll a predicate until it holds, failing the test after a timeout."""

    async def _wait(predicate: Callable[[], bool], timeout: float = 5.0, message: str = "") -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                pytest.fail(f"Timed out waiting for condition {message}".strip())
            await asyncio.sleep(0.02)

    return _wait


def _write_executable(path: Path, body: str) -> Path:
    path.write_text(f"#!{sys.executable}\n{body}", encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


FAKE_ASSISTANT = '''
import json
import sys
import time

args = sys.argv[1:]


def option(name):
    return args[args.index(name) + 1] if name in args else None


prompt = option("--print") or ""
session_id = option("--resume") or option("--session-id")


def emit(record):
    print(json.dumps(record), flush=True)


if prompt == "malformed":
    print("{not json", flush=True)
    print("{still not json", flush=True)
    sys.exit(1)

if prompt == "rekey":
    session_id = "rekeyed-session"

emit({"type": "system", "subtype": "init", "session_id": session_id, "argv": args})

if prompt == "sleep":
    time.sleep(30)
    sys.exit(0)

if prompt == "stderr":
    print("warning: cache is stale", file=sys.stderr, flush=True)

if prompt == "status":
    print("\\u273b Thinking\\u2026 (\\u2692 412 tokens \\u00b7 esc to interrupt)", flush=True)

if prompt == "ask":
    sys.stdout.write("Do you want to proceed?")
    sys.stdout.flush()
    time.sleep(0.3)
    sys.exit(0)

if prompt == "tool":
    emit({
        "type": "assistant",
        "session_id": session_id,
        "message": {"content": [{"type": "tool_use", "name": "Read", "input": {"path": "a.txt"}}]},
    })
else:
    emit({
        "type": "assistant",
        "session_id": session_id,
        "message": {"content": [{"type": "text", "text": "echo: " + prompt}]},
    })

emit({"type": "result", "subtype": "success", "session_id": session_id, "result": "done"})
'''


FAKE_RUNNER = '''
import sys
import time

script = sys.argv[1]

if script == "dev":
    print("\\x1b[32m  VITE ready\\x1b[0m", flush=True)
    print("  \\x1b[1mLocal:\\x1b[0m   http://localhost:4000/", flush=True)
    time.sleep(30)
elif script == "quiet":
    print("compiling...", flush=True)
    time.sleep(30)
elif script == "crash":
    print("fatal: port in use", file=sys.stderr, flush=True)
    sys.exit(1)
'''


@pytest.fixture
def fake_assistant(tmp_path: Path) -> Path:
    """Executable that speaks the assistant CLI's stream-json output.

    The prompt selects the behaviour: "sleep", "malformed", "rekey",
    "stderr", "status", "ask", "tool"; anything else answers normally.
    """
    return _write_executable(tmp_path / "fake-assistant", FAKE_ASSISTANT)


@pytest.fixture
def fake_runner(tmp_path: Path) -> list[str]:
    """Dev-server runner prefix; the script name selects the behaviour."""
    runner = tmp_path / "fake_runner.py"
    runner.write_text(FAKE_RUNNER, encoding="utf-8")
    return [sys.executable, str(runner)]


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """Project directory with a package.json listing the fake runner's scripts."""
    project = tmp_path / "app"
    project.mkdir()
    manifest = {"name": "app", "scripts": {"dev": "vite", "quiet": "tsc -w", "crash": "node crash.js"}}
    (project / "package.json").write_text(json.dumps(manifest), encoding="utf-8")
    return project
