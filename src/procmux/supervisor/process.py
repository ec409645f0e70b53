"""Managed child processes.

A ManagedProcess wraps one spawned child and owns its OS resources (pipes or
PTY master). Output is published on a per-process channel as ProcessEvents;
subscribers see every chunk produced after they subscribed, in order, followed
by a single terminal exit event.

Lifecycle:
    starting -> running -> stopping -> stopped
                               \\-> error
    starting -> error            (spawn failure only)

Exit classification: an exit after terminate() was requested, or a clean
exit with code 0, ends in stopped. Anything else ends in error. Both pass
through stopping.
"""

from __future__ import annotations

__all__ = [
    "EventStream",
    "ManagedProcess",
    "ProcessEvent",
    "ProcessSpec",
    "ProcessState",
    "ProcessSupervisor",
]

import asyncio
import errno
import logging
import os
import signal
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from procmux.config import SupervisorConfig
from procmux.constants import APP_NAME, DEFAULT_COLS, DEFAULT_ROWS, EXIT_DRAIN_TIMEOUT_SECONDS
from procmux.exceptions import ProcessNotWritableError, SpawnError

from .pty import acquire_controlling_tty, open_pty, set_window_size

_logger = logging.getLogger(f"{APP_NAME}.supervisor")


class ProcessState(str, Enum):
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    ERROR = "error"


_TRANSITIONS: dict[ProcessState, frozenset[ProcessState]] = {
    ProcessState.STARTING: frozenset({ProcessState.RUNNING, ProcessState.STOPPING, ProcessState.ERROR}),
    ProcessState.RUNNING: frozenset({ProcessState.STOPPING}),
    ProcessState.STOPPING: frozenset({ProcessState.STOPPED, ProcessState.ERROR}),
    ProcessState.STOPPED: frozenset(),
    ProcessState.ERROR: frozenset(),
}

TERMINAL_STATES = frozenset({ProcessState.STOPPED, ProcessState.ERROR})


@dataclass(frozen=True)
class ProcessSpec:
    """What to launch and how.

    Attributes:
        command: argv; command[0] is resolved on PATH.
        cwd: Working directory. None inherits the server's.
        env: Variables layered over the server environment.
        pty: Run under a pseudo-terminal instead of pipes.
        cols: Initial terminal width (PTY mode).
        rows: Initial terminal height (PTY mode).
        stop_signal: Signal sent for a graceful stop. Interactive shells
            ignore SIGTERM, so shells use SIGHUP like a closed terminal.
    """

    command: Sequence[str]
    cwd: str | None = None
    env: Mapping[str, str] = field(default_factory=dict)
    pty: bool = False
    cols: int = DEFAULT_COLS
    rows: int = DEFAULT_ROWS
    stop_signal: int = signal.SIGTERM

    def build_env(self) -> dict[str, str]:
        return {**os.environ, **self.env}


@dataclass(frozen=True)
class ProcessEvent:
    """One item on a process event stream.

    ``kind == "output"`` carries a raw chunk from ``stream``.
    ``kind == "exit"`` is always last; ``exit_code`` is None when the
    process was killed by ``signal`` (or never started).
    """

    kind: Literal["output", "exit"]
    stream: Literal["stdout", "stderr", "pty"] | None = None
    data: bytes = b""
    exit_code: int | None = None
    signal: int | None = None


class EventStream:
    """Async iterator over one subscription to a process's events.

    Iteration ends after the exit event has been yielded.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[ProcessEvent] = asyncio.Queue()
        self._finished = False

    def _put(self, event: ProcessEvent) -> None:
        self._queue.put_nowait(event)

    def __aiter__(self) -> EventStream:
        return self

    async def __anext__(self) -> ProcessEvent:
        if self._finished:
            raise StopAsyncIteration
        event = await self._queue.get()
        if event.kind == "exit":
            self._finished = True
        return event


class _OutputChannel:
    """Fan-out of process events to subscribed streams (no replay)."""

    def __init__(self) -> None:
        self._streams: list[EventStream] = []
        self._final: ProcessEvent | None = None

    def subscribe(self) -> EventStream:
        stream = EventStream()
        if self._final is not None:
            stream._put(self._final)
        else:
            self._streams.append(stream)
        return stream

    def unsubscribe(self, stream: EventStream) -> None:
        if stream in self._streams:
            self._streams.remove(stream)

    def publish(self, event: ProcessEvent) -> None:
        for stream in self._streams:
            stream._put(event)

    def close(self, final: ProcessEvent) -> None:
        if self._final is not None:
            return
        self._final = final
        for stream in self._streams:
            stream._put(final)
        self._streams.clear()


class _PtyReadProtocol(asyncio.Protocol):
    """Publishes PTY master output as it arrives.

    Chunks are handed to the channel inside data_received, so nothing is
    lost when the read side ends with EIO right after the last write.
    """

    def __init__(self, channel: _OutputChannel, loop: asyncio.AbstractEventLoop) -> None:
        self._channel = channel
        self._closed: asyncio.Future[None] = loop.create_future()

    def data_received(self, data: bytes) -> None:
        self._channel.publish(ProcessEvent(kind="output", stream="pty", data=data))

    def eof_received(self) -> bool | None:
        return None

    def connection_lost(self, exc: Exception | None) -> None:
        # EIO once every slave descriptor is closed is the normal end of a PTY
        if exc is not None and not (isinstance(exc, OSError) and exc.errno == errno.EIO):
            _logger.warning(
                {
                    "event": "pty_read_failed",
                    "message": f"PTY read failed: {exc}",
                    "error_type": type(exc).__name__,
                    "error_message": str(exc),
                }
            )
        if not self._closed.done():
            self._closed.set_result(None)

    async def wait_closed(self) -> None:
        await self._closed


class ManagedProcess:
    """One supervised child process.

    Created by ProcessSupervisor.spawn(). ``events`` is the primary
    subscription, established before any output can be read, so the owning
    manager never misses the first chunk.
    """

    def __init__(
        self,
        spec: ProcessSpec,
        *,
        grace_period: float,
        read_chunk_size: int,
        owner: Any = None,
    ) -> None:
        self.id = uuid.uuid4().hex[:12]
        self.spec = spec
        self.owner = owner
        self.state = ProcessState.STARTING
        self.pid: int | None = None
        self.started_at: datetime | None = None
        self.exit_code: int | None = None
        self.exit_signal: int | None = None

        self._grace_period = grace_period
        self._chunk_size = read_chunk_size
        self._proc: asyncio.subprocess.Process | None = None
        self._channel = _OutputChannel()
        self.events = self._channel.subscribe()
        self._readers: list[asyncio.Task[None]] = []
        self._waiter: asyncio.Task[None] | None = None
        self._pty_fd: int | None = None
        self._pty_writer: asyncio.StreamWriter | None = None
        self._pty_read_transport: asyncio.ReadTransport | None = None
        self._exited = asyncio.Event()
        self._terminate_requested = False

    def __repr__(self) -> str:
        return f"<ManagedProcess id={self.id} pid={self.pid} state={self.state.value}>"

    @property
    def is_running(self) -> bool:
        return self.state is ProcessState.RUNNING

    @property
    def is_finished(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def terminate_requested(self) -> bool:
        return self._terminate_requested

    def subscribe(self) -> EventStream:
        """Attach an additional listener. Receives chunks produced from now on."""
        return self._channel.subscribe()

    def unsubscribe(self, stream: EventStream) -> None:
        self._channel.unsubscribe(stream)

    def _set_state(self, new_state: ProcessState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid process transition {self.state.value} -> {new_state.value}")
        _logger.debug(
            {
                "event": "process_state_changed",
                "message": f"Process {self.id}: {self.state.value} -> {new_state.value}",
                "pid": self.pid,
                "details": {"from": self.state.value, "to": new_state.value},
            }
        )
        self.state = new_state

    # -------------------------------------------------------------------------
    # Launch
    # -------------------------------------------------------------------------

    async def _launch(self) -> None:
        command = list(self.spec.command)
        try:
            if self.spec.pty:
                await self._launch_pty(command)
            else:
                await self._launch_pipes(command)
        except OSError as e:
            self._set_state(ProcessState.ERROR)
            self._exited.set()
            self._channel.close(ProcessEvent(kind="exit"))
            _logger.warning(
                {
                    "event": "process_spawn_failed",
                    "message": f"Failed to spawn {command[0] if command else '<empty>'}: {e}",
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                    "details": {"command": command, "cwd": self.spec.cwd},
                }
            )
            raise SpawnError(
                f"Failed to start '{command[0] if command else ''}': {e.strerror or e}",
                command=command,
                cwd=self.spec.cwd,
            ) from e

        assert self._proc is not None
        self.pid = self._proc.pid
        self.started_at = datetime.now(timezone.utc)
        self._set_state(ProcessState.RUNNING)
        self._waiter = asyncio.create_task(self._wait_for_exit(), name=f"process-wait-{self.id}")

        _logger.info(
            {
                "event": "process_started",
                "message": f"Started {command[0]} (pid={self.pid})",
                "pid": self.pid,
                "details": {"command": command, "cwd": self.spec.cwd, "pty": self.spec.pty},
            }
        )

    async def _launch_pipes(self, command: list[str]) -> None:
        if not command:
            raise FileNotFoundError(errno.ENOENT, "Empty command")
        self._proc = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=self.spec.cwd,
            env=self.spec.build_env(),
            start_new_session=True,
        )
        assert self._proc.stdout is not None and self._proc.stderr is not None
        self._readers = [
            asyncio.create_task(self._pump(self._proc.stdout, "stdout")),
            asyncio.create_task(self._pump(self._proc.stderr, "stderr")),
        ]

    async def _launch_pty(self, command: list[str]) -> None:
        if not command:
            raise FileNotFoundError(errno.ENOENT, "Empty command")
        master_fd, slave_fd = open_pty(self.spec.cols, self.spec.rows)
        try:
            self._proc = await asyncio.create_subprocess_exec(
                *command,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                cwd=self.spec.cwd,
                env=self.spec.build_env(),
                start_new_session=True,
                preexec_fn=acquire_controlling_tty,
            )
        except BaseException:
            os.close(master_fd)
            raise
        finally:
            os.close(slave_fd)

        loop = asyncio.get_running_loop()
        write_fd = os.dup(master_fd)
        read_protocol = _PtyReadProtocol(self._channel, loop)
        self._pty_read_transport, _ = await loop.connect_read_pipe(
            lambda: read_protocol, os.fdopen(master_fd, "rb", buffering=0)
        )
        transport, protocol = await loop.connect_write_pipe(
            asyncio.streams.FlowControlMixin,
            os.fdopen(write_fd, "wb", buffering=0),
        )
        self._pty_writer = asyncio.StreamWriter(transport, protocol, None, loop)
        self._pty_fd = master_fd
        self._readers = [asyncio.create_task(read_protocol.wait_closed())]

    async def _pump(self, reader: asyncio.StreamReader, stream: Literal["stdout", "stderr"]) -> None:
        while True:
            try:
                chunk = await reader.read(self._chunk_size)
            except OSError as e:
                _logger.warning(
                    {
                        "event": "process_read_failed",
                        "message": f"Read from {stream} failed: {e}",
                        "pid": self.pid,
                        "error_type": type(e).__name__,
                        "error_message": str(e),
                    }
                )
                return
            if not chunk:
                return
            self._channel.publish(ProcessEvent(kind="output", stream=stream, data=chunk))

    # -------------------------------------------------------------------------
    # Exit
    # -------------------------------------------------------------------------

    async def _wait_for_exit(self) -> None:
        assert self._proc is not None
        returncode = await self._proc.wait()

        if self._readers:
            _, pending = await asyncio.wait(self._readers, timeout=EXIT_DRAIN_TIMEOUT_SECONDS)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        self._release_pty()

        if returncode < 0:
            self.exit_code, self.exit_signal = None, -returncode
        else:
            self.exit_code, self.exit_signal = returncode, None

        if self.state is not ProcessState.STOPPING:
            self._set_state(ProcessState.STOPPING)
        clean = self._terminate_requested or returncode == 0
        self._set_state(ProcessState.STOPPED if clean else ProcessState.ERROR)
        self._exited.set()
        self._channel.close(ProcessEvent(kind="exit", exit_code=self.exit_code, signal=self.exit_signal))

        _logger.info(
            {
                "event": "process_exited",
                "message": f"Process {self.pid} exited (code={self.exit_code}, signal={self.exit_signal})",
                "pid": self.pid,
                "exit_code": self.exit_code,
                "details": {
                    "signal": self.exit_signal,
                    "state": self.state.value,
                    "terminate_requested": self._terminate_requested,
                },
            }
        )

    def _release_pty(self) -> None:
        if self._pty_read_transport is not None:
            self._pty_read_transport.close()
            self._pty_read_transport = None
        if self._pty_writer is not None:
            self._pty_writer.close()
            self._pty_writer = None
        self._pty_fd = None

    async def wait(self) -> int | None:
        """Wait for the process to exit. Returns the exit code (None if signalled)."""
        await self._exited.wait()
        return self.exit_code

    # -------------------------------------------------------------------------
    # Control
    # -------------------------------------------------------------------------

    async def write(self, data: bytes) -> None:
        """Write to the child's stdin (or the PTY).

        Raises:
            ProcessNotWritableError: If the process is not running or its
                input side has gone away.
        """
        if self.state is not ProcessState.RUNNING:
            raise ProcessNotWritableError(self.state.value)
        writer = self._pty_writer if self.spec.pty else (self._proc.stdin if self._proc else None)
        if writer is None or writer.is_closing():
            raise ProcessNotWritableError(self.state.value)
        try:
            writer.write(data)
            await writer.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise ProcessNotWritableError(self.state.value) from e

    def close_stdin(self) -> None:
        """Signal EOF on stdin (pipe mode)."""
        if self._proc is not None and self._proc.stdin is not None and not self._proc.stdin.is_closing():
            self._proc.stdin.close()

    def resize(self, cols: int, rows: int) -> bool:
        """Resize the PTY. Returns False when not applicable or on failure."""
        if self._pty_fd is None:
            return False
        try:
            set_window_size(self._pty_fd, cols, rows)
        except OSError as e:
            _logger.warning(
                {
                    "event": "pty_resize_failed",
                    "message": f"Failed to resize PTY to {cols}x{rows}: {e}",
                    "pid": self.pid,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                }
            )
            return False
        return True

    def _send_signal(self, sig: int) -> None:
        if self.pid is None:
            return
        try:
            # start_new_session makes the child a group leader; signal the
            # whole group so runners like `npm run` take their children along
            os.killpg(self.pid, sig)
        except ProcessLookupError:
            pass
        except PermissionError as e:
            _logger.warning(
                {
                    "event": "process_signal_failed",
                    "message": f"Cannot signal process group {self.pid}: {e}",
                    "pid": self.pid,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                }
            )

    async def terminate(self, graceful: bool = True) -> None:
        """Stop the process, escalating to SIGKILL after the grace period.

        Idempotent: a no-op once the process is stopped or errored.
        Returns once the exit has been observed, or after a bounded wait
        following SIGKILL.
        """
        if self.is_finished or self._proc is None:
            return
        self._terminate_requested = True
        if self.state is not ProcessState.STOPPING:
            self._set_state(ProcessState.STOPPING)

        if graceful:
            self._send_signal(self.spec.stop_signal)
            try:
                await asyncio.wait_for(self._exited.wait(), timeout=self._grace_period)
                return
            except asyncio.TimeoutError:
                _logger.warning(
                    {
                        "event": "process_kill_escalated",
                        "message": f"Process {self.pid} ignored graceful stop for {self._grace_period}s, killing",
                        "pid": self.pid,
                    }
                )

        self._send_signal(signal.SIGKILL)
        try:
            await asyncio.wait_for(self._exited.wait(), timeout=self._grace_period)
        except asyncio.TimeoutError:
            _logger.error(
                {
                    "event": "process_exit_not_observed",
                    "message": f"Process {self.pid} exit not observed after SIGKILL",
                    "pid": self.pid,
                }
            )


class ProcessSupervisor:
    """Spawns and tracks ManagedProcesses for all managers.

    Holds every live process so shutdown() can reap them regardless of which
    manager owns them.
    """

    def __init__(self, config: SupervisorConfig | None = None) -> None:
        self._config = config or SupervisorConfig()
        self._live: set[ManagedProcess] = set()

    @property
    def live_count(self) -> int:
        return len(self._live)

    async def spawn(self, spec: ProcessSpec, owner: Any = None) -> ManagedProcess:
        """Start a child process.

        Returns:
            The process in the running state.

        Raises:
            SpawnError: If the OS could not start the process. The process
                object is left in the error state and not tracked.
        """
        process = ManagedProcess(
            spec,
            grace_period=self._config.grace_period_seconds,
            read_chunk_size=self._config.read_chunk_size,
            owner=owner,
        )
        await process._launch()
        self._live.add(process)
        assert process._waiter is not None
        process._waiter.add_done_callback(lambda _: self._live.discard(process))
        return process

    async def shutdown(self) -> None:
        """Terminate every live process concurrently."""
        processes = list(self._live)
        if not processes:
            return
        _logger.info(
            {
                "event": "supervisor_shutdown",
                "message": f"Terminating {len(processes)} live process(es)",
            }
        )
        await asyncio.gather(*(p.terminate() for p in processes), return_exceptions=True)
