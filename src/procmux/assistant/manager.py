"""Assistant CLI session manager.

One run is one CLI process working on one prompt within a session. Sessions
outlive runs (and connections): a finished or crashed session stays
resumable by passing its identity back to the CLI, which owns the
conversation history. At most one run is live per session identity.

Envelope sequence for a run:
    session-id {isNewSession}     before the first parsed record
    assistant | tool-use | status | result | response | output | log ...
    error                         only if every stdout record was malformed
    exit {interrupted, signal}    always last
    status {can_interrupt: false} after an interrupt
"""

from __future__ import annotations

__all__ = [
    "AssistantManager",
    "AssistantRun",
    "EnvelopeSink",
]

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from procmux.config import AssistantConfig
from procmux.constants import APP_NAME, ASSISTANT_ENV
from procmux.exceptions import ProjectNotFoundError, SpawnError
from procmux.models import SystemEvent
from procmux.protocol.envelope import (
    AssistantEnvelope,
    AssistantStatusData,
    Envelope,
    ErrorEnvelope,
    ExitData,
    ExitEnvelope,
    InteractivePromptEnvelope,
    LogData,
    LogEnvelope,
    OutputEnvelope,
    ResponseEnvelope,
    ResultEnvelope,
    SessionIdData,
    SessionIdEnvelope,
    StatusEnvelope,
    ToolUseEnvelope,
)
from procmux.protocol.inbound import AssistantOptions
from procmux.providers import NullSessionHistory, ProjectMetadataProvider, SessionHistoryProvider
from procmux.supervisor import KeyedRegistry, ManagedProcess, ProcessSpec, ProcessSupervisor
from procmux.telemetry.system_logger import log_event
from procmux.utils.text import LineBuffer

from .args import build_assistant_args, format_command_for_logging
from .parser import (
    classify_record,
    is_interactive_prompt,
    is_status_text,
    parse_line,
    parse_status_text,
)

_logger = logging.getLogger(f"{APP_NAME}.assistant")

EnvelopeSink = Callable[[Envelope], Awaitable[Any]]

_RECORD_ENVELOPES: dict[str, type[Envelope]] = {
    "assistant": AssistantEnvelope,
    "tool-use": ToolUseEnvelope,
    "result": ResultEnvelope,
    "response": ResponseEnvelope,
}


@dataclass
class AssistantRun:
    """Bookkeeping for one live CLI process.

    Attributes:
        session_id: Session identity (re-keyed if the CLI reports another).
        process: The CLI process.
        is_new_session: False when the run resumed an existing session.
        sink: Where envelopes go; None while detached.
        owner_id: Connection id of the current owner.
        interrupted: Set before an explicit interrupt terminates the process.
    """

    session_id: str
    process: ManagedProcess
    is_new_session: bool
    sink: EnvelopeSink | None
    owner_id: str | None = None
    interrupted: bool = False
    announced: bool = False
    records: int = 0
    malformed: int = 0
    last_prompt: str | None = None
    consumer: asyncio.Task[None] | None = field(default=None, repr=False)


class AssistantManager:
    """Starts, resumes, interrupts and tracks assistant CLI runs."""

    def __init__(
        self,
        supervisor: ProcessSupervisor,
        config: AssistantConfig | None = None,
        history: SessionHistoryProvider | None = None,
        projects: ProjectMetadataProvider | None = None,
    ) -> None:
        self._supervisor = supervisor
        self._config = config or AssistantConfig()
        self._history = history or NullSessionHistory()
        self._projects = projects
        self._runs: KeyedRegistry[str, AssistantRun] = KeyedRegistry()
        self._known_sessions: set[str] = set()
        self._message_counts: dict[str, int] = {}
        self._history_queue: asyncio.Queue[tuple[str, dict[str, Any]]] = asyncio.Queue()
        self._history_worker: asyncio.Task[None] | None = None

    @property
    def config(self) -> AssistantConfig:
        return self._config

    @property
    def history(self) -> SessionHistoryProvider:
        return self._history

    @property
    def live_count(self) -> int:
        return sum(1 for run in self._runs.values() if not run.process.is_finished)

    def get_run(self, session_id: str) -> AssistantRun | None:
        return self._runs.get(session_id)

    def can_interrupt(self, session_id: str) -> bool:
        """True iff a running process exists for the session."""
        run = self._runs.get(session_id)
        return run is not None and run.process.is_running

    def is_known_session(self, session_id: str) -> bool:
        return session_id in self._known_sessions

    def message_count(self, session_id: str) -> int:
        """Records forwarded for a session across all of its runs."""
        return self._message_counts.get(session_id, 0)

    def _new_session_id(self) -> str:
        while True:
            candidate = str(uuid.uuid4())
            if candidate not in self._known_sessions and candidate not in self._runs:
                return candidate

    def _resolve_cwd(self, options: AssistantOptions) -> str | None:
        if options.cwd:
            path = Path(options.cwd).expanduser()
            if not path.is_dir():
                raise ProjectNotFoundError(options.cwd)
            return str(path)
        if options.project_path:
            if self._projects is None:
                raise ProjectNotFoundError(options.project_path)
            return str(self._projects.resolve_working_directory(options.project_path))
        return None

    # -------------------------------------------------------------------------
    # Start / resume
    # -------------------------------------------------------------------------

    async def start(
        self,
        options: AssistantOptions,
        prompt: str | None,
        sink: EnvelopeSink | None,
        owner_id: str | None = None,
    ) -> str:
        """Start a run for a fresh or resumed session.

        A live run for the same identity is interrupted first.

        Returns:
            The session identity.

        Raises:
            SpawnError: The CLI could not be started. An error envelope has
                already been sent to ``sink``.
            ProjectNotFoundError: The working directory does not exist.
        """
        resume = options.resume and bool(options.session_id)
        session_id = options.session_id or self._new_session_id()
        cwd = self._resolve_cwd(options)

        async with self._runs.lock(session_id):
            existing = self._runs.get(session_id)
            if existing is not None and not existing.process.is_finished:
                _logger.warning(
                    {
                        "event": "assistant_run_replaced",
                        "message": f"Session {session_id} restarted while running, interrupting previous run",
                        "session_id": session_id,
                    }
                )
                await self._interrupt_run(existing)

            args = build_assistant_args(
                prompt,
                session_id=session_id,
                resume=resume,
                model=self._config.default_model,
                tools=options.tools_settings,
            )
            command = [self._config.executable, *args]
            spec = ProcessSpec(command=command, cwd=cwd, env=ASSISTANT_ENV)
            try:
                process = await self._supervisor.spawn(spec, owner=owner_id)
            except SpawnError as e:
                if sink is not None:
                    await sink(ErrorEnvelope(error=str(e), session_id=session_id))
                raise
            process.close_stdin()

            run = AssistantRun(
                session_id=session_id,
                process=process,
                is_new_session=not resume,
                sink=sink,
                owner_id=owner_id,
            )
            self._runs.set(session_id, run)
            self._known_sessions.add(session_id)
            run.consumer = asyncio.create_task(self._consume(run), name=f"assistant-{session_id}")

        log_event(
            logging.INFO,
            SystemEvent(
                event="assistant_run_started",
                message=f"Assistant {'resumed' if resume else 'started'} session {session_id} (pid={process.pid})",
                connection_id=owner_id,
                session_id=session_id,
                pid=process.pid,
                details={"command": format_command_for_logging(command), "cwd": cwd},
            ),
            _logger,
        )
        return session_id

    async def resume(
        self,
        session_id: str,
        prompt: str | None,
        sink: EnvelopeSink | None,
        options: AssistantOptions | None = None,
        owner_id: str | None = None,
    ) -> str:
        """Continue an existing session with a new prompt."""
        base = options or AssistantOptions()
        resumed = base.model_copy(update={"session_id": session_id, "resume": True})
        return await self.start(resumed, prompt, sink, owner_id=owner_id)

    # -------------------------------------------------------------------------
    # Interrupt / attach
    # -------------------------------------------------------------------------

    async def interrupt(self, session_id: str) -> bool:
        """Interrupt the live run of a session.

        Returns once the exit envelope has been delivered to the sink.

        Returns:
            False if no live process exists for the session.
        """
        run = self._runs.get(session_id)
        if run is None or run.process.is_finished:
            return False
        await self._interrupt_run(run)
        return True

    async def _interrupt_run(self, run: AssistantRun) -> None:
        run.interrupted = True
        await run.process.terminate(graceful=True)
        if run.consumer is not None:
            await asyncio.wait({run.consumer})

    def attach(self, session_id: str, sink: EnvelopeSink, owner_id: str | None = None) -> bool:
        """Route a live run's envelopes to a new sink."""
        run = self._runs.get(session_id)
        if run is None or run.process.is_finished:
            return False
        run.sink = sink
        run.owner_id = owner_id
        return True

    async def detach(self, owner_id: str) -> list[str]:
        """Apply the disconnect policy to every run owned by a connection.

        Returns:
            Session ids that were detached or interrupted.
        """
        owned = [run for run in self._runs.values() if run.owner_id == owner_id and not run.process.is_finished]
        for run in owned:
            run.sink = None
        if self._config.disconnect_policy == "terminate":
            await asyncio.gather(*(self._interrupt_run(run) for run in owned))
        if owned:
            log_event(
                logging.INFO,
                SystemEvent(
                    event="assistant_runs_detached",
                    message=f"Connection {owner_id} gone, {self._config.disconnect_policy} {len(owned)} run(s)",
                    connection_id=owner_id,
                    details={"sessions": [run.session_id for run in owned]},
                ),
                _logger,
            )
        return [run.session_id for run in owned]

    async def shutdown(self) -> None:
        """Interrupt every live run and flush pending history."""
        live = [run for run in self._runs.values() if not run.process.is_finished]
        await asyncio.gather(*(self._interrupt_run(run) for run in live), return_exceptions=True)
        if self._history_worker is not None:
            await self._history_queue.join()
            self._history_worker.cancel()
            try:
                await self._history_worker
            except asyncio.CancelledError:
                pass
            self._history_worker = None

    # -------------------------------------------------------------------------
    # Output consumption
    # -------------------------------------------------------------------------

    async def _emit(self, run: AssistantRun, envelope: Envelope) -> None:
        if run.sink is not None:
            await run.sink(envelope)

    async def _consume(self, run: AssistantRun) -> None:
        stdout = LineBuffer()
        stderr = LineBuffer()
        try:
            async for event in run.process.events:
                if event.kind == "output":
                    if event.stream == "stderr":
                        for line in stderr.feed(event.data):
                            await self._handle_stderr_line(run, line)
                    else:
                        for line in stdout.feed(event.data):
                            await self._handle_stdout_line(run, line)
                        await self._check_prompt(run, stdout.pending)
                    continue

                tail = stdout.remainder()
                if tail.strip() and tail != run.last_prompt:
                    if is_interactive_prompt(tail) and not tail.lstrip().startswith("{"):
                        await self._emit(run, InteractivePromptEnvelope(data=tail, session_id=run.session_id))
                    else:
                        await self._handle_stdout_line(run, tail)
                err_tail = stderr.remainder()
                if err_tail.strip():
                    await self._handle_stderr_line(run, err_tail)
                await self._finish(run, event.exit_code, event.signal)
        finally:
            if self._runs.get(run.session_id) is run:
                self._runs.pop(run.session_id)

    async def _finish(self, run: AssistantRun, exit_code: int | None, signal: int | None) -> None:
        if run.records == 0 and run.malformed > 0:
            await self._emit(
                run,
                ErrorEnvelope(
                    error=f"Assistant produced no valid output ({run.malformed} malformed record(s))",
                    session_id=run.session_id,
                ),
            )
        await self._emit(
            run,
            ExitEnvelope(
                session_id=run.session_id,
                exit_code=exit_code,
                data=ExitData(signal=signal, interrupted=run.interrupted, is_new_session=run.is_new_session),
            ),
        )
        if run.interrupted:
            await self._emit(
                run,
                StatusEnvelope(
                    session_id=run.session_id,
                    data=AssistantStatusData(can_interrupt=False, message="Interrupted"),
                ),
            )

        level = logging.INFO if run.interrupted or exit_code == 0 else logging.WARNING
        log_event(
            level,
            SystemEvent(
                event="assistant_run_finished",
                message=f"Assistant session {run.session_id} exited (code={exit_code}, interrupted={run.interrupted})",
                connection_id=run.owner_id,
                session_id=run.session_id,
                pid=run.process.pid,
                exit_code=exit_code,
                details={"signal": signal, "records": run.records, "malformed": run.malformed},
            ),
            _logger,
        )

    async def _check_prompt(self, run: AssistantRun, pending: str) -> None:
        if not pending or pending.lstrip().startswith("{") or pending == run.last_prompt:
            return
        if is_interactive_prompt(pending):
            run.last_prompt = pending
            await self._emit(run, InteractivePromptEnvelope(data=pending, session_id=run.session_id))

    def _status_envelope(self, run: AssistantRun, text: str) -> StatusEnvelope:
        action, tokens = parse_status_text(text)
        return StatusEnvelope(
            session_id=run.session_id,
            data=AssistantStatusData(
                can_interrupt=run.process.is_running,
                message=f"{action}...",
                tokens=tokens,
                raw=text,
            ),
        )

    async def _handle_stdout_line(self, run: AssistantRun, line: str) -> None:
        parsed = parse_line(line)
        if parsed is None:
            return

        if parsed.kind == "malformed":
            run.malformed += 1
            _logger.warning(
                {
                    "event": "assistant_record_malformed",
                    "message": f"Dropped malformed record from session {run.session_id}",
                    "session_id": run.session_id,
                    "details": {"line": parsed.text[:200]},
                }
            )
            return

        if parsed.kind == "text":
            if is_status_text(parsed.text):
                await self._emit(run, self._status_envelope(run, parsed.text))
            else:
                await self._emit(run, OutputEnvelope(data=parsed.text, session_id=run.session_id))
            return

        record = parsed.record
        assert record is not None
        reported = record.get("session_id")
        if isinstance(reported, str) and reported and reported != run.session_id:
            self._rekey(run, reported)

        if not run.announced:
            run.announced = True
            await self._emit(
                run,
                SessionIdEnvelope(session_id=run.session_id, data=SessionIdData(is_new_session=run.is_new_session)),
            )

        run.records += 1
        self._message_counts[run.session_id] = self._message_counts.get(run.session_id, 0) + 1

        kind = classify_record(record)
        if kind == "status":
            envelope: Envelope = StatusEnvelope(data=record, session_id=run.session_id)
        else:
            envelope = _RECORD_ENVELOPES[kind](data=record, session_id=run.session_id)
        await self._emit(run, envelope)
        self._record_history(run.session_id, record)

    async def _handle_stderr_line(self, run: AssistantRun, line: str) -> None:
        text = line.strip()
        if not text:
            return
        if is_status_text(text):
            await self._emit(run, self._status_envelope(run, text))
        else:
            await self._emit(
                run,
                LogEnvelope(session_id=run.session_id, data=LogData(stream="stderr", message=text)),
            )

    def _rekey(self, run: AssistantRun, reported: str) -> None:
        _logger.info(
            {
                "event": "assistant_session_rekeyed",
                "message": f"CLI reported session {reported} for {run.session_id}",
                "session_id": reported,
                "details": {"previous_session_id": run.session_id},
            }
        )
        self._runs.rekey(run.session_id, reported)
        self._known_sessions.add(reported)
        if run.session_id in self._message_counts:
            self._message_counts[reported] = self._message_counts.pop(run.session_id)
        run.session_id = reported

    # -------------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------------

    def _record_history(self, session_id: str, record: dict[str, Any]) -> None:
        self._history_queue.put_nowait((session_id, record))
        if self._history_worker is None or self._history_worker.done():
            self._history_worker = asyncio.create_task(self._write_history(), name="assistant-history")

    async def _write_history(self) -> None:
        while True:
            session_id, record = await self._history_queue.get()
            try:
                await self._history.append_record(session_id, record)
            except Exception as e:
                _logger.warning(
                    {
                        "event": "history_append_failed",
                        "message": f"Failed to persist record for session {session_id}: {e}",
                        "session_id": session_id,
                        "error_type": type(e).__name__,
                        "error_message": str(e),
                    }
                )
            finally:
                self._history_queue.task_done()
