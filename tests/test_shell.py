"""Tests for PTY shell sessions over the "/shell" route."""

from __future__ import annotations

import asyncio

import pytest

from procmux.config import ShellConfig
from procmux.connection import Handshake
from procmux.providers import PackageJsonProjectProvider
from procmux.router import ConnectionRouter
from procmux.shell import ShellHandler, ShellManager
from procmux.shell.urls import BROWSER_OVERRIDE, find_open_urls, rewrite_open_url_markers
from procmux.supervisor import ProcessState, ProcessSupervisor


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def shells(supervisor: ProcessSupervisor) -> ShellManager:
    return ShellManager(supervisor, ShellConfig(command=["/bin/sh"]))


@pytest.fixture
def router(shells: ShellManager) -> ConnectionRouter:
    router = ConnectionRouter()
    router.register("/shell", ShellHandler(shells, PackageJsonProjectProvider(), assistant_executable="claude"))
    return router


def open_shell(router: ConnectionRouter, transport, **query: str) -> asyncio.Task[None]:
    return asyncio.create_task(router.route(transport, Handshake(path="/shell", query=query)))


# =============================================================================
# Tests
# =============================================================================


class TestShellSession:
    """End-to-end shell sessions over a fake transport."""

    async def test_session_id_then_output_then_exit(self, router, transport, shells, tmp_path, wait_until):
        task = open_shell(router, transport, sessionId="shell-test", cwd=str(tmp_path))
        await wait_until(lambda: transport.of_type("session-id"), message="session-id")

        assert transport.sent[0] == {"type": "session-id", "sessionId": "shell-test"}
        assert shells.live_count == 1

        transport.push({"type": "input", "data": "echo marker-$((2+3))\n"})
        await wait_until(lambda: "marker-5" in transport.output_text(), message="echo output")

        transport.push({"type": "input", "data": "exit\n"})
        await asyncio.wait_for(task, timeout=5.0)

        exits = transport.of_type("exit")
        assert len(exits) == 1
        assert exits[0]["exitCode"] == 0
        assert exits[0]["sessionId"] == "shell-test"
        assert transport.close_code == 1000
        assert shells.live_count == 0

    async def test_runs_in_requested_cwd(self, router, transport, tmp_path, wait_until):
        workdir = tmp_path / "work"
        workdir.mkdir()
        task = open_shell(router, transport, cwd=str(workdir))
        await wait_until(lambda: transport.of_type("session-id"))

        transport.push({"type": "input", "data": "pwd\n"})
        await wait_until(lambda: str(workdir) in transport.output_text(), message="pwd output")

        transport.disconnect()
        await asyncio.wait_for(task, timeout=5.0)

    async def test_generated_session_id(self, router, transport, tmp_path, wait_until):
        task = open_shell(router, transport, cwd=str(tmp_path))
        await wait_until(lambda: transport.of_type("session-id"))

        assert transport.sent[0]["sessionId"].startswith("shell-")

        transport.disconnect()
        await asyncio.wait_for(task, timeout=5.0)

    async def test_resize_applies_to_terminal(self, router, transport, tmp_path, wait_until):
        task = open_shell(router, transport, cwd=str(tmp_path), cols="80", rows="24")
        await wait_until(lambda: transport.of_type("session-id"))

        transport.push({"type": "resize", "cols": 91, "rows": 27})
        transport.push({"type": "input", "data": "stty size\n"})
        await wait_until(lambda: "27 91" in transport.output_text(), message="stty size")

        transport.disconnect()
        await asyncio.wait_for(task, timeout=5.0)

    async def test_malformed_frames_are_dropped(self, router, transport, tmp_path, wait_until):
        """Bad frames are skipped; the session keeps working."""
        task = open_shell(router, transport, cwd=str(tmp_path))
        await wait_until(lambda: transport.of_type("session-id"))

        transport.push("not json")
        transport.push({"type": "bogus"})
        transport.push({"type": "input", "data": "echo still-$((1+1))\n"})
        await wait_until(lambda: "still-2" in transport.output_text())

        transport.disconnect()
        await asyncio.wait_for(task, timeout=5.0)

    async def test_disconnect_terminates_shell(self, router, transport, shells, tmp_path, wait_until):
        task = open_shell(router, transport, sessionId="gone", cwd=str(tmp_path))
        await wait_until(lambda: transport.of_type("session-id"))
        session = shells.get("gone")
        assert session is not None

        transport.disconnect()
        await asyncio.wait_for(task, timeout=5.0)

        assert shells.get("gone") is None
        await wait_until(lambda: session.process.is_finished, message="shell exit")
        assert session.process.state is ProcessState.STOPPED

    async def test_browser_requests_become_url_open(self, router, transport, tmp_path, wait_until):
        task = open_shell(router, transport, sessionId="b1", cwd=str(tmp_path))
        await wait_until(lambda: transport.of_type("session-id"))

        transport.push({"type": "input", "data": 'sh -c "$BROWSER https://example.com/auth"\n'})
        await wait_until(lambda: transport.of_type("url-open"), message="url-open")

        opened = transport.of_type("url-open")[0]
        assert opened == {"type": "url-open", "sessionId": "b1", "data": {"url": "https://example.com/auth"}}
        await wait_until(lambda: "Opening in browser: https://example.com/auth" in transport.output_text())

        transport.disconnect()
        await asyncio.wait_for(task, timeout=5.0)

    async def test_missing_cwd_reports_error(self, router, transport):
        await asyncio.wait_for(
            open_shell(router, transport, sessionId="s1", cwd="/nonexistent/procmux-test"), timeout=5.0
        )

        assert transport.sent == [
            {"type": "error", "error": "Project not found: /nonexistent/procmux-test", "sessionId": "s1"}
        ]
        assert transport.close_code == 1000

    async def test_reopening_session_replaces_process(
        self, router, shells, tmp_path, fake_transport_factory, wait_until
    ):
        first, second = fake_transport_factory(), fake_transport_factory()
        first_task = open_shell(router, first, sessionId="dup", cwd=str(tmp_path))
        await wait_until(lambda: first.of_type("session-id"))
        old_process = shells.get("dup").process

        second_task = open_shell(router, second, sessionId="dup", cwd=str(tmp_path))
        await wait_until(lambda: second.of_type("session-id"))

        assert old_process.is_finished
        assert shells.get("dup").process is not old_process
        assert shells.live_count == 1

        # The replaced connection sees its shell exit and is closed
        await asyncio.wait_for(first_task, timeout=5.0)
        assert first.of_type("exit")

        second.disconnect()
        await asyncio.wait_for(second_task, timeout=5.0)


class TestShellManager:
    """Tests for ShellManager helpers."""

    def test_shell_command_defaults_to_config(self, shells: ShellManager):
        assert shells.shell_command() == ["/bin/sh"]

    def test_launch_runs_through_shell(self, shells: ShellManager):
        command = shells.shell_command(["claude", "--resume", "abc 123"])

        assert command == ["/bin/sh", "-c", "claude --resume 'abc 123'"]

    def test_session_ids_are_unique(self):
        assert ShellManager.new_session_id() != ShellManager.new_session_id()

    async def test_shutdown_terminates_all(self, shells, router, tmp_path, fake_transport_factory, wait_until):
        transports = [fake_transport_factory() for _ in range(2)]
        tasks = [open_shell(router, t, cwd=str(tmp_path)) for t in transports]
        await wait_until(lambda: all(t.of_type("session-id") for t in transports))
        sessions = [shells.get(t.of_type("session-id")[0]["sessionId"]) for t in transports]

        await shells.shutdown()

        assert all(s.process.is_finished for s in sessions)
        await asyncio.wait_for(asyncio.gather(*tasks), timeout=5.0)


class TestOpenUrls:
    """Tests for browser-open URL detection."""

    def test_marker(self):
        assert find_open_urls("OPEN_URL: https://a.example/x?y=1\r\n") == ["https://a.example/x?y=1"]

    def test_common_phrasings(self):
        text = "Opening https://one.example\nVisit: http://two.example\nxdg-open https://one.example"

        assert find_open_urls(text) == ["https://one.example", "http://two.example"]

    def test_plain_urls_are_ignored(self):
        assert find_open_urls("see https://docs.example for details") == []

    def test_rewrite_marker(self):
        assert rewrite_open_url_markers("OPEN_URL: https://a.example\n") == "Opening in browser: https://a.example\n"

    def test_browser_override_echoes_marker(self):
        assert "OPEN_URL:" in BROWSER_OVERRIDE
