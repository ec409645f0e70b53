"""Pseudo-terminal helpers (POSIX only)."""

from __future__ import annotations

__all__ = [
    "acquire_controlling_tty",
    "open_pty",
    "set_window_size",
]

import fcntl
import os
import pty
import struct
import termios


def set_window_size(fd: int, cols: int, rows: int) -> None:
    """Set the terminal window size on a PTY descriptor.

    Setting it on the master delivers SIGWINCH to the foreground process
    group of the terminal.

    Raises:
        OSError: If the descriptor is closed or not a terminal.
    """
    fcntl.ioctl(fd, termios.TIOCSWINSZ, struct.pack("HHHH", rows, cols, 0, 0))


def open_pty(cols: int, rows: int) -> tuple[int, int]:
    """Open a PTY pair sized to cols x rows.

    Returns:
        (master_fd, slave_fd). The caller owns both descriptors.
    """
    master_fd, slave_fd = pty.openpty()
    try:
        set_window_size(master_fd, cols, rows)
    except OSError:
        os.close(master_fd)
        os.close(slave_fd)
        raise
    return master_fd, slave_fd


def acquire_controlling_tty() -> None:
    """Make stdin (the PTY slave) the controlling terminal of the child.

    Runs in the child between fork and exec, after setsid() from
    start_new_session. Without it interactive shells run without job control.
    """
    fcntl.ioctl(0, termios.TIOCSCTTY, 0)
