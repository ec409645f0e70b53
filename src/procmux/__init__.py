"""procmux: multiplex local shells, assistant CLI sessions and dev servers over WebSockets."""

__version__ = "0.1.0"
