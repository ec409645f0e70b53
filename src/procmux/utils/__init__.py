"""Shared utilities for procmux."""
