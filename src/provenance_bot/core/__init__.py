"""Shared runtime utilities."""

from .logging import format_context, log_fail_open, log_timing, set_ai_debug

__all__ = [
    "format_context",
    "log_fail_open",
    "log_timing",
    "set_ai_debug",
]
