"""Terminal output errors."""

from __future__ import annotations


class TerminalWriteError(RuntimeError):
    exit_code = 4
