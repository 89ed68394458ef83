"""CLI progress helpers."""

from __future__ import annotations

import os
import shutil
import sys
import time
from typing import TextIO

from .generation.tasks import GenerationSuccess, ProgressUpdate

_BOLD = "\x1b[1m"
_GREY = "\x1b[38;2;150;157;165m"
_GREEN = "\x1b[32m"
_RED = "\x1b[31m"
_RESET = "\x1b[0m"


def progress_line(label: str, start: float | None = None, done: bool = False) -> tuple[str, float]:
    now = time.monotonic()
    origin = now if start is None else start
    elapsed = max(0, int(now - origin))
    minutes = elapsed // 60
    seconds = elapsed % 60
    suffix = "done" if done else "ctrl-c to interrupt"
    return f"• {label} ({minutes}m {seconds:02d}s • {suffix})", origin


def progress_once(label: str, stream: TextIO | None = None) -> float:
    line, origin = progress_line(label)
    print(line, file=stream or sys.stdout)
    return origin


def elapsed_line(label: str, seconds: float, width: int | None = None, color: bool = True) -> str:
    duration = _format_duration(int(max(0, seconds)))
    resolved_width = width if width is not None else _resolve_terminal_width(sys.stdout, 100)
    line = _separator_line(f"{label} {duration}", resolved_width)
    return f"{_GREY}{line}{_RESET}" if color else line


class BatchProgressPrinter:
    """Prints one line per finished task, in completion order."""

    def __init__(self, stream: TextIO | None = None, start: float | None = None) -> None:
        self.stream = stream or sys.stdout
        self.start = time.monotonic() if start is None else start
        self._color = bool(getattr(self.stream, "isatty", lambda: False)())

    def __call__(self, update: ProgressUpdate) -> None:
        result = update.last_result
        counter = f"[{update.completed_count}/{update.total_count}]"
        task = result.task
        if isinstance(result, GenerationSuccess):
            count = len(result.image_urls)
            status = self._style("ok", _GREEN)
            detail = f"{count} image{'s' if count != 1 else ''}"
            if result.persistence_errors:
                detail += f", {len(result.persistence_errors)} not saved"
        else:
            status = self._style("failed", _RED)
            detail = result.reason
        seconds = result.duration_ms / 1000
        self.stream.write(f"{counter} {status} {task.model_id} ({seconds:.1f}s) {detail}\n")
        self.stream.flush()

    def finish(self, label: str = "Batch finished in") -> None:
        elapsed = time.monotonic() - self.start
        width = _resolve_terminal_width(self.stream, 100)
        self.stream.write(f"{elapsed_line(label, elapsed, width, color=self._color)}\n")
        self.stream.flush()

    def _style(self, text: str, code: str) -> str:
        if not self._color:
            return text
        return f"{_BOLD}{code}{text}{_RESET}"


def _format_duration(seconds: int) -> str:
    minutes, secs = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes}m {secs:02d}s"
    if minutes:
        return f"{minutes}m {secs:02d}s"
    return f"{secs}s"


def _separator_line(label: str, width: int) -> str:
    content = f" {label} "
    if width <= len(content) + 2:
        return content.strip()
    remaining = width - len(content)
    left = remaining // 2
    right = remaining - left
    return f"{'─' * left}{content}{'─' * right}"


def _resolve_terminal_width(stream: TextIO | None, fallback: int) -> int:
    if stream and hasattr(stream, "fileno"):
        try:
            return os.get_terminal_size(stream.fileno()).columns
        except (OSError, ValueError, AttributeError):
            pass
    try:
        return shutil.get_terminal_size(fallback=(fallback, 20)).columns
    except Exception:
        return fallback
