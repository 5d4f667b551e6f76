"""
Structured logging for the Vantage research pipeline.

Provides:
- Context variables for run_id, engine and phase (using contextvars)
- JSONFormatter for machine-readable logs to file
- ContextRichHandler for pretty console output
- ContextLogger wrapper that attaches keyword context to every call
- setup_logging() that configures both handlers
- log_context() for scoped context
- get_logger() factory
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator

from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text

_run_id_var: ContextVar[str | None] = ContextVar("run_id", default=None)
_engine_var: ContextVar[str | None] = ContextVar("engine", default=None)
_phase_var: ContextVar[str | None] = ContextVar("phase", default=None)


def get_run_id() -> str | None:
    """Get the current workflow run ID from context."""
    return _run_id_var.get()


def get_engine() -> str | None:
    """Get the current engine ID from context."""
    return _engine_var.get()


def get_phase() -> str | None:
    """Get the current phase from context."""
    return _phase_var.get()


@contextmanager
def log_context(
    run_id: str | None = None,
    engine: str | None = None,
    phase: str | None = None,
) -> Generator[None, None, None]:
    """Context manager for scoped logging context.

    Args:
        run_id: Workflow run ID to set in context.
        engine: Engine ID to set in context.
        phase: Phase (workflow variant or stage group) to set in context.

    Yields:
        None. Context variables are restored on exit.
    """
    old_run_id = _run_id_var.get()
    old_engine = _engine_var.get()
    old_phase = _phase_var.get()

    try:
        if run_id is not None:
            _run_id_var.set(run_id)
        if engine is not None:
            _engine_var.set(engine)
        if phase is not None:
            _phase_var.set(phase)
        yield
    finally:
        _run_id_var.set(old_run_id)
        _engine_var.set(old_engine)
        _phase_var.set(old_phase)


def _context_fields() -> dict[str, str]:
    fields: dict[str, str] = {}
    run_id = get_run_id()
    engine = get_engine()
    phase = get_phase()
    if run_id:
        fields["run_id"] = run_id
    if engine:
        fields["engine"] = engine
    if phase:
        fields["phase"] = phase
    return fields


class JSONFormatter(logging.Formatter):
    """JSON Lines formatter with structured context."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_obj.update(_context_fields())

        if hasattr(record, "extra"):
            log_obj["extra"] = record.extra

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj, default=str)


class ContextRichHandler(RichHandler):
    """Rich handler that prefixes the level with run/phase/engine context."""

    def get_level_text(self, record: logging.LogRecord) -> Text:
        level_text = super().get_level_text(record)

        parts: list[str] = []
        run_id = get_run_id()
        phase = get_phase()
        engine = get_engine()

        if run_id:
            short_id = run_id.split("_")[-1][:8] if "_" in run_id else run_id[:8]
            parts.append(f"[dim]{short_id}[/dim]")
        if phase:
            parts.append(f"[cyan]{phase}[/cyan]")
        if engine:
            parts.append(f"[magenta]{engine}[/magenta]")

        if parts:
            return Text.from_markup(f"{level_text} {' '.join(parts)}")

        return level_text


class ContextLogger:
    """Logger wrapper that attaches context variables and keyword fields."""

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    @property
    def name(self) -> str:
        return self._logger.name

    def _log(
        self,
        level: int,
        msg: str,
        *args: Any,
        exc_info: bool = False,
        **kwargs: Any,
    ) -> None:
        extra = kwargs.pop("extra", {})
        extra.update(_context_fields())

        for key in list(kwargs.keys()):
            if key not in ("stack_info", "stacklevel"):
                extra[key] = kwargs.pop(key)

        self._logger.log(level, msg, *args, exc_info=exc_info, extra={"extra": extra})

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args: Any, exc_info: bool = False, **kwargs: Any) -> None:
        self._log(logging.ERROR, msg, *args, exc_info=exc_info, **kwargs)

    def exception(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log an error with the active traceback."""
        self._log(logging.ERROR, msg, *args, exc_info=True, **kwargs)


_console: Console | None = None
_setup_done: bool = False


def get_console() -> Console:
    """Get the shared stderr console."""
    global _console
    if _console is None:
        _console = Console(stderr=True)
    return _console


def setup_logging(
    log_level: str = "INFO",
    log_file: Path | None = None,
    console_output: bool = True,
) -> None:
    """Set up logging with a JSON file handler and a Rich console handler.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Path to a JSON Lines log file. None disables file logging.
        console_output: Whether to log to the console.
    """
    global _setup_done

    root_logger = logging.getLogger("vantage")
    root_logger.setLevel(getattr(logging, log_level.upper()))
    root_logger.handlers.clear()

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(JSONFormatter())
        file_handler.setLevel(logging.DEBUG)
        root_logger.addHandler(file_handler)

    if console_output:
        rich_handler = ContextRichHandler(
            console=get_console(),
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
            tracebacks_show_locals=False,
            markup=True,
        )
        rich_handler.setLevel(getattr(logging, log_level.upper()))
        root_logger.addHandler(rich_handler)

    root_logger.propagate = False

    for noisy_logger in ["httpx", "httpcore", "google_genai", "asyncio", "aiosqlite"]:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    _setup_done = True


def get_logger(name: str) -> ContextLogger:
    """Get a context-aware logger.

    Args:
        name: Logger name (usually __name__).

    Returns:
        ContextLogger wrapping a logger under the ``vantage`` namespace.
    """
    if not _setup_done:
        setup_logging()

    if not name.startswith("vantage"):
        name = f"vantage.{name}"

    return ContextLogger(logging.getLogger(name))
