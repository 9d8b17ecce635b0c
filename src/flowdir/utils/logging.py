"""Logging setup for the flowdir command line and preview window.

Engine modules log under ``flowdir.<module>``. Reconciliation pass summaries
use their own logger, :data:`PASS_LOGGER_NAME`, so a host can trace every
pass into ``passes.log`` without turning on debug output everywhere else.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
from dataclasses import dataclass
from pathlib import Path

__all__ = ["PASS_LOGGER_NAME", "LogTargets", "log_targets", "setup_logging"]

PASS_LOGGER_NAME = "flowdir.passes"

_DEFAULT_LOG_DIR = Path.home() / ".flowdir" / "logs"
_MAIN_LOG = "flowdir.log"
_PASS_LOG = "passes.log"
_LOG_DIR_ENV = "FLOWDIR_LOG_DIR"
_TRACE_ENV = "FLOWDIR_TRACE_PASSES"
_TRUE_VALUES = {"1", "true", "yes", "on"}
_HOST_LOGGERS: tuple[str, ...] = ("asyncio", "PySide6", "ruamel")

_MAIN_FORMAT = logging.Formatter(
    fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
_PASS_FORMAT = logging.Formatter(fmt="%(asctime)s.%(msecs)03d %(message)s", datefmt="%H:%M:%S")


@dataclass(slots=True)
class LogTargets:
    """Files written by the handlers :func:`setup_logging` installed."""

    main: Path
    passes: Path | None = None


_TARGETS: LogTargets | None = None
_PASS_HANDLER: logging.Handler | None = None


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    trace_passes: bool | None = None,
    force: bool = False,
) -> LogTargets:
    """Route flowdir logging to ``flowdir.log`` and, when tracing, ``passes.log``.

    ``log_dir`` falls back to ``$FLOWDIR_LOG_DIR`` and then ``~/.flowdir/logs``.
    Pass tracing follows ``trace_passes`` or, when that is ``None``, the
    ``FLOWDIR_TRACE_PASSES`` environment variable. A traced pass log receives
    every pass summary regardless of ``level``. Summaries are debug records,
    except for passes that failed on a region, which are warnings.

    Repeated calls return the first configuration unless ``force`` is set.
    """

    global _TARGETS
    if _TARGETS is not None and not force:
        return _TARGETS

    directory = Path(log_dir or os.environ.get(_LOG_DIR_ENV) or _DEFAULT_LOG_DIR).expanduser()
    directory.mkdir(parents=True, exist_ok=True)
    targets = LogTargets(main=directory / _MAIN_LOG)

    handlers = [_rotating_handler(targets.main, level, _MAIN_FORMAT)]
    if console:
        stream = logging.StreamHandler()
        stream.setLevel(level)
        stream.setFormatter(_MAIN_FORMAT)
        handlers.append(stream)
    logging.basicConfig(level=level, handlers=handlers, force=True)
    logging.captureWarnings(True)
    for name in _HOST_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    if _trace_requested(trace_passes):
        targets.passes = directory / _PASS_LOG
    _configure_pass_logger(targets.passes)

    _TARGETS = targets
    return targets


def log_targets() -> LogTargets | None:
    """Return the files chosen by the last :func:`setup_logging` call."""

    return _TARGETS


def _trace_requested(explicit: bool | None) -> bool:
    if explicit is not None:
        return explicit
    return os.environ.get(_TRACE_ENV, "").strip().lower() in _TRUE_VALUES


def _configure_pass_logger(path: Path | None) -> None:
    global _PASS_HANDLER
    pass_logger = logging.getLogger(PASS_LOGGER_NAME)
    if _PASS_HANDLER is not None:
        pass_logger.removeHandler(_PASS_HANDLER)
        _PASS_HANDLER.close()
        _PASS_HANDLER = None
    if path is None:
        pass_logger.setLevel(logging.NOTSET)
        return
    _PASS_HANDLER = _rotating_handler(path, logging.DEBUG, _PASS_FORMAT)
    pass_logger.addHandler(_PASS_HANDLER)
    pass_logger.setLevel(logging.DEBUG)


def _rotating_handler(path: Path, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(path, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler
