"""Command line entry point for flowdir."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, TextIO

from . import __version__
from .core.classifier import classify
from .core.directions import OverrideState, RegionKind
from .services.overrides import FrontMatterMetadataStore, split_frontmatter
from .services.settings import DirectionSettings, SettingsStore
from .utils import logging as logging_utils

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_LOGGER = logging.getLogger(__name__)
_KIND_PREFIX = "per_kind."


def configure_logging(debug: bool = False, *, force: bool = False, trace_passes: bool | None = None) -> None:
    """Configure logging for the command line and the preview window."""

    level = logging.DEBUG if debug else logging.INFO
    targets = logging_utils.setup_logging(level, force=force, trace_passes=trace_passes)
    if targets.passes is not None:
        _LOGGER.info("Tracing reconciliation passes to %s", targets.passes)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))
    _install_qt_message_handler()


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> DirectionSettings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        settings = active_store.load(overrides=overrides)
    except Exception as exc:  # pragma: no cover - depends on filesystem
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        settings = DirectionSettings()
    return settings


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point invoked by the `flowdir` console script."""

    args = _parse_cli_args(argv)

    debug = _env_flag("FLOWDIR_DEBUG", default=False)
    configure_logging(debug, trace_passes=True if args.trace_passes else None)

    settings_path = args.settings_path or os.environ.get("FLOWDIR_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        return 2

    settings = load_settings(resolved_path, store=settings_store, overrides=cli_overrides or None)

    if args.dump_settings:
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return 0

    if args.command == "classify":
        return _run_classify(args, settings)
    if args.command == "note":
        return _run_note(args)
    if args.command == "preview":
        return _run_preview(args, settings)
    print("No command given; see --help.", file=sys.stderr)
    return 2


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _install_qt_message_handler() -> None:
    """Redirect Qt warnings to the Python logging stack when available."""

    try:
        from PySide6.QtCore import QtMsgType, qInstallMessageHandler
    except Exception:  # pragma: no cover - PySide6 optional during tests
        return

    level_map = {
        QtMsgType.QtDebugMsg: logging.DEBUG,
        QtMsgType.QtInfoMsg: logging.INFO,
        QtMsgType.QtWarningMsg: logging.WARNING,
        QtMsgType.QtCriticalMsg: logging.ERROR,
        QtMsgType.QtFatalMsg: logging.CRITICAL,
    }

    def _handler(mode, context, message):  # type: ignore[no-untyped-def]
        del context
        level = level_map.get(mode, logging.INFO)
        logging.getLogger("PySide6").log(level, message)

    qInstallMessageHandler(_handler)


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------
def _run_classify(args: argparse.Namespace, settings: DirectionSettings, *, stream: TextIO | None = None) -> int:
    destination = stream or sys.stdout
    if args.file:
        try:
            text = Path(args.file).expanduser().read_text(encoding="utf-8")
        except OSError as exc:
            print(f"Unable to read {args.file}: {exc}", file=sys.stderr)
            return 1
    else:
        text = sys.stdin.read()

    config = settings.classifier_config
    if args.per_line:
        for line in text.splitlines():
            if not line.strip():
                continue
            destination.write(f"{classify(line, config).value}\t{line}\n")
        return 0

    _, body = split_frontmatter(text)
    destination.write(f"{classify(body, config).value}\n")
    return 0


def _run_note(args: argparse.Namespace, *, stream: TextIO | None = None) -> int:
    destination = stream or sys.stdout
    store = FrontMatterMetadataStore()
    path = str(Path(args.file).expanduser())
    if not store.supports(path):
        print("Direction can only be set for Markdown files.", file=sys.stderr)
        return 2
    if args.direction is None:
        try:
            state = store.read_override(path)
        except OSError as exc:
            print(f"Unable to read {args.file}: {exc}", file=sys.stderr)
            return 1
        destination.write(f"{state.value}\n")
        return 0

    state = OverrideState(args.direction)
    try:
        store.write_override(path, state)
    except Exception as exc:
        _LOGGER.error("Failed to update front matter of %s", path, exc_info=True)
        print(f"Error updating note direction in frontmatter: {exc}", file=sys.stderr)
        return 1
    if state is OverrideState.NONE:
        destination.write("Note direction override cleared.\n")
    else:
        destination.write(f"Note direction set to {state.value.upper()}.\n")
    return 0


def _run_preview(args: argparse.Namespace, settings: DirectionSettings) -> int:  # pragma: no cover - UI loop
    try:
        from PySide6.QtWidgets import QApplication, QLabel, QPlainTextEdit, QPushButton, QVBoxLayout, QWidget
    except Exception as exc:
        print(f"The preview window requires PySide6: {exc}", file=sys.stderr)
        return 1

    from .engine.runtime import DirectionEngine
    from .ui.direction_commands import DirectionCommands
    from .ui.events import EventBus, StatusMessage
    from .widgets.qt_render_tree import QtRenderTree, qt_timer_factory

    path = str(Path(args.file).expanduser())
    text = Path(path).read_text(encoding="utf-8") if Path(path).exists() else ""

    app = QApplication.instance() or QApplication([sys.argv[0]])
    window = QWidget()
    window.setWindowTitle(f"flowdir preview: {Path(path).name}")
    layout = QVBoxLayout(window)
    editor = QPlainTextEdit(text)
    status = QLabel()
    cycle_button = QPushButton("Cycle direction")
    layout.addWidget(editor)
    layout.addWidget(status)
    layout.addWidget(cycle_button)

    tree = QtRenderTree()
    tree.register(editor, RegionKind.PRIMARY_EDITOR, document_id=path)
    bus = EventBus()
    engine = DirectionEngine(
        tree,
        settings,
        FrontMatterMetadataStore(),
        timer_factory=qt_timer_factory(window),
        bus=bus,
    )
    commands = DirectionCommands(engine, bus)

    def _show_status(event: StatusMessage) -> None:
        status.setText(event.message)
        status.setToolTip(event.tooltip or "")

    bus.subscribe(StatusMessage, _show_status)
    cycle_button.clicked.connect(lambda *_args: commands.cycle())

    engine.start()
    engine.activate_document(path)
    window.resize(720, 480)
    window.show()
    try:
        return int(app.exec())
    finally:
        commands.close()
        engine.shutdown()


# ----------------------------------------------------------------------
# Argument parsing
# ----------------------------------------------------------------------
def _parse_cli_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="flowdir",
        add_help=True,
        description="Detect and manage the text direction of notes and editor regions.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings payload and exit.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.flowdir/settings.json path.",
    )
    parser.add_argument(
        "--trace-passes",
        action="store_true",
        help="Log every reconciliation pass to passes.log (also FLOWDIR_TRACE_PASSES=1).",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings for this run (repeatable), e.g. per_kind.primary-editor=rtl.",
    )
    subparsers = parser.add_subparsers(dest="command")

    classify_parser = subparsers.add_parser("classify", help="Print the detected direction of a text.")
    classify_parser.add_argument("file", nargs="?", help="File to classify; stdin when omitted.")
    classify_parser.add_argument(
        "--per-line",
        action="store_true",
        help="Classify every non-blank line separately.",
    )

    note_parser = subparsers.add_parser("note", help="Show or change a markdown note's direction override.")
    note_parser.add_argument("file", help="Markdown note whose front matter holds the override.")
    note_parser.add_argument(
        "direction",
        nargs="?",
        choices=[state.value for state in OverrideState],
        help="New override; 'none' removes it. Prints the current value when omitted.",
    )

    preview_parser = subparsers.add_parser("preview", help="Open a note in a Qt preview window.")
    preview_parser.add_argument("file", help="Markdown note to preview.")

    return parser.parse_args(argv)


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if not items:
        return overrides

    allowed = {item.name for item in fields(DirectionSettings)} - {"per_kind"}
    kinds = {kind.value for kind in RegionKind}
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key.startswith(_KIND_PREFIX):
            if key[len(_KIND_PREFIX):] not in kinds:
                raise ValueError(f"Unknown region kind '{key[len(_KIND_PREFIX):]}'.")
        elif key not in allowed:
            raise ValueError(f"Unknown setting '{key}'.")
        overrides[key] = raw_value.strip()
    return overrides


def _dump_settings(
    settings: DirectionSettings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    metadata = {
        "path": str(store.path),
        "cli_overrides": sorted(overrides.keys()),
        "environment_variables": _active_env_overrides(),
    }
    output = {"settings": settings.to_payload(), "meta": metadata}
    json.dump(output, destination, indent=2)
    destination.write("\n")


def _active_env_overrides() -> list[str]:
    return sorted(name for name in os.environ if name.startswith("FLOWDIR_"))


if __name__ == "__main__":  # pragma: no cover - manual invocation
    raise SystemExit(main())
