"""Document-scoped direction overrides and their metadata backends."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from ..core.directions import OverrideState
from ..core.errors import FrontMatterError, NoActiveDocumentError

try:  # pragma: no cover - dependency provided via pyproject
    from ruamel.yaml import YAML
except Exception:  # pragma: no cover - graceful fallback when optional dep missing
    YAML = None  # type: ignore[assignment]

__all__ = [
    "DocumentMetadataStore",
    "FrontMatterMetadataStore",
    "InMemoryMetadataStore",
    "OverrideChange",
    "OverrideStore",
]

LOGGER = logging.getLogger(__name__)
DIRECTION_KEY = "direction"
_FENCE = "---"
_BOM = "\ufeff"


class DocumentMetadataStore(Protocol):
    """Backend that persists a single direction field per document."""

    def supports(self, document_id: str) -> bool:
        """Return ``True`` when ``document_id`` can carry an override."""
        ...

    def read_override(self, document_id: str) -> OverrideState:
        ...

    def write_override(self, document_id: str, state: OverrideState) -> None:
        ...


class InMemoryMetadataStore:
    """Metadata store backed by a plain dictionary of raw persisted values."""

    def __init__(self, values: Dict[str, Any] | None = None) -> None:
        self._values: Dict[str, Any] = dict(values or {})

    def supports(self, document_id: str) -> bool:
        return bool(document_id)

    def read_override(self, document_id: str) -> OverrideState:
        return OverrideState.parse(self._values.get(document_id))

    def write_override(self, document_id: str, state: OverrideState) -> None:
        if state is OverrideState.NONE:
            self._values.pop(document_id, None)
        else:
            self._values[document_id] = state.value

    def raw_value(self, document_id: str) -> Any:
        return self._values.get(document_id)


class FrontMatterMetadataStore:
    """Reads and writes the ``direction`` key of a markdown note's YAML front matter.

    Document ids are filesystem paths. Only ``.md`` notes are eligible, other
    front matter keys and comments are preserved on write, and the key is
    removed entirely when the override is cleared.
    """

    def __init__(self, root: Path | str | None = None, *, suffixes: tuple[str, ...] = (".md",)) -> None:
        self._root = Path(root).expanduser() if root is not None else None
        self._suffixes = tuple(suffix.lower() for suffix in suffixes)

    def supports(self, document_id: str) -> bool:
        if not document_id:
            return False
        return self._resolve(document_id).suffix.lower() in self._suffixes

    def read_override(self, document_id: str) -> OverrideState:
        path = self._resolve(document_id)
        text = path.read_text(encoding="utf-8")
        block, _ = split_frontmatter(text)
        data = _load_block(block, typ="safe")
        if not isinstance(data, dict):
            return OverrideState.NONE
        return OverrideState.parse(data.get(DIRECTION_KEY))

    def write_override(self, document_id: str, state: OverrideState) -> None:
        if YAML is None:  # pragma: no cover - dependency always installed in CI
            raise RuntimeError("Writing front matter requires the 'ruamel.yaml' dependency.")
        path = self._resolve(document_id)
        text = path.read_text(encoding="utf-8") if path.exists() else ""
        block, body = split_frontmatter(text)
        data = _load_block(block, typ="rt", strict=True)
        if state is OverrideState.NONE:
            if DIRECTION_KEY not in data:
                return
            del data[DIRECTION_KEY]
        else:
            data[DIRECTION_KEY] = state.value
        updated = _render_document(data, body)
        if text.startswith(_BOM):
            updated = _BOM + updated
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        tmp_path.write_text(updated, encoding="utf-8")
        tmp_path.replace(path)
        LOGGER.debug("Wrote direction=%s to %s", state.value, path)

    def _resolve(self, document_id: str) -> Path:
        candidate = Path(document_id).expanduser()
        if self._root is not None and not candidate.is_absolute():
            candidate = self._root / candidate
        return candidate


@dataclass(frozen=True, slots=True)
class OverrideChange:
    """Outcome of an explicit override mutation."""

    document_id: str
    previous: OverrideState
    current: OverrideState
    persisted: bool

    @property
    def changed(self) -> bool:
        return self.previous is not self.current


class OverrideStore:
    """Holds the override of the active document and writes explicit changes back."""

    def __init__(self, metadata: DocumentMetadataStore) -> None:
        self._metadata = metadata
        self._document_id: Optional[str] = None
        self._state = OverrideState.NONE

    @property
    def active_document(self) -> Optional[str]:
        return self._document_id

    def has_active_document(self) -> bool:
        return self._document_id is not None

    def current(self) -> OverrideState:
        return self._state

    def activate(self, document_id: Optional[str]) -> OverrideState:
        """Make ``document_id`` the active document and load its override."""

        if not document_id or not self._supports(document_id):
            self.deactivate()
            return self._state
        self._document_id = document_id
        self._state = self._read(document_id)
        LOGGER.debug("Activated document %s (override=%s)", document_id, self._state.value)
        return self._state

    def deactivate(self) -> bool:
        """Forget the active document; returns ``True`` when an override was in effect."""

        had_override = self._state is not OverrideState.NONE
        self._document_id = None
        self._state = OverrideState.NONE
        return had_override

    def set(self, state: OverrideState) -> OverrideChange:
        """Persist ``state`` for the active document and update the in-memory value."""

        document_id = self._document_id
        if document_id is None:
            raise NoActiveDocumentError("No active document to store a direction override on")
        previous = self._state
        self._state = state
        persisted = True
        try:
            self._metadata.write_override(document_id, state)
        except Exception:
            persisted = False
            LOGGER.error("Failed to persist direction override for %s", document_id, exc_info=True)
        return OverrideChange(document_id=document_id, previous=previous, current=state, persisted=persisted)

    def clear(self) -> OverrideChange:
        return self.set(OverrideState.NONE)

    def cycle(self) -> OverrideChange:
        return self.set(self._state.next())

    def _supports(self, document_id: str) -> bool:
        try:
            return bool(self._metadata.supports(document_id))
        except Exception:
            LOGGER.debug("Metadata store rejected document %s", document_id, exc_info=True)
            return False

    def _read(self, document_id: str) -> OverrideState:
        try:
            return OverrideState.parse(self._metadata.read_override(document_id))
        except Exception:
            LOGGER.warning("Unable to read direction override for %s", document_id, exc_info=True)
            return OverrideState.NONE


def split_frontmatter(text: str) -> tuple[Optional[str], str]:
    """Return (frontmatter_block, body) from ``text`` if fenced front matter exists."""

    if not text:
        return None, ""

    working = text.lstrip(_BOM)
    if not working.startswith(_FENCE):
        return None, working

    lines = working.splitlines()
    if not lines or lines[0].strip() != _FENCE:
        return None, working

    closing_index = None
    for idx, line in enumerate(lines[1:], start=1):
        if line.strip() == _FENCE:
            closing_index = idx
            break
    if closing_index is None:
        return None, working

    frontmatter_block = "\n".join(lines[1:closing_index])
    remainder = "\n".join(lines[closing_index + 1 :])
    if working.endswith("\n") and remainder:
        remainder += "\n"
    return frontmatter_block, remainder


def _load_block(block: Optional[str], *, typ: str, strict: bool = False) -> Any:
    """Parse a front matter block.

    Lenient loads treat unparsable or non-mapping blocks as empty. Strict
    loads raise :class:`FrontMatterError` instead, since rewriting such a
    block would discard whatever the user stored in it.
    """

    if not block or not block.strip() or YAML is None:
        return {}
    parser = YAML(typ=typ)
    try:
        data = parser.load(block)
    except Exception as exc:
        if strict:
            raise FrontMatterError(f"Front matter is not valid YAML: {exc}") from exc
        LOGGER.debug("Ignoring unparsable front matter", exc_info=True)
        return {}
    if data is None:
        return {}
    if not isinstance(data, dict):
        if strict:
            raise FrontMatterError(f"Front matter is a {type(data).__name__}, not a mapping")
        return {}
    return data


def _render_document(data: Any, body: str) -> str:
    if not data:
        return body
    parser = YAML()
    buffer = io.StringIO()
    parser.dump(data, buffer)
    return f"{_FENCE}\n{buffer.getvalue()}{_FENCE}\n{body}"
