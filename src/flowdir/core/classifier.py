"""Lightweight script-range heuristic that guesses a text block's direction."""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import Any

from .directions import Direction

__all__ = [
    "ClassifierConfig",
    "DEFAULT_CLASSIFIER_CONFIG",
    "RTL_RANGES",
    "classify",
    "is_rtl_char",
]

RTL_RANGES: tuple[tuple[int, int], ...] = (
    (0x0590, 0x05FF),  # Hebrew
    (0x0600, 0x06FF),  # Arabic
    (0x0750, 0x077F),  # Arabic Supplement
    (0x08A0, 0x08FF),  # Arabic Extended-A
    (0xFB50, 0xFDFF),  # Arabic Presentation Forms-A
    (0xFE70, 0xFEFF),  # Arabic Presentation Forms-B
)

_CODE_FENCE = "```"
# Order matters: only the first matching marker is stripped.
_MARKDOWN_PREFIXES: tuple[re.Pattern[str], ...] = (
    re.compile(r"^\s*-\s*\[\s*[xX]?\s*\]\s*"),  # task list
    re.compile(r"^\s*[-*+]\s+"),  # bullet list
    re.compile(r"^\s*\d+[.)]\s+"),  # ordered list
    re.compile(r"^\s*#{1,6}\s+"),  # heading
    re.compile(r"^\s*>+\s*"),  # blockquote
)
_NEUTRAL_CATEGORY_PREFIXES = ("N", "P", "S", "Z", "C")


@dataclass(frozen=True, slots=True)
class ClassifierConfig:
    """Heuristic constants for :func:`classify`.

    ``scan_limit`` bounds the first-strong-character scan and
    ``rtl_threshold`` is the RTL letter fraction above which the majority
    fallback answers right-to-left.
    """

    scan_limit: int = 200
    rtl_threshold: float = 0.4


DEFAULT_CLASSIFIER_CONFIG = ClassifierConfig()


def is_rtl_char(char: Any) -> bool:
    """Return ``True`` when ``char`` is a single character in a Hebrew/Arabic block."""

    if not isinstance(char, str) or len(char) != 1:
        return False
    code = ord(char)
    for start, end in RTL_RANGES:
        if start <= code <= end:
            return True
    return False


def classify(text: Any, config: ClassifierConfig | None = None) -> Direction:
    """Return the likely direction of ``text``.

    Code fences are always left-to-right. Otherwise one leading markdown
    marker is stripped, neutral characters are skipped, and the first strong
    character within ``config.scan_limit`` decides. Text without a strong
    character in that window falls back to a majority vote over all letters.
    """

    if not text or not isinstance(text, str):
        return Direction.LTR
    if text.startswith(_CODE_FENCE):
        return Direction.LTR

    cfg = config or DEFAULT_CLASSIFIER_CONFIG
    body = _strip_markdown_prefix(text).strip()
    body = _skip_neutral_prefix(body)
    if not body:
        return Direction.LTR

    for char in body[: max(0, cfg.scan_limit)]:
        if is_rtl_char(char):
            return Direction.RTL
        if _is_basic_latin_letter(char):
            return Direction.LTR

    return _majority_direction(body, cfg.rtl_threshold)


def _strip_markdown_prefix(text: str) -> str:
    for pattern in _MARKDOWN_PREFIXES:
        stripped, count = pattern.subn("", text, count=1)
        if count:
            return stripped
    return text


def _skip_neutral_prefix(text: str) -> str:
    for index, char in enumerate(text):
        if not _is_neutral(char):
            return text[index:]
    return ""


def _is_neutral(char: str) -> bool:
    if char.isspace():
        return True
    return unicodedata.category(char).startswith(_NEUTRAL_CATEGORY_PREFIXES)


def _is_basic_latin_letter(char: str) -> bool:
    return ("a" <= char <= "z") or ("A" <= char <= "Z")


def _majority_direction(text: str, threshold: float) -> Direction:
    rtl_letters = 0
    letters = 0
    for char in text:
        if is_rtl_char(char):
            rtl_letters += 1
        if unicodedata.category(char).startswith("L"):
            letters += 1
    if letters == 0:
        return Direction.LTR
    if rtl_letters / letters > threshold:
        return Direction.RTL
    return Direction.LTR
