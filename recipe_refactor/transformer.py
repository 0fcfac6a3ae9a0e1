"""Rewrite ``meta = with lib; { ... }`` blocks into explicitly qualified ``lib.`` references.

The rewrite works on a span stream produced by :func:`scan_spans`: string
literals (including their ``${...}`` interpolations) and comments are
literal spans and are copied through untouched, only code spans are
rewritten.
"""
from __future__ import annotations

import re
from bisect import bisect_right
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

SPAN_CODE = "code"
SPAN_STRING = "string"
SPAN_COMMENT = "comment"

LIB_NAMESPACES: Tuple[str, ...] = (
    "licenses",
    "maintainers",
    "platforms",
    "sourceTypes",
    "teams",
    "hydraPlatforms",
    "badPlatforms",
    "versions",
)

LIB_FUNCTIONS: Tuple[str, ...] = (
    "optionals",
    "optional",
    "mkIf",
    "mkMerge",
    "replaceStrings",
    "isOlder",
    "versionOlder",
    "attrNames",
    "length",
    "intersectLists",
    "hasInfix",
    "subtractLists",
    "optionalString",
    "versionAtLeast",
)

# Nix identifiers may contain ``-`` and ``'``; a preceding ``.`` means the name is already qualified.
_NOT_QUALIFIED = r"(?<![\w.'-])"
_IDENT_END = r"(?![\w'-])"
_ATTR_START = r"(?<![\w'-])"

ANCHOR_RE = re.compile(_ATTR_START + r"meta\s*=\s*(?:with\s+lib\s*;\s*)?\{")
WITH_LIB_ANCHOR_RE = re.compile(_ATTR_START + r"meta\s*=\s*with\s+lib\s*;")
_HEADER_WITH_LIB_RE = re.compile(r"^(meta\s*=\s*)with\s+lib\s*;\s*")
_DOUBLE_LIB_RE = re.compile(_NOT_QUALIFIED + r"lib\.lib\.")

_NAMESPACE_RULES = [
    (
        re.compile(_NOT_QUALIFIED + r"with(\s+)" + re.escape(name) + r"(\s*;)"),
        rf"with\1lib.{name}\2",
    )
    for name in LIB_NAMESPACES
] + [
    (re.compile(_NOT_QUALIFIED + re.escape(name) + r"\."), f"lib.{name}.")
    for name in LIB_NAMESPACES
]

# A bare function name on the left of ``=`` is an attribute definition, not a reference.
_FUNCTION_RULES = [
    (re.compile(_NOT_QUALIFIED + re.escape(name) + _IDENT_END + r"(?!\s*=(?!=))"), f"lib.{name}")
    for name in LIB_FUNCTIONS
]


@dataclass(frozen=True)
class Span:
    kind: str
    start: int
    end: int

    @property
    def is_literal(self) -> bool:
        return self.kind != SPAN_CODE


@dataclass(frozen=True)
class MetaBlock:
    start: int
    open_brace: int
    close_brace: int

    @property
    def end(self) -> int:
        return self.close_brace + 1


def _skip_interpolation(text: str, index: int) -> int:
    """Return the index just past the ``}`` closing an interpolation whose body starts at ``index``."""
    depth = 1
    length = len(text)
    while index < length:
        literal_end = _literal_end(text, index)
        if literal_end is not None:
            index = literal_end[1]
            continue
        char = text[index]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index + 1
        index += 1
    return length


def _double_quoted_end(text: str, index: int) -> int:
    length = len(text)
    index += 1
    while index < length:
        char = text[index]
        if char == "\\":
            index += 2
        elif text.startswith("$$", index):
            index += 2
        elif text.startswith("${", index):
            index = _skip_interpolation(text, index + 2)
        elif char == '"':
            return index + 1
        else:
            index += 1
    return length


def _indented_end(text: str, index: int) -> int:
    length = len(text)
    index += 2
    while index < length:
        if text.startswith("''", index):
            follower = text[index + 2 : index + 3]
            if follower in ("'", "$"):
                index += 3
            elif follower == "\\":
                index += 4
            else:
                return index + 2
        elif text.startswith("$$", index):
            index += 2
        elif text.startswith("${", index):
            index = _skip_interpolation(text, index + 2)
        else:
            index += 1
    return length


def _literal_end(text: str, index: int) -> Optional[Tuple[str, int]]:
    """Return ``(kind, end)`` if a string or comment starts at ``index``."""
    char = text[index]
    if char == '"':
        return SPAN_STRING, _double_quoted_end(text, index)
    if text.startswith("''", index) and (index == 0 or not re.match(r"[\w'-]", text[index - 1])):
        return SPAN_STRING, _indented_end(text, index)
    if char == "#":
        newline = text.find("\n", index)
        return SPAN_COMMENT, len(text) if newline == -1 else newline
    if text.startswith("/*", index):
        close = text.find("*/", index + 2)
        return SPAN_COMMENT, len(text) if close == -1 else close + 2
    return None


def scan_spans(text: str) -> List[Span]:
    """Split ``text`` into contiguous code, string and comment spans."""
    spans: List[Span] = []
    code_start = 0
    index = 0
    length = len(text)
    while index < length:
        literal = _literal_end(text, index)
        if literal is None:
            index += 1
            continue
        kind, end = literal
        if code_start < index:
            spans.append(Span(SPAN_CODE, code_start, index))
        spans.append(Span(kind, index, end))
        index = code_start = end
    if code_start < length:
        spans.append(Span(SPAN_CODE, code_start, length))
    return spans


def _is_code(spans: List[Span], starts: List[int], position: int) -> bool:
    slot = bisect_right(starts, position) - 1
    return slot >= 0 and spans[slot].kind == SPAN_CODE and position < spans[slot].end


def _code_matches(pattern: re.Pattern, text: str, spans: List[Span]) -> Iterator[re.Match]:
    starts = [span.start for span in spans]
    for match in pattern.finditer(text):
        if _is_code(spans, starts, match.start()):
            yield match


def count_anchors(text: str) -> int:
    """Count ``meta = with lib;`` anchors outside string literals and comments."""
    return sum(1 for _ in _code_matches(WITH_LIB_ANCHOR_RE, text, scan_spans(text)))


def find_matching_brace(text: str, spans: List[Span], open_index: int) -> int:
    """Return the index of the ``}`` closing ``text[open_index]``, or -1.

    Braces inside literal spans are ignored.
    """
    if open_index >= len(text) or text[open_index] != "{":
        return -1
    depth = 0
    for span in spans:
        if span.end <= open_index or span.is_literal:
            continue
        for index in range(max(span.start, open_index), span.end):
            char = text[index]
            if char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return index
    return -1


def find_meta_block(text: str, spans: Optional[List[Span]] = None) -> Optional[MetaBlock]:
    spans = spans if spans is not None else scan_spans(text)
    match = next(_code_matches(ANCHOR_RE, text, spans), None)
    if match is None:
        return None
    open_brace = match.end() - 1
    close_brace = find_matching_brace(text, spans, open_brace)
    if close_brace == -1:
        return None
    return MetaBlock(start=match.start(), open_brace=open_brace, close_brace=close_brace)


def qualify_code(code: str) -> str:
    """Apply the ``lib.`` qualification rules to a code-only fragment."""
    for pattern, replacement in _NAMESPACE_RULES:
        code = pattern.sub(replacement, code)
    for pattern, replacement in _FUNCTION_RULES:
        code = pattern.sub(replacement, code)
    return _DOUBLE_LIB_RE.sub("lib.", code)


def rewrite_meta_block(text: str) -> Optional[str]:
    """Return ``text`` with its first meta block rewritten, or ``None`` if there is no complete block."""
    spans = scan_spans(text)
    block = find_meta_block(text, spans)
    if block is None:
        return None

    header = _HEADER_WITH_LIB_RE.sub(r"\1", text[block.start : block.open_brace], count=1)
    pieces = [text[: block.start], header]
    for span in spans:
        start = max(span.start, block.open_brace)
        end = min(span.end, block.end)
        if start >= end:
            continue
        fragment = text[start:end]
        pieces.append(fragment if span.is_literal else qualify_code(fragment))
    pieces.append(text[block.end :])
    return "".join(pieces)
