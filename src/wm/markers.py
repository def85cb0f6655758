"""Marker-based response parsing for generation output.

The generator is asked to answer with a line like ``HAS_KNOWLEDGE: YES``
followed by its payload. Models sometimes wrap that line in markdown
(``## HAS_KNOWLEDGE: yes``, ``> **HAS_KNOWLEDGE: TRUE**``), so matching is
lenient. When no usable marker is found the answer is treated as negative:
dropping a real insight is preferred over storing garbage.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from wm.errors import AmbiguousValue, ParseError

logger = logging.getLogger(__name__)

HAS_KNOWLEDGE = "HAS_KNOWLEDGE"
HAS_RELEVANT = "HAS_RELEVANT"
WAS_COMPRESSED = "WAS_COMPRESSED"

GUARDRAILS = "GUARDRAILS"
METIS = "METIS"

_TRUE_VALUES = {"YES", "TRUE"}
_FALSE_VALUES = {"NO", "FALSE"}
_BULLETS = ("-", "*", "•")


@dataclass(frozen=True)
class MarkerResponse:
    """Decision plus the text that followed the marker line."""

    decision: bool
    payload: str = ""


def strip_markdown_prefix(line: str) -> str:
    """Trim whitespace and leading ``#``, ``>``, ``*`` characters (in any mix)."""
    return line.strip().lstrip("#>* \t")


def parse_marker_value(value: str) -> bool:
    """Map a marker value to a bool. Raises AmbiguousValue for anything else."""
    token = value.strip().strip("*_`.").strip().upper()
    if token in _TRUE_VALUES:
        return True
    if token in _FALSE_VALUES:
        return False
    raise AmbiguousValue(f"Unrecognized marker value: {value!r}")


def _trim_blank_lines(lines: list[str]) -> str:
    start, end = 0, len(lines)
    while start < end and not lines[start].strip():
        start += 1
    while end > start and not lines[end - 1].strip():
        end -= 1
    return "\n".join(lines[start:end])


def parse_marker_response(text: str, marker: str) -> MarkerResponse:
    """Parse ``text`` for ``<marker>: YES|NO|TRUE|FALSE``.

    Returns the decision and everything after the marker line (blank lines
    at either end removed). A missing marker or an unrecognized value yields
    ``MarkerResponse(False, "")``.
    """
    lines = text.splitlines()
    prefix = f"{marker.upper()}:"

    for i, line in enumerate(lines):
        stripped = strip_markdown_prefix(line)
        if not stripped.upper().startswith(prefix):
            continue
        try:
            decision = parse_marker_value(stripped[len(prefix):])
        except AmbiguousValue as e:
            logger.warning("%s; treating %s as negative", e, marker)
            return MarkerResponse(decision=False)
        if not decision:
            return MarkerResponse(decision=False)
        return MarkerResponse(decision=True, payload=_trim_blank_lines(lines[i + 1:]))

    logger.info("No %s marker found in response, treating as negative", marker)
    return MarkerResponse(decision=False)


def parse_bullet_item(line: str) -> str | None:
    """Return the text of a bullet line, or None for blank/bare bullets."""
    content = line.strip()
    if not content:
        return None
    for bullet in _BULLETS:
        if content.startswith(bullet):
            content = content.lstrip(bullet).strip()
            break
    return content or None


def parse_sections(
    text: str, names: tuple[str, ...] = (GUARDRAILS, METIS), *, strict: bool = False
) -> dict[str, list[str]]:
    """Split sectioned output into bullet items per section.

    A line that (after markdown prefix trimming) equals ``NAME`` or starts
    with ``NAME:`` opens that section. Only bullet lines inside a section are
    collected; prose is ignored. Sections absent from the text map to [].
    With ``strict``, text that opens none of the sections raises ParseError.
    """
    sections: dict[str, list[str]] = {name: [] for name in names}
    current: str | None = None
    seen = False

    for line in text.splitlines():
        header = strip_markdown_prefix(line).upper()
        matched = next(
            (n for n in names if header == n.upper() or header.startswith(f"{n.upper()}:")),
            None,
        )
        if matched:
            current = matched
            seen = True
            continue
        if current is None:
            continue
        stripped = line.strip()
        if not stripped.startswith(_BULLETS):
            continue
        item = parse_bullet_item(stripped)
        if item:
            sections[current].append(item)

    if strict and not seen:
        raise ParseError(f"No {'/'.join(names)} section in response")
    return sections
