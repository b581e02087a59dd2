"""
Text zone fitting.

Wraps slide text into lines for a template zone using a fixed glyph-width
estimate (fontSize * 0.55) instead of font metrics, so the interactive
preview and the server-side export always break lines at the same places.

Rules, in order:
- user line breaks are kept; a blank paragraph costs one line
- tokens are whitespace-delimited, but a {{color}}…{{/}} run is never
  broken up and stays glued to the text around it ("{{…}}time{{/}}.")
- 1-2 letter words never start a line; they pull the previous word down,
  or glue onto the current line when that fails
- tokens wider than a line are hard-split, except highlight runs
- output stops at zone.max_lines, no ellipsis
"""

import math
import re
from typing import Optional

from slidekit.services.highlights import strip_markers, visible_length

GLYPH_WIDTH_FACTOR = 0.55

_HIGHLIGHT_RUN = r"\{\{(?:#[\da-fA-F]{6}|[a-z]+)\}\}.+?\{\{/\}\}"
_HIGHLIGHT = re.compile(_HIGHLIGHT_RUN, re.S)
_TOKEN = re.compile(rf"(?:{_HIGHLIGHT_RUN}|\S)+", re.S)
_ANY_MARKER = re.compile(r"\{\{(?:#[\da-fA-F]{6}|[a-z]+|/)\}\}")


def chars_per_line(zone) -> int:
    return max(1, math.floor(zone.w / (zone.font_size * GLYPH_WIDTH_FACTOR)))


def has_highlight(token: str) -> bool:
    return bool(_HIGHLIGHT.search(token))


def is_short_token(token: str) -> bool:
    # A letter is required: "—" and "42" wrap like ordinary words
    visible = strip_markers(token)
    return 1 <= len(visible) <= 2 and any(c.isalpha() for c in visible)


def tokenize(paragraph: str) -> list[str]:
    """Whitespace tokens; spaces inside a highlight run do not split it."""
    return _TOKEN.findall(paragraph)


def _width(tokens: list[str]) -> int:
    return sum(visible_length(t) for t in tokens) + max(0, len(tokens) - 1)


def _hard_split(token: str, budget: int) -> list[str]:
    """Chunk a token by visible characters; marker sequences are zero-width and stay intact."""
    chunks: list[str] = []
    chunk = ""
    count = 0
    pos = 0
    while pos < len(token):
        marker = _ANY_MARKER.match(token, pos)
        if marker:
            chunk += marker.group(0)
            pos = marker.end()
            continue
        if count == budget:
            chunks.append(chunk)
            chunk, count = "", 0
        chunk += token[pos]
        count += 1
        pos += 1
    if chunk:
        if count == 0 and chunks:
            chunks[-1] += chunk
        else:
            chunks.append(chunk)
    return chunks


def _reflow_point(current: list[str], token: str, budget: int) -> Optional[int]:
    """
    Index in the current line where a new line can start so that the short
    token does not lead it. The tail [k:] moves down together with the token.
    """
    for k in range(len(current) - 1, 0, -1):
        if is_short_token(current[k]):
            continue
        # leaving a lone short word behind is no better
        if k == 1 and is_short_token(current[0]):
            return None
        if _width(current[k:] + [token]) <= budget:
            return k
        return None
    return None


def _wrap_paragraph(paragraph: str, budget: int, max_lines: int) -> list[str]:
    lines: list[str] = []
    current: list[str] = []

    def emit(tokens: list[str]) -> bool:
        lines.append(" ".join(tokens))
        return len(lines) >= max_lines

    for token in tokenize(paragraph):
        short = is_short_token(token)

        if short and not current and lines:
            lines[-1] = f"{lines[-1]} {token}"
            continue

        candidate = current + [token]
        if _width(candidate) <= budget:
            current = candidate
            continue

        if short:
            k = _reflow_point(current, token, budget)
            if k is None:
                current = candidate
            else:
                if emit(current[:k]):
                    return lines
                current = current[k:] + [token]
            continue

        lead: list[str] = []
        if len(current) == 1 and is_short_token(current[0]):
            lead = current
        elif current and emit(current):
            return lines
        current = []

        if visible_length(token) <= budget:
            current = lead + [token]
        elif has_highlight(token):
            if emit(lead + [token]):
                return lines
        else:
            for n, chunk in enumerate(_hard_split(token, budget)):
                if emit(lead + [chunk] if n == 0 else [chunk]):
                    return lines

    if current:
        emit(current)
    return lines


def fit_text_to_zone(text: str, zone) -> list[str]:
    """Wrap text into at most zone.max_lines lines for the zone's width and font size."""
    if not text or not text.strip():
        return []

    budget = chars_per_line(zone)
    lines: list[str] = []
    for paragraph in text.split("\n"):
        remaining = zone.max_lines - len(lines)
        if remaining <= 0:
            break
        if not paragraph.strip():
            lines.append("")
            continue
        lines.extend(_wrap_paragraph(paragraph.strip(), budget, remaining))

    return lines[:zone.max_lines]


def shorten_text_to_zone(text: str, zone) -> str:
    """Single string that fits the zone: the fitted lines joined with spaces."""
    return " ".join(fit_text_to_zone(text, zone)).strip()
