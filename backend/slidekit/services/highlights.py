"""
Highlight spans and inline markers for slide text.

Plain text is stored without markup; highlights live beside it as
[start, end) spans. At render time the spans are turned back into inline
markers that the fitter and the HTML builder understand:

- {{#facc15}}word{{/}} or {{yellow}}word{{/}} → colored text
- **word** → bold text
- an unclosed {{yellow}} colors the rest of the line
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Union

from slidekit.schemas import HighlightSpan

# Preset highlight colors with good contrast on dark backgrounds
HIGHLIGHT_COLORS = {
    "yellow": "#facc15",
    "amber": "#fbbf24",
    "orange": "#fb923c",
    "lime": "#a3e635",
    "green": "#4ade80",
    "cyan": "#22d3ee",
    "sky": "#38bdf8",
    "pink": "#f472b6",
    "rose": "#fb7185",
    "white": "#ffffff",
}
DEFAULT_HIGHLIGHT_COLOR = HIGHLIGHT_COLORS["yellow"]

_OPEN_MARKER = re.compile(r"\{\{(?:#[\da-fA-F]{6}|[a-z]+)\}\}")
_CLOSE_MARKER = re.compile(r"\{\{/\}\}")
_COLOR_RUN = re.compile(r"\{\{(#[\da-fA-F]{6}|[a-z]+)\}\}(.+?)\{\{/\}\}", re.S)
_BOLD_RUN = re.compile(r"\*\*(.+?)\*\*", re.S)
_UNCLOSED_RUN = re.compile(r"\{\{(#[\da-fA-F]{6}|[a-z]+)\}\}(.*)", re.S)
_HEX = re.compile(r"^#?([\da-fA-F]{3}|[\da-fA-F]{6})$")

SpanLike = Union[HighlightSpan, dict]


@dataclass(frozen=True)
class InlineSegment:
    type: str  # normal, bold or color
    text: str
    color: Optional[str] = None


def is_word_char(ch: str) -> bool:
    return ch.isalnum() or ch in "'’"


def resolve_highlight_color(color: Optional[str]) -> str:
    """Preset name or hex (with or without '#') → '#rrggbb'. Unknown values fall back to yellow."""
    if not color:
        return DEFAULT_HIGHLIGHT_COLOR
    value = color.strip()
    if value.lower() in HIGHLIGHT_COLORS:
        return HIGHLIGHT_COLORS[value.lower()]
    match = _HEX.match(value)
    if not match:
        return DEFAULT_HIGHLIGHT_COLOR
    digits = match.group(1).lower()
    if len(digits) == 3:
        digits = "".join(c * 2 for c in digits)
    return f"#{digits}"


def expand_to_word_boundary(text: str, start: int, end: int) -> Optional[tuple[int, int]]:
    """
    Grow a raw selection to the enclosing word.

    Only the first word of a multi-word selection is kept. Returns None when
    the selection holds no word character at all; callers drop the highlight.
    """
    length = len(text)
    start = max(0, min(start, length))
    end = max(0, min(end, length))

    first = next((i for i in range(start, end) if is_word_char(text[i])), None)
    if first is None:
        return None

    left = first
    while left > 0 and is_word_char(text[left - 1]):
        left -= 1
    right = first + 1
    while right < length and is_word_char(text[right]):
        right += 1
    return left, right


def _span_fields(span: SpanLike) -> tuple[int, int, Optional[str]]:
    if isinstance(span, HighlightSpan):
        return span.start, span.end, span.color
    return int(span.get("start", 0)), int(span.get("end", 0)), span.get("color")


def normalize_spans(text: str, spans: Iterable[SpanLike]) -> list[HighlightSpan]:
    """Snap spans to whole words, sort them and drop collisions (the earlier span wins)."""
    expanded = []
    for span in spans:
        start, end, color = _span_fields(span)
        bounds = expand_to_word_boundary(text, start, end)
        if bounds is None:
            continue
        expanded.append((bounds[0], bounds[1], resolve_highlight_color(color)))

    expanded.sort(key=lambda s: s[0])

    result: list[HighlightSpan] = []
    last_end = 0
    for start, end, color in expanded:
        if result and start < last_end:
            continue
        result.append(HighlightSpan(start=start, end=end, color=color))
        last_end = end
    return result


def inject_markers(text: str, spans: Iterable[SpanLike]) -> str:
    """Wrap each span in {{#rrggbb}}…{{/}}. Spans are clamped; where ranges collide the earlier one wins."""
    length = len(text)
    clamped = []
    for span in spans:
        start, end, color = _span_fields(span)
        start = max(0, min(start, length))
        end = max(0, min(end, length))
        if end > start:
            clamped.append((start, end, color))
    if not clamped:
        return text
    clamped.sort(key=lambda s: s[0])

    out = []
    last_end = 0
    for span_start, span_end, color in clamped:
        start = max(span_start, last_end)
        if start >= span_end:
            continue
        if start > last_end:
            out.append(text[last_end:start])
        out.append(f"{{{{{resolve_highlight_color(color)}}}}}{text[start:span_end]}{{{{/}}}}")
        last_end = span_end
    out.append(text[last_end:])
    return "".join(out)


def strip_markers(text: str) -> str:
    """
    Remove every color marker. Marker-shaped literal text such as "{{name}}"
    is removed as well, so strip_markers(inject_markers(t, spans)) == t only
    holds for text without such sequences.
    """
    return _CLOSE_MARKER.sub("", _OPEN_MARKER.sub("", text))


def visible_length(text: str) -> int:
    """Character count a reader sees, markers excluded."""
    return len(strip_markers(text))


def _color_for(key: str) -> str:
    return key if key.startswith("#") else HIGHLIGHT_COLORS.get(key, DEFAULT_HIGHLIGHT_COLOR)


def parse_inline_formatting(text: str) -> list[InlineSegment]:
    """
    Split one line into normal, bold and color runs.

    The construct that starts earliest wins; a closed color run beats bold at
    the same offset, and bold beats an unclosed color run. Malformed markup is
    returned as normal text.
    """
    segments: list[InlineSegment] = []
    remaining = text.replace("***", "**")

    while remaining:
        color = _COLOR_RUN.search(remaining)
        bold = _BOLD_RUN.search(remaining)
        unclosed = _UNCLOSED_RUN.search(remaining)

        if color and (not bold or color.start() <= bold.start()):
            if color.start():
                segments.append(InlineSegment("normal", remaining[:color.start()]))
            segments.append(InlineSegment("color", color.group(2), _color_for(color.group(1))))
            remaining = remaining[color.end():]
        elif bold and (not unclosed or bold.start() <= unclosed.start()):
            if bold.start():
                segments.append(InlineSegment("normal", remaining[:bold.start()]))
            segments.append(InlineSegment("bold", bold.group(1)))
            remaining = remaining[bold.end():]
        elif unclosed:
            if unclosed.start():
                segments.append(InlineSegment("normal", remaining[:unclosed.start()]))
            if unclosed.group(2):
                segments.append(InlineSegment("color", unclosed.group(2), _color_for(unclosed.group(1))))
            break
        else:
            segments.append(InlineSegment("normal", remaining))
            break

    return segments


# ============================================
# AUTOMATIC KEYWORDS
# ============================================

# Words that read as the "punch" of a hook or point
PUNCH_WORDS = {
    "never", "always", "stop", "start", "secret", "mistake", "mistakes",
    "best", "worst", "free", "new", "first", "only", "fast", "faster",
    "easy", "simple", "hard", "wrong", "right", "why", "how", "must",
    "growth", "money", "results", "proven", "instantly", "biggest",
    "million", "billion", "percent", "double", "triple", "zero",
}


def auto_highlight_words(text: str, limit: int = 4) -> list[str]:
    """Pick words worth highlighting: numbers and punch words, else words at fixed positions."""
    words = strip_markers(text).split()
    picked: list[str] = []

    for word in words:
        clean = word.strip(".,!?:;\"()")
        if not clean:
            continue
        if any(c.isdigit() for c in clean) or clean.lower() in PUNCH_WORDS:
            if clean not in picked:
                picked.append(clean)

    # Not enough signal, fall back to positions that usually carry the noun
    if len(picked) < 2 and len(words) > 4:
        for idx in (1, 4, 7):
            if idx < len(words):
                clean = words[idx].strip(".,!?:;\"()")
                if clean and clean not in picked:
                    picked.append(clean)
                    if len(picked) >= 3:
                        break

    return picked[:limit]


def spans_from_words(text: str, words: Iterable[str], color: Optional[str] = None) -> list[HighlightSpan]:
    """Highlight every whole-word, case-insensitive occurrence of the given words."""
    raw: list[dict] = []
    for entry in words:
        for word in entry.split():
            pattern = re.compile(rf"(?<![\w'’]){re.escape(word)}(?![\w'’])", re.IGNORECASE)
            for match in pattern.finditer(text):
                raw.append({"start": match.start(), "end": match.end(), "color": color})
    return normalize_spans(text, raw)
