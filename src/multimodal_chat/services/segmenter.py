"""Splitting of raw model output into text and math segments.

The scanner works in two passes with a fixed precedence:

1. Paragraphs: every run of newlines is a boundary. Paragraphs are stripped
   and blank ones dropped.
2. Math spans inside a paragraph, scanned left to right. ``$$`` opens a span
   closed by the next ``$$``; a single ``$`` opens a span closed by the next
   ``$``. A delimiter with no closer is ordinary text.

Math interiors are passed through verbatim; no LaTeX validation happens here.
"""

import re
from typing import Dict, List, Optional, Tuple

from ..domain.models import Segment

_PARAGRAPH_SPLIT = re.compile(r"\n+")
_LOGO_LINE = re.compile(r"^[A-Z\s]+$")
_BOLD = re.compile(r"\*\*(.+?)\*\*")
_SECTION_END = re.compile(r":\s*$")
_NUMBERED_HEADING = re.compile(r"^\d+\.\s+<strong>")

DISPLAY_MATH_MIN_LENGTH = 40


def _paragraphs(raw: Optional[str]) -> List[str]:
    if not raw or not isinstance(raw, str):
        return []
    return [p.strip() for p in _PARAGRAPH_SPLIT.split(raw) if p.strip()]


def _find_span(paragraph: str, start: int) -> Optional[Tuple[int, int, str]]:
    """Locate the next closed math span at or after ``start``.

    Returns ``(span_start, span_end, interior)`` or None.
    """
    pos = paragraph.find("$", start)
    while pos != -1:
        if paragraph.startswith("$$", pos):
            close = paragraph.find("$$", pos + 2)
            if close != -1:
                return pos, close + 2, paragraph[pos + 2:close]
        close = paragraph.find("$", pos + 1)
        if close == -1:
            return None
        if close > pos + 1:
            return pos, close + 1, paragraph[pos + 1:close]
        # Unclosed "$$": the first "$" stays text and the second may open a
        # span, so "a $$b$ c" gives text "a $", math "b", text "c"
        pos = paragraph.find("$", pos + 1)
    return None


def _segment_paragraph(paragraph: str) -> List[Segment]:
    segments: List[Segment] = []
    cursor = 0
    while True:
        span = _find_span(paragraph, cursor)
        if span is None:
            break
        span_start, span_end, interior = span
        before = paragraph[cursor:span_start].strip()
        if before:
            segments.append(Segment(type="text", content=before))
        if interior.strip():
            segments.append(Segment(type="math", content=interior))
        cursor = span_end

    after = paragraph[cursor:].strip()
    if after:
        segments.append(Segment(type="text", content=after))
    return segments


def segment_response(raw: Optional[str]) -> List[Segment]:
    """Split raw model output into ordered, non-empty text/math segments."""
    segments: List[Segment] = []
    for paragraph in _paragraphs(raw):
        segments.extend(_segment_paragraph(paragraph))
    return segments


def segment_with_logo(raw: Optional[str]) -> Tuple[Optional[str], List[Segment]]:
    """Like :func:`segment_response`, but pull an all-caps first line out as a label."""
    paragraphs = _paragraphs(raw)
    logo = None
    if paragraphs and _LOGO_LINE.match(paragraphs[0]):
        logo = paragraphs.pop(0)

    segments: List[Segment] = []
    for paragraph in paragraphs:
        segments.extend(_segment_paragraph(paragraph))
    return logo, segments


def is_display_math(content: str) -> bool:
    """Whether a math segment renders as a display block rather than inline."""
    content = content.strip()
    return "=" in content or "\\\\" in content or len(content) > DISPLAY_MATH_MIN_LENGTH


def render_segments(segments: List[Segment]) -> str:
    """Join segments into the content string stored on a bot message."""
    out = ""
    prev_type = None
    # set when a display block withheld its trailing break for the next block
    glued = False

    for index, segment in enumerate(segments):
        if segment.type == "text":
            text = segment.content.strip()
            if not text:
                continue
            text = _BOLD.sub(r"<strong>\1</strong>", text)
            breaks_section = bool(_SECTION_END.search(text) or _NUMBERED_HEADING.match(text))

            if out:
                if prev_type == "math" and not out.endswith("\n\n"):
                    out += " "
                elif not out.endswith((" ", "\n")):
                    out += " "
            out += text

            if breaks_section and index < len(segments) - 1:
                out += "\n\n"
            prev_type = "text"
            continue

        math = segment.content.strip()
        if not math:
            continue

        if is_display_math(math):
            if out and not glued and not out.endswith("\n\n"):
                out += "\n\n"
            out += f"$${math}$$"

            following = segments[index + 1] if index + 1 < len(segments) else None
            glued = following is not None and following.type == "math" and "=" not in following.content
            if not glued:
                out += "\n\n"
        else:
            if out and not out.endswith(" "):
                out += " "
            out += f"${math}$"
            glued = False
        prev_type = "math"

    return out.strip()


def to_legacy_payload(segments: List[Segment], logo: Optional[str] = None) -> Dict[str, str]:
    """Older response shape: one newline-joined string plus the logo label."""
    lines = [
        f"${s.content}$" if s.type == "math" else s.content
        for s in segments
    ]
    return {"text_content": "\n".join(lines), "logo_content": logo or ""}
