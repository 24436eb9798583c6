"""Decoding of ``POST /api/chat`` bodies into segments.

Two server revisions exist: the current one returns the segment list, the
older one a ``{text_content, logo_content}`` pair. A bare string reply is
also accepted. Anything else is rejected rather than guessed at.
"""

from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Tag, TypeAdapter, ValidationError

from ..domain.models import Segment
from ..services.segmenter import segment_response


class UnrecognizedResponseShape(Exception):
    """Raised when a chat response body matches none of the known shapes."""


class _Envelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    success: Literal[True]
    input: Optional[str] = None


class SegmentsResponse(_Envelope):
    response: List[Segment]

    def segments(self) -> List[Segment]:
        return self.response


class LegacyContent(BaseModel):
    model_config = ConfigDict(extra="forbid")

    text_content: str
    logo_content: str = ""


class LegacyResponse(_Envelope):
    response: LegacyContent

    def segments(self) -> List[Segment]:
        return segment_response(self.response.text_content)


class TextResponse(_Envelope):
    response: str

    def segments(self) -> List[Segment]:
        return segment_response(self.response)


def _shape_of(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    body = payload.get("response")
    if isinstance(body, list):
        return "segments"
    if isinstance(body, dict):
        return "legacy"
    if isinstance(body, str):
        return "text"
    return None


ChatResponse = Annotated[
    Union[
        Annotated[SegmentsResponse, Tag("segments")],
        Annotated[LegacyResponse, Tag("legacy")],
        Annotated[TextResponse, Tag("text")],
    ],
    Discriminator(_shape_of),
]

_chat_response = TypeAdapter(ChatResponse)


def decode_chat_response(payload: Any) -> List[Segment]:
    """Validate a chat response body and return its segments."""
    try:
        decoded = _chat_response.validate_python(payload)
    except ValidationError as e:
        raise UnrecognizedResponseShape(str(e)) from e
    return decoded.segments()
