"""Gemini service: sends multimodal prompts and segments the replies."""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import google.generativeai as genai
import structlog
from google.api_core import exceptions

from ..config import Settings, get_settings
from ..domain.models import Segment
from .segmenter import segment_response, segment_with_logo

logger = structlog.get_logger()

NO_TEXT_FALLBACK = "Sorry, I could not process your request."


class UpstreamAPIError(Exception):
    """Raised when the Gemini endpoint fails or does not answer in time."""


@dataclass
class Attachment:
    """An uploaded image or audio file forwarded inline to the model."""

    data: bytes
    mime_type: str
    filename: Optional[str] = None


@dataclass
class GeminiReply:
    """Segmented model reply, with the optional all-caps label."""

    segments: List[Segment]
    logo: Optional[str] = None


class GeminiService:
    """Google Gemini client for multimodal chat turns."""

    def __init__(self, settings: Optional[Settings] = None):
        """Configure the SDK and the model."""
        self.settings = settings or get_settings()
        if self.settings.google_api_key:
            genai.configure(api_key=self.settings.google_api_key)
        self.model = genai.GenerativeModel(self.settings.gemini_model)
        logger.info(
            "gemini_service_init",
            model=self.settings.gemini_model,
            has_api_key=bool(self.settings.google_api_key),
        )

    @staticmethod
    def build_parts(text: Optional[str], attachment: Optional[Attachment]) -> List[Dict[str, Any]]:
        """Gemini content parts for one user turn."""
        parts: List[Dict[str, Any]] = []
        if text:
            parts.append({"text": text})
        if attachment is not None:
            parts.append({"inline_data": {"mime_type": attachment.mime_type, "data": attachment.data}})
        return parts

    @staticmethod
    def extract_text(response: Any) -> str:
        """Join the text parts of the first candidate."""
        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            return ""
        content = getattr(candidates[0], "content", None)
        parts = getattr(content, "parts", None) or []
        texts = [getattr(p, "text", "") for p in parts]
        return "\n".join(t for t in texts if t)

    async def generate(self, text: Optional[str], attachment: Optional[Attachment] = None) -> str:
        """Send one turn and return the raw reply text."""
        contents = [{"role": "user", "parts": self.build_parts(text, attachment)}]
        try:
            response = await asyncio.wait_for(
                self.model.generate_content_async(contents),
                timeout=self.settings.request_timeout,
            )
        except asyncio.TimeoutError:
            logger.error("gemini_timeout", timeout=self.settings.request_timeout)
            raise UpstreamAPIError(
                f"Gemini API error: no response within {self.settings.request_timeout:g} seconds"
            )
        except exceptions.GoogleAPIError as e:
            logger.error("gemini_api_error", error=str(e))
            raise UpstreamAPIError(f"Gemini API error: {getattr(e, 'message', None) or e}") from e

        raw = self.extract_text(response)
        logger.info("gemini_response", length=len(raw))
        return raw or NO_TEXT_FALLBACK

    async def reply(self, text: Optional[str], attachment: Optional[Attachment] = None) -> GeminiReply:
        """Generate a reply and split it into segments."""
        raw = await self.generate(text, attachment)
        if self.settings.response_logo_label:
            logo, segments = segment_with_logo(raw)
            return GeminiReply(segments=segments, logo=logo)
        return GeminiReply(segments=segment_response(raw))
