"""Multimodal chat: Gemini-backed chat service and client core."""

__version__ = "0.1.0"
