"""Tests for decoding chat response bodies."""

import pytest

from multimodal_chat.client.responses import UnrecognizedResponseShape, decode_chat_response
from multimodal_chat.domain.models import Segment


def test_segment_list_shape():
    payload = {
        "success": True,
        "input": "what is energy",
        "response": [{"type": "text", "content": "Energy:"}, {"type": "math", "content": "E=mc^2"}],
    }
    assert decode_chat_response(payload) == [
        Segment(type="text", content="Energy:"),
        Segment(type="math", content="E=mc^2"),
    ]


def test_legacy_shape_is_resegmented():
    payload = {
        "success": True,
        "input": "x",
        "response": {"text_content": "Energy:\n$E=mc^2$\nis famous", "logo_content": ""},
    }
    assert decode_chat_response(payload) == [
        Segment(type="text", content="Energy:"),
        Segment(type="math", content="E=mc^2"),
        Segment(type="text", content="is famous"),
    ]


def test_plain_string_shape():
    payload = {"success": True, "response": "Hello there"}
    assert decode_chat_response(payload) == [Segment(type="text", content="Hello there")]


@pytest.mark.parametrize(
    "payload",
    [
        None,
        [],
        "text",
        {"success": True},
        {"success": True, "response": 42},
        {"success": True, "response": [{"type": "image", "content": "x"}]},
        {"success": True, "response": [{"type": "text"}]},
        {"success": True, "response": {"text": "wrong key"}},
        {"success": False, "error": "boom"},
        {"success": False, "response": "Hello"},
    ],
)
def test_unknown_shapes_rejected(payload):
    with pytest.raises(UnrecognizedResponseShape):
        decode_chat_response(payload)
