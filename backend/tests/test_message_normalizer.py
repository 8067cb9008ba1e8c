from __future__ import annotations

from types import SimpleNamespace

import pytest

from paychat.providers.content import (
    IMAGES_UNSUPPORTED_PLACEHOLDER,
    ApiStyle,
    ChatMessage,
    ImagePart,
    PartsContent,
    TextContent,
    TextPart,
    parse_data_image_url,
    reconstruct_history,
    to_provider_message,
    vision_downgrade_note,
)

HI_WITH_IMAGE = [
    {"type": "text", "text": "hi"},
    {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAAA"}},
]


def _user(content) -> ChatMessage:
    return ChatMessage.from_wire({"role": "user", "content": content})


def test_anthropic_style_rewrites_text_and_data_url_image_blocks():
    out = to_provider_message(ApiStyle.ANTHROPIC, _user(HI_WITH_IMAGE))

    assert out["role"] == "user"
    assert out["content"] == [
        {"type": "text", "text": "hi"},
        {
            "type": "image",
            "source": {"type": "base64", "media_type": "image/png", "data": "AAAA"},
        },
    ]


def test_anthropic_style_uses_url_source_for_remote_images():
    msg = _user([{"type": "image_url", "image_url": {"url": "https://cdn.example.com/cat.jpg"}}])

    out = to_provider_message(ApiStyle.ANTHROPIC, msg)

    assert out["content"] == [
        {"type": "image", "source": {"type": "url", "url": "https://cdn.example.com/cat.jpg"}}
    ]


def test_text_only_style_keeps_text_and_drops_images():
    out = to_provider_message(ApiStyle.TEXT_ONLY, _user(HI_WITH_IMAGE))

    assert out == {"role": "user", "content": "hi"}


def test_text_only_style_joins_text_parts_with_newline():
    msg = _user([{"type": "text", "text": "first"}, {"type": "text", "text": "second"}])

    assert to_provider_message(ApiStyle.TEXT_ONLY, msg)["content"] == "first\nsecond"


def test_text_only_style_uses_placeholder_for_image_only_content():
    msg = _user([{"type": "image_url", "image_url": {"url": "data:image/png;base64,AAAA"}}])

    content = to_provider_message(ApiStyle.TEXT_ONLY, msg)["content"]

    assert content == IMAGES_UNSUPPORTED_PLACEHOLDER
    assert isinstance(content, str)


def test_openai_style_passes_parts_through_in_wire_form():
    out = to_provider_message(ApiStyle.OPENAI, _user(HI_WITH_IMAGE))

    assert out["content"] == [
        {"type": "text", "text": "hi"},
        {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAAA", "detail": "auto"}},
    ]


def test_plain_string_content_is_unchanged_for_every_style():
    msg = ChatMessage.text("assistant", "plain answer")
    for style in ApiStyle:
        assert to_provider_message(style, msg) == {"role": "assistant", "content": "plain answer"}


def test_parts_content_rejects_empty_list():
    with pytest.raises(ValueError):
        PartsContent(())


def test_image_part_rejects_plain_http_urls():
    with pytest.raises(ValueError):
        ImagePart(url="http://insecure.example.com/a.png")


def test_from_wire_rejects_unknown_part_type():
    with pytest.raises(ValueError):
        _user([{"type": "audio", "data": "..."}])


def test_parse_data_image_url_only_matches_images():
    assert parse_data_image_url("data:image/webp;base64,QUJD") == ("image/webp", "QUJD")
    assert parse_data_image_url("data:application/pdf;base64,QUJD") is None
    assert parse_data_image_url("https://example.com/x.png") is None


def _stored(role: str, content: str, files=()):
    return SimpleNamespace(role=role, content=content, files=list(files))


def _file(mime: str, url: str):
    return SimpleNamespace(mime_type=mime, file_url=url)


def test_reconstruct_history_rebuilds_images_for_vision_models():
    row = _stored(
        "user",
        "look at this",
        [_file("image/png", "data:image/png;base64,AAAA"), _file("application/pdf", "data:application/pdf;base64,QQ==")],
    )

    msg = reconstruct_history(row, supports_vision=True)

    assert isinstance(msg.content, PartsContent)
    assert msg.content.parts == (
        TextPart("look at this"),
        ImagePart(url="data:image/png;base64,AAAA", detail="auto"),
    )


def test_reconstruct_history_returns_text_for_text_only_models():
    row = _stored("user", "look at this", [_file("image/png", "data:image/png;base64,AAAA")])

    msg = reconstruct_history(row, supports_vision=False)

    assert msg.content == TextContent("look at this")


def test_reconstruct_history_never_rebuilds_assistant_rows_as_parts():
    row = _stored("assistant", "answer", [_file("image/png", "data:image/png;base64,AAAA")])

    msg = reconstruct_history(row, supports_vision=True)

    assert msg.role == "assistant"
    assert msg.content == TextContent("answer")


def test_vision_downgrade_note_lists_image_names():
    note = vision_downgrade_note(["a.png", "b.jpg"], "Deepseek")

    assert "a.png, b.jpg" in note
    assert "Deepseek doesn't support vision" in note
    assert note.startswith("\n\n[Note:")
