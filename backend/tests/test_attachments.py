from __future__ import annotations

import pytest

from paychat.errors import InvalidAttachmentError
from paychat.schemas.chat import AttachmentPayload
from paychat.services.attachments import MAX_ATTACHMENT_BYTES, normalize_attachments


def _file(**overrides) -> AttachmentPayload:
    values = {
        "name": "cat.png",
        "type": "image/png",
        "size": 8,
        "data_url": "data:image/png;base64,iVBORw0KGgo=",
    }
    values.update(overrides)
    return AttachmentPayload(**values)


def test_valid_attachments_are_normalized():
    pdf = _file(name="doc.pdf", type="application/pdf", data_url="data:application/pdf;base64,JVBERi0=")

    result = normalize_attachments([_file(), pdf])

    assert [a.file_name for a in result] == ["cat.png", "doc.pdf"]
    assert result[0].is_image and not result[0].is_pdf
    assert result[1].is_pdf


def test_mime_type_comes_from_data_url():
    (untyped,) = normalize_attachments([_file(type=None)])
    (upper,) = normalize_attachments([_file(type="IMAGE/PNG")])

    assert untyped.mime_type == "image/png"
    assert untyped.is_image
    assert upper.mime_type == "image/png"


def test_declared_type_must_match_data_url():
    with pytest.raises(InvalidAttachmentError, match="declares type image/png"):
        normalize_attachments([_file(data_url="data:text/plain;base64,aGk=")])


def test_empty_list_is_allowed():
    assert normalize_attachments(None) == []
    assert normalize_attachments([]) == []


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"name": "  "}, "missing a file name"),
        ({"size": 0}, "invalid size"),
        ({"size": "lots"}, "invalid size"),
        ({"size": MAX_ATTACHMENT_BYTES + 1}, "5 MB limit"),
        ({"data_url": "https://example.com/cat.png"}, "not a valid base64 data URL"),
        ({"data_url": "data:image/png;base64,***"}, "not a valid base64 data URL"),
    ],
)
def test_invalid_attachment_is_rejected(overrides, message):
    with pytest.raises(InvalidAttachmentError, match=message):
        normalize_attachments([_file(**overrides)])


def test_decoded_payload_larger_than_limit_is_rejected():
    payload = "A" * (MAX_ATTACHMENT_BYTES * 4 // 3 + 8)

    with pytest.raises(InvalidAttachmentError, match="5 MB limit"):
        normalize_attachments([_file(data_url=f"data:image/png;base64,{payload}")])


def test_more_than_four_attachments_is_rejected():
    with pytest.raises(InvalidAttachmentError, match="Too many attachments"):
        normalize_attachments([_file(name=f"{i}.png") for i in range(5)])
