"""
上传附件的标准化与校验。

附件以 data URL 形式随请求体上传；一条消息最多 4 个、每个不超过 5 MiB。
不合法的附件直接拒绝（400），而不是静默丢弃。
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass

from paychat.errors import InvalidAttachmentError
from paychat.schemas.chat import AttachmentPayload

MAX_ATTACHMENTS = 4
MAX_ATTACHMENT_BYTES = 5 * 1024 * 1024
DATA_URL_PATTERN = re.compile(r"^data:([\w.+-]+/[\w.+-]+);base64,[A-Za-z0-9+/=\s]+$", re.IGNORECASE)


@dataclass(frozen=True)
class NormalizedAttachment:
    file_name: str
    mime_type: str
    size: int
    data_url: str

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")

    @property
    def is_pdf(self) -> bool:
        return self.mime_type == "application/pdf"


def _decoded_size(data_url: str) -> int:
    payload = "".join(data_url.split(",", 1)[1].split())
    return len(payload) * 3 // 4 - payload[-2:].count("=")


def normalize_attachments(files: Sequence[AttachmentPayload] | None) -> list[NormalizedAttachment]:
    if not files:
        return []
    if len(files) > MAX_ATTACHMENTS:
        raise InvalidAttachmentError(f"Too many attachments. At most {MAX_ATTACHMENTS} files per message.")

    normalized: list[NormalizedAttachment] = []
    for index, entry in enumerate(files):
        name = entry.name.strip() if isinstance(entry.name, str) else ""
        if not name:
            raise InvalidAttachmentError(f"Attachment #{index + 1} is missing a file name.")

        try:
            size = int(entry.size)
        except (TypeError, ValueError):
            size = 0
        if isinstance(entry.size, bool) or size <= 0:
            raise InvalidAttachmentError(f"Attachment {name} has an invalid size.")
        if size > MAX_ATTACHMENT_BYTES:
            raise InvalidAttachmentError(f"Attachment {name} exceeds the 5 MB limit.")

        data_url = entry.data_url if isinstance(entry.data_url, str) else ""
        match = DATA_URL_PATTERN.match(data_url)
        if match is None:
            raise InvalidAttachmentError(f"Attachment {name} is not a valid base64 data URL.")

        # 以 data URL 中的 MIME 为准；声明的 type 只用于一致性校验
        mime_type = match.group(1).lower()
        declared = entry.type.strip().lower() if isinstance(entry.type, str) else ""
        if declared and declared != mime_type:
            raise InvalidAttachmentError(
                f"Attachment {name} declares type {declared} but its data URL contains {mime_type}."
            )
        if _decoded_size(data_url) > MAX_ATTACHMENT_BYTES:
            raise InvalidAttachmentError(f"Attachment {name} exceeds the 5 MB limit.")

        normalized.append(
            NormalizedAttachment(file_name=name, mime_type=mime_type, size=size, data_url=data_url)
        )
    return normalized


__all__ = [
    "DATA_URL_PATTERN",
    "MAX_ATTACHMENTS",
    "MAX_ATTACHMENT_BYTES",
    "NormalizedAttachment",
    "normalize_attachments",
]
