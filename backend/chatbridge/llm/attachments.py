"""
Attachment resolution and inline asset handling.

WHAT: Resolve attachment references before encoding; persist provider-generated images
WHY: Codecs need bytes, callers need placeholders, and raw base64 must never reach the caller
HOW: Placeholder regexes, loader/asset-store collaborators, hash-keyed dedupe of inline payloads
"""

import base64
import binascii
import hashlib
import re
import uuid

from .provider import AssetStore, AttachmentLoader
from .types import ConversationMessage, PreparedMessage, ResolvedAttachment
from ..utils.logger import get_logger

logger = get_logger(__name__)

IMAGE_PATTERN = re.compile(r"<image-uuid>(.*?)</image-uuid>")
FILE_PATTERN = re.compile(r"<file-uuid>(.*?)</file-uuid>")
ATTACHMENT_PATTERN = re.compile(r"<(image|file)-uuid>(.*?)</\1-uuid>")

_FORMAT_MIME = {
    "png": "image/png",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "webp": "image/webp",
    "heic": "image/heic",
}


def image_placeholder(asset_id: str) -> str:
    return f"<image-uuid>{asset_id}</image-uuid>"


def strip_attachments(text: str) -> str:
    """Remove image/file placeholders and trim surrounding whitespace."""
    text = IMAGE_PATTERN.sub("", text)
    text = FILE_PATTERN.sub("", text)
    return text.strip()


def extract_image_ids(text: str) -> list[str]:
    return IMAGE_PATTERN.findall(text)


def extract_file_ids(text: str) -> list[str]:
    return FILE_PATTERN.findall(text)


def detect_image_format(data: bytes, hint: str | None = None) -> str:
    """
    Pick an image format from a mime/format hint, falling back to magic bytes.

    Returns:
        One of png, jpeg, gif, webp, heic (jpeg when nothing matches)
    """
    if hint:
        hint = hint.lower()
        if "/" in hint:
            hint = hint.rsplit("/", 1)[-1]
        hint = hint.replace("jpg", "jpeg")
        if hint == "heif":
            hint = "heic"
        if hint:
            return hint

    if data[:4] == b"\x89PNG":
        return "png"
    if data[:2] == b"\xff\xd8":
        return "jpeg"
    if data[:3] == b"GIF":
        return "gif"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "webp"
    return "jpeg"


def mime_for_format(image_format: str) -> str:
    return _FORMAT_MIME.get(image_format.lower(), "image/jpeg")


def append_inline_placeholder(message: str, placeholder: str) -> str:
    """Append a placeholder on its own line."""
    if message and not message.endswith("\n"):
        message += "\n"
    message += placeholder
    if not message.endswith("\n"):
        message += "\n"
    return message


def store_inline_image(
    assets: AssetStore | None,
    payload: str,
    mime_hint: str | None,
    cache: dict[str, str],
) -> str | None:
    """
    Persist a base64 image once and return its placeholder.

    Args:
        assets: Asset store; without one the image is dropped
        payload: Base64 image data as received
        mime_hint: Mime type or format hint from the provider
        cache: Content-hash -> placeholder map owned by the caller's stream/response

    Returns:
        The placeholder, or None if the payload is empty/undecodable or cannot be stored
    """
    normalized = payload.strip()
    if not normalized:
        return None

    key = hashlib.sha256(normalized.encode("ascii", errors="ignore")).hexdigest()
    if key in cache:
        return cache[key]

    if assets is None:
        logger.warning("Inline image received but no asset store configured; dropping it")
        return None

    try:
        data = base64.b64decode(normalized, validate=False)
    except (binascii.Error, ValueError) as e:
        logger.warning(f"Undecodable inline image payload: {e}")
        return None
    if not data:
        return None

    mime_type = mime_for_format(detect_image_format(data, mime_hint))
    asset_id = assets.store(data, mime_type)
    placeholder = image_placeholder(asset_id)
    cache[key] = placeholder
    logger.debug(f"Stored inline image {asset_id} ({mime_type}, {len(data)} bytes)")
    return placeholder


def _resolve(loader: AttachmentLoader | None, attachment_id: str) -> ResolvedAttachment | None:
    if loader is None:
        logger.warning(f"No attachment loader configured; omitting attachment {attachment_id}")
        return None
    try:
        resolved = loader.resolve(attachment_id)
    except Exception as e:
        logger.warning(f"Attachment {attachment_id} could not be resolved: {e}")
        return None
    if resolved is None:
        logger.warning(f"Attachment {attachment_id} not found; omitting it")
    return resolved


def prepare_message(message: ConversationMessage, loader: AttachmentLoader | None) -> PreparedMessage:
    """
    Resolve a message's attachments.

    Inline `<image-uuid>`/`<file-uuid>` placeholders are resolved in text
    order, then explicit attachment references. Unresolvable attachments are
    omitted without failing the request.
    """
    segments: list[str | ResolvedAttachment] = []
    attachments: list[ResolvedAttachment] = []
    position = 0

    for match in ATTACHMENT_PATTERN.finditer(message.content):
        before = message.content[position:match.start()]
        if before.strip():
            segments.append(before)
        resolved = _resolve(loader, match.group(2))
        if resolved is not None:
            segments.append(resolved)
            attachments.append(resolved)
        position = match.end()

    trailing = message.content[position:]
    if trailing.strip():
        segments.append(trailing)

    for attachment_id in message.attachments:
        resolved = _resolve(loader, attachment_id)
        if resolved is not None:
            segments.append(resolved)
            attachments.append(resolved)

    return PreparedMessage(
        role=message.role,
        text=strip_attachments(message.content),
        attachments=attachments,
        segments=segments,
        provider_payload=message.provider_payload,
        tool_calls=list(message.tool_calls),
        tool_call_id=message.tool_call_id,
    )


def prepare_messages(
    messages: list[ConversationMessage],
    loader: AttachmentLoader | None,
) -> list[PreparedMessage]:
    return [prepare_message(message, loader) for message in messages]


class InMemoryAttachmentStore:
    """Dict-backed attachment loader and asset store."""

    def __init__(self):
        self.items: dict[str, ResolvedAttachment] = {}

    def add(self, data: bytes, mime_type: str, filename: str | None = None) -> str:
        attachment_id = str(uuid.uuid4())
        self.items[attachment_id] = ResolvedAttachment(data, mime_type, filename)
        return attachment_id

    def resolve(self, attachment_id: str) -> ResolvedAttachment | None:
        return self.items.get(attachment_id)

    def store(self, data: bytes, mime_type: str) -> str:
        return self.add(data, mime_type)
