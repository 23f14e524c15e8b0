"""Single-shot share intents delivered straight to the host (Android style)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .errors import StagingError
from .models import Kind, MultiItemBatch, ShareItem
from .staging import StagingWriter
from .utils import unix_now

logger = logging.getLogger(__name__)


class IntentAction(str, Enum):
    SEND = "android.intent.action.SEND"
    SEND_MULTIPLE = "android.intent.action.SEND_MULTIPLE"
    VIEW = "android.intent.action.VIEW"


@dataclass(frozen=True)
class SendIntent:
    """The parts of a platform intent the host reads."""

    action: IntentAction
    mime_type: str | None = None
    text: str | None = None
    subject: str | None = None
    streams: tuple[Path, ...] = ()
    data: str | None = None


def is_url(text: str) -> bool:
    return text.startswith("http://") or text.startswith("https://")


def kind_for_mime(mime_type: str | None) -> Kind:
    mime = (mime_type or "").lower()
    if mime.startswith("image/"):
        return Kind.IMAGE
    if mime.startswith("video/"):
        return Kind.VIDEO
    return Kind.FILE


def shared_data_from_intent(intent: SendIntent | None, writer: StagingWriter) -> ShareItem | None:
    """Read a SEND intent; streams are copied next to staged share files."""
    if intent is None or intent.action is not IntentAction.SEND:
        return None

    mime = intent.mime_type or ""
    logger.debug(
        "Reading share intent type=%s text=%s streams=%d", mime, bool(intent.text), len(intent.streams)
    )
    timestamp = unix_now()

    if mime == "text/plain" and intent.text and intent.text.strip():
        kind = Kind.URL if is_url(intent.text.strip()) else Kind.TEXT
        return ShareItem.create(intent.text.strip(), kind, intent.subject, timestamp)

    if not intent.streams:
        logger.warning("Unsupported share intent type %r or missing data", mime)
        return None

    kind = kind_for_mime(mime)
    path = _copy_stream(writer, intent.streams[0], kind, timestamp)
    if path is None:
        return None
    return ShareItem.create(str(path), kind, intent.subject, timestamp)


def multiple_shared_data_from_intent(
    intent: SendIntent | None, writer: StagingWriter
) -> MultiItemBatch | None:
    """Read a SEND_MULTIPLE intent; streams that fail to copy are skipped."""
    if intent is None or intent.action is not IntentAction.SEND_MULTIPLE:
        return None
    if not intent.streams:
        logger.warning("No streams found in multiple share")
        return None

    timestamp = unix_now()
    kind = kind_for_mime(intent.mime_type)
    items: list[ShareItem] = []
    for index, stream in enumerate(intent.streams):
        path = _copy_stream(writer, stream, kind, timestamp)
        if path is None:
            logger.warning("Skipping stream %d (%s)", index, stream)
            continue
        items.append(ShareItem.create(str(path), kind, intent.subject, timestamp))

    if not items:
        logger.warning("No valid files processed from multiple share")
        return None
    return MultiItemBatch.of(items, timestamp)


def _copy_stream(writer: StagingWriter, stream: Path, kind: Kind, timestamp: int) -> Path | None:
    if not stream.is_file():
        logger.error("Shared stream %s does not exist", stream)
        return None
    try:
        return writer.copy_file(stream, kind, StagingWriter.unique_name(kind, timestamp, stream))
    except StagingError as exc:
        logger.error("Unable to save shared stream %s: %s", stream, exc)
        return None
