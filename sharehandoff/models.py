"""Typed containers shared across the pipeline."""

from __future__ import annotations

import asyncio
import mimetypes
import shutil
import tempfile
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, ClassVar, Iterable, Protocol, Sequence

from .errors import ExtractionFailure
from .utils import unix_now


class Kind(str, Enum):
    """Canonical kind of a shared item."""

    URL = "url"
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    FILE = "file"

    @property
    def inline(self) -> bool:
        """Whether items of this kind travel inside the trigger address."""
        return self in (Kind.URL, Kind.TEXT)


DEFAULT_MESSAGES: dict[Kind, str] = {
    Kind.URL: "🔗 Shared a link",
    Kind.TEXT: "📝 Shared text",
    Kind.IMAGE: "📸 Shared an image",
    Kind.VIDEO: "🎥 Shared a video",
    Kind.FILE: "📎 Shared a file",
}


class Representation(str, Enum):
    """Closed set of representations a container can be read as.

    Values are the platform type identifiers. Anything that does not map onto
    a named member resolves to ``UNCLASSIFIED``.
    """

    URL = "public.url"
    PLAIN_TEXT = "public.plain-text"
    UTF8_PLAIN_TEXT = "public.utf8-plain-text"
    TEXT = "public.text"
    MOVIE = "public.movie"
    FILE_URL = "public.file-url"
    DATA = "public.data"
    JPEG = "public.jpeg"
    PNG = "public.png"
    GIF = "com.compuserve.gif"
    WEBP = "org.webmproject.webp"
    BMP = "com.microsoft.bmp"
    TIFF = "public.tiff"
    IMAGE = "public.image"
    UNCLASSIFIED = "unclassified"

    @classmethod
    def from_identifier(cls, identifier: str) -> "Representation":
        """Resolve a raw type identifier or MIME type."""
        raw = (identifier or "").strip().lower()
        try:
            return cls(raw)
        except ValueError:
            pass
        if raw in _ALIASES:
            return _ALIASES[raw]
        family = raw.split("/", 1)[0] if "/" in raw else None
        if family == "video":
            return cls.MOVIE
        if family == "image":
            return cls.IMAGE
        if family == "text":
            return cls.TEXT
        return cls.UNCLASSIFIED


_ALIASES: dict[str, Representation] = {
    "text/uri-list": Representation.URL,
    "text/x-uri": Representation.URL,
    "text/plain": Representation.PLAIN_TEXT,
    "public.video": Representation.MOVIE,
    "public.mpeg-4": Representation.MOVIE,
    "com.apple.quicktime-movie": Representation.MOVIE,
    "application/octet-stream": Representation.DATA,
    "image/jpeg": Representation.JPEG,
    "image/jpg": Representation.JPEG,
    "image/png": Representation.PNG,
    "image/gif": Representation.GIF,
    "image/webp": Representation.WEBP,
    "image/bmp": Representation.BMP,
    "image/tiff": Representation.TIFF,
    "public.heic": Representation.IMAGE,
    "public.heif": Representation.IMAGE,
}


@dataclass(frozen=True)
class ShareItem:
    """One resolved piece of shared content."""

    content: str
    kind: Kind
    message: str = ""
    timestamp: int = field(default_factory=unix_now)

    def __post_init__(self) -> None:
        if not isinstance(self.kind, Kind):
            object.__setattr__(self, "kind", Kind(self.kind))
        if not self.content or not self.content.strip():
            raise ValueError("ShareItem content must not be empty")

    @classmethod
    def create(
        cls, content: str, kind: Kind, caption: str | None = None, timestamp: int | None = None
    ) -> "ShareItem":
        """Build an item, using the caption or the kind's default message."""
        message = caption.strip() if caption and caption.strip() else DEFAULT_MESSAGES[kind]
        return cls(
            content=content,
            kind=kind,
            message=message,
            timestamp=unix_now() if timestamp is None else timestamp,
        )


@dataclass(frozen=True)
class MultiItemBatch:
    """Several staged items delivered through a single Descriptor."""

    items: tuple[ShareItem, ...]
    timestamp: int

    kind: ClassVar[str] = "multiple_files"

    def __post_init__(self) -> None:
        object.__setattr__(self, "items", tuple(self.items))
        if not self.items:
            raise ValueError("MultiItemBatch needs at least one item")
        for item in self.items:
            if item.kind.inline:
                raise ValueError(f"{item.kind.value} items are never batched")

    @classmethod
    def of(cls, items: Iterable[ShareItem], timestamp: int | None = None) -> "MultiItemBatch":
        """Batch items under one timestamp shared by the batch and its members."""
        stamp = unix_now() if timestamp is None else timestamp
        return cls(items=tuple(replace(item, timestamp=stamp) for item in items), timestamp=stamp)


class AttachmentContainer(Protocol):
    """One shareable unit offered by the share sheet.

    ``open_file`` yields a path that is only valid inside the ``async with``
    block; callers must copy it out before leaving the block.
    """

    @property
    def identifiers(self) -> Sequence[str]: ...

    async def load_value(self, identifier: str) -> object: ...

    def open_file(self, identifier: str) -> AbstractAsyncContextManager[Path | None]: ...


@dataclass(frozen=True)
class LocalAttachment:
    """Container backed by a local value or file, used by the CLI and tests."""

    identifiers: tuple[str, ...]
    value: str | None = None
    path: Path | None = None

    @classmethod
    def for_url(cls, url: str) -> "LocalAttachment":
        return cls(identifiers=(Representation.URL.value,), value=url)

    @classmethod
    def for_text(cls, text: str) -> "LocalAttachment":
        return cls(identifiers=(Representation.PLAIN_TEXT.value,), value=text)

    @classmethod
    def for_path(cls, path: Path) -> "LocalAttachment":
        mime_type, _ = mimetypes.guess_type(path.name)
        return cls(identifiers=(mime_type or Representation.DATA.value,), path=path)

    async def load_value(self, identifier: str) -> object:
        self._require(identifier)
        if self.value is not None:
            return self.value
        if self.path is not None:
            try:
                return await asyncio.to_thread(self.path.read_text, encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                raise ExtractionFailure(
                    f"Unable to read {self.path}: {exc}", representation=identifier
                ) from exc
        return None

    @asynccontextmanager
    async def open_file(self, identifier: str) -> AsyncIterator[Path | None]:
        self._require(identifier)
        if self.path is None:
            yield None
            return
        if not self.path.is_file():
            raise ExtractionFailure(f"Source file missing: {self.path}", representation=identifier)
        with tempfile.TemporaryDirectory(prefix="share-") as tmp:
            transient = Path(tmp) / self.path.name
            await asyncio.to_thread(shutil.copyfile, self.path, transient)
            yield transient

    def _require(self, identifier: str) -> None:
        if identifier not in self.identifiers:
            raise ExtractionFailure(
                f"Container does not offer {identifier!r}", representation=identifier
            )
