"""Materialize the payload of a classified container."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from urllib.parse import urlsplit

from .classifier import Candidate
from .errors import CopyFailure, ExtractionFailure, HandoffError
from .models import AttachmentContainer, Kind, ShareItem
from .staging import StagingWriter
from .utils import truncate, unix_now

logger = logging.getLogger(__name__)


class PayloadExtractor:
    """Load one candidate representation and turn it into a ShareItem.

    Binary payloads are copied into shared storage while the container's
    transient file is still open; the returned item only ever points at the
    staged copy.
    """

    def __init__(self, writer: StagingWriter) -> None:
        self.writer = writer

    async def extract(
        self,
        container: AttachmentContainer,
        candidate: Candidate,
        caption: str | None = None,
        timestamp: int | None = None,
    ) -> ShareItem | None:
        """Return the item, or None when this candidate yields nothing usable.

        ExtractionFailure and CopyFailure are logged and reported as no match.
        StagingUnavailable and other staging errors propagate.
        """
        stamp = unix_now() if timestamp is None else timestamp
        try:
            if candidate.kind.inline:
                content = await self._extract_scalar(container, candidate)
            else:
                content = str(await self._extract_file(container, candidate, stamp))
        except ExtractionFailure as exc:
            logger.warning("Extraction failed for %s: %s", candidate.identifier, exc)
            return None
        except CopyFailure as exc:
            logger.warning("Staging copy failed for %s: %s", candidate.identifier, exc)
            return None

        if content is None:
            logger.debug("No usable %s payload in %s", candidate.kind.value, candidate.identifier)
            return None
        logger.debug("Extracted %s payload %s", candidate.kind.value, truncate(content))
        return ShareItem.create(content, candidate.kind, caption, stamp)

    async def _extract_scalar(self, container: AttachmentContainer, candidate: Candidate) -> str | None:
        value = await self._load_value(container, candidate.identifier)
        if value is None:
            return None
        if isinstance(value, bytes):
            try:
                value = value.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise ExtractionFailure(
                    f"{candidate.identifier} is not UTF-8 text",
                    kind=candidate.kind.value,
                    representation=candidate.identifier,
                ) from exc
        text = str(value).strip()
        if not text:
            return None
        if candidate.kind is Kind.URL and not urlsplit(text).scheme:
            return None
        return text

    async def _load_value(self, container: AttachmentContainer, identifier: str) -> object:
        try:
            return await container.load_value(identifier)
        except HandoffError:
            raise
        except Exception as exc:
            raise ExtractionFailure(
                f"Loading {identifier!r} failed: {exc}", representation=identifier
            ) from exc

    async def _extract_file(
        self, container: AttachmentContainer, candidate: Candidate, timestamp: int
    ) -> Path:
        try:
            async with container.open_file(candidate.identifier) as transient:
                if transient is None:
                    raise ExtractionFailure(
                        f"No temporary file for {candidate.identifier}",
                        kind=candidate.kind.value,
                        representation=candidate.identifier,
                    )
                name = StagingWriter.unique_name(candidate.kind, timestamp, transient)
                # The transient file is gone once this block exits.
                return await asyncio.to_thread(
                    self.writer.copy_file, transient, candidate.kind, name
                )
        except HandoffError:
            raise
        except Exception as exc:
            raise ExtractionFailure(
                f"Loading {candidate.identifier!r} failed: {exc}",
                kind=candidate.kind.value,
                representation=candidate.identifier,
            ) from exc
