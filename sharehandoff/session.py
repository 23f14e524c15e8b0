"""One share-sheet ingestion session, from attachments to host trigger."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable

from .classifier import ContentClassifier
from .completion import CompletionGuard
from .config import Settings
from .descriptor import Shared
from .errors import HandoffError, NoMatchableContent, StagingError, StagingUnavailable, TriggerFailure
from .extractor import PayloadExtractor
from .models import AttachmentContainer, Kind, MultiItemBatch, ShareItem
from .notifier import LoggingNotifier, Notifier, build_notifier
from .staging import DirectoryMailbox, SharedStorage, StagingWriter, build_mailbox
from .trigger import HandoffTrigger, Mode, Opener
from .utils import unix_now

logger = logging.getLogger(__name__)


@dataclass
class SessionOutcome:
    """What a session ended up doing."""

    shared: Shared | None = None
    mode: Mode | None = None
    address: str | None = None
    descriptor: str | None = None
    errors: list[HandoffError] = field(default_factory=list)

    @property
    def triggered(self) -> bool:
        return self.address is not None


class ShareSession:
    """Classify, extract, stage and trigger, then complete exactly once."""

    def __init__(
        self,
        classifier: ContentClassifier,
        extractor: PayloadExtractor,
        writer: StagingWriter,
        trigger: HandoffTrigger,
        guard: CompletionGuard,
        notifier: Notifier | None = None,
    ) -> None:
        self.classifier = classifier
        self.extractor = extractor
        self.writer = writer
        self.trigger = trigger
        self.guard = guard
        self.notifier = notifier or LoggingNotifier()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        on_complete: Callable[[], object],
        opener: Opener | None = None,
        notifier: Notifier | None = None,
    ) -> "ShareSession":
        storage = SharedStorage(settings.share_root)
        try:
            mailbox = build_mailbox(settings, storage)
        except StagingUnavailable:
            # Writes will fail with StagingUnavailable; the bare trigger still fires.
            mailbox = DirectoryMailbox(storage)
        writer = StagingWriter(storage, mailbox)
        return cls(
            classifier=ContentClassifier(),
            extractor=PayloadExtractor(writer),
            writer=writer,
            trigger=HandoffTrigger.from_settings(settings, opener=opener),
            guard=CompletionGuard(on_complete),
            notifier=notifier or build_notifier(settings),
        )

    async def run(
        self, containers: Iterable[AttachmentContainer], caption: str | None = None
    ) -> SessionOutcome:
        outcome = SessionOutcome()
        try:
            await self._process(list(containers), caption, outcome)
        except HandoffError as exc:
            logger.error("Share session failed: %s", exc)
            outcome.errors.append(exc)
        finally:
            self.guard.complete_once()
        return outcome

    async def _process(
        self, containers: list[AttachmentContainer], caption: str | None, outcome: SessionOutcome
    ) -> None:
        timestamp = unix_now()
        staged: list[ShareItem] = []
        seen: list[str] = []
        staging_error: StagingError | None = None

        for index, container in enumerate(containers):
            seen.extend(container.identifiers)
            try:
                item = await self._resolve(container, caption, timestamp)
            except StagingError as exc:
                # Files are lost from here on; a later link or text still goes inline.
                logger.error("Attachment %d could not be staged: %s", index, exc)
                if staging_error is None:
                    staging_error = exc
                self._discard(staged)
                staged.clear()
                continue
            if item is None:
                logger.info("Attachment %d offered nothing shareable", index)
                continue
            if item.kind.inline:
                if staged:
                    logger.info(
                        "%s attachment supersedes %d staged file(s)", item.kind.value, len(staged)
                    )
                    self._discard(staged)
                if staging_error is not None:
                    outcome.errors.append(staging_error)
                self._deliver_item(item, outcome)
                return
            if staging_error is not None:
                self._discard([item])
                continue
            staged.append(item)

        if staging_error is not None:
            self._lose(staging_error, outcome)
            self._fire("staged", self.trigger.bare_address(), outcome)
            return

        if not staged:
            if caption and caption.strip():
                logger.info("No attachment matched; sharing the caption as text")
                self._deliver_item(ShareItem.create(caption.strip(), Kind.TEXT, timestamp=timestamp), outcome)
                return
            error = NoMatchableContent(seen)
            logger.warning("%s", error)
            outcome.errors.append(error)
            self.notifier.notify("Nothing to share", str(error))
            return

        shared: Shared = staged[0] if len(staged) == 1 else MultiItemBatch.of(staged, timestamp)
        outcome.shared = shared
        self._stage(shared, outcome)
        self._fire("staged", self.trigger.bare_address(), outcome)

    async def _resolve(
        self, container: AttachmentContainer, caption: str | None, timestamp: int
    ) -> ShareItem | None:
        for candidate in self.classifier.candidates(container.identifiers):
            item = await self.extractor.extract(container, candidate, caption, timestamp)
            if item is not None:
                return item
        return None

    def _deliver_item(self, item: ShareItem, outcome: SessionOutcome) -> None:
        outcome.shared = item
        mode, address = self.trigger.address_for(item)
        if mode == "staged":
            self._stage(item, outcome)
        self._fire(mode, address, outcome)

    def _stage(self, shared: Shared, outcome: SessionOutcome) -> None:
        try:
            outcome.descriptor = self.writer.write(shared)
        except StagingError as exc:
            if isinstance(shared, MultiItemBatch):
                self._discard(list(shared.items))
            elif not shared.kind.inline:
                self._discard([shared])
            self._lose(exc, outcome)

    def _fire(self, mode: Mode, address: str, outcome: SessionOutcome) -> None:
        outcome.mode = mode
        outcome.address = address
        try:
            self.trigger.fire(address)
        except TriggerFailure as exc:
            logger.error("Host trigger failed: %s", exc)
            outcome.errors.append(exc)
            self.notifier.notify(
                "Share not delivered",
                "Tap to open the app and check for shared content.",
                action=self.trigger.bare_address(),
            )

    def _lose(self, exc: StagingError, outcome: SessionOutcome) -> None:
        logger.error("Shared content could not be staged and is lost: %s", exc)
        outcome.errors.append(exc)
        self.notifier.notify(
            "Share could not be saved",
            str(exc),
            action=self.trigger.bare_address(),
        )

    def _discard(self, items: list[ShareItem]) -> None:
        for item in items:
            self.writer.discard(Path(item.content))
