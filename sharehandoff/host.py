"""Host-process side: consume staged Descriptors and inline deep links."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable
from urllib.parse import parse_qs, urlsplit

from .config import Settings
from .descriptor import Shared, to_payload
from .errors import StagingError, StagingUnavailable
from .intent import (
    IntentAction,
    SendIntent,
    multiple_shared_data_from_intent,
    shared_data_from_intent,
)
from .models import Kind, ShareItem
from .staging import DirectoryMailbox, Mailbox, SharedStorage, StagingWriter, build_mailbox
from .utils import truncate

logger = logging.getLogger(__name__)

Listener = Callable[[dict[str, Any]], object]


class HostConsumer:
    """Sole reader-and-deleter of the Descriptor mailbox."""

    def __init__(self, mailbox: Mailbox) -> None:
        self.mailbox = mailbox

    def check_shared_content(self) -> Shared | None:
        """Take the most recent Descriptor, deleting it once it has been read."""
        try:
            shared = self.mailbox.take_latest()
        except StagingUnavailable as exc:
            logger.warning("Shared storage unavailable, nothing to check: %s", exc)
            return None
        except StagingError as exc:
            logger.error("Unable to check shared content: %s", exc)
            return None
        if shared is None:
            logger.debug("No shared content waiting")
        return shared

    def pending(self) -> list[str]:
        """Names of Descriptors still waiting, oldest first."""
        try:
            return self.mailbox.pending()
        except StagingError as exc:
            logger.warning("Unable to list shared content: %s", exc)
            return []


def inline_item(params: dict[str, list[str]]) -> ShareItem | None:
    """Item carried in a share address query, if any."""

    def first(name: str) -> str | None:
        values = params.get(name)
        if not values or not values[0].strip():
            return None
        return values[0].strip()

    link = first("link")
    if link:
        return ShareItem.create(link, Kind.URL, first("message"))
    text = first("text")
    if text:
        return ShareItem.create(text, Kind.TEXT, first("message"))

    # Older builds sent content/type/message.
    content = first("content")
    if content:
        try:
            kind = Kind(first("type") or Kind.TEXT.value)
        except ValueError:
            kind = Kind.TEXT
        if kind.inline:
            return ShareItem.create(content, kind, first("message"))
    return None


class HostBridge:
    """Everything the host UI layer calls or listens to."""

    def __init__(
        self,
        settings: Settings,
        consumer: HostConsumer,
        storage: SharedStorage,
        writer: StagingWriter,
        intent: SendIntent | None = None,
    ) -> None:
        self.settings = settings
        self.consumer = consumer
        self.storage = storage
        self.writer = writer
        self.intent = intent
        self._data_listeners: list[Listener] = []
        self._url_listeners: list[Listener] = []

    @classmethod
    def from_settings(cls, settings: Settings, intent: SendIntent | None = None) -> "HostBridge":
        storage = SharedStorage(settings.share_root)
        try:
            mailbox = build_mailbox(settings, storage)
        except StagingUnavailable:
            mailbox = DirectoryMailbox(storage)
        return cls(
            settings=settings,
            consumer=HostConsumer(mailbox),
            storage=storage,
            writer=StagingWriter(storage, mailbox),
            intent=intent,
        )

    def on_data_received(self, listener: Listener) -> None:
        self._data_listeners.append(listener)

    def on_url_received(self, listener: Listener) -> None:
        self._url_listeners.append(listener)

    # -------- query methods --------------------------------------------------

    def get_shared_data(self) -> dict[str, Any] | None:
        """Legacy single-shot read of the current share intent."""
        item = shared_data_from_intent(self.intent, self.writer)
        return to_payload(item) if item is not None else None

    def check_shared_content(self) -> dict[str, Any] | None:
        shared = self.consumer.check_shared_content()
        return to_payload(shared) if shared is not None else None

    def get_shared_images_directory(self) -> str | None:
        try:
            return str(self.storage.kind_folder(Kind.IMAGE))
        except StagingUnavailable as exc:
            logger.warning("%s", exc)
            return None

    def handle_method_call(self, method: str) -> Any:
        handlers: dict[str, Callable[[], Any]] = {
            "getSharedData": self.get_shared_data,
            "checkSharedContent": self.check_shared_content,
            "getSharedImagesDirectory": self.get_shared_images_directory,
        }
        handler = handlers.get(method)
        if handler is None:
            raise NotImplementedError(method)
        return handler()

    # -------- activation paths -----------------------------------------------

    async def handle_open_url(self, address: str) -> bool:
        """React to the host being opened through a deep link.

        Returns False for addresses the host does not own.
        """
        parts = urlsplit(address)
        scheme = parts.scheme.lower()
        if scheme not in self.settings.share_accepted_schemes:
            return False

        host = (parts.hostname or "").lower()
        params = parse_qs(parts.query)
        logger.info("Opened with %s", truncate(address))

        if host != self.settings.share_host:
            logger.warning("Unknown deep-link host %r", host)
            self._emit(
                self._url_listeners,
                {
                    "scheme": scheme,
                    "host": host,
                    "path": parts.path,
                    "params": {name: values[0] for name, values in params.items()},
                },
            )
            return True

        item = inline_item(params)
        if item is not None:
            self._emit(self._data_listeners, to_payload(item))
            return True

        await self.check_after_delay()
        return True

    async def handle_intent(self, intent: SendIntent) -> None:
        """Process an intent delivered at launch or while already running."""
        self.intent = intent
        if intent.action is IntentAction.VIEW:
            if intent.data:
                await self.handle_open_url(intent.data)
            return
        if intent.action is IntentAction.SEND_MULTIPLE:
            batch = multiple_shared_data_from_intent(intent, self.writer)
            if batch is not None:
                self._emit(self._data_listeners, to_payload(batch))
            return
        payload = self.get_shared_data()
        if payload is not None:
            self._emit(self._data_listeners, payload)

    async def on_startup(self) -> None:
        """Cold start: deliver the launch intent, then anything already staged."""
        if self.intent is not None:
            await self.handle_intent(self.intent)
        self.check_now()

    async def check_after_delay(self) -> None:
        await asyncio.sleep(self.settings.host_check_delay)
        self.check_now()

    def check_now(self) -> dict[str, Any] | None:
        """Explicit check, e.g. from the fallback notification's action."""
        payload = self.check_shared_content()
        if payload is not None:
            self._emit(self._data_listeners, payload)
        return payload

    @staticmethod
    def _emit(listeners: list[Listener], payload: dict[str, Any]) -> None:
        for listener in listeners:
            listener(payload)
