"""Wake the host process through its private deep-link address."""

from __future__ import annotations

import logging
import webbrowser
from typing import Callable, Literal
from urllib.parse import quote

from .config import Settings
from .errors import TriggerConstructionFailure, TriggerFailure
from .models import DEFAULT_MESSAGES, Kind, ShareItem
from .utils import truncate

logger = logging.getLogger(__name__)

Mode = Literal["inline", "staged"]
Opener = Callable[[str], object]

INLINE_PARAMS: dict[Kind, str] = {Kind.URL: "link", Kind.TEXT: "text"}


class HandoffTrigger:
    """Build and open ``scheme://share[?link=...|?text=...]``.

    Opening is fire-and-forget: nothing reports whether the host actually came
    to the foreground.
    """

    def __init__(
        self,
        scheme: str = "duggy",
        host: str = "share",
        opener: Opener | None = None,
        max_inline_length: int = 2048,
    ) -> None:
        self.scheme = scheme
        self.host = host
        self.opener = opener or webbrowser.open
        self.max_inline_length = max_inline_length

    @classmethod
    def from_settings(cls, settings: Settings, opener: Opener | None = None) -> "HandoffTrigger":
        return cls(
            scheme=settings.share_scheme,
            host=settings.share_host,
            opener=opener,
            max_inline_length=settings.inline_max_length,
        )

    def bare_address(self) -> str:
        return f"{self.scheme}://{self.host}"

    def inline_address(self, item: ShareItem) -> str:
        """Inline address; a user caption rides along as ``message``."""
        param = INLINE_PARAMS.get(item.kind)
        if param is None:
            raise TriggerConstructionFailure(f"{item.kind.value} items cannot be delivered inline")
        query = [(param, item.content)]
        if item.message and item.message != DEFAULT_MESSAGES[item.kind]:
            query.append(("message", item.message))
        try:
            encoded = "&".join(f"{name}={quote(value, safe='')}" for name, value in query)
        except UnicodeEncodeError as exc:
            raise TriggerConstructionFailure(f"Unable to percent-encode {param}: {exc}") from exc
        address = f"{self.bare_address()}?{encoded}"
        if len(address) > self.max_inline_length:
            raise TriggerConstructionFailure(
                f"Inline address is {len(address)} characters, limit is {self.max_inline_length}"
            )
        return address

    def address_for(self, item: ShareItem | None) -> tuple[Mode, str]:
        """Pick the delivery mode for an item; anything not inlinable is staged."""
        if item is not None and item.kind.inline:
            try:
                return "inline", self.inline_address(item)
            except TriggerConstructionFailure as exc:
                logger.warning("Falling back to staged delivery: %s", exc)
        return "staged", self.bare_address()

    def fire(self, address: str) -> None:
        logger.info("Launching host with %s", truncate(address))
        try:
            opened = self.opener(address)
        except Exception as exc:
            raise TriggerFailure(f"Unable to open {truncate(address)}: {exc}") from exc
        if opened is False:
            raise TriggerFailure(f"Platform refused to open {truncate(address)}")
