"""Share handoff error taxonomy.

All errors are local to the ingestion process. The host only ever observes
them as the absence of a Descriptor.

- NoMatchableContent: nothing a container declares maps to a supported kind.
- ExtractionFailure: loading one representation failed; the next candidate
  kind is tried.
- StagingUnavailable: the shared root is missing; persistence is impossible
  but the bare trigger still fires.
- CopyFailure: a transient file could not be copied into shared storage.
- TriggerConstructionFailure: the inline address could not be built; the
  bare address is used instead.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable


class HandoffError(Exception):
    """Base for every error raised by the handoff pipeline."""


class NoMatchableContent(HandoffError):
    """No declared representation matched any supported kind.

    Attributes:
        seen: Raw representation identifiers offered by the share session,
            kept for the diagnostic shown to the user.
    """

    def __init__(self, seen: Iterable[str]) -> None:
        self.seen = list(seen)
        listing = ", ".join(self.seen) if self.seen else "none"
        super().__init__(f"No shareable content found (representations seen: {listing})")


class ExtractionFailure(HandoffError):
    """Loading a representation out of its container failed."""

    def __init__(self, message: str, *, kind: str | None = None, representation: str | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.representation = representation

    def __repr__(self) -> str:
        parts = [repr(str(self))]
        if self.kind is not None:
            parts.append(f"kind={self.kind!r}")
        if self.representation is not None:
            parts.append(f"representation={self.representation!r}")
        return f"{type(self).__name__}({', '.join(parts)})"


class StagingError(HandoffError):
    """Writing to shared storage failed."""


class StagingUnavailable(StagingError):
    """The shared storage root was never granted or does not exist."""

    def __init__(self, root: Path | None = None) -> None:
        self.root = root
        if root is None:
            message = "Shared storage root is not configured"
        else:
            message = f"Shared storage root is unavailable: {root}"
        super().__init__(message)


class CopyFailure(StagingError):
    """Copying a transient file into a kind folder failed."""

    def __init__(self, message: str, *, source: Path | None = None) -> None:
        super().__init__(message)
        self.source = source


class TriggerError(HandoffError):
    """Waking the host process failed."""


class TriggerConstructionFailure(TriggerError):
    """The inline trigger address could not be built."""


class TriggerFailure(TriggerError):
    """The platform refused or failed to open the trigger address."""


class DescriptorDecodeError(HandoffError):
    """A staged Descriptor could not be deserialized."""

    def __init__(self, message: str, *, name: str | None = None) -> None:
        super().__init__(message)
        self.name = name
