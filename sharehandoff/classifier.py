"""Pick the kind a container is shared as."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Sequence

from .models import Kind, Representation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Candidate:
    """One kind/representation pair worth attempting, with the raw identifier to load."""

    kind: Kind
    representation: Representation
    identifier: str


# Ordered best-first; within a kind, representations are tried in order.
PRIORITY: tuple[tuple[Kind, tuple[Representation, ...]], ...] = (
    (Kind.URL, (Representation.URL,)),
    (
        Kind.TEXT,
        (Representation.PLAIN_TEXT, Representation.UTF8_PLAIN_TEXT, Representation.TEXT),
    ),
    (Kind.VIDEO, (Representation.MOVIE,)),
    (Kind.FILE, (Representation.DATA, Representation.FILE_URL)),
    (
        Kind.IMAGE,
        (
            Representation.JPEG,
            Representation.PNG,
            Representation.GIF,
            Representation.WEBP,
            Representation.BMP,
            Representation.TIFF,
            Representation.IMAGE,
        ),
    ),
    (Kind.FILE, (Representation.UNCLASSIFIED,)),
)


class ContentClassifier:
    """Order a container's declared representations by share priority."""

    def __init__(self, priority: Sequence[tuple[Kind, Sequence[Representation]]] = PRIORITY) -> None:
        self.priority = priority

    def candidates(self, identifiers: Iterable[str]) -> list[Candidate]:
        """Return every matching candidate, best first.

        Every declared representation of a kind is kept, so a failed load can
        fall through to the next alternative (e.g. the other plain-text
        identifiers) before moving down to a lower kind.
        """
        declared: dict[Representation, str] = {}
        for identifier in identifiers:
            representation = Representation.from_identifier(identifier)
            declared.setdefault(representation, identifier)

        ordered: list[Candidate] = []
        for kind, representations in self.priority:
            for representation in representations:
                identifier = declared.get(representation)
                if identifier is None:
                    continue
                ordered.append(Candidate(kind, representation, identifier))

        logger.debug(
            "Classified representations %s as %s",
            list(declared.values()),
            [f"{c.kind.value}:{c.representation.name}" for c in ordered],
        )
        return ordered
