"""Durable shared storage: staged files plus the Descriptor mailbox."""

from __future__ import annotations

import logging
import os
import re
import shutil
import sqlite3
import tempfile
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

import sqlite_utils

from . import descriptor
from .config import Settings
from .descriptor import Shared
from .errors import CopyFailure, DescriptorDecodeError, StagingError, StagingUnavailable
from .models import Kind, MultiItemBatch
from .utils import short_id

logger = logging.getLogger(__name__)

DATA_FOLDER = "SharedData"
KIND_FOLDERS: dict[Kind, str] = {
    Kind.IMAGE: "SharedImages",
    Kind.VIDEO: "SharedVideos",
    Kind.FILE: "SharedFiles",
}
DESCRIPTOR_NAME = re.compile(r"^shared_content_(\d+)(?:_(\d+))?\.json$")


def descriptor_name(timestamp: int, sequence: int = 0) -> str:
    if sequence:
        return f"shared_content_{timestamp}_{sequence}.json"
    return f"shared_content_{timestamp}.json"


class SharedStorage:
    """The capability-gated root both processes can see."""

    def __init__(self, root: Path | None) -> None:
        self.root = root

    @property
    def available(self) -> bool:
        return self.root is not None and self.root.is_dir()

    def require_root(self) -> Path:
        if not self.available:
            raise StagingUnavailable(self.root)
        return self.root

    def folder(self, name: str) -> Path:
        return self.require_root() / name

    def ensure(self, name: str) -> Path:
        """Create a folder under the root if needed and return it."""
        folder = self.folder(name)
        try:
            folder.mkdir(exist_ok=True)
        except OSError as exc:
            raise StagingError(f"Unable to create {folder}: {exc}") from exc
        return folder

    def kind_folder(self, kind: Kind) -> Path:
        return self.folder(KIND_FOLDERS[kind])


class Mailbox(Protocol):
    """Where Descriptors wait for the host."""

    def put(self, shared: Shared) -> str: ...

    def take_latest(self) -> Shared | None: ...

    def pending(self) -> list[str]: ...


class DirectoryMailbox:
    """Descriptors as JSON files under ``SharedData/``."""

    def __init__(self, storage: SharedStorage) -> None:
        self.storage = storage

    def put(self, shared: Shared) -> str:
        folder = self.storage.ensure(DATA_FOLDER)
        body = descriptor.encode(shared)
        name = self._free_name(folder, shared.timestamp)

        tmp_path: Path | None = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=folder, prefix=".", suffix=".tmp", delete=False
            ) as handle:
                tmp_path = Path(handle.name)
                handle.write(body)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, folder / name)
        except OSError as exc:
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)
            raise StagingError(f"Unable to write descriptor {name}: {exc}") from exc
        return name

    def take_latest(self) -> Shared | None:
        """Newest decodable Descriptor, removed once read.

        Unreadable files stay where they are and older Descriptors behind
        them are still delivered.
        """
        folder = self.storage.folder(DATA_FOLDER)
        if not folder.is_dir():
            return None

        entries = []
        for path in folder.iterdir():
            match = DESCRIPTOR_NAME.match(path.name)
            if not match:
                continue
            try:
                stat = path.stat()
            except FileNotFoundError:
                continue
            key = (int(match.group(1)), int(match.group(2) or 0), stat.st_mtime_ns, path.name)
            entries.append((key, path))

        for _, path in sorted(entries, reverse=True):
            try:
                shared = descriptor.decode(path.read_bytes(), name=path.name)
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.error("Unable to read descriptor %s: %s", path.name, exc)
                continue
            except DescriptorDecodeError as exc:
                logger.error("Leaving unreadable descriptor %s in place: %s", path.name, exc)
                continue

            try:
                path.unlink()
            except FileNotFoundError:
                # Another check consumed it first.
                continue
            except OSError as exc:
                raise StagingError(f"Unable to retire descriptor {path.name}: {exc}") from exc
            logger.info("Consumed descriptor %s", path.name)
            return shared
        return None

    def pending(self) -> list[str]:
        """Descriptor names still waiting, oldest first."""
        folder = self.storage.folder(DATA_FOLDER)
        if not folder.is_dir():
            return []
        names = [path.name for path in folder.iterdir() if DESCRIPTOR_NAME.match(path.name)]
        return sorted(names, key=_name_key)

    @staticmethod
    def _free_name(folder: Path, timestamp: int) -> str:
        sequence = 0
        while (folder / descriptor_name(timestamp, sequence)).exists():
            sequence += 1
        return descriptor_name(timestamp, sequence)


def _name_key(name: str) -> tuple[int, int, str]:
    match = DESCRIPTOR_NAME.match(name)
    if not match:
        return (0, 0, name)
    return (int(match.group(1)), int(match.group(2) or 0), name)


class SqliteMailbox:
    """Descriptors as rows of a SQLite table in the shared root.

    The database is opened on first use. Every sqlite failure surfaces as a
    StagingError, like a failed write in the directory backend.
    """

    TABLE = "descriptors"

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._db: sqlite_utils.Database | None = None

    @property
    def db(self) -> sqlite_utils.Database:
        if self._db is None:
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                db = sqlite_utils.Database(str(self.db_path))
                db[self.TABLE].create(
                    {
                        "name": str,
                        "timestamp": int,
                        "sequence": int,
                        "body": str,
                        "created_at": str,
                    },
                    pk="name",
                    if_not_exists=True,
                )
            except (sqlite3.Error, OSError) as exc:
                raise StagingError(f"Unable to open mailbox database {self.db_path}: {exc}") from exc
            self._db = db
        return self._db

    def put(self, shared: Shared) -> str:
        db = self.db
        body = descriptor.encode(shared)
        try:
            with db.conn:
                db.execute("begin immediate")
                (last,) = db.execute(
                    f"select max(sequence) from {self.TABLE} where timestamp = ?",
                    [shared.timestamp],
                ).fetchone()
                sequence = 0 if last is None else last + 1
                name = descriptor_name(shared.timestamp, sequence)
                db.execute(
                    f"insert into {self.TABLE} (name, timestamp, sequence, body, created_at) "
                    "values (?, ?, ?, ?, ?)",
                    [name, shared.timestamp, sequence, body, datetime.now(tz=UTC).isoformat()],
                )
        except sqlite3.Error as exc:
            raise StagingError(f"Unable to write descriptor to {self.db_path}: {exc}") from exc
        return name

    def take_latest(self) -> Shared | None:
        """Read and delete the newest decodable row in one transaction."""
        db = self.db
        try:
            with db.conn:
                db.execute("begin immediate")
                rows = db.execute(
                    f"select name, body from {self.TABLE} "
                    "order by timestamp desc, sequence desc, name desc"
                ).fetchall()
                for name, body in rows:
                    try:
                        shared = descriptor.decode(body, name=name)
                    except DescriptorDecodeError as exc:
                        logger.error("Leaving unreadable descriptor %s in place: %s", name, exc)
                        continue
                    db.execute(f"delete from {self.TABLE} where name = ?", [name])
                    logger.info("Consumed descriptor %s", name)
                    return shared
        except sqlite3.Error as exc:
            raise StagingError(f"Unable to read descriptors from {self.db_path}: {exc}") from exc
        return None

    def pending(self) -> list[str]:
        db = self.db
        try:
            return [
                row["name"]
                for row in db.query(
                    f"select name from {self.TABLE} order by timestamp, sequence, name"
                )
            ]
        except sqlite3.Error as exc:
            raise StagingError(f"Unable to list descriptors in {self.db_path}: {exc}") from exc


def build_mailbox(settings: Settings, storage: SharedStorage) -> Mailbox:
    """Mailbox for the configured backend."""
    if settings.mailbox_backend == "sqlite":
        db_path = settings.mailbox_db_path
        if db_path is None or not storage.available:
            raise StagingUnavailable(settings.share_root)
        return SqliteMailbox(db_path)
    return DirectoryMailbox(storage)


class StagingWriter:
    """Sole writer of the shared staging area."""

    def __init__(self, storage: SharedStorage, mailbox: Mailbox) -> None:
        self.storage = storage
        self.mailbox = mailbox

    def write(self, shared: Shared) -> str:
        """Persist a Descriptor and return its name."""
        self.storage.require_root()
        name = self.mailbox.put(shared)
        logger.info("Staged descriptor %s (%s)", name, _describe(shared))
        return name

    def copy_file(self, source: Path, kind: Kind, unique_name: str) -> Path:
        """Copy a transient file into its kind folder and return the final path."""
        folder = self.storage.ensure(KIND_FOLDERS[kind])
        destination = folder / unique_name
        try:
            if destination.exists():
                destination.unlink()
            shutil.copyfile(source, destination)
        except OSError as exc:
            raise CopyFailure(f"Unable to copy {source} to {destination}: {exc}", source=source) from exc
        logger.debug("Copied %s to %s", source, destination)
        return destination

    def discard(self, path: Path) -> None:
        """Remove a staged file that will never get a Descriptor."""
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Unable to remove orphaned staged file %s: %s", path, exc)
            return
        logger.debug("Removed orphaned staged file %s", path)

    @staticmethod
    def unique_name(kind: Kind, timestamp: int, source: Path | None = None) -> str:
        if kind is Kind.IMAGE:
            suffix = ".jpg"
        elif kind is Kind.VIDEO:
            suffix = ".mov"
        else:
            suffix = (source.suffix if source is not None else "") or ".bin"
        return f"shared_{kind.value}_{timestamp}_{short_id()}{suffix.lower()}"


def _describe(shared: Shared) -> str:
    if isinstance(shared, MultiItemBatch):
        return f"{len(shared.items)} files"
    return shared.kind.value
