"""Tests for shared storage, staged files and the Descriptor mailboxes."""

import json
import os
import re
import sqlite3
from unittest.mock import patch

import pytest
import sqlite_utils

from sharehandoff.config import Settings
from sharehandoff.errors import CopyFailure, StagingError, StagingUnavailable
from sharehandoff.models import Kind, MultiItemBatch, ShareItem
from sharehandoff.staging import (
    DirectoryMailbox,
    SharedStorage,
    SqliteMailbox,
    StagingWriter,
    build_mailbox,
)

TS = 1700000000


def image_item(path="/group/SharedImages/a.jpg", timestamp=TS):
    return ShareItem(content=path, kind=Kind.IMAGE, message="📸 Shared an image", timestamp=timestamp)


class TestSharedStorage:
    def test_missing_root_is_unavailable(self, tmp_path):
        storage = SharedStorage(tmp_path / "missing")

        assert storage.available is False
        with pytest.raises(StagingUnavailable):
            storage.require_root()

    def test_unconfigured_root_is_unavailable(self):
        with pytest.raises(StagingUnavailable) as exc_info:
            SharedStorage(None).ensure("SharedData")

        assert "not configured" in str(exc_info.value)

    def test_ensure_is_idempotent(self, storage, share_root):
        first = storage.ensure("SharedData")
        second = storage.ensure("SharedData")

        assert first == second == share_root / "SharedData"
        assert first.is_dir()


class TestDirectoryMailbox:
    def test_descriptor_file_name_and_format(self, mailbox, share_root):
        name = mailbox.put(image_item())

        assert name == f"shared_content_{TS}.json"
        payload = json.loads((share_root / "SharedData" / name).read_text(encoding="utf-8"))
        assert payload == {
            "content": "/group/SharedImages/a.jpg",
            "type": "image",
            "message": "📸 Shared an image",
            "timestamp": TS,
        }

    def test_batch_format(self, mailbox, share_root):
        batch = MultiItemBatch.of([image_item("/a.jpg"), image_item("/b.jpg")], timestamp=TS)

        name = mailbox.put(batch)

        payload = json.loads((share_root / "SharedData" / name).read_text(encoding="utf-8"))
        assert payload["type"] == "multiple_files"
        assert payload["timestamp"] == TS
        assert payload["files"] == [
            {"content": "/a.jpg", "type": "image", "message": "📸 Shared an image"},
            {"content": "/b.jpg", "type": "image", "message": "📸 Shared an image"},
        ]

    def test_write_leaves_no_temporary_files(self, mailbox, share_root):
        mailbox.put(image_item())

        assert os.listdir(share_root / "SharedData") == [f"shared_content_{TS}.json"]

    def test_round_trip_deletes_descriptor(self, mailbox, share_root):
        item = image_item()
        name = mailbox.put(item)

        assert mailbox.take_latest() == item
        assert not (share_root / "SharedData" / name).exists()

    def test_batch_round_trip(self, mailbox):
        batch = MultiItemBatch.of([image_item("/a.jpg"), image_item("/b.jpg")], timestamp=TS)
        mailbox.put(batch)

        assert mailbox.take_latest() == batch

    def test_same_second_writes_do_not_overwrite(self, mailbox):
        first = image_item("/first.jpg")
        second = image_item("/second.jpg")

        names = [mailbox.put(first), mailbox.put(second)]

        assert names == [f"shared_content_{TS}.json", f"shared_content_{TS}_1.json"]
        assert mailbox.pending() == names
        assert mailbox.take_latest() == second
        assert mailbox.take_latest() == first
        assert mailbox.take_latest() is None

    def test_latest_timestamp_wins(self, mailbox):
        mailbox.put(image_item("/newer.jpg", timestamp=TS + 5))
        mailbox.put(image_item("/older.jpg", timestamp=TS))

        assert mailbox.take_latest().content == "/newer.jpg"

    def test_unreadable_descriptor_is_left_in_place(self, storage, mailbox):
        broken = storage.ensure("SharedData") / f"shared_content_{TS}.json"
        broken.write_text("{not json", encoding="utf-8")

        assert mailbox.take_latest() is None
        assert broken.exists()

    def test_invalid_descriptor_is_left_in_place(self, storage, mailbox):
        broken = storage.ensure("SharedData") / f"shared_content_{TS}.json"
        broken.write_text(json.dumps({"content": "", "type": "image", "timestamp": TS}), encoding="utf-8")

        assert mailbox.take_latest() is None
        assert broken.exists()

    def test_corrupt_newest_does_not_hide_older_descriptors(self, storage, mailbox):
        mailbox.put(image_item("/older.jpg", timestamp=TS))
        broken = storage.ensure("SharedData") / f"shared_content_{TS + 10}.json"
        broken.write_text("{not json", encoding="utf-8")

        assert mailbox.take_latest().content == "/older.jpg"
        assert mailbox.take_latest() is None
        assert broken.exists()

    def test_unrelated_files_are_ignored(self, storage, mailbox):
        folder = storage.ensure("SharedData")
        (folder / "notes.txt").write_text("hi", encoding="utf-8")
        (folder / ".abc.tmp").write_text("{}", encoding="utf-8")

        assert mailbox.take_latest() is None

    def test_empty_mailbox(self, mailbox):
        assert mailbox.take_latest() is None
        assert mailbox.pending() == []


class TestSqliteMailbox:
    def test_round_trip_and_ordering(self, tmp_path):
        mailbox = SqliteMailbox(tmp_path / "db" / "mailbox.db")
        older = image_item("/older.jpg", timestamp=TS)
        newer = image_item("/newer.jpg", timestamp=TS + 1)

        mailbox.put(older)
        mailbox.put(newer)

        assert mailbox.take_latest() == newer
        assert mailbox.take_latest() == older
        assert mailbox.take_latest() is None

    def test_same_second_names_stay_unique(self, tmp_path):
        mailbox = SqliteMailbox(tmp_path / "mailbox.db")

        first = mailbox.put(image_item("/a.jpg"))
        second = mailbox.put(image_item("/b.jpg"))
        assert mailbox.take_latest().content == "/b.jpg"
        third = mailbox.put(image_item("/c.jpg"))

        assert first == f"shared_content_{TS}.json"
        assert second == f"shared_content_{TS}_1.json"
        assert third == f"shared_content_{TS}_1.json"
        assert mailbox.pending() == [first, third]

    def test_unreadable_row_is_left_in_place(self, tmp_path):
        mailbox = SqliteMailbox(tmp_path / "mailbox.db")
        mailbox.db[SqliteMailbox.TABLE].insert(
            {"name": "broken", "timestamp": TS, "sequence": 0, "body": "nope", "created_at": ""}
        )

        assert mailbox.take_latest() is None
        assert mailbox.pending() == ["broken"]


    def test_corrupt_newest_row_does_not_hide_older_rows(self, tmp_path):
        mailbox = SqliteMailbox(tmp_path / "mailbox.db")
        mailbox.put(image_item("/older.jpg", timestamp=TS))
        mailbox.db[SqliteMailbox.TABLE].insert(
            {"name": "broken", "timestamp": TS + 10, "sequence": 0, "body": "nope", "created_at": ""}
        )

        assert mailbox.take_latest().content == "/older.jpg"
        assert mailbox.pending() == ["broken"]

    def test_row_is_gone_for_every_reader_after_take(self, tmp_path):
        path = tmp_path / "mailbox.db"
        writer_side = SqliteMailbox(path)
        writer_side.put(image_item())
        first_reader = SqliteMailbox(path)
        second_reader = SqliteMailbox(path)

        assert first_reader.take_latest() == image_item()
        assert second_reader.take_latest() is None
        assert sqlite_utils.Database(str(path))[SqliteMailbox.TABLE].count == 0

    def test_sqlite_errors_surface_as_staging_errors(self, tmp_path):
        mailbox = SqliteMailbox(tmp_path / "mailbox.db")
        mailbox.db
        locked = sqlite3.OperationalError("database is locked")

        with patch.object(sqlite_utils.Database, "execute", side_effect=locked):
            with pytest.raises(StagingError) as exc_info:
                mailbox.put(image_item())
            with pytest.raises(StagingError):
                mailbox.take_latest()

        assert exc_info.value.__cause__ is locked

    def test_unopenable_database_is_a_staging_error(self, tmp_path):
        blocker = tmp_path / "not-a-folder"
        blocker.write_text("x", encoding="utf-8")
        mailbox = SqliteMailbox(blocker / "mailbox.db")

        with pytest.raises(StagingError):
            mailbox.put(image_item())

class TestBuildMailbox:
    def test_directory_backend_by_default(self, settings, storage):
        assert isinstance(build_mailbox(settings, storage), DirectoryMailbox)

    def test_sqlite_backend_lives_under_shared_data(self, share_root, storage):
        settings = Settings(share_root=share_root, mailbox_backend="sqlite")

        mailbox = build_mailbox(settings, storage)

        assert isinstance(mailbox, SqliteMailbox)
        assert mailbox.db_path == share_root / "SharedData" / "mailbox.db"

    def test_sqlite_backend_needs_the_shared_root(self, tmp_path):
        settings = Settings(share_root=tmp_path / "missing", mailbox_backend="sqlite")

        with pytest.raises(StagingUnavailable):
            build_mailbox(settings, SharedStorage(settings.share_root))


class TestStagingWriter:
    def test_write_requires_root(self, tmp_path):
        storage = SharedStorage(tmp_path / "missing")
        writer = StagingWriter(storage, DirectoryMailbox(storage))

        with pytest.raises(StagingUnavailable):
            writer.write(image_item())

    def test_copy_file_creates_kind_folder(self, writer, share_root, tmp_path):
        source = tmp_path / "clip.tmp"
        source.write_bytes(b"moov")

        path = writer.copy_file(source, Kind.VIDEO, "shared_video_1_x.mov")

        assert path == share_root / "SharedVideos" / "shared_video_1_x.mov"
        assert path.read_bytes() == b"moov"
        assert source.exists()

    def test_copy_file_replaces_existing_destination(self, writer, share_root, tmp_path):
        existing = share_root / "SharedFiles"
        existing.mkdir()
        (existing / "same.pdf").write_bytes(b"old")
        source = tmp_path / "new.pdf"
        source.write_bytes(b"new")

        path = writer.copy_file(source, Kind.FILE, "same.pdf")

        assert path.read_bytes() == b"new"

    def test_copy_failure_when_source_vanished(self, writer, tmp_path):
        with pytest.raises(CopyFailure) as exc_info:
            writer.copy_file(tmp_path / "gone.tmp", Kind.FILE, "x.bin")

        assert exc_info.value.source == tmp_path / "gone.tmp"

    def test_discard_removes_staged_file(self, writer, share_root, tmp_path):
        source = tmp_path / "a.tmp"
        source.write_bytes(b"x")
        path = writer.copy_file(source, Kind.IMAGE, "a.jpg")

        writer.discard(path)

        assert not path.exists()

    def test_unique_names(self, tmp_path):
        image = StagingWriter.unique_name(Kind.IMAGE, TS, tmp_path / "photo.PNG")
        video = StagingWriter.unique_name(Kind.VIDEO, TS)
        document = StagingWriter.unique_name(Kind.FILE, TS, tmp_path / "Report.PDF")
        blob = StagingWriter.unique_name(Kind.FILE, TS, tmp_path / "blob")

        assert re.fullmatch(rf"shared_image_{TS}_[0-9a-f]{{8}}\.jpg", image)
        assert re.fullmatch(rf"shared_video_{TS}_[0-9a-f]{{8}}\.mov", video)
        assert re.fullmatch(rf"shared_file_{TS}_[0-9a-f]{{8}}\.pdf", document)
        assert re.fullmatch(rf"shared_file_{TS}_[0-9a-f]{{8}}\.bin", blob)
