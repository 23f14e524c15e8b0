"""Shared fixtures for the share handoff tests."""

from contextlib import asynccontextmanager
from pathlib import Path
from unittest.mock import Mock

import pytest

from sharehandoff.config import Settings
from sharehandoff.staging import DirectoryMailbox, SharedStorage, StagingWriter


class FakeContainer:
    """Attachment container with scripted representations.

    ``files`` maps identifiers to bytes written into a transient file that is
    deleted as soon as the ``open_file`` block exits.
    """

    def __init__(self, transient_dir, values=None, files=None, failures=None, identifiers=None):
        self.transient_dir = Path(transient_dir)
        self.values = values or {}
        self.files = files or {}
        self.failures = failures or {}
        self._identifiers = identifiers
        self.loaded = []
        self.transient_paths = []

    @property
    def identifiers(self):
        if self._identifiers is not None:
            return list(self._identifiers)
        return list(self.values) + list(self.files)

    async def load_value(self, identifier):
        self.loaded.append(identifier)
        if identifier in self.failures:
            raise self.failures[identifier]
        return self.values.get(identifier)

    @asynccontextmanager
    async def open_file(self, identifier):
        self.loaded.append(identifier)
        if identifier in self.failures:
            raise self.failures[identifier]
        if identifier not in self.files:
            yield None
            return
        self.transient_dir.mkdir(parents=True, exist_ok=True)
        transient = self.transient_dir / f"transient-{len(self.transient_paths)}.tmp"
        transient.write_bytes(self.files[identifier])
        self.transient_paths.append(transient)
        try:
            yield transient
        finally:
            transient.unlink(missing_ok=True)


@pytest.fixture
def share_root(tmp_path):
    root = tmp_path / "group"
    root.mkdir()
    return root


@pytest.fixture
def settings(share_root):
    return Settings(share_root=share_root, host_check_delay_ms=0, notify_url=None)


@pytest.fixture
def storage(share_root):
    return SharedStorage(share_root)


@pytest.fixture
def mailbox(storage):
    return DirectoryMailbox(storage)


@pytest.fixture
def writer(storage, mailbox):
    return StagingWriter(storage, mailbox)


@pytest.fixture
def make_container(tmp_path):
    def factory(**kwargs):
        return FakeContainer(tmp_path / "transient", **kwargs)

    return factory


@pytest.fixture
def opener():
    return Mock(return_value=True)


@pytest.fixture
def notifier():
    return Mock()
