"""
Tests for the artifact staging area
"""

import os
import re
import time

import pytest

from filebot.artifacts import ArtifactManager
from filebot.error_handler import ArtifactIOError


class TestAllocation:
    """Naming and writing"""

    def test_allocate_name_pattern(self, artifacts):
        path = artifacts.allocate(".pdf")
        assert re.fullmatch(r"temp_\d+_[0-9a-f]{8}\.pdf", path.name)
        assert path.parent == artifacts.staging_dir
        assert not path.exists()

    def test_extension_without_dot(self, artifacts):
        assert artifacts.allocate("png").suffix == ".png"

    def test_allocations_never_collide(self, artifacts):
        paths = {artifacts.allocate(".pdf") for _ in range(500)}
        assert len(paths) == 500

    def test_write_persists_and_verifies(self, artifacts):
        path = artifacts.write(".txt", b"hello")
        assert path.read_bytes() == b"hello"
        assert artifacts.verify(path)

    def test_write_empty_payload_raises(self, artifacts):
        with pytest.raises(ArtifactIOError):
            artifacts.write(".txt", b"")
        assert list(artifacts.staging_dir.iterdir()) == []

    def test_unusable_staging_dir_raises(self, tmp_path):
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("x")
        manager = ArtifactManager(blocker)

        with pytest.raises(ArtifactIOError):
            manager.allocate(".pdf")

    def test_artifact_io_error_is_os_error(self):
        assert issubclass(ArtifactIOError, OSError)


class TestVerify:

    def test_missing_empty_and_directory(self, artifacts, tmp_path):
        empty = tmp_path / "empty.pdf"
        empty.write_bytes(b"")

        assert not artifacts.verify(tmp_path / "missing.pdf")
        assert not artifacts.verify(empty)
        assert not artifacts.verify(tmp_path)
        assert not artifacts.verify(None)


class TestRelease:

    def test_release_file(self, artifacts):
        path = artifacts.write(".txt", b"x")
        artifacts.release(path)
        assert not path.exists()

    def test_release_missing_is_silent(self, artifacts):
        artifacts.release(artifacts.allocate(".pdf"))
        artifacts.release(None)

    def test_release_all(self, artifacts):
        paths = [artifacts.write(".txt", b"x") for _ in range(3)]
        artifacts.release_all(paths)
        assert not any(p.exists() for p in paths)

    def test_scratch_dir_removed_on_exit(self, artifacts):
        with artifacts.scratch_dir() as scratch:
            (scratch / "out.pdf").write_bytes(b"%PDF")
            assert scratch.is_dir()
        assert not scratch.exists()


class TestSweep:
    """Age-based reclamation"""

    def test_deletes_old_keeps_new(self, artifacts):
        old = artifacts.write(".pdf", b"old")
        new = artifacts.write(".pdf", b"new")
        two_hours_ago = time.time() - 2 * 3600
        os.utime(old, (two_hours_ago, two_hours_ago))

        assert artifacts.sweep_expired() == 1
        assert not old.exists()
        assert new.exists()

    def test_removes_stale_directories(self, artifacts):
        stale = artifacts.allocate()
        stale.mkdir()
        (stale / "leftover.pdf").write_bytes(b"x")
        two_hours_ago = time.time() - 2 * 3600
        os.utime(stale, (two_hours_ago, two_hours_ago))

        assert artifacts.sweep_expired() == 1
        assert not stale.exists()

    def test_explicit_now(self, artifacts):
        artifacts.write(".pdf", b"x")
        assert artifacts.sweep_expired(now=time.time() + 59 * 60) == 0
        assert artifacts.sweep_expired(now=time.time() + 61 * 60) == 1

    def test_missing_staging_dir(self, tmp_path):
        assert ArtifactManager(tmp_path / "nothing").sweep_expired() == 0
