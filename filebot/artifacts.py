"""
Artifact Lifecycle Manager - temporary files for in-flight operations.

Every upload and every engine output lives in one shared staging directory.
Concurrent users never coordinate through locks: names combine a millisecond
timestamp with a random suffix, so two allocations cannot collide in practice.

Reclamation happens two ways:
- explicitly, once an output has been delivered or an operation is done
- by a periodic sweep that deletes anything older than the retention threshold
"""

import shutil
import time
import uuid
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, Optional

from filebot.error_handler import ArtifactIOError


logger = logging.getLogger(__name__)


class ArtifactManager:
    """Allocates, verifies and reclaims artifacts in a staging directory"""

    def __init__(self, staging_dir: str | Path, retention_minutes: int = 60):
        self.staging_dir = Path(staging_dir)
        self.retention_seconds = retention_minutes * 60

    def ensure_staging_dir(self) -> Path:
        """Create the staging directory if it doesn't exist"""
        try:
            self.staging_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ArtifactIOError(f"Cannot create staging directory {self.staging_dir}: {e}") from e
        return self.staging_dir

    def allocate(self, extension: str = "") -> Path:
        """
        Return a fresh, unused path in the staging area.

        The file itself is not created; the caller (or the engine) writes it.
        """
        if extension and not extension.startswith("."):
            extension = f".{extension}"
        staging = self.ensure_staging_dir()
        timestamp = time.time_ns() // 1_000_000
        suffix = uuid.uuid4().hex[:8]
        return staging / f"temp_{timestamp}_{suffix}{extension}"

    def write(self, extension: str, data: bytes) -> Path:
        """Allocate a path, persist `data` there and verify it."""
        path = self.allocate(extension)
        try:
            path.write_bytes(data)
        except OSError as e:
            self.release(path)
            raise ArtifactIOError(f"Failed to write artifact {path.name}: {e}") from e

        if not self.verify(path):
            self.release(path)
            raise ArtifactIOError(f"Artifact {path.name} is empty after write")
        return path

    @staticmethod
    def verify(path: Optional[str | Path]) -> bool:
        """True if the artifact exists, is a regular file and is non-empty"""
        if not path:
            return False
        try:
            stat = Path(path).stat()
        except OSError:
            return False
        return Path(path).is_file() and stat.st_size > 0

    def release(self, path: Optional[str | Path]) -> None:
        """Delete one artifact. Deletion errors are logged, never raised."""
        if not path:
            return
        target = Path(path)
        try:
            if target.is_dir():
                shutil.rmtree(target)
            elif target.exists():
                target.unlink()
        except OSError as e:
            logger.warning(f"Failed to delete artifact {target}: {e}")

    def release_all(self, paths: Iterable[Optional[str | Path]]) -> None:
        for path in paths:
            self.release(path)

    @contextmanager
    def scratch_dir(self) -> Iterator[Path]:
        """
        Private directory for tools that choose their own output names.

        Outputs must be moved to an allocated path before the block exits.
        """
        directory = self.allocate()
        try:
            directory.mkdir()
        except OSError as e:
            raise ArtifactIOError(f"Cannot create scratch directory: {e}") from e
        try:
            yield directory
        finally:
            self.release(directory)

    def sweep_expired(self, now: Optional[float] = None) -> int:
        """
        Delete every staged entry older than the retention threshold.

        Returns:
            int: number of entries removed
        """
        if not self.staging_dir.exists():
            return 0

        current_time = now if now is not None else time.time()
        removed = 0
        for entry in self.staging_dir.iterdir():
            try:
                age_seconds = current_time - entry.stat().st_mtime
            except OSError:
                # Released concurrently
                continue
            if age_seconds > self.retention_seconds:
                self.release(entry)
                removed += 1

        if removed:
            logger.info(f"[ARTIFACT SWEEP] Deleted {removed} expired artifact(s) from {self.staging_dir}")
        return removed
