"""
Artifact store: the directory that holds database dumps.

Owns naming, discovery and deletion of backup files. The store is
append/delete-only; nothing rewrites a compressed artifact in place.
"""

import logging
import os
import re
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List

from filelock import FileLock, Timeout


logger = logging.getLogger(__name__)

LOCK_FILENAME = '.backup.lock'


class StorageError(Exception):
    """Raised when a filesystem operation on the backup store fails."""
    pass


@dataclass(frozen=True)
class BackupArtifact:
    """A single backup file in the store."""

    filename: str
    path: str
    size_bytes: int
    modified_at: datetime

    @property
    def compressed(self) -> bool:
        return self.filename.endswith('.gz')

    @property
    def size_mb(self) -> float:
        return self.size_bytes / 1024 / 1024


class ArtifactStore:
    """
    Handler for the local backup directory.

    Files live directly under base_path:
    {base_path}/{database}_backup_{timestamp}.sql.gz
    """

    def __init__(self, base_path: str, lock_timeout: float = 10.0):
        """
        Initialize artifact store.

        Args:
            base_path: Backup directory
            lock_timeout: Seconds to wait for another backup to release the lock
        """
        self.base_path = Path(base_path)
        self.lock_timeout = lock_timeout

    def ensure_directory(self):
        """
        Create the backup directory (and parents) if missing.

        Raises:
            StorageError: If the filesystem refuses to create it
        """
        if self.base_path.is_dir():
            return

        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create backup directory {self.base_path}: {e}")

        logger.info(f"Created backup directory: {self.base_path}")

    @staticmethod
    def generate_name(database_name: str, capture_time: datetime) -> str:
        """
        Generate a raw dump filename.

        Format: {database}_backup_{YYYY-MM-DDTHH-MM-SSZ}.sql

        Two captures of the same database within the same second produce the
        same name; backups are not expected to run at sub-second frequency.

        Args:
            database_name: Name of the dumped database
            capture_time: Capture timestamp (naive values are taken as UTC)

        Returns:
            Filename (without path)
        """
        if capture_time.tzinfo is None:
            capture_time = capture_time.replace(tzinfo=timezone.utc)

        iso = capture_time.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')
        timestamp = re.sub(r'[:.]', '-', iso)

        safe_name = "".join(
            c if c.isalnum() or c in ('-', '_') else '_'
            for c in database_name
        )

        return f"{safe_name}_backup_{timestamp}.sql"

    def path_for(self, filename: str) -> str:
        """
        Resolve a bare filename inside the store.

        Raises:
            StorageError: If filename is empty or points outside the store
        """
        if (
            not filename
            or filename in ('.', '..')
            or os.sep in filename
            or (os.altsep and os.altsep in filename)
        ):
            raise StorageError(f"Invalid backup filename: {filename!r}")

        return str(self.base_path / filename)

    def exists(self, filename: str) -> bool:
        try:
            return os.path.isfile(self.path_for(filename))
        except StorageError:
            return False

    def stat(self, filename: str) -> BackupArtifact:
        """
        Describe one artifact.

        Raises:
            StorageError: If the file is missing or cannot be read
        """
        path = self.path_for(filename)

        try:
            st = os.stat(path)
        except FileNotFoundError:
            raise StorageError(f"Backup file not found: {filename}")
        except OSError as e:
            raise StorageError(f"Failed to stat {filename}: {e}")

        return BackupArtifact(
            filename=filename,
            path=path,
            size_bytes=st.st_size,
            modified_at=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc)
        )

    def list(self) -> List[BackupArtifact]:
        """
        List backup files, most recently modified first.

        Hidden entries (the lock file, in-flight restore files) and
        subdirectories are skipped. A missing directory yields an empty list.

        Raises:
            StorageError: If the directory exists but cannot be read
        """
        if not self.base_path.is_dir():
            return []

        artifacts = []

        try:
            for entry in os.scandir(self.base_path):
                if entry.name.startswith('.') or not entry.is_file():
                    continue

                try:
                    st = entry.stat()
                except FileNotFoundError:
                    # Removed mid-scan by a compress step or a sweep
                    continue

                artifacts.append(BackupArtifact(
                    filename=entry.name,
                    path=entry.path,
                    size_bytes=st.st_size,
                    modified_at=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc)
                ))
        except FileNotFoundError:
            # Directory removed while scanning
            return []
        except OSError as e:
            raise StorageError(f"Failed to list backup directory: {e}")

        artifacts.sort(key=lambda a: a.modified_at, reverse=True)
        return artifacts

    def delete(self, filename: str):
        """
        Delete one artifact.

        Deleting a file that is not there is an error, not a no-op, so that
        operator mistakes surface instead of being silently ignored.

        Raises:
            StorageError: If the file is missing or cannot be removed
        """
        path = self.path_for(filename)

        try:
            os.remove(path)
        except FileNotFoundError:
            raise StorageError(f"Backup file not found: {filename}")
        except PermissionError as e:
            raise StorageError(f"Permission denied deleting {filename}: {e}")
        except OSError as e:
            raise StorageError(f"Failed to delete {filename}: {e}")

        logger.info(f"Deleted backup file: {filename}")

    @contextmanager
    def lock(self) -> Iterator[None]:
        """
        Hold the store's advisory lock for one backup run.

        Raises:
            StorageError: If another backup holds the lock past lock_timeout
        """
        lock = FileLock(str(self.base_path / LOCK_FILENAME), timeout=self.lock_timeout)

        try:
            lock.acquire()
        except Timeout:
            raise StorageError(
                f"Another backup is already running (lock held on {self.base_path})"
            )

        try:
            yield
        finally:
            lock.release()
