"""
Backup executor - orchestrates one complete database backup.

Workflow:
1. Ensure the backup directory exists
2. Take the store lock
3. Generate the dump filename
4. Dump the database to a raw .sql file
5. Compress it to .sql.gz (raw file removed)
6. Stat the compressed file for the reported size
7. Remove whatever this attempt left behind if any step failed

A name already taken in the store fails the attempt before anything is
written, so cleanup only ever touches this attempt's own files.

The store therefore holds zero or one artifact per attempt, and that
artifact is always the complete compressed dump.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Callable, List, Optional

from ems_backup.config import BackupSettings
from ems_backup.models import BackupResult
from .compression import compress_file, COMPRESSED_SUFFIX
from .dump import DumpEngine
from .runner import ProcessRunner, ProcessCancelled
from .storage import ArtifactStore, StorageError


logger = logging.getLogger(__name__)


class BackupExecutor:
    """
    Runs dump -> compress -> stat for the configured database.
    """

    def __init__(
        self,
        settings: BackupSettings,
        runner: Optional[ProcessRunner] = None,
        store: Optional[ArtifactStore] = None,
        dump_engine: Optional[DumpEngine] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize backup executor.

        Args:
            settings: Resolved backup settings
            runner: Process runner for the dump tool
            store: Artifact store (built from settings if omitted)
            dump_engine: Dump engine (built from settings if omitted)
            clock: Returns the capture time; defaults to UTC now
        """
        self.settings = settings
        self.runner = runner or ProcessRunner()
        self.store = store or ArtifactStore(settings.backup_dir, settings.lock_timeout)
        self.dump_engine = dump_engine or DumpEngine(
            self.runner,
            command=settings.dump_command,
            timeout=settings.command_timeout
        )
        self.clock = clock or (lambda: datetime.now(timezone.utc))

        self.raw_path = None
        self.compressed_path = None
        self.logs = []

    def create_backup(self) -> BackupResult:
        """
        Create one compressed backup.

        Returns:
            BackupResult; failures are reported, not raised
        """
        profile = self.settings.profile
        self.raw_path = None
        self.compressed_path = None
        self.logs = []
        succeeded = False

        self._log(f"Starting database backup: {profile.database}")

        try:
            self.store.ensure_directory()

            with self.store.lock():
                filename = self.store.generate_name(profile.database, self.clock())
                self.raw_path = self._claim(filename)
                self._log(f"Dump file: {filename}")

                self.dump_engine.dump(profile, self.raw_path)
                self._log("Dump completed, compressing")

                self.compressed_path = compress_file(self.raw_path)
                if self._cancelled():
                    raise ProcessCancelled("Backup cancelled during compression")

                artifact = self.store.stat(os.path.basename(self.compressed_path))

            succeeded = True
            self._log(
                f"Backup completed successfully: {artifact.filename} ({artifact.size_mb:.2f} MB)"
            )
            return BackupResult(
                success=True,
                filename=artifact.filename,
                size_bytes=artifact.size_bytes,
                logs=self.logs
            )

        except Exception as e:
            message = profile.redact(str(e)) or type(e).__name__
            self._log(
                f"Backup failed for {self._attempt_name() or profile.database} "
                f"({type(e).__name__}): {message}",
                level=logging.ERROR
            )
            return BackupResult.failed(e, message, self.logs)

        finally:
            # Also reached on KeyboardInterrupt / SystemExit
            self._cleanup(succeeded)

    def _claim(self, filename: str) -> str:
        """
        Path for this attempt's raw dump.

        Raises:
            StorageError: If a dump or artifact of that name is already stored
        """
        path = self.store.path_for(filename)
        if os.path.exists(path) or os.path.exists(f"{path}{COMPRESSED_SUFFIX}"):
            raise StorageError(f"Backup file already exists: {filename}")
        return path

    def _cancelled(self) -> bool:
        cancel_event = self.runner.cancel_event
        return cancel_event is not None and cancel_event.is_set()

    def _attempt_name(self) -> Optional[str]:
        if self.raw_path:
            return os.path.basename(self.raw_path)
        return None

    def _cleanup(self, succeeded: bool):
        """Remove the raw dump, and the compressed file too if the attempt failed."""
        leftovers: List[str] = []
        if self.raw_path:
            leftovers.append(self.raw_path)
            if not succeeded:
                leftovers.append(self.compressed_path or f"{self.raw_path}{COMPRESSED_SUFFIX}")

        for path in leftovers:
            if os.path.exists(path):
                try:
                    os.remove(path)
                    self._log(f"Removed incomplete file: {os.path.basename(path)}")
                except OSError as e:
                    self._log(f"Warning: Failed to remove {path}: {e}", level=logging.WARNING)

    def _log(self, message: str, level: int = logging.INFO):
        """
        Add a log message with timestamp.

        Args:
            message: Log message
            level: Level used for the module logger
        """
        timestamp = datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')
        self.logs.append(f"[{timestamp}] {message}")
        logger.log(level, message)


def create_backup(settings: BackupSettings, runner: Optional[ProcessRunner] = None) -> BackupResult:
    """
    Create a backup with the given settings.

    Args:
        settings: Resolved backup settings
        runner: Process runner (a plain ProcessRunner if omitted)

    Returns:
        BackupResult from BackupExecutor.create_backup()
    """
    executor = BackupExecutor(settings, runner=runner)
    return executor.create_backup()
