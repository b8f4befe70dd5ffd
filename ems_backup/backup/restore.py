"""
Restore engine - replays a stored dump against the configured database.

Restoring is destructive: it runs the dump's statements against the live
database and takes no snapshot of the prior state. Asking the operator for
confirmation is the caller's responsibility.
"""

import logging
import os
import tempfile
from datetime import datetime, timezone
from typing import Optional

from ems_backup.config import BackupSettings
from ems_backup.models import RestoreResult
from .compression import decompress_file, is_compressed
from .runner import ProcessRunner, ProcessError
from .storage import ArtifactStore, StorageError


logger = logging.getLogger(__name__)


class NotFoundError(Exception):
    """Raised when the requested backup does not exist in the store."""
    pass


class RestoreError(Exception):
    """Raised when the import tool fails."""
    pass


class RestoreEngine:
    """
    Decompresses (if needed) and imports one artifact.
    """

    def __init__(
        self,
        settings: BackupSettings,
        runner: Optional[ProcessRunner] = None,
        store: Optional[ArtifactStore] = None
    ):
        self.settings = settings
        self.runner = runner or ProcessRunner()
        self.store = store or ArtifactStore(settings.backup_dir, settings.lock_timeout)
        self.logs = []

    def restore(self, filename: str) -> RestoreResult:
        """
        Restore the database from a stored artifact.

        Args:
            filename: Artifact name inside the backup directory

        Returns:
            RestoreResult; failures are reported, not raised
        """
        profile = self.settings.profile
        self.logs = []
        temp_path = None

        try:
            artifact_path = self._resolve(filename)

            sql_path = artifact_path
            if is_compressed(filename):
                temp_path = self._temp_path()
                self._log(f"Decompressing {filename}")
                sql_path = decompress_file(artifact_path, temp_path)

            self._log(f"Starting database restore: {filename} -> {profile.database}")
            self._import(sql_path)

            self._log(f"Database restore completed: {filename}")
            return RestoreResult(success=True, filename=filename, logs=self.logs)

        except Exception as e:
            message = profile.redact(str(e)) or type(e).__name__
            self._log(
                f"Restore failed for {filename} ({type(e).__name__}): {message}",
                level=logging.ERROR
            )
            return RestoreResult.failed(filename, e, message, self.logs)

        finally:
            if temp_path and os.path.exists(temp_path):
                try:
                    os.remove(temp_path)
                except OSError as e:
                    self._log(f"Warning: Failed to remove {temp_path}: {e}", level=logging.WARNING)

    def _resolve(self, filename: str) -> str:
        """
        Locate filename in the store.

        Raises:
            NotFoundError: If it is missing or not a valid store filename
        """
        # Hidden entries (lock file, in-flight restores) are not artifacts
        if filename.startswith('.'):
            raise NotFoundError(f"Backup file not found: {filename}")

        try:
            path = self.store.path_for(filename)
        except StorageError:
            raise NotFoundError(f"Backup file not found: {filename}")

        if not os.path.isfile(path):
            raise NotFoundError(f"Backup file not found: {filename}")

        return path

    def _temp_path(self) -> str:
        """Hidden sibling file for the decompressed dump."""
        fd, path = tempfile.mkstemp(prefix='.restore-', suffix='.sql', dir=str(self.store.base_path))
        os.close(fd)
        return path

    def _import(self, sql_path: str):
        """
        Feed a plain SQL file to the import tool.

        Raises:
            RestoreError: If the tool fails or cannot be run
        """
        profile = self.settings.profile
        args = [
            '-h', profile.host,
            '-P', str(profile.port),
            '-u', profile.user,
            profile.database
        ]

        try:
            with open(sql_path, 'rb') as sql:
                result = self.runner.run(
                    self.settings.import_command,
                    args,
                    stdin=sql,
                    env=profile.tool_env(),
                    timeout=self.settings.command_timeout
                )
        except ProcessError as e:
            raise RestoreError(profile.redact(str(e)))
        except OSError as e:
            raise RestoreError(f"Failed to read dump file: {e}")

        if not result.ok:
            detail = profile.redact(result.stderr) or 'no diagnostic output'
            raise RestoreError(
                f"{self.settings.import_command} exited with status {result.returncode}: {detail}"
            )

    def _log(self, message: str, level: int = logging.INFO):
        timestamp = datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')
        self.logs.append(f"[{timestamp}] {message}")
        logger.log(level, message)


def restore_backup(settings: BackupSettings, filename: str, runner: Optional[ProcessRunner] = None) -> RestoreResult:
    """
    Restore the configured database from filename.

    Args:
        settings: Resolved backup settings
        filename: Artifact name inside the backup directory
        runner: Process runner (a plain ProcessRunner if omitted)

    Returns:
        RestoreResult from RestoreEngine.restore()
    """
    engine = RestoreEngine(settings, runner=runner)
    return engine.restore(filename)
