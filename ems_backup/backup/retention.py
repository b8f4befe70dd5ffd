"""
Retention policy enforcement for backups.

Deletes artifacts whose last-modified time is older than the configured
horizon. Sweeps are not atomic with backup creation; if a process dies
between a backup and its sweep, the next sweep picks up the slack.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from ems_backup.config import BackupSettings, RetentionPolicy
from .storage import ArtifactStore, StorageError


logger = logging.getLogger(__name__)


class RetentionSweeper:
    """
    Applies a RetentionPolicy to every artifact in the store.
    """

    def __init__(self, store: ArtifactStore):
        self.store = store

    def sweep(self, policy: RetentionPolicy, now: Optional[datetime] = None) -> int:
        """
        Delete artifacts modified strictly before now - horizon.

        Args:
            policy: Retention policy to apply
            now: Reference time (UTC now if omitted)

        Returns:
            Number of artifacts deleted
        """
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        cutoff = now - timedelta(days=policy.horizon_days)

        try:
            artifacts = self.store.list()
        except StorageError as e:
            logger.error(f"Retention sweep could not list backups: {e}")
            return 0

        to_delete = [a for a in artifacts if a.modified_at < cutoff]

        deleted_count = 0
        for artifact in to_delete:
            try:
                self.store.delete(artifact.filename)
                deleted_count += 1
                logger.info(
                    f"Deleted old backup file: {artifact.filename} "
                    f"(modified {artifact.modified_at.isoformat()})"
                )
            except StorageError as e:
                logger.error(f"Failed to delete old backup {artifact.filename}: {e}")

        if deleted_count > 0:
            logger.info(
                f"Cleanup completed. Deleted: {deleted_count}, retention: {policy.horizon_days} days"
            )

        return deleted_count


def enforce_retention_policy(settings: BackupSettings, now: Optional[datetime] = None) -> int:
    """
    Sweep the configured backup directory.

    Called after each successful backup and by the standalone sweep command.

    Returns:
        Number of artifacts deleted
    """
    store = ArtifactStore(settings.backup_dir, settings.lock_timeout)
    sweeper = RetentionSweeper(store)
    return sweeper.sweep(settings.retention, now=now)
