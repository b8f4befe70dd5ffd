"""
Backup module for the EMS database.

This module handles the backup-and-retention functionality including:
- External tool invocation (dump and import)
- Artifact storage and naming
- Compression
- Backup orchestration
- Restore
- Retention policy enforcement
"""

from .runner import ProcessRunner, ProcessResult, ProcessError, ProcessTimeout, ProcessCancelled
from .storage import ArtifactStore, BackupArtifact, StorageError
from .dump import DumpEngine, ExportError
from .compression import compress_file, decompress_file, CompressionError
from .executor import BackupExecutor, create_backup
from .restore import RestoreEngine, restore_backup, NotFoundError, RestoreError
from .retention import RetentionSweeper, enforce_retention_policy

__all__ = [
    'ProcessRunner',
    'ProcessResult',
    'ProcessError',
    'ProcessTimeout',
    'ProcessCancelled',
    'ArtifactStore',
    'BackupArtifact',
    'StorageError',
    'DumpEngine',
    'ExportError',
    'compress_file',
    'decompress_file',
    'CompressionError',
    'BackupExecutor',
    'create_backup',
    'RestoreEngine',
    'restore_backup',
    'NotFoundError',
    'RestoreError',
    'RetentionSweeper',
    'enforce_retention_policy'
]
