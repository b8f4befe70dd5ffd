"""
Result values returned by backup and restore operations.

These are never persisted; callers (the CLI, the health endpoint) inspect
them and decide how to report the outcome.
"""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class BackupResult:
    """Outcome of one create_backup() attempt."""

    success: bool
    filename: Optional[str] = None
    size_bytes: Optional[int] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    logs: List[str] = field(default_factory=list)

    @property
    def size_mb(self) -> Optional[float]:
        if self.size_bytes is None:
            return None
        return self.size_bytes / 1024 / 1024

    @classmethod
    def failed(cls, error: Exception, message: str, logs: List[str]) -> 'BackupResult':
        return cls(
            success=False,
            error=message,
            error_type=type(error).__name__,
            logs=logs
        )


@dataclass
class RestoreResult:
    """Outcome of one restore() attempt."""

    success: bool
    filename: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    logs: List[str] = field(default_factory=list)

    @classmethod
    def failed(cls, filename: str, error: Exception, message: str, logs: List[str]) -> 'RestoreResult':
        return cls(
            success=False,
            filename=filename,
            error=message,
            error_type=type(error).__name__,
            logs=logs
        )
