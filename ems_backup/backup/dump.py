"""
Dump engine - runs the external export tool against the live database.

This is a thin process-invocation layer. The dump format is whatever
mysqldump produces; nothing here parses or validates it.
"""

import logging
import os
from typing import List, Optional

from ems_backup.config import ConnectionProfile
from .runner import ProcessRunner, ProcessError


logger = logging.getLogger(__name__)


class ExportError(Exception):
    """Raised when the dump tool fails or produces no output."""
    pass


class DumpEngine:
    """
    Produces a transactionally-consistent SQL dump (schema, data, routines
    and triggers) into a raw file.
    """

    def __init__(self, runner: ProcessRunner, command: str = 'mysqldump', timeout: Optional[float] = None):
        """
        Initialize dump engine.

        Args:
            runner: Process runner used to invoke the tool
            command: Export tool executable
            timeout: Per-call deadline in seconds
        """
        self.runner = runner
        self.command = command
        self.timeout = timeout

    def build_args(self, profile: ConnectionProfile) -> List[str]:
        """Arguments for a single-transaction dump including routines and triggers."""
        return [
            '-h', profile.host,
            '-P', str(profile.port),
            '-u', profile.user,
            '--single-transaction',
            '--routines',
            '--triggers',
            profile.database
        ]

    def dump(self, profile: ConnectionProfile, destination_path: str) -> str:
        """
        Dump the database into destination_path.

        The destination is left in place on failure; removing it is the
        caller's job.

        Args:
            profile: Connection profile of the database to dump
            destination_path: Raw (uncompressed) output file

        Returns:
            destination_path

        Raises:
            ExportError: If the tool fails, cannot be run, or writes nothing
        """
        logger.info(f"Starting database dump of {profile.database} to {os.path.basename(destination_path)}")

        try:
            with open(destination_path, 'wb') as out:
                result = self.runner.run(
                    self.command,
                    self.build_args(profile),
                    stdout=out,
                    env=profile.tool_env(),
                    timeout=self.timeout
                )
        except ProcessError as e:
            raise ExportError(profile.redact(str(e)))
        except OSError as e:
            raise ExportError(f"Failed to write dump file: {e}")

        if not result.ok:
            detail = profile.redact(result.stderr) or 'no diagnostic output'
            raise ExportError(f"{self.command} exited with status {result.returncode}: {detail}")

        try:
            size = os.path.getsize(destination_path)
        except OSError as e:
            raise ExportError(f"Dump file missing after export: {e}")

        if size == 0:
            raise ExportError(f"{self.command} produced no output")

        logger.info(f"Database dump finished ({size} bytes)")
        return destination_path
