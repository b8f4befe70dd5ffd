"""
Operator commands for the backup subsystem.

    ems-backup backup              create a backup, then apply retention
    ems-backup list                show stored backups
    ems-backup restore FILENAME    restore the database from a backup
    ems-backup sweep               apply retention only

Exit status is 0 on success and 1 on any failure.
"""

import signal
import sys
import threading
from contextlib import contextmanager

import click
from flask import current_app
from flask.cli import with_appcontext

from ems_backup import create_app
from ems_backup.config import ConfigError
from ems_backup.backup.executor import BackupExecutor
from ems_backup.backup.restore import RestoreEngine
from ems_backup.backup.retention import enforce_retention_policy
from ems_backup.backup.runner import ProcessRunner
from ems_backup.backup.storage import ArtifactStore, StorageError


def _settings():
    return current_app.extensions['ems_backup']


@contextmanager
def _cancellable_runner():
    """
    ProcessRunner whose running tool is terminated on SIGTERM.

    Cleanup then runs through the normal failure path.
    """
    cancel_event = threading.Event()

    def _on_sigterm(signum, frame):
        current_app.logger.warning("SIGTERM received, cancelling running command")
        cancel_event.set()

    try:
        previous = signal.signal(signal.SIGTERM, _on_sigterm)
    except ValueError:
        # Not the main thread
        previous = None

    try:
        yield ProcessRunner(cancel_event=cancel_event)
    finally:
        if previous is not None:
            signal.signal(signal.SIGTERM, previous)


@click.group()
def cli():
    """Database backup and restore commands."""


@cli.command('backup')
@with_appcontext
def backup_command():
    """Create a compressed backup, then apply the retention policy."""
    settings = _settings()

    click.echo("Starting database backup...")
    with _cancellable_runner() as runner:
        result = BackupExecutor(settings, runner=runner).create_backup()

    if not result.success:
        click.echo(f"Backup failed: {result.error}", err=True)
        sys.exit(1)

    click.echo(f"Backup completed: {result.filename} ({result.size_mb:.2f} MB)")

    deleted = enforce_retention_policy(settings)
    if deleted:
        click.echo(
            f"Removed {deleted} backup(s) older than {settings.retention.horizon_days} days"
        )


@cli.command('list')
@with_appcontext
def list_command():
    """List stored backups, newest first."""
    settings = _settings()
    store = ArtifactStore(settings.backup_dir)

    try:
        artifacts = store.list()
    except StorageError as e:
        click.echo(f"Failed to list backups: {e}", err=True)
        sys.exit(1)

    if not artifacts:
        click.echo("No backups found")
        return

    click.echo("Available backups:")
    for artifact in artifacts:
        click.echo(
            f"  - {artifact.filename} ({artifact.size_mb:.2f} MB) - "
            f"{artifact.modified_at.isoformat()}"
        )


@cli.command('restore')
@click.argument('filename')
@click.option('--yes', '-y', is_flag=True, help="Skip the confirmation prompt.")
@with_appcontext
def restore_command(filename, yes):
    """Restore the database from FILENAME in the backup directory."""
    settings = _settings()

    if not yes:
        click.confirm(
            f"Restore {filename} into database '{settings.profile.database}'? "
            f"Existing data will be overwritten",
            abort=True
        )

    with _cancellable_runner() as runner:
        result = RestoreEngine(settings, runner=runner).restore(filename)

    if not result.success:
        click.echo(f"Restore failed: {result.error}", err=True)
        sys.exit(1)

    click.echo("Restore completed successfully")


@cli.command('sweep')
@with_appcontext
def sweep_command():
    """Delete backups older than the retention horizon."""
    settings = _settings()
    deleted = enforce_retention_policy(settings)
    click.echo(
        f"Removed {deleted} backup(s) older than {settings.retention.horizon_days} days"
    )


def main(argv=None):
    """Console entry point."""
    try:
        app = create_app()
    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)

    with app.app_context():
        cli.main(args=argv, prog_name='ems-backup')
