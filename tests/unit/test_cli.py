"""
Unit tests for the operator commands (ems_backup/cli.py).
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from ems_backup.cli import cli, main
from ems_backup.backup.runner import ProcessResult


@pytest.fixture
def patched_runner(fake_runner):
    """Route every ProcessRunner the CLI builds to the fake runner."""
    with patch('ems_backup.cli.ProcessRunner', return_value=fake_runner):
        yield fake_runner


def _names(backup_dir):
    return sorted(p.name for p in backup_dir.iterdir() if not p.name.startswith('.'))


class TestBackupCommand:

    def test_backup_success(self, cli_runner, patched_runner, backup_dir):
        result = cli_runner.invoke(cli, ['backup'])

        assert result.exit_code == 0
        assert 'Backup completed: ems_db_backup_' in result.output
        [name] = _names(backup_dir)
        assert name.endswith('.sql.gz')

    def test_backup_runs_retention_sweep(self, cli_runner, patched_runner, backup_dir, make_artifact):
        now = datetime.now(timezone.utc)
        make_artifact('ems_db_backup_ancient.sql.gz', now - timedelta(days=30))
        make_artifact('ems_db_backup_recent.sql.gz', now - timedelta(days=2))

        result = cli_runner.invoke(cli, ['backup'])

        assert result.exit_code == 0
        assert 'Removed 1 backup(s) older than 7 days' in result.output
        names = _names(backup_dir)
        assert 'ems_db_backup_ancient.sql.gz' not in names
        assert 'ems_db_backup_recent.sql.gz' in names
        assert len(names) == 2

    def test_backup_failure_exits_1(self, cli_runner, patched_runner, backup_dir, make_artifact):
        patched_runner.on('mysqldump', lambda **kw: ProcessResult(
            returncode=2, stderr="Can't connect to MySQL server"
        ))
        old = make_artifact('ems_db_backup_ancient.sql.gz', datetime(2020, 1, 1, tzinfo=timezone.utc))

        result = cli_runner.invoke(cli, ['backup'])

        assert result.exit_code == 1
        assert "Backup failed:" in result.output
        assert "Can't connect to MySQL server" in result.output
        assert 'Traceback' not in result.output
        # No sweep after a failed backup
        assert old.exists()
        assert _names(backup_dir) == ['ems_db_backup_ancient.sql.gz']


class TestListCommand:

    def test_list_empty(self, cli_runner):
        result = cli_runner.invoke(cli, ['list'])

        assert result.exit_code == 0
        assert 'No backups found' in result.output

    def test_list_shows_newest_first(self, cli_runner, make_artifact):
        make_artifact('first.sql.gz', datetime(2024, 1, 1, tzinfo=timezone.utc), content=b'x' * 1024 * 1024)
        make_artifact('second.sql.gz', datetime(2024, 1, 2, tzinfo=timezone.utc))

        result = cli_runner.invoke(cli, ['list'])

        assert result.exit_code == 0
        lines = result.output.strip().splitlines()
        assert lines[0] == 'Available backups:'
        assert lines[1].startswith('  - second.sql.gz (0.00 MB) - 2024-01-02T00:00:00')
        assert lines[2] == '  - first.sql.gz (1.00 MB) - 2024-01-01T00:00:00+00:00'


class TestRestoreCommand:

    @pytest.fixture
    def artifact(self, cli_runner, patched_runner, backup_dir):
        cli_runner.invoke(cli, ['backup'])
        [name] = _names(backup_dir)
        return name

    def test_restore_with_yes(self, cli_runner, patched_runner, artifact):
        result = cli_runner.invoke(cli, ['restore', artifact, '--yes'])

        assert result.exit_code == 0
        assert 'Restore completed successfully' in result.output
        assert 'mysql' in patched_runner.commands()

    def test_restore_confirmed_interactively(self, cli_runner, patched_runner, artifact):
        result = cli_runner.invoke(cli, ['restore', artifact], input='y\n')

        assert result.exit_code == 0
        assert 'Restore completed successfully' in result.output

    def test_restore_declined(self, cli_runner, patched_runner, artifact):
        result = cli_runner.invoke(cli, ['restore', artifact], input='n\n')

        assert result.exit_code == 1
        assert 'mysql' not in patched_runner.commands()

    def test_restore_missing_file(self, cli_runner, patched_runner):
        result = cli_runner.invoke(cli, ['restore', 'nonexistent.sql.gz', '--yes'])

        assert result.exit_code == 1
        assert 'Restore failed: Backup file not found: nonexistent.sql.gz' in result.output

    def test_restore_requires_filename(self, cli_runner):
        result = cli_runner.invoke(cli, ['restore'])

        assert result.exit_code != 0

    def test_restore_tool_failure(self, cli_runner, patched_runner, artifact):
        patched_runner.on('mysql', lambda **kw: ProcessResult(returncode=1, stderr="ERROR 1049: Unknown database"))

        result = cli_runner.invoke(cli, ['restore', artifact, '--yes'])

        assert result.exit_code == 1
        assert 'Unknown database' in result.output


class TestSweepCommand:

    def test_sweep(self, cli_runner, make_artifact, backup_dir):
        now = datetime.now(timezone.utc)
        make_artifact('old.sql.gz', now - timedelta(days=10))
        make_artifact('new.sql.gz', now - timedelta(days=1))

        result = cli_runner.invoke(cli, ['sweep'])

        assert result.exit_code == 0
        assert 'Removed 1 backup(s)' in result.output
        assert _names(backup_dir) == ['new.sql.gz']

    def test_sweep_missing_directory(self, cli_runner, backup_dir):
        result = cli_runner.invoke(cli, ['sweep'])

        assert result.exit_code == 0
        assert 'Removed 0 backup(s)' in result.output
        assert not backup_dir.exists()


class TestMain:

    def test_config_error_exits_1(self, monkeypatch, capsys):
        monkeypatch.setenv('EMS_ENV', 'testing')
        from ems_backup.config import ConfigError

        with patch('ems_backup.cli.create_app', side_effect=ConfigError("DB_PORT must be an integer, got 'x'")):
            with pytest.raises(SystemExit) as exc_info:
                main(['list'])

        assert exc_info.value.code == 1
        assert 'Configuration error: DB_PORT must be an integer' in capsys.readouterr().err

    def test_main_runs_command(self, app, capsys):
        with patch('ems_backup.cli.create_app', return_value=app):
            with pytest.raises(SystemExit) as exc_info:
                main(['list'])

        assert exc_info.value.code == 0
        assert 'No backups found' in capsys.readouterr().out
