"""
Shared pytest fixtures for ems_backup tests.

This module provides fixtures for:
- Flask app with test configuration over a temporary backup directory
- Resolved BackupSettings and an ArtifactStore on that directory
- A scriptable fake ProcessRunner standing in for mysqldump / mysql
- Helpers to seed the store with artifacts of a given age
"""

import os
from datetime import timezone

import pytest

from ems_backup import create_app
from ems_backup.backup.runner import ProcessResult
from ems_backup.backup.storage import ArtifactStore


TEST_PASSWORD = 's3cret-pw'

SAMPLE_DUMP = (
    b"-- MariaDB dump 10.19\n"
    b"CREATE TABLE `departments` (`id` int NOT NULL, `name` varchar(100));\n"
    b"INSERT INTO `departments` VALUES (1,'HR'),(2,'IT');\n"
)


class FakeRunner:
    """
    Stands in for ProcessRunner.

    Handlers are registered per command name and receive the same keyword
    arguments ProcessRunner.run() does. Unregistered commands exit 0.
    """

    def __init__(self):
        self.calls = []
        self.handlers = {}
        self.imported = []
        self.cancel_event = None

    def on(self, command, handler):
        self.handlers[command] = handler

    def run(self, command, args, stdin=None, stdout=None, env=None, timeout=None):
        self.calls.append({
            'command': command,
            'args': list(args),
            'env': dict(env) if env is not None else None,
            'timeout': timeout
        })

        handler = self.handlers.get(command)
        if handler is None:
            return ProcessResult(returncode=0)
        return handler(args=args, stdin=stdin, stdout=stdout, env=env)

    def commands(self):
        return [c['command'] for c in self.calls]


@pytest.fixture(scope='function')
def backup_dir(tmp_path):
    """Backup directory path (not created)."""
    return tmp_path / 'backups'


@pytest.fixture(scope='function')
def app(tmp_path, backup_dir):
    """
    Create Flask app with test configuration.

    Database: ems_db on localhost, password TEST_PASSWORD.
    """
    app = create_app('testing', test_config={
        'BACKUP_DIR': str(backup_dir),
        'LOG_DIR': str(tmp_path / 'logs'),
        'DB_HOST': 'db.internal',
        'DB_PORT': '3307',
        'DB_NAME': 'ems_db',
        'DB_USER': 'backup',
        'DB_PASSWORD': TEST_PASSWORD,
        'BACKUP_RETENTION_DAYS': '7',
    })

    yield app


@pytest.fixture(scope='function')
def settings(app):
    """Resolved BackupSettings of the test app."""
    return app.extensions['ems_backup']


@pytest.fixture(scope='function')
def store(settings):
    return ArtifactStore(settings.backup_dir, lock_timeout=settings.lock_timeout)


@pytest.fixture(scope='function')
def cli_runner(app):
    """Flask CLI test runner."""
    return app.test_cli_runner()


@pytest.fixture(scope='function')
def fake_runner():
    """
    FakeRunner with working mysqldump and mysql handlers.

    mysqldump writes SAMPLE_DUMP; mysql records the bytes it was fed in
    runner.imported.
    """
    runner = FakeRunner()

    def dump(args, stdin, stdout, env):
        stdout.write(SAMPLE_DUMP)
        return ProcessResult(returncode=0)

    def load(args, stdin, stdout, env):
        runner.imported.append(stdin.read())
        return ProcessResult(returncode=0)

    runner.on('mysqldump', dump)
    runner.on('mysql', load)
    return runner


@pytest.fixture
def make_artifact(backup_dir):
    """
    Create a file in the backup directory with a given modification time.

    Usage: make_artifact('ems_db_backup_x.sql.gz', datetime(...), b'data')
    """
    def _make(filename, modified_at, content=b'backup data'):
        backup_dir.mkdir(parents=True, exist_ok=True)
        path = backup_dir / filename
        path.write_bytes(content)

        if modified_at.tzinfo is None:
            modified_at = modified_at.replace(tzinfo=timezone.utc)
        ts = modified_at.timestamp()
        os.utime(path, (ts, ts))
        return path

    return _make
