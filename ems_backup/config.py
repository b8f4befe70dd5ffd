import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError


class ConfigError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


class Config:
    """Base configuration"""

    # Backup store
    BACKUP_DIR = os.environ.get('BACKUP_DIR') or './backups'
    BACKUP_RETENTION_DAYS = os.environ.get('BACKUP_RETENTION_DAYS') or '7'
    BACKUP_LOCK_TIMEOUT = os.environ.get('BACKUP_LOCK_TIMEOUT') or '10'

    # External tools (0 or empty disables the per-call deadline)
    BACKUP_COMMAND_TIMEOUT = os.environ.get('BACKUP_COMMAND_TIMEOUT', '3600')
    MYSQLDUMP_BIN = os.environ.get('MYSQLDUMP_BIN') or 'mysqldump'
    MYSQL_BIN = os.environ.get('MYSQL_BIN') or 'mysql'

    # Database connection
    # DATABASE_URL wins over the individual DB_* values when set
    DATABASE_URL = os.environ.get('DATABASE_URL')
    DB_HOST = os.environ.get('DB_HOST') or 'localhost'
    DB_PORT = os.environ.get('DB_PORT') or '3306'
    DB_NAME = os.environ.get('DB_NAME') or 'ems_db'
    DB_USER = os.environ.get('DB_USER') or 'root'
    DB_PASSWORD = os.environ.get('DB_PASSWORD', '')

    # Logging
    LOG_DIR = os.environ.get('LOG_DIR') or './data/logs'
    LOG_TO_FILE = os.environ.get('LOG_TO_FILE', 'true').lower() == 'true'


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True

    # Use local data directory for development
    BASE_DIR = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    DATA_DIR = os.path.join(BASE_DIR, 'data')
    BACKUP_DIR = os.path.join(DATA_DIR, 'backups')
    LOG_DIR = os.path.join(DATA_DIR, 'logs')


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    LOG_TO_FILE = False
    DATABASE_URL = None
    DB_PASSWORD = 'test-password'
    BACKUP_COMMAND_TIMEOUT = '30'
    BACKUP_LOCK_TIMEOUT = '1'


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': ProductionConfig
}


@dataclass(frozen=True)
class ConnectionProfile:
    """Credentials and location of the database being backed up."""

    host: str
    port: int
    user: str
    password: str
    database: str

    def __repr__(self) -> str:
        return (
            f"ConnectionProfile(host={self.host!r}, port={self.port}, "
            f"user={self.user!r}, database={self.database!r})"
        )

    def redact(self, text: str) -> str:
        """Mask the password wherever it appears in text."""
        if not text or not self.password:
            return text
        return text.replace(self.password, '***')

    def tool_env(self) -> dict:
        """
        Environment for mysql client tools.

        The password travels in MYSQL_PWD so it never shows up in argv.
        """
        env = dict(os.environ)
        env.pop('MYSQL_PWD', None)
        if self.password:
            env['MYSQL_PWD'] = self.password
        return env


@dataclass(frozen=True)
class RetentionPolicy:
    horizon_days: int


@dataclass(frozen=True)
class BackupSettings:
    """
    Everything the backup subsystem needs, resolved once at startup.

    Components receive this object (or pieces of it) through their
    constructors and never look configuration up on their own.
    """

    backup_dir: str
    profile: ConnectionProfile
    retention: RetentionPolicy
    dump_command: str = 'mysqldump'
    import_command: str = 'mysql'
    command_timeout: Optional[float] = None
    lock_timeout: float = 10.0

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> 'BackupSettings':
        """
        Build settings from a Flask config (or any mapping).

        Raises:
            ConfigError: If a value is missing or malformed
        """
        backup_dir = (values.get('BACKUP_DIR') or '').strip()
        if not backup_dir:
            raise ConfigError("BACKUP_DIR must not be empty")

        return cls(
            backup_dir=backup_dir,
            profile=_connection_profile(values),
            retention=RetentionPolicy(
                horizon_days=_int_value(values, 'BACKUP_RETENTION_DAYS', minimum=1)
            ),
            dump_command=_required(values, 'MYSQLDUMP_BIN', 'mysqldump'),
            import_command=_required(values, 'MYSQL_BIN', 'mysql'),
            command_timeout=_timeout_value(values, 'BACKUP_COMMAND_TIMEOUT'),
            lock_timeout=_float_value(values, 'BACKUP_LOCK_TIMEOUT', 10.0),
        )


def _connection_profile(values: Mapping[str, Any]) -> ConnectionProfile:
    database_url = values.get('DATABASE_URL')

    if database_url:
        try:
            url = make_url(database_url)
        except ArgumentError as e:
            raise ConfigError(f"Invalid DATABASE_URL: {e}")

        if not url.drivername.startswith(('mysql', 'mariadb')):
            raise ConfigError(
                f"Unsupported database backend in DATABASE_URL: {url.drivername}"
            )
        if not url.database:
            raise ConfigError("DATABASE_URL does not name a database")

        return ConnectionProfile(
            host=url.host or 'localhost',
            port=url.port or 3306,
            user=url.username or 'root',
            password=url.password or '',
            database=url.database,
        )

    return ConnectionProfile(
        host=_required(values, 'DB_HOST', 'localhost'),
        port=_int_value(values, 'DB_PORT', minimum=1, maximum=65535),
        user=_required(values, 'DB_USER', 'root'),
        password=values.get('DB_PASSWORD') or '',
        database=_required(values, 'DB_NAME', 'ems_db'),
    )


def _required(values: Mapping[str, Any], key: str, default: str) -> str:
    value = values.get(key, default)
    if value is None or not str(value).strip():
        raise ConfigError(f"{key} must not be empty")
    return str(value).strip()


def _int_value(values: Mapping[str, Any], key: str, minimum: int = None, maximum: int = None) -> int:
    raw = values.get(key)
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be an integer, got {raw!r}")

    if minimum is not None and value < minimum:
        raise ConfigError(f"{key} must be >= {minimum}, got {value}")
    if maximum is not None and value > maximum:
        raise ConfigError(f"{key} must be <= {maximum}, got {value}")
    return value


def _float_value(values: Mapping[str, Any], key: str, default: float) -> float:
    raw = values.get(key)
    if raw is None or raw == '':
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be a number, got {raw!r}")
    if value < 0:
        raise ConfigError(f"{key} must not be negative, got {value}")
    return value


def _timeout_value(values: Mapping[str, Any], key: str) -> Optional[float]:
    value = _float_value(values, key, 0.0)
    return value or None
