import os
import logging
from logging.handlers import RotatingFileHandler
from flask import Flask, jsonify


class SecretRedactingFilter(logging.Filter):
    """Masks configured secrets in every record passing through a handler."""

    def __init__(self, secrets):
        super().__init__()
        self.secrets = [s for s in secrets if s]

    def filter(self, record):
        if not self.secrets:
            return True

        message = record.getMessage()
        redacted = message
        for secret in self.secrets:
            redacted = redacted.replace(secret, '***')

        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def configure_logging(app, secrets=()):
    """Configure application logging"""

    # Set log level based on environment
    log_level = logging.DEBUG if app.config.get('DEBUG', False) else logging.INFO
    redactor = SecretRedactingFilter(secrets)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    )
    console_handler.setFormatter(console_formatter)
    console_handler.addFilter(redactor)

    handlers = [console_handler]

    # File handler
    if app.config.get('LOG_TO_FILE'):
        log_dir = app.config['LOG_DIR']
        os.makedirs(log_dir, exist_ok=True)

        file_handler = RotatingFileHandler(
            os.path.join(log_dir, 'ems_backup.log'),
            maxBytes=10485760,  # 10MB
            backupCount=10
        )
        file_handler.setLevel(log_level)
        file_formatter = logging.Formatter(
            '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
        )
        file_handler.setFormatter(file_formatter)
        file_handler.addFilter(redactor)
        handlers.append(file_handler)

    # The package logger is also the Flask app logger (same name); reset it
    # so repeated create_app() calls don't stack handlers
    package_logger = logging.getLogger(__name__)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    package_logger.setLevel(log_level)
    for handler in handlers:
        package_logger.addHandler(handler)

    app.logger.info(f"Logging configured (level: {logging.getLevelName(log_level)})")


def create_app(config_name=None, test_config=None):
    """
    Flask application factory.

    Raises:
        ConfigError: If the backup configuration is invalid
    """
    app = Flask(__name__)

    # Load configuration
    if config_name is None:
        config_name = os.environ.get('EMS_ENV', 'production')

    from ems_backup.config import config, BackupSettings
    app.config.from_object(config[config_name])

    if test_config:
        app.config.update(test_config)

    # Validate once at startup; components get the resolved settings
    settings = BackupSettings.from_mapping(app.config)
    app.extensions['ems_backup'] = settings

    configure_logging(app, secrets=[settings.profile.password])

    # Operator commands: `flask --app ems_backup db-backup ...`
    from ems_backup.cli import cli
    app.cli.add_command(cli, name='db-backup')

    # Health check endpoint
    @app.route('/health')
    def health():
        from ems_backup.backup.storage import ArtifactStore, StorageError

        store = ArtifactStore(settings.backup_dir)
        try:
            artifacts = store.list()
        except StorageError as e:
            app.logger.error(f"Health check could not list backups: {e}")
            return jsonify({'status': 'unhealthy', 'error': 'backup directory unreadable'}), 503

        return jsonify({
            'status': 'healthy',
            'backups': len(artifacts),
            'latest_backup': artifacts[0].filename if artifacts else None
        }), 200

    return app
