import logging
import sys
from pythonjsonlogger import jsonlogger

# Never emitted as structured fields, whatever a caller passes in `extra=`
REDACTED_FIELDS = ("code", "otp", "code_hash", "access_token", "token", "api_key")


class RedactSecretsFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        for name in REDACTED_FIELDS:
            if hasattr(record, name):
                setattr(record, name, "***")
        return True


def setup_logging(level: str = "INFO", service: str = "myfleet-api"):
    """
    Installs one JSON handler on stdout for the whole process.

    Calling it again replaces the handler instead of stacking a second one.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    log_handler = logging.StreamHandler(sys.stdout)
    log_handler.setFormatter(jsonlogger.JsonFormatter(
        fmt='%(asctime)s %(levelname)s %(name)s %(message)s',
        datefmt='%Y-%m-%dT%H:%M:%SZ',
        rename_fields={'levelname': 'level', 'name': 'logger'},
        static_fields={'service': service},
    ))
    log_handler.addFilter(RedactSecretsFilter())
    root_logger.addHandler(log_handler)

    for noisy in ("sqlalchemy.engine", "httpx", "httpcore", "asyncpg", "aiosqlite"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    root_logger.info("Logging configured", extra={'log_level': level})
