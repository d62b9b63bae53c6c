"""
Logging for ldapauth.

Everything logs under the ``ldapauth`` logger tree. Bind and search results
also go to ``ldapauth.audit`` as one line per directory operation. Credentials
never appear in either.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import List, Optional

from ..config.models import LoggingConfig

ROOT_LOGGER = "ldapauth"
AUDIT_LOGGER = f"{ROOT_LOGGER}.audit"

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5

# Set on handlers installed by setup_logging() so a later call replaces them
# without touching handlers the host attached itself.
_OWNED = "_ldapauth_owned"


def _build_handlers(config: LoggingConfig) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []
    if config.console:
        handlers.append(logging.StreamHandler(sys.stderr))

    if config.file:
        log_file = Path(config.file)
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=LOG_FILE_MAX_BYTES,
                backupCount=LOG_FILE_BACKUPS,
                encoding='utf-8'
            ))
        except OSError as e:
            logging.getLogger(__name__).warning(f"Log file {log_file} unavailable, not logging to file: {e}")

    return handlers


def setup_logging(config: LoggingConfig) -> logging.Logger:
    """
    Apply a logging section to the ``ldapauth`` logger tree.

    Calling it again replaces the handlers from the previous call. Records
    still propagate to the root logger.

    Args:
        config: Logging configuration

    Returns:
        The ``ldapauth`` logger
    """
    level = logging.getLevelName(config.level)
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)

    for handler in [h for h in logger.handlers if getattr(h, _OWNED, False)]:
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(config.format)
    for handler in _build_handlers(config):
        setattr(handler, _OWNED, True)
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    # ldap3 logs protocol detail at DEBUG
    logging.getLogger("ldap3").setLevel(logging.WARNING)

    logger.debug(f"Logging at {config.level}" + (f", file {config.file}" if config.file else ""))
    return logger


def get_logger(name: str) -> logging.Logger:
    """Logger ``ldapauth.<name>``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def log_ldap_operation(operation: str, target: str, success: bool, details: Optional[str] = None) -> None:
    """
    Write one audit line for a directory operation.

    Successes are logged at INFO and failures at WARNING, as
    ``LDAP <OPERATION> SUCCESS|FAILED: <target> - <details>``.

    Args:
        operation: connect, bind, search or resolve_group
        target: Server address or DN
        success: Whether the operation succeeded
        details: Extra context, never a password
    """
    outcome = "SUCCESS" if success else "FAILED"
    line = f"LDAP {operation.upper()} {outcome}: {target}"
    if details:
        line = f"{line} - {details}"
    logging.getLogger(AUDIT_LOGGER).log(logging.INFO if success else logging.WARNING, line)
