"""
Logging Configuration Module

Centralized logging setup for the query engine. Every record written to the
console passes through the PII redaction filter, so user queries that carry
e-mails, phone numbers or precise coordinates never reach the logs verbatim.
"""

import logging
import sys
from typing import Optional
from geoquery.security.pii_redactor import PIIRedactionFilter

APP_LOGGER_NAME = "geoquery"


def setup_logging(
    log_level: str = "INFO",
    log_format: Optional[str] = None,
    enable_pii_redaction: bool = True
) -> logging.Logger:
    """
    Configure application logging with PII redaction.

    Call once at startup (the API module does this on import).

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Custom format string. If None, uses the structured default.
        enable_pii_redaction: Whether to attach the PII redaction filter

    Returns:
        Configured root logger instance
    """
    if log_format is None:
        log_format = (
            '%(asctime)s - %(name)s - %(levelname)s - '
            '%(filename)s:%(lineno)d - %(message)s'
        )

    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(log_format, datefmt='%Y-%m-%d %H:%M:%S'))

    if enable_pii_redaction:
        console_handler.addFilter(PIIRedactionFilter())

    root_logger.addHandler(console_handler)

    if enable_pii_redaction:
        root_logger.info("PII redaction filter enabled for all logs")

    logging.getLogger(APP_LOGGER_NAME).setLevel(level)

    return root_logger


def get_logger(name: str = APP_LOGGER_NAME) -> logging.Logger:
    """
    Get a logger instance with the specified name.

    Loggers inherit the console handler (and its PII filter) from the root
    logger once setup_logging() has run.
    """
    return logging.getLogger(name)


def disable_pii_redaction() -> None:
    """
    Remove every PIIRedactionFilter from the active handlers.

    Only meant for local debugging: raw queries and coordinates will be logged.
    """
    loggers = [logging.getLogger(name) for name in logging.root.manager.loggerDict]
    loggers.append(logging.getLogger())

    for logger in loggers:
        if not isinstance(logger, logging.Logger):
            continue
        for handler in logger.handlers:
            handler.filters = [
                f for f in handler.filters
                if not isinstance(f, PIIRedactionFilter)
            ]

    logging.warning("⚠️  PII redaction has been DISABLED - do not use in production!")
