"""
Logging configuration for the diagram command line tools.

Library modules only create module level loggers (logging.getLogger(__name__));
handlers are attached here, once, by the entry point.

USAGE:
    from statemachine_diagram.utils.logging_setup import setup_logging

    logger = setup_logging(logging.DEBUG, log_file='logs/diagram.log')
"""
import logging
import sys
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
PACKAGE_LOGGER = 'statemachine_diagram'


def setup_logging(
    log_level: int = logging.WARNING,
    log_file: Optional[Union[str, Path]] = None,
    log_format: str = LOG_FORMAT,
    logger_name: str = PACKAGE_LOGGER,
) -> logging.Logger:
    """
    Attach a stderr handler (and optionally a file handler) to the package logger.

    Diagram output goes to stdout, so log records are kept on stderr. Calling
    this again replaces the handlers installed by the previous call.

    Args:
        log_level: Logging level (logging.DEBUG, INFO, WARNING, ...)
        log_file: Optional path to a log file (parent directories are created)
        log_format: Format string for log messages
        logger_name: Logger to configure (defaults to the package logger)

    Returns:
        The configured logger
    """
    logger = logging.getLogger(logger_name)
    formatter = logging.Formatter(log_format)

    for handler in list(logger.handlers):
        if getattr(handler, '_statemachine_diagram', False):
            logger.removeHandler(handler)
            handler.close()

    handlers = [logging.StreamHandler(sys.stderr)]
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, mode='a'))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(log_level)
        handler._statemachine_diagram = True
        logger.addHandler(handler)

    logger.setLevel(log_level)
    return logger
