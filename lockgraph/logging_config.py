"""
Logging configuration for the lockgraph command line tool
"""
import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logger(
    name: str = "lockgraph", level: int = logging.WARNING, log_file: Optional[str] = None
) -> logging.Logger:
    """Setup logger with a console handler and an optional file handler"""
    logger = logging.getLogger(name)
    logger.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    # The package installs a NullHandler on import; it does not count.
    configured = [
        h for h in logger.handlers if not isinstance(h, logging.NullHandler)
    ]
    if not configured:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    for handler in logger.handlers:
        handler.setLevel(level)

    return logger
