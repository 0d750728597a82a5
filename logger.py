import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Dict, List
from config import LOG_LEVEL, LOG_FILE

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# One set of handlers per log file, shared by every configured logger tree
_handlers: Dict[str, List[logging.Handler]] = {}


def _shared_handlers(log_file: str) -> List[logging.Handler]:
    if log_file in _handlers:
        return _handlers[log_file]

    formatter = logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    handlers: List[logging.Handler] = [console_handler]

    if log_file:
        try:
            file_handler = RotatingFileHandler(
                log_file, maxBytes=1024 * 1024 * 5, backupCount=5, encoding='utf-8'
            )
            file_handler.setFormatter(formatter)
            handlers.append(file_handler)
        except OSError as e:
            sys.stderr.write(f"Failed to set up file logging to {log_file}: {e}\n")

    _handlers[log_file] = handlers
    return handlers


def setup_logger(name="makaron", level=LOG_LEVEL, log_file=LOG_FILE):
    """Attach the console (and rotating file) handlers to a logger tree"""
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(level)
    for handler in _shared_handlers(log_file or ''):
        logger.addHandler(handler)
    return logger


# Service logger, plus the catalog.* module loggers
logger = setup_logger()
setup_logger("catalog")
