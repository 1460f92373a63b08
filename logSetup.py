"""
Logging setup shared by the Streamlit pages and the graph modules.
"""
import logging
import sys
from pathlib import Path

FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logger(name=None, level=logging.INFO, log_file=None):
    """
    Configure a logger with a stdout handler and an optional file handler.
    With no name the root logger is configured, so the per-module loggers of
    the graph modules end up in the same place.

    Calling it twice for the same name does not stack handlers, which matters
    because Streamlit re-executes the page script on every interaction.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if logger.handlers:
        return logger

    formatter = logging.Formatter(FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
