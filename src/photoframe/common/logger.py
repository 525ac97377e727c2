"""
Logging setup for the photo frame.
"""

import logging
import logging.handlers
import os


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
FILE_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'


def setup_logger(name: str = 'photoframe', level=None) -> logging.Logger:
    """
    Set up a logger with a console handler and an optional rotating file handler.

    The file handler is only attached when PHOTOFRAME_LOG_DIR is set.

    Args:
        name: Logger name (usually __name__)
        level: Logging level; defaults to PHOTOFRAME_LOG_LEVEL or INFO

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid duplicate handlers if logger already exists
    if logger.handlers:
        return logger

    if level is None:
        level = os.environ.get('PHOTOFRAME_LOG_LEVEL', 'INFO').upper()
    logger.setLevel(level)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt='%H:%M:%S'))
    logger.addHandler(console_handler)

    log_dir = os.environ.get('PHOTOFRAME_LOG_DIR')
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, 'photoframe.log'),
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(FILE_LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')
        )
        logger.addHandler(file_handler)

    return logger
