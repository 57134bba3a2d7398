import sys

from loguru import logger


def setup_logging(app):
    """Route loguru output to stderr and, optionally, a rotating log file."""
    logger.remove()
    logger.add(sys.stderr, level=app.config.get('LOG_LEVEL', 'INFO'))
    log_file = app.config.get('LOG_FILE')
    if log_file:
        logger.add(log_file, level=app.config.get('LOG_LEVEL', 'INFO'),
                   rotation='10 MB', compression='zip')
