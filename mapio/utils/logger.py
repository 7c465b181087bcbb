import logging
import os

from .config import Config


def setup_logger(level=Config.DEFAULT_LOG_LEVEL, log_file=None):
    """
    Sets up logging for the command line tools.
    Logs go to stderr, or to log_file when one is given.
    """
    if log_file:
        log_dir = os.path.dirname(os.path.abspath(log_file))
        os.makedirs(log_dir, exist_ok=True)

    logging.basicConfig(
        filename=log_file,
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=Config.LOG_FORMAT,
        force=True,
    )

    return logging.getLogger('mapio')
