import logging
import os
import sys


def setup_logging(name: str = "bybit_trader", level: str = None) -> logging.Logger:
    """
    Shared logging setup.
    Writes to stdout; the level comes from the argument, then LOG_LEVEL, then INFO.
    """
    logger = logging.getLogger(name)

    level_name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    log_level = getattr(logging, level_name, logging.INFO)
    logger.setLevel(log_level)

    # Avoid duplicate handlers on repeated setup
    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(log_level)
        return logger

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(formatter)

    logger.addHandler(console_handler)
    return logger


# Default logger
logger = setup_logging()
