import logging
import sys

from colorlog import ColoredFormatter

LOGGER_NAME = "cloudship"

def setup_logger(debug_mode=False):
    """
    Configure the "cloudship" logger.

    Module loggers created with logging.getLogger(__name__) inside the
    cloudship package propagate to this logger, so one handler serves all.
    Calling this again only adjusts the level.
    """
    logger = logging.getLogger(LOGGER_NAME)
    level = logging.DEBUG if debug_mode else logging.INFO
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)

        formatter = ColoredFormatter(
            "%(log_color)s[%(levelname)s] %(message)s",
            log_colors={
                "DEBUG":    "cyan",
                "INFO":     "green",
                "WARNING":  "yellow",
                "ERROR":    "red",
                "CRITICAL": "red,bg_white",
            }
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    for handler in logger.handlers:
        handler.setLevel(level)

    return logger


# Logger defaults to INFO until the CLI reconfigures it.
logger = setup_logger(debug_mode=False)
