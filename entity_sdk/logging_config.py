# entity_sdk/logging_config.py
import logging
import sys
from typing import Union

# Name of the base logger for the whole SDK
SDK_LOGGER_NAME = "entity_sdk"


def setup_sdk_logging(
    level: Union[int, str] = logging.INFO,
    log_format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
) -> logging.Logger:
    """Configures the base SDK logger."""
    logger = logging.getLogger(SDK_LOGGER_NAME)

    # Calling this twice must not duplicate handlers
    if logger.handlers:
        logger.debug(f"Logger '{SDK_LOGGER_NAME}' already has handlers. Skipping setup.")
        return logger

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    logger.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(log_format))
    logger.addHandler(handler)

    logger.debug(
        f"SDK Logging setup complete for '{SDK_LOGGER_NAME}' at level {logging.getLevelName(level)}"
    )
    return logger


def get_sdk_logger(name: str = SDK_LOGGER_NAME) -> logging.Logger:
    """Returns the SDK logger (or one of its children)."""
    return logging.getLogger(name)
