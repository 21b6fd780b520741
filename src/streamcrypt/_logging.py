"""Package logger helper.

Library code never configures handlers. Applications opt in with
``logging.getLogger("streamcrypt").setLevel(logging.DEBUG)``.
"""

import logging

_ROOT_LOGGER_NAME = "streamcrypt"

logging.getLogger(_ROOT_LOGGER_NAME).addHandler(logging.NullHandler())


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the ``streamcrypt`` namespace.

    Args:
        name: Module name, usually ``__name__``

    Returns:
        Logger instance
    """
    if name != _ROOT_LOGGER_NAME and not name.startswith(_ROOT_LOGGER_NAME + "."):
        name = f"{_ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
