"""Runtime settings read from the environment.

=======================  =========  =====================================
Variable                 Default    Meaning
=======================  =========  =====================================
``DVR_DATA_DIR``         ``./data`` Directory holding the settings DB
``DVR_REFRESH_INTERVAL`` ``60``     Poll period in seconds
``DVR_REQUEST_TIMEOUT``  ``30``     Per-request timeout in seconds
=======================  =========  =====================================
"""

from __future__ import annotations

import logging
import os

logger = logging.getLogger(__name__)

DEFAULT_SERVER_PORT = 7001

DEVICES_PATH = "/ajax/devices.php?XML=1"
STATS_PATH = "/ajax/stats.php"
LOGIN_PATH = "/ajax/login.php"
LOGOUT_PATH = "/ajax/logout.php"
# Fetched without credentials to check the peer certificate before login.
TRUST_CHECK_PATH = "/"


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        result = float(value)
    except ValueError:
        logger.warning("Invalid value for %s: %r (using default %r)", name, value, default)
        return default
    if result <= 0:
        logger.warning("%s must be positive, got %r (using default %r)", name, value, default)
        return default
    return result


REFRESH_INTERVAL_S: float = _env_float("DVR_REFRESH_INTERVAL", 60.0)
REQUEST_TIMEOUT_S: float = _env_float("DVR_REQUEST_TIMEOUT", 30.0)


def normalize_port(port: object) -> int:
    """Return *port* as an int, mapping 0, empty or unparseable values to 7001."""
    try:
        value = int(port or 0)
    except (TypeError, ValueError):
        return DEFAULT_SERVER_PORT
    return value if value > 0 else DEFAULT_SERVER_PORT
