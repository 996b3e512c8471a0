"""Process logging setup.

Logs go to a file (default ``<user log dir>/pexshell.log``) so that
command output on stdout stays machine readable. A copy can be sent to
stderr with ``log.stderr`` or PEX_LOG_TO_STDERR.
"""

import logging
import sys
from pathlib import Path

from pexshell.cli.config import LogConfig
from pexshell.utils.paths import get_default_log_path

LOG_FORMAT = "%(asctime)s %(levelname)s:%(name)s:%(message)s"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def configure_logging(config: LogConfig) -> list[logging.Handler]:
    """Install handlers on the ``pexshell`` logger.

    Args:
        config: Log settings; level "off" disables logging entirely.

    Returns:
        The installed handlers.
    """
    root = logging.getLogger("pexshell")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    if config.level == "off":
        root.addHandler(logging.NullHandler())
        root.propagate = False
        return []

    formatter = logging.Formatter(LOG_FORMAT)
    handlers: list[logging.Handler] = []

    path = Path(config.file).expanduser() if config.file else get_default_log_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    handlers.append(logging.FileHandler(path, encoding="utf-8"))
    if config.stderr:
        handlers.append(logging.StreamHandler(sys.stderr))

    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(_LEVELS[config.level])
    root.propagate = False
    return handlers
