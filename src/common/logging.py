"""Logging for the content-ops workflow.

Every module logger hangs off one ``content_ops`` parent that owns the only
handler, so workflow, publisher and validator output shares one format and
one level switch. The initial level comes from ``LOG_LEVEL`` (default INFO).
"""

from __future__ import annotations

import logging
import os
import sys

ROOT_LOGGER = "content_ops"

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _env_level() -> int:
    name = os.getenv("LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def _root_logger() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(fmt=_FORMAT, datefmt=_DATE_FORMAT))
        root.addHandler(handler)
        root.setLevel(_env_level())
        # the CLI may also configure the stdlib root logger
        root.propagate = False
    return root


def setup_logging(
    level: int | None = None,
    module_name: str = ROOT_LOGGER,
) -> logging.Logger:
    """Return the logger for ``module_name`` under the ``content_ops`` parent.

    Args:
        level: If given, becomes the level of every content_ops logger.
        module_name: Dotted module name, e.g. ``"workflow.orchestrator"``.

    Returns:
        The child logger (or the parent for the default name).
    """
    root = _root_logger()
    if level is not None:
        root.setLevel(level)
    if module_name == ROOT_LOGGER or module_name.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(module_name)
    return logging.getLogger(f"{ROOT_LOGGER}.{module_name}")
