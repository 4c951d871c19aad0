# Common — settings, logging, error taxonomy, SQLite setup and the retrying HTTP client
"""
Shared infrastructure for the workflow, publisher and link validator.

Nothing here knows about posts or platforms; domain packages import from
here, never the other way round.
"""

from .config import settings, PROJECT_ROOT, DATA_DIR
from .database import get_connection, init_db
from .errors import WorkflowError, error_response
from .http_client import HTTPClient
from .logging import ROOT_LOGGER, setup_logging
from .rate_limiter import RateLimiter

__all__ = [
    "settings",
    "PROJECT_ROOT",
    "DATA_DIR",
    "HTTPClient",
    "RateLimiter",
    "ROOT_LOGGER",
    "WorkflowError",
    "error_response",
    "get_connection",
    "init_db",
    "setup_logging",
]
