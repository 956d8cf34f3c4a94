from datetime import datetime, timezone
import logging
import re

from sqlalchemy.exc import IntegrityError

logger = logging.getLogger(__name__)

# Driver messages that signal a UNIQUE constraint failure (SQLite, PostgreSQL,
# MySQL respectively).
_UNIQUE_VIOLATION_RE = re.compile(
    r"UNIQUE constraint failed|duplicate key value violates unique constraint|Duplicate entry",
    re.IGNORECASE,
)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def is_unique_constraint_violation(error: BaseException) -> bool:
    """Return True if `error` looks like a UNIQUE constraint violation."""
    if not isinstance(error, IntegrityError):
        return False
    return bool(_UNIQUE_VIOLATION_RE.search(str(error.orig if error.orig is not None else error)))
