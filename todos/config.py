"""Simple runtime configuration for the Todos app.

Control flags are read from environment variables to allow toggling in
development or production without code changes.
"""
import os


def _trueish(v: str | None) -> bool:
    if not v:
        return False
    return v.lower() in ('1', 'true', 'yes', 'on')


# Which persistence backend serves requests: 'sql' keeps lists and todos in
# the relational store, 'session' keeps them inside the visitor's server-side
# session (seeded with demo data on first use).
PERSISTENCE = os.getenv('TODOS_PERSISTENCE', 'sql').lower()
if PERSISTENCE not in ('sql', 'session'):
    raise RuntimeError(f"TODOS_PERSISTENCE must be 'sql' or 'session', got {PERSISTENCE!r}")

# Name of the HttpOnly cookie carrying the server-side session token.
SESSION_COOKIE_NAME = os.getenv('SESSION_COOKIE_NAME', 'todos_session')

# Sessions (and their cookie) live for 31 days unless overridden.
try:
    SESSION_MAX_AGE_DAYS = int(os.getenv('SESSION_MAX_AGE_DAYS', '31'))
except ValueError:
    SESSION_MAX_AGE_DAYS = 31

# Cookie secure flag: default to False for test/dev (HTTP). In production set
# COOKIE_SECURE=1 so cookies are marked Secure.
COOKIE_SECURE = _trueish(os.getenv('COOKIE_SECURE', '0'))

# Use DEV_MODE=1 to show a development banner in the page layout.
DEV_MODE = _trueish(os.getenv('DEV_MODE', '0'))

# Upper bound for list and todo titles.
TITLE_MAX_LENGTH = 100

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

# Optional local overrides: define variables in todos/local_config.py to
# override the defaults above without changing versioned config.
try:
    from .local_config import *  # type: ignore  # noqa: F401,F403
except ImportError:
    pass
