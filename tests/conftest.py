import os
import pathlib
import sys
import tempfile
import warnings

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlmodel import SQLModel, select

try:
    from sqlalchemy.exc import SAWarning
    warnings.filterwarnings('ignore', category=SAWarning)
except ImportError:
    pass

# Ensure a secure SECRET_KEY is available during tests so the app lifespan
# check in `todos.main` doesn't raise, and point the engine at a throwaway
# SQLite file. Both are read at import time, so set them before importing.
os.environ.setdefault('SECRET_KEY', 'test-secret-key-for-unit-tests')
_TMPDIR = tempfile.mkdtemp(prefix='todos-tests-')
os.environ['DATABASE_URL'] = f"sqlite+aiosqlite:///{os.path.join(_TMPDIR, 'test.db')}"

# Reduce SQLAlchemy logger verbosity during tests
import logging as _logging
for _name in ('sqlalchemy', 'sqlalchemy.engine', 'sqlalchemy.pool'):
    _logging.getLogger(_name).setLevel(_logging.ERROR)

# ensure project root is on PYTHONPATH for test runs
ROOT = pathlib.Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from todos import config
from todos.auth import create_csrf_token, pwd_context
from todos.db import async_session, engine
from todos.main import app
from todos.models import User


@pytest_asyncio.fixture
async def prepare_db():
    """Start every test from empty tables."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
        await conn.run_sync(SQLModel.metadata.create_all)
    yield


async def create_user(username: str, password: str) -> User:
    async with async_session() as sess:
        q = await sess.exec(select(User).where(User.username == username))
        u = q.first()
        if u is None:
            u = User(username=username, password_hash=pwd_context.hash(password))
        else:
            u.password_hash = pwd_context.hash(password)
        sess.add(u)
        await sess.commit()
        return u


async def sign_in(client: AsyncClient, username: str, password: str):
    return await client.post('/users/signin', data={'username': username, 'password': password})


def csrf(username: str = 'alice') -> dict:
    return {'_csrf': create_csrf_token(username)}


@pytest.fixture(params=['sql', 'session'])
def persistence(request, monkeypatch):
    """Run a test once per persistence backend."""
    monkeypatch.setattr(config, 'PERSISTENCE', request.param)
    return request.param


@pytest_asyncio.fixture
async def client(prepare_db):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest_asyncio.fixture
async def alice(client):
    """A client signed in as 'alice'."""
    await create_user('alice', 'secret')
    r = await sign_in(client, 'alice', 'secret')
    assert r.status_code == 303
    assert client.cookies.get(config.SESSION_COOKIE_NAME)
    return client
