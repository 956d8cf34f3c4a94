from datetime import timedelta

import pytest

from conftest import create_user
from todos.auth import authenticate_user, create_csrf_token, get_user_by_username, verify_csrf_token
from todos.auth import pwd_context


def test_csrf_token_round_trip():
    token = create_csrf_token('alice')
    assert verify_csrf_token(token, 'alice') is True


def test_csrf_token_bound_to_user():
    token = create_csrf_token('alice')
    assert verify_csrf_token(token, 'bob') is False


def test_expired_csrf_token_rejected():
    token = create_csrf_token('alice', expires_delta=timedelta(seconds=-10))
    assert verify_csrf_token(token, 'alice') is False


def test_garbage_csrf_token_rejected():
    assert verify_csrf_token('not-a-jwt', 'alice') is False


def test_password_hashes_are_salted():
    h1 = pwd_context.hash('secret')
    h2 = pwd_context.hash('secret')
    assert h1 != h2
    assert pwd_context.verify('secret', h1)


@pytest.mark.asyncio
async def test_authenticate_user(prepare_db):
    await create_user('alice', 'secret')
    assert (await get_user_by_username('alice')).username == 'alice'
    assert await get_user_by_username('Alice') is None
    assert await authenticate_user('alice', 'secret') is True
    assert await authenticate_user('alice', 'Secret') is False
    assert await authenticate_user('ghost', 'secret') is False
