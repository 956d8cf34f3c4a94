import os
from datetime import datetime, timedelta, timezone
from typing import Optional
from fastapi import HTTPException, Request, status
from sqlmodel import select
from passlib.context import CryptContext
from jose import JWTError, jwt
from .models import User
from .db import async_session
import logging

logger = logging.getLogger(__name__)

# config
# SECRET_KEY should be set in the environment in production. We fall back to a
# predictable value for local testing; the app lifespan refuses to start with
# it. Do NOT use the fallback in production.
SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME_IN_ENV_FOR_TESTS")
ALGORITHM = "HS256"
CSRF_TOKEN_EXPIRE_MINUTES = int(os.getenv("CSRF_TOKEN_EXPIRE_MINUTES", "60"))

# prefer a pure-Python, widely-available scheme for tests and portability;
# bcrypt hashes still verify when the bcrypt backend is installed.
pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto")


class SignInRequired(Exception):
    """Raised by `require_signin` for anonymous requests to protected pages."""

    def __init__(self, path: str):
        super().__init__(path)
        self.path = path


async def get_user_by_username(username: str) -> Optional[User]:
    async with async_session() as sess:
        q = await sess.exec(select(User).where(User.username == username))
        return q.first()


async def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


async def authenticate_user(username: str, password: str) -> bool:
    user = await get_user_by_username(username)
    if not user:
        return False
    return await verify_password(password, user.password_hash)


def create_csrf_token(username: str, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = {"sub": username, "type": "csrf"}
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=CSRF_TOKEN_EXPIRE_MINUTES)
    # Use numeric epoch seconds for exp to avoid library-specific serialization
    to_encode.update({"exp": int(expire.timestamp())})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def verify_csrf_token(token: str, username: str) -> bool:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.info('verify_csrf_token JWTError: %s', str(e))
        return False
    if payload.get("type") != "csrf":
        logger.info('verify_csrf_token failed: type mismatch (got %s)', payload.get('type'))
        return False
    if payload.get("sub") != username:
        logger.info('verify_csrf_token failed: subject mismatch (expected %s, got %s)', username, payload.get('sub'))
        return False
    return True


async def check_csrf(request: Request, username: str) -> None:
    """Reject a form POST whose `_csrf` field is missing or not issued to `username`."""
    form = await request.form()
    token = form.get("_csrf")
    if not token or not verify_csrf_token(token, username):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="invalid csrf token")


async def require_signin(request: Request) -> str:
    """Dependency that enforces a signed-in user and returns the username.

    Anonymous requests raise SignInRequired, which the app turns into a
    redirect to the sign-in page.
    """
    session = request.state.session
    if not session.signed_in:
        logger.info('unauthorized request to %s', request.url.path)
        raise SignInRequired(request.url.path)
    return session.username
