#!/usr/bin/env python3
"""Admin script to add a user, or reset their password, in the todos DB.

Usage:
    python scripts/add_user.py username [password] [--db PATH]

There is no sign-up page; this is how accounts get created.
"""
# Make the script runnable from anywhere by putting the project root (the
# parent of scripts/) on sys.path so the `todos` package is importable.
import os
import sys
proj_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if proj_root not in sys.path:
    sys.path.insert(0, proj_root)

import argparse
import asyncio
import getpass


async def _create_or_update(username: str, password: str) -> bool:
    # Imported lazily: todos.db reads DATABASE_URL at import time, so --db has
    # to be applied first. It also keeps `-h` working without the runtime deps.
    from sqlalchemy.exc import SQLAlchemyError
    from sqlmodel import select
    from todos.auth import pwd_context
    from todos.db import async_session, init_db
    from todos.models import User

    await init_db()
    ph = pwd_context.hash(password)
    async with async_session() as sess:
        q = await sess.exec(select(User).where(User.username == username))
        user = q.first()
        if user:
            user.password_hash = ph
        else:
            user = User(username=username, password_hash=ph)
        sess.add(user)
        try:
            await sess.commit()
        except SQLAlchemyError as e:
            await sess.rollback()
            print(f"Failed to save user {username}: {e}", file=sys.stderr)
            return False
    return True


def parse_args(argv):
    p = argparse.ArgumentParser(description="Create a user or reset their password")
    p.add_argument("username", help="username to create/update")
    p.add_argument("password", nargs="?", help="password for the user (omit to prompt)")
    p.add_argument("--db", help="path to the sqlite file to use (default: DATABASE_URL or ./todos.db)")
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv if argv is not None else sys.argv[1:])
    if args.db:
        os.environ['DATABASE_URL'] = f"sqlite+aiosqlite:///{args.db}"
    username = args.username.strip()
    if not username:
        print("Empty username not allowed", file=sys.stderr)
        return 2
    password = args.password
    if not password:
        pw = getpass.getpass("Password: ")
        pw2 = getpass.getpass("Confirm password: ")
        if pw != pw2:
            print("Passwords do not match", file=sys.stderr)
            return 2
        if pw == "":
            print("Empty password not allowed", file=sys.stderr)
            return 2
        password = pw

    if not asyncio.run(_create_or_update(username, password)):
        return 2
    print(f"User '{username}' saved")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
