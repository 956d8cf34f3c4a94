from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

import os
import logging

# register table metadata before create_all
from . import models  # noqa: F401

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./todos.db")

# Use NullPool to avoid connection-pool objects being bound to a specific
# event loop (which can cause 'bound to a different event loop' errors
# when tests run each case on a fresh loop).
engine = create_async_engine(DATABASE_URL, echo=False, future=True, poolclass=NullPool)


def _sqlite_enable_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores ON DELETE CASCADE unless foreign keys are switched on
    # for each connection.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


if engine.dialect.name == 'sqlite':
    event.listen(engine.sync_engine, 'connect', _sqlite_enable_foreign_keys)

async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db():
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info('database ready at %s', DATABASE_URL)
