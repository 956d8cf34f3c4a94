from typing import Optional
from datetime import datetime
from .utils import now_utc
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, ForeignKey, Integer, UniqueConstraint


class User(SQLModel, table=True):
    """Sign-in account; password stored as a passlib hash."""
    __tablename__ = 'users'

    username: str = Field(primary_key=True)
    password_hash: str


class TodoList(SQLModel, table=True):
    __tablename__ = 'todolists'
    # Title uniqueness is per user and case-sensitive.
    __table_args__ = (UniqueConstraint('username', 'title', name='uq_todolists_username_title'),)

    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(foreign_key='users.username', index=True)
    title: str = Field(max_length=100)


class Todo(SQLModel, table=True):
    __tablename__ = 'todos'

    id: Optional[int] = Field(default=None, primary_key=True)
    # Deleting a list removes its todos.
    todolist_id: int = Field(
        sa_column=Column(Integer, ForeignKey('todolists.id', ondelete='CASCADE'), nullable=False, index=True)
    )
    username: str = Field(foreign_key='users.username', index=True)
    title: str = Field(max_length=100)
    done: bool = Field(default=False)


class Session(SQLModel, table=True):
    """Server-side session store for browser clients.

    session_token is a secure random string stored in an HttpOnly cookie.
    data_json holds the JSON-encoded session dict (sign-in state, pending
    flash messages and, for the session backend, the visitor's todo lists).
    """
    __tablename__ = 'sessions'

    id: Optional[int] = Field(default=None, primary_key=True)
    session_token: str = Field(sa_column_kwargs={"unique": True, "index": True})
    created_at: datetime | None = Field(default_factory=now_utc)
    expires_at: Optional[datetime] = None
    data_json: Optional[str] = None
