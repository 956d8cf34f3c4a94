"""Persistence façade shared by the SQL and session backends.

A store is built per request for one username and every read or write it
performs is scoped to that user. Methods report "not found" as None (loads) or
False (mutations); duplicate list titles surface as False from
create_todo_list and as UniqueTitleError from set_todo_list_title.
"""
from abc import ABC, abstractmethod
import logging
from typing import Optional

from fastapi import Request

from . import config
from .auth import authenticate_user
from .schemas import TodoListRead, TodoRead
from .sort import has_undone_todos, is_done_todo_list

logger = logging.getLogger(__name__)


class UniqueTitleError(Exception):
    """The user already has a todo list with this title."""

    def __init__(self, title: str):
        super().__init__(f"todo list title already in use: {title!r}")
        self.title = title


class TodoStore(ABC):
    def __init__(self, username: Optional[str]):
        self.username = username

    async def authenticate(self, username: str, password: str) -> bool:
        return await authenticate_user(username, password)

    def is_done_todo_list(self, todo_list: TodoListRead) -> bool:
        return is_done_todo_list(todo_list)

    def has_undone_todos(self, todo_list: TodoListRead) -> bool:
        return has_undone_todos(todo_list)

    @abstractmethod
    async def sorted_todo_lists(self) -> list[TodoListRead]:
        raise NotImplementedError

    @abstractmethod
    async def load_todo_list(self, todo_list_id: int) -> Optional[TodoListRead]:
        raise NotImplementedError

    @abstractmethod
    async def load_todo(self, todo_list_id: int, todo_id: int) -> Optional[TodoRead]:
        raise NotImplementedError

    @abstractmethod
    async def sorted_todos(self, todo_list: TodoListRead) -> list[TodoRead]:
        raise NotImplementedError

    @abstractmethod
    async def create_todo_list(self, title: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def exists_todo_list_title(self, title: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def set_todo_list_title(self, todo_list_id: int, title: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def delete_todo_list(self, todo_list_id: int) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def create_todo(self, todo_list_id: int, title: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def delete_todo(self, todo_list_id: int, todo_id: int) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def toggle_done_todo(self, todo_list_id: int, todo_id: int) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def complete_all_todos(self, todo_list_id: int) -> bool:
        raise NotImplementedError


def get_store(request: Request) -> TodoStore:
    """FastAPI dependency: build the configured store for this request."""
    session = request.state.session
    username = session.username if session.signed_in else None
    if config.PERSISTENCE == 'session':
        from .session_persistence import SessionPersistence
        return SessionPersistence(session.data, username)
    from .sql_persistence import SqlPersistence
    return SqlPersistence(username)
