"""Session backend: lists and todos live in the visitor's server-side session.

The session dict is passed in by the caller, which owns its lifecycle (the
session middleware loads it before the request and saves it afterwards).
Each username gets its own store under ``todo_stores``:

    {"next_id": int, "todo_lists": [{"id", "title", "todos": [{"id", "title", "done"}]}]}

A user's store is seeded with demo lists the first time it is touched.
"""
import logging
from typing import Any, Optional

from .persistence import TodoStore, UniqueTitleError
from .schemas import TodoListRead, TodoRead
from .seed_data import SEED_TODO_LISTS
from .sort import sort_todo_lists, sort_todos

logger = logging.getLogger(__name__)


def _next_id(store: dict[str, Any]) -> int:
    value = store['next_id']
    store['next_id'] = value + 1
    return value


def seeded_store() -> dict[str, Any]:
    store: dict[str, Any] = {'next_id': 1, 'todo_lists': []}
    for seed in SEED_TODO_LISTS:
        todo_list = {'id': _next_id(store), 'title': seed['title'], 'todos': []}
        for todo in seed['todos']:
            todo_list['todos'].append({'id': _next_id(store), 'title': todo['title'], 'done': todo['done']})
        store['todo_lists'].append(todo_list)
    return store


def _read_todo(todo_list_id: int, todo: dict[str, Any]) -> TodoRead:
    return TodoRead(id=todo['id'], todolist_id=todo_list_id, title=todo['title'], done=todo['done'])


def _read_todo_list(todo_list: dict[str, Any]) -> TodoListRead:
    return TodoListRead(
        id=todo_list['id'],
        title=todo_list['title'],
        todos=[_read_todo(todo_list['id'], todo) for todo in todo_list['todos']],
    )


class SessionPersistence(TodoStore):

    def __init__(self, session_data: dict[str, Any], username: Optional[str]):
        super().__init__(username)
        self._session_data = session_data

    @property
    def _todo_lists(self) -> list[dict[str, Any]]:
        return self._store['todo_lists']

    @property
    def _store(self) -> dict[str, Any]:
        stores = self._session_data.setdefault('todo_stores', {})
        if self.username not in stores:
            logger.info('seeding demo todo lists for %s', self.username)
            stores[self.username] = seeded_store()
        return stores[self.username]

    def _find_todo_list(self, todo_list_id: int) -> Optional[dict[str, Any]]:
        return next((tl for tl in self._todo_lists if tl['id'] == todo_list_id), None)

    def _find_todo(self, todo_list_id: int, todo_id: int) -> Optional[dict[str, Any]]:
        todo_list = self._find_todo_list(todo_list_id)
        if todo_list is None:
            return None
        return next((t for t in todo_list['todos'] if t['id'] == todo_id), None)

    async def sorted_todo_lists(self) -> list[TodoListRead]:
        return sort_todo_lists(_read_todo_list(tl) for tl in self._todo_lists)

    async def load_todo_list(self, todo_list_id: int) -> Optional[TodoListRead]:
        todo_list = self._find_todo_list(todo_list_id)
        return _read_todo_list(todo_list) if todo_list is not None else None

    async def load_todo(self, todo_list_id: int, todo_id: int) -> Optional[TodoRead]:
        todo = self._find_todo(todo_list_id, todo_id)
        return _read_todo(todo_list_id, todo) if todo is not None else None

    async def sorted_todos(self, todo_list: TodoListRead) -> list[TodoRead]:
        return sort_todos(todo_list)

    def _title_taken(self, title: str, ignore_id: Optional[int] = None) -> bool:
        return any(tl['title'] == title and tl['id'] != ignore_id for tl in self._todo_lists)

    async def create_todo_list(self, title: str) -> bool:
        if self._title_taken(title):
            return False
        self._todo_lists.append({'id': _next_id(self._store), 'title': title, 'todos': []})
        return True

    async def exists_todo_list_title(self, title: str) -> bool:
        return self._title_taken(title)

    async def set_todo_list_title(self, todo_list_id: int, title: str) -> bool:
        todo_list = self._find_todo_list(todo_list_id)
        if todo_list is None:
            return False
        if self._title_taken(title, ignore_id=todo_list_id):
            raise UniqueTitleError(title)
        todo_list['title'] = title
        return True

    async def delete_todo_list(self, todo_list_id: int) -> bool:
        todo_list = self._find_todo_list(todo_list_id)
        if todo_list is None:
            return False
        self._todo_lists.remove(todo_list)
        return True

    async def create_todo(self, todo_list_id: int, title: str) -> bool:
        todo_list = self._find_todo_list(todo_list_id)
        if todo_list is None:
            return False
        todo_list['todos'].append({'id': _next_id(self._store), 'title': title, 'done': False})
        return True

    async def delete_todo(self, todo_list_id: int, todo_id: int) -> bool:
        todo = self._find_todo(todo_list_id, todo_id)
        if todo is None:
            return False
        self._find_todo_list(todo_list_id)['todos'].remove(todo)
        return True

    async def toggle_done_todo(self, todo_list_id: int, todo_id: int) -> bool:
        todo = self._find_todo(todo_list_id, todo_id)
        if todo is None:
            return False
        todo['done'] = not todo['done']
        return True

    async def complete_all_todos(self, todo_list_id: int) -> bool:
        todo_list = self._find_todo_list(todo_list_id)
        if todo_list is None:
            return False
        changed = False
        for todo in todo_list['todos']:
            if not todo['done']:
                todo['done'] = True
                changed = True
        return changed
