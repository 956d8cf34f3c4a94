"""Ordering shared by both persistence backends.

Lists and todos are split into an undone bucket and a done bucket, each bucket
is sorted by case-insensitive title, and the undone bucket comes first.
"""
from typing import Iterable, TypeVar

from .schemas import TodoListRead, TodoRead

T = TypeVar('T', TodoListRead, TodoRead)


def is_done_todo_list(todo_list: TodoListRead) -> bool:
    """A list is done when it has at least one todo and every todo is done."""
    return len(todo_list.todos) > 0 and all(todo.done for todo in todo_list.todos)


def has_undone_todos(todo_list: TodoListRead) -> bool:
    return any(not todo.done for todo in todo_list.todos)


def _by_title(item) -> str:
    return item.title.lower()


def _two_buckets(items: Iterable[T], is_done) -> list[T]:
    undone = [item for item in items if not is_done(item)]
    done = [item for item in items if is_done(item)]
    # sorted() is stable, so equal titles keep their incoming order
    return sorted(undone, key=_by_title) + sorted(done, key=_by_title)


def sort_todo_lists(todo_lists: Iterable[TodoListRead]) -> list[TodoListRead]:
    return _two_buckets(list(todo_lists), is_done_todo_list)


def sort_todos(todo_list: TodoListRead) -> list[TodoRead]:
    return _two_buckets(list(todo_list.todos), lambda todo: todo.done)
