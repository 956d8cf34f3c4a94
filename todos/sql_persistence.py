"""Relational backend: every operation is one statement scoped by username."""
import logging
from typing import Optional

from sqlalchemy import delete as sqlalchemy_delete
from sqlalchemy import not_
from sqlalchemy import update as sqlalchemy_update
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from .db import async_session
from .models import Todo, TodoList
from .persistence import TodoStore, UniqueTitleError
from .schemas import TodoListRead, TodoRead
from .sort import sort_todo_lists, sort_todos
from .utils import is_unique_constraint_violation

logger = logging.getLogger(__name__)


class SqlPersistence(TodoStore):

    async def sorted_todo_lists(self) -> list[TodoListRead]:
        """All of the user's lists with their (unsorted) todos, undone lists first."""
        async with async_session() as sess:
            lq = await sess.exec(select(TodoList).where(TodoList.username == self.username).order_by(TodoList.id))
            todo_lists = lq.all()
            tq = await sess.exec(select(Todo).where(Todo.username == self.username).order_by(Todo.id))
            todos = tq.all()
        by_list: dict[int, list[TodoRead]] = {}
        for todo in todos:
            by_list.setdefault(todo.todolist_id, []).append(TodoRead.model_validate(todo))
        return sort_todo_lists(
            TodoListRead(id=tl.id, title=tl.title, todos=by_list.get(tl.id, []))
            for tl in todo_lists
        )

    async def load_todo_list(self, todo_list_id: int) -> Optional[TodoListRead]:
        async with async_session() as sess:
            lq = await sess.exec(
                select(TodoList).where(TodoList.id == todo_list_id).where(TodoList.username == self.username)
            )
            todo_list = lq.first()
            if todo_list is None:
                return None
            todos = await self._todos_of(sess, todo_list_id)
        return TodoListRead(id=todo_list.id, title=todo_list.title, todos=todos)

    async def load_todo(self, todo_list_id: int, todo_id: int) -> Optional[TodoRead]:
        async with async_session() as sess:
            q = await sess.exec(
                select(Todo)
                .where(Todo.todolist_id == todo_list_id)
                .where(Todo.id == todo_id)
                .where(Todo.username == self.username)
            )
            todo = q.first()
        return TodoRead.model_validate(todo) if todo is not None else None

    async def sorted_todos(self, todo_list: TodoListRead) -> list[TodoRead]:
        # re-read so the order reflects the stored state, not the caller's copy
        async with async_session() as sess:
            todos = await self._todos_of(sess, todo_list.id)
        return sort_todos(TodoListRead(id=todo_list.id, title=todo_list.title, todos=todos))

    async def _todos_of(self, sess, todo_list_id: int) -> list[TodoRead]:
        q = await sess.exec(
            select(Todo)
            .where(Todo.todolist_id == todo_list_id)
            .where(Todo.username == self.username)
            .order_by(Todo.id)
        )
        return [TodoRead.model_validate(t) for t in q.all()]

    async def create_todo_list(self, title: str) -> bool:
        async with async_session() as sess:
            sess.add(TodoList(username=self.username, title=title))
            try:
                await sess.commit()
            except IntegrityError as e:
                await sess.rollback()
                if is_unique_constraint_violation(e):
                    logger.info('create_todo_list: duplicate title %r for %s', title, self.username)
                    return False
                raise
        return True

    async def exists_todo_list_title(self, title: str) -> bool:
        async with async_session() as sess:
            q = await sess.exec(
                select(TodoList.id).where(TodoList.title == title).where(TodoList.username == self.username)
            )
            return q.first() is not None

    async def set_todo_list_title(self, todo_list_id: int, title: str) -> bool:
        stmt = (
            sqlalchemy_update(TodoList)
            .where(TodoList.id == todo_list_id)
            .where(TodoList.username == self.username)
            .values(title=title)
            .execution_options(synchronize_session=False)
        )
        async with async_session() as sess:
            try:
                res = await sess.exec(stmt)
                await sess.commit()
            except IntegrityError as e:
                await sess.rollback()
                if is_unique_constraint_violation(e):
                    raise UniqueTitleError(title) from e
                raise
        return res.rowcount > 0

    async def delete_todo_list(self, todo_list_id: int) -> bool:
        async with async_session() as sess:
            await sess.exec(
                sqlalchemy_delete(Todo)
                .where(Todo.todolist_id == todo_list_id)
                .where(Todo.username == self.username)
                .execution_options(synchronize_session=False)
            )
            res = await sess.exec(
                sqlalchemy_delete(TodoList)
                .where(TodoList.id == todo_list_id)
                .where(TodoList.username == self.username)
                .execution_options(synchronize_session=False)
            )
            await sess.commit()
        return res.rowcount > 0

    async def create_todo(self, todo_list_id: int, title: str) -> bool:
        async with async_session() as sess:
            q = await sess.exec(
                select(TodoList.id).where(TodoList.id == todo_list_id).where(TodoList.username == self.username)
            )
            if q.first() is None:
                return False
            sess.add(Todo(todolist_id=todo_list_id, username=self.username, title=title))
            await sess.commit()
        return True

    async def delete_todo(self, todo_list_id: int, todo_id: int) -> bool:
        async with async_session() as sess:
            res = await sess.exec(
                sqlalchemy_delete(Todo)
                .where(Todo.todolist_id == todo_list_id)
                .where(Todo.id == todo_id)
                .where(Todo.username == self.username)
                .execution_options(synchronize_session=False)
            )
            await sess.commit()
        return res.rowcount > 0

    async def toggle_done_todo(self, todo_list_id: int, todo_id: int) -> bool:
        async with async_session() as sess:
            res = await sess.exec(
                sqlalchemy_update(Todo)
                .where(Todo.todolist_id == todo_list_id)
                .where(Todo.id == todo_id)
                .where(Todo.username == self.username)
                .values(done=not_(Todo.done))
                .execution_options(synchronize_session=False)
            )
            await sess.commit()
        return res.rowcount > 0

    async def complete_all_todos(self, todo_list_id: int) -> bool:
        async with async_session() as sess:
            res = await sess.exec(
                sqlalchemy_update(Todo)
                .where(Todo.todolist_id == todo_list_id)
                .where(Todo.username == self.username)
                .where(not_(Todo.done))
                .values(done=True)
                .execution_options(synchronize_session=False)
            )
            await sess.commit()
        return res.rowcount > 0
