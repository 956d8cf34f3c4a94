"""View models handed from the persistence layer to routes and templates.

Both backends build fresh instances on every call so callers never hold a
reference into store state.
"""
from pydantic import BaseModel, ConfigDict


class TodoRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    todolist_id: int
    title: str
    done: bool = False


class TodoListRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    todos: list[TodoRead] = []
