"""Both backends are exercised against the same TodoStore contract."""
import pytest
import pytest_asyncio

from conftest import create_user
from todos.persistence import TodoStore, UniqueTitleError
from todos.session_persistence import SessionPersistence
from todos.sql_persistence import SqlPersistence

pytestmark = pytest.mark.asyncio


def empty_session_store(username='alice'):
    return SessionPersistence({'todo_stores': {username: {'next_id': 1, 'todo_lists': []}}}, username)


@pytest_asyncio.fixture(params=['sql', 'session'])
async def store(request, prepare_db):
    await create_user('alice', 'secret')
    if request.param == 'sql':
        return SqlPersistence('alice')
    return empty_session_store()


async def list_id(store, title):
    for tl in await store.sorted_todo_lists():
        if tl.title == title:
            return tl.id
    raise AssertionError(f'no list titled {title!r}')


async def todo_id(store, tl_id, title):
    tl = await store.load_todo_list(tl_id)
    return next(t.id for t in tl.todos if t.title == title)


async def test_authenticate(store):
    assert await store.authenticate('alice', 'secret') is True
    assert await store.authenticate('alice', 'wrong') is False
    assert await store.authenticate('nobody', 'secret') is False


async def test_create_and_load_todo_list(store):
    assert await store.sorted_todo_lists() == []
    assert await store.create_todo_list('Groceries') is True
    assert await store.exists_todo_list_title('Groceries') is True
    assert await store.exists_todo_list_title('Chores') is False

    tl = await store.load_todo_list(await list_id(store, 'Groceries'))
    assert tl.title == 'Groceries'
    assert tl.todos == []


async def test_duplicate_title_is_rejected_case_sensitively(store):
    assert await store.create_todo_list('Work') is True
    assert await store.create_todo_list('Work') is False
    assert await store.create_todo_list('work') is True
    titles = [tl.title for tl in await store.sorted_todo_lists()]
    assert sorted(titles) == ['Work', 'work']


async def test_missing_things_are_none_or_false(store):
    assert await store.load_todo_list(999) is None
    assert await store.load_todo(999, 1) is None
    assert await store.set_todo_list_title(999, 'x') is False
    assert await store.delete_todo_list(999) is False
    assert await store.create_todo(999, 'x') is False
    assert await store.delete_todo(999, 1) is False
    assert await store.toggle_done_todo(999, 1) is False
    assert await store.complete_all_todos(999) is False


async def test_rename_todo_list(store):
    await store.create_todo_list('Old')
    await store.create_todo_list('Taken')
    tl_id = await list_id(store, 'Old')

    assert await store.set_todo_list_title(tl_id, 'New') is True
    assert (await store.load_todo_list(tl_id)).title == 'New'
    # renaming to its own current title is not a clash
    assert await store.set_todo_list_title(tl_id, 'New') is True

    with pytest.raises(UniqueTitleError):
        await store.set_todo_list_title(tl_id, 'Taken')
    assert (await store.load_todo_list(tl_id)).title == 'New'


async def test_todo_lifecycle(store):
    await store.create_todo_list('Home')
    tl_id = await list_id(store, 'Home')
    assert await store.create_todo(tl_id, 'Feed the cats') is True
    assert await store.create_todo(tl_id, 'Buy milk') is True
    t_id = await todo_id(store, tl_id, 'Feed the cats')

    todo = await store.load_todo(tl_id, t_id)
    assert todo.title == 'Feed the cats'
    assert todo.done is False
    assert await store.load_todo(tl_id + 1000, t_id) is None

    assert await store.toggle_done_todo(tl_id, t_id) is True
    assert (await store.load_todo(tl_id, t_id)).done is True
    assert await store.toggle_done_todo(tl_id, t_id) is True
    assert (await store.load_todo(tl_id, t_id)).done is False

    assert await store.delete_todo(tl_id, t_id) is True
    assert await store.load_todo(tl_id, t_id) is None
    assert await store.delete_todo(tl_id, t_id) is False
    assert [t.title for t in (await store.load_todo_list(tl_id)).todos] == ['Buy milk']


async def test_complete_all_reports_whether_anything_changed(store):
    await store.create_todo_list('Chores')
    tl_id = await list_id(store, 'Chores')
    assert await store.complete_all_todos(tl_id) is False

    await store.create_todo(tl_id, 'dishes')
    await store.create_todo(tl_id, 'laundry')
    assert await store.complete_all_todos(tl_id) is True
    tl = await store.load_todo_list(tl_id)
    assert all(t.done for t in tl.todos)
    assert store.is_done_todo_list(tl)
    assert not store.has_undone_todos(tl)

    assert await store.complete_all_todos(tl_id) is False


async def test_delete_todo_list_removes_its_todos(store):
    await store.create_todo_list('Temp')
    tl_id = await list_id(store, 'Temp')
    await store.create_todo(tl_id, 'one')
    t_id = await todo_id(store, tl_id, 'one')

    assert await store.delete_todo_list(tl_id) is True
    assert await store.load_todo_list(tl_id) is None
    assert await store.load_todo(tl_id, t_id) is None
    assert await store.delete_todo_list(tl_id) is False
    # the title is free again
    assert await store.create_todo_list('Temp') is True


async def test_sorted_todo_lists_and_todos(store):
    for title in ['b list', 'A list', 'c list', 'empty']:
        await store.create_todo_list(title)
    a_id = await list_id(store, 'A list')
    c_id = await list_id(store, 'c list')
    await store.create_todo(a_id, 'zebra')
    await store.create_todo(a_id, 'Apple')
    await store.create_todo(a_id, 'mango')
    await store.create_todo(c_id, 'only')
    await store.complete_all_todos(c_id)
    await store.toggle_done_todo(a_id, await todo_id(store, a_id, 'Apple'))

    titles = [tl.title for tl in await store.sorted_todo_lists()]
    assert titles == ['A list', 'b list', 'empty', 'c list']

    todos = await store.sorted_todos(await store.load_todo_list(a_id))
    assert [t.title for t in todos] == ['mango', 'zebra', 'Apple']


async def test_returned_objects_are_copies(store):
    await store.create_todo_list('Mine')
    tl_id = await list_id(store, 'Mine')
    await store.create_todo(tl_id, 'task')

    tl = await store.load_todo_list(tl_id)
    tl.title = 'changed'
    tl.todos[0].done = True

    again = await store.load_todo_list(tl_id)
    assert again.title == 'Mine'
    assert again.todos[0].done is False


async def test_sql_store_is_scoped_by_username(prepare_db):
    await create_user('alice', 'secret')
    await create_user('bob', 'hunter2')
    alice, bob = SqlPersistence('alice'), SqlPersistence('bob')
    await alice.create_todo_list('Shared name')
    tl_id = await list_id(alice, 'Shared name')
    await alice.create_todo(tl_id, 'private')
    t_id = await todo_id(alice, tl_id, 'private')

    assert await bob.sorted_todo_lists() == []
    assert await bob.load_todo_list(tl_id) is None
    assert await bob.load_todo(tl_id, t_id) is None
    assert await bob.create_todo(tl_id, 'sneaky') is False
    assert await bob.toggle_done_todo(tl_id, t_id) is False
    assert await bob.delete_todo_list(tl_id) is False
    # the same title is fine for another user
    assert await bob.create_todo_list('Shared name') is True

    tl = await alice.load_todo_list(tl_id)
    assert [t.title for t in tl.todos] == ['private']


async def test_toggle_missing_todo_leaves_list_unchanged(store):
    await store.create_todo_list('Errands')
    tl_id = await list_id(store, 'Errands')
    await store.create_todo(tl_id, 'post office')
    await store.create_todo(tl_id, 'bank')
    await store.toggle_done_todo(tl_id, await todo_id(store, tl_id, 'bank'))
    before = await store.load_todo_list(tl_id)
    missing = max(t.id for t in before.todos) + 1000

    assert await store.toggle_done_todo(tl_id, missing) is False
    assert await store.delete_todo(tl_id, missing) is False
    assert await store.load_todo_list(tl_id) == before


async def test_incomplete_store_cannot_be_built():
    class ListsOnly(TodoStore):
        async def sorted_todo_lists(self):
            return []

    with pytest.raises(TypeError):
        ListsOnly('alice')
