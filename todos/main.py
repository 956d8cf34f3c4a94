from contextlib import asynccontextmanager
import logging
import os
import sys
import time

from fastapi import Depends, FastAPI, Form, HTTPException, Path, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import config
from .auth import SignInRequired, check_csrf, create_csrf_token, require_signin
from .db import init_db
from .forms import validate_title
from .persistence import TodoStore, UniqueTitleError, get_store
from .sessions import load_session, save_session

logger = logging.getLogger(__name__)
# Ensure INFO-level messages from the app appear on the server console when
# no handlers are configured (safe fallback for development/testing).
_app_logger = logging.getLogger('todos')
if not _app_logger.handlers:
    handler = logging.StreamHandler(sys.stdout)
    formatter = logging.Formatter('%(asctime)s %(levelname)s:%(name)s: %(message)s')
    handler.setFormatter(formatter)
    _app_logger.addHandler(handler)
_app_logger.setLevel(config.LOG_LEVEL)

_HERE = os.path.dirname(os.path.abspath(__file__))

TEMPLATES = Jinja2Templates(directory=os.path.join(_HERE, 'templates'))
TEMPLATES.env.globals['config'] = config

# ids are signed 64-bit integers in the database
MAX_ID = 2**63 - 1


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Refuse to start with a missing SECRET_KEY or the test fallback.
    from .auth import SECRET_KEY
    if not SECRET_KEY or SECRET_KEY == "CHANGE_ME_IN_ENV_FOR_TESTS":
        raise RuntimeError("SECRET_KEY not set or insecure fallback in use; set the SECRET_KEY environment variable before starting the server")
    await init_db()
    logger.info('todos listening with %s persistence', config.PERSISTENCE)
    yield


app = FastAPI(lifespan=lifespan)
app.mount("/static", StaticFiles(directory=os.path.join(_HERE, 'static')), name="static")


@app.middleware('http')
async def session_middleware(request: Request, call_next):
    """Load the visitor's server-side session and save it after the response."""
    if request.url.path.startswith('/static/'):
        return await call_next(request)
    session = await load_session(request.cookies.get(config.SESSION_COOKIE_NAME))
    request.state.session = session
    resp = await call_next(request)
    if await save_session(session):
        resp.set_cookie(
            config.SESSION_COOKIE_NAME,
            session.token,
            max_age=config.SESSION_MAX_AGE_DAYS * 24 * 60 * 60,
            httponly=True,
            samesite='lax',
            secure=config.COOKIE_SECURE,
            path='/',
        )
    return resp


@app.middleware('http')
async def timing_middleware(request: Request, call_next):
    start = time.perf_counter()
    resp = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000.0
    logger.info('%s %s %s %.1fms', request.method, request.url.path, resp.status_code, duration_ms)
    return resp


@app.exception_handler(SignInRequired)
async def signin_required_handler(request: Request, exc: SignInRequired):
    return RedirectResponse(url='/users/signin', status_code=302)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        logger.info('not found: %s %s', request.method, request.url.path)
    return PlainTextResponse(str(exc.detail), status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    # a list or todo id that cannot exist is just a missing page
    if any(err.get('loc', ())[:1] == ('path',) for err in exc.errors()):
        logger.info('not found (bad id): %s %s', request.method, request.url.path)
        return PlainTextResponse('Not found.', status_code=404)
    return await request_validation_exception_handler(request, exc)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception('database error while handling %s %s', request.method, request.url.path)
    return PlainTextResponse('Something went wrong.', status_code=500)


def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail='Not found.')


def _render(request: Request, template: str, ctx: dict | None = None):
    """Render `template` with the pending flash messages and sign-in state."""
    session = request.state.session
    context = {
        'request': request,
        'flash': session.pop_flashes(),
        'username': session.username,
        'signed_in': session.signed_in,
        'csrf_token': create_csrf_token(session.username) if session.signed_in else None,
    }
    if ctx:
        context.update(ctx)
    return TEMPLATES.TemplateResponse(request, template, context)


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=303)


@app.get('/')
async def index():
    return RedirectResponse(url='/lists', status_code=302)


@app.get('/users/signin', response_class=HTMLResponse)
async def signin_get(request: Request):
    request.state.session.flash('info', 'Please sign in.')
    return _render(request, 'signin.html')


@app.post('/users/signin')
async def signin_post(request: Request, username: str = Form(''), password: str = Form(''),
                      store: TodoStore = Depends(get_store)):
    session = request.state.session
    username = username.strip()
    if not await store.authenticate(username, password):
        logger.info('sign-in failed for %r', username)
        session.flash('error', 'Invalid credentials')
        return _render(request, 'signin.html', {'form_username': username})
    session.regenerate()
    session.sign_in(username)
    session.flash('success', 'Welcome!')
    logger.info('signed in %s', username)
    return _redirect('/lists')


@app.post('/users/signout')
async def signout(request: Request):
    session = request.state.session
    if session.signed_in:
        await check_csrf(request, session.username)
        logger.info('signed out %s', session.username)
    session.sign_out()
    return _redirect('/users/signin')


@app.get('/lists', response_class=HTMLResponse)
async def lists_index(request: Request, username: str = Depends(require_signin),
                      store: TodoStore = Depends(get_store)):
    todo_lists = await store.sorted_todo_lists()
    todos_info = [
        {
            'count_all_todos': len(todo_list.todos),
            'count_done_todos': sum(1 for todo in todo_list.todos if todo.done),
            'is_done': store.is_done_todo_list(todo_list),
        }
        for todo_list in todo_lists
    ]
    return _render(request, 'lists.html', {'todo_lists': todo_lists, 'todos_info': todos_info})


@app.get('/lists/new', response_class=HTMLResponse)
async def new_list(request: Request, username: str = Depends(require_signin)):
    return _render(request, 'new_list.html')


@app.post('/lists')
async def create_list(request: Request, todo_list_title: str = Form(''),
                      username: str = Depends(require_signin), store: TodoStore = Depends(get_store)):
    await check_csrf(request, username)
    session = request.state.session
    title, errors = validate_title(todo_list_title, 'list')

    def rerender():
        return _render(request, 'new_list.html', {'todo_list_title': title})

    if errors:
        for message in errors:
            session.flash('error', message)
        return rerender()
    if await store.exists_todo_list_title(title):
        session.flash('error', 'The list title must be unique.')
        return rerender()
    if not await store.create_todo_list(title):
        session.flash('error', 'The list title must be unique.')
        return rerender()
    session.flash('success', 'The todo list has been created.')
    return _redirect('/lists')


async def _render_list(request: Request, store: TodoStore, todo_list_id: int, ctx: dict | None = None):
    todo_list = await store.load_todo_list(todo_list_id)
    if todo_list is None:
        raise _not_found()
    context = {
        'todo_list': todo_list,
        'todos': await store.sorted_todos(todo_list),
        'is_done_todo_list': store.is_done_todo_list(todo_list),
        'has_undone_todos': store.has_undone_todos(todo_list),
    }
    if ctx:
        context.update(ctx)
    return _render(request, 'list.html', context)


@app.get('/lists/{todo_list_id}', response_class=HTMLResponse)
async def show_list(request: Request, todo_list_id: int = Path(ge=1, le=MAX_ID), username: str = Depends(require_signin),
                    store: TodoStore = Depends(get_store)):
    return await _render_list(request, store, todo_list_id)


@app.post('/lists/{todo_list_id}/todos/{todo_id}/toggle')
async def toggle_todo(request: Request, todo_list_id: int = Path(ge=1, le=MAX_ID), todo_id: int = Path(ge=1, le=MAX_ID),
                      username: str = Depends(require_signin), store: TodoStore = Depends(get_store)):
    await check_csrf(request, username)
    if not await store.toggle_done_todo(todo_list_id, todo_id):
        raise _not_found()
    todo = await store.load_todo(todo_list_id, todo_id)
    if todo.done:
        request.state.session.flash('success', f'"{todo.title}" marked done.')
    else:
        request.state.session.flash('success', f'"{todo.title}" marked as NOT done!')
    return _redirect(f'/lists/{todo_list_id}')


@app.post('/lists/{todo_list_id}/todos/{todo_id}/destroy')
async def destroy_todo(request: Request, todo_list_id: int = Path(ge=1, le=MAX_ID), todo_id: int = Path(ge=1, le=MAX_ID),
                       username: str = Depends(require_signin), store: TodoStore = Depends(get_store)):
    await check_csrf(request, username)
    if not await store.delete_todo(todo_list_id, todo_id):
        raise _not_found()
    request.state.session.flash('success', 'The todo has been deleted.')
    return _redirect(f'/lists/{todo_list_id}')


@app.post('/lists/{todo_list_id}/complete_all')
async def complete_all(request: Request, todo_list_id: int = Path(ge=1, le=MAX_ID),
                       username: str = Depends(require_signin), store: TodoStore = Depends(get_store)):
    await check_csrf(request, username)
    if await store.complete_all_todos(todo_list_id):
        request.state.session.flash('success', 'All todos have been marked as done.')
    elif await store.load_todo_list(todo_list_id) is None:
        raise _not_found()
    else:
        request.state.session.flash('info', 'There are no todos left to complete.')
    return _redirect(f'/lists/{todo_list_id}')


@app.post('/lists/{todo_list_id}/todos')
async def create_todo(request: Request, todo_list_id: int = Path(ge=1, le=MAX_ID), todo_title: str = Form(''),
                      username: str = Depends(require_signin), store: TodoStore = Depends(get_store)):
    await check_csrf(request, username)
    session = request.state.session
    title, errors = validate_title(todo_title, 'todo')
    if errors:
        for message in errors:
            session.flash('error', message)
        return await _render_list(request, store, todo_list_id, {'todo_title': title})
    if not await store.create_todo(todo_list_id, title):
        raise _not_found()
    session.flash('success', 'The todo has been created.')
    return _redirect(f'/lists/{todo_list_id}')


@app.get('/lists/{todo_list_id}/edit', response_class=HTMLResponse)
async def edit_list(request: Request, todo_list_id: int = Path(ge=1, le=MAX_ID), username: str = Depends(require_signin),
                    store: TodoStore = Depends(get_store)):
    todo_list = await store.load_todo_list(todo_list_id)
    if todo_list is None:
        raise _not_found()
    return _render(request, 'edit_list.html', {'todo_list': todo_list})


@app.post('/lists/{todo_list_id}/edit')
async def update_list(request: Request, todo_list_id: int = Path(ge=1, le=MAX_ID), todo_list_title: str = Form(''),
                      username: str = Depends(require_signin), store: TodoStore = Depends(get_store)):
    await check_csrf(request, username)
    session = request.state.session
    todo_list = await store.load_todo_list(todo_list_id)
    if todo_list is None:
        raise _not_found()
    title, errors = validate_title(todo_list_title, 'list')

    def rerender():
        return _render(request, 'edit_list.html', {'todo_list': todo_list, 'todo_list_title': title})

    if errors:
        for message in errors:
            session.flash('error', message)
        return rerender()
    # keeping the current title is not a clash with itself
    if title != todo_list.title and await store.exists_todo_list_title(title):
        session.flash('error', 'The list title must be unique.')
        return rerender()
    try:
        updated = await store.set_todo_list_title(todo_list_id, title)
    except UniqueTitleError:
        session.flash('error', 'The list title must be unique.')
        return rerender()
    if not updated:
        raise _not_found()
    session.flash('success', 'Todo list updated.')
    return _redirect(f'/lists/{todo_list_id}')


@app.post('/lists/{todo_list_id}/destroy')
async def destroy_list(request: Request, todo_list_id: int = Path(ge=1, le=MAX_ID),
                       username: str = Depends(require_signin), store: TodoStore = Depends(get_store)):
    await check_csrf(request, username)
    if not await store.delete_todo_list(todo_list_id):
        raise _not_found()
    request.state.session.flash('success', 'Todo list deleted.')
    return _redirect('/lists')
