"""Server-side validation for list and todo titles."""
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from . import config


class TitleForm(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=config.TITLE_MAX_LENGTH)


_MESSAGES = {
    'list': {
        'string_too_short': 'The list title is required.',
        'string_too_long': f'List title must be between 1 and {config.TITLE_MAX_LENGTH} characters.',
    },
    'todo': {
        'string_too_short': 'The todo title is required.',
        'string_too_long': f'Todo title must be between 1 and {config.TITLE_MAX_LENGTH} characters.',
    },
}


def validate_title(raw: str | None, kind: str) -> tuple[str, list[str]]:
    """Return the whitespace-stripped title and a list of error messages.

    `kind` is 'list' or 'todo' and only selects the wording of the messages.
    """
    raw = raw or ''
    try:
        form = TitleForm(title=raw)
    except ValidationError as e:
        messages = [_MESSAGES[kind].get(err['type'], err['msg']) for err in e.errors()]
        return raw.strip(), messages
    return form.title, []
