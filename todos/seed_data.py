"""Demo lists handed to a user the first time the session backend serves them."""

SEED_TODO_LISTS = [
    {
        "title": "Work Todos",
        "todos": [
            {"title": "Get coffee", "done": True},
            {"title": "Chat with co-workers", "done": True},
            {"title": "Duck out of meeting", "done": False},
        ],
    },
    {
        "title": "Home Todos",
        "todos": [
            {"title": "Feed the cats", "done": True},
            {"title": "Go to bed", "done": True},
            {"title": "Buy milk", "done": True},
            {"title": "Study for Launch School", "done": True},
        ],
    },
    {
        "title": "Additional Todos",
        "todos": [],
    },
    {
        "title": "social todos",
        "todos": [
            {"title": "Go to Libby's birthday party", "done": False},
        ],
    },
]
