from snappy.services import (
    activity_service,
    auth_service,
    focus_service,
    list_service,
    template_service,
    todo_service,
)


__all__ = [
    "activity_service",
    "auth_service",
    "focus_service",
    "list_service",
    "template_service",
    "todo_service",
]
