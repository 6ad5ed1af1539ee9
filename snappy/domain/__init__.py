"""Domain models and DTOs."""

from snappy.domain.activity import Activity, ActivityAction, ActivityActor, ActivityPage, ActivityTarget
from snappy.domain.create_models import CollaboratorInvite, ListCreate, TemplateCreate, TodoCreate
from snappy.domain.stats import ActiveFocus, ActivityStats, FocusSessionPage, FocusStats, StatsPeriod
from snappy.domain.template import TaskBlueprint, Template, TemplateCategory, TemplatePage
from snappy.domain.todo import FocusSession, Pagination, SubStep, Todo, TodoPage, TodoStatus, apply_status
from snappy.domain.todo_list import Collaborator, CollaboratorRole, ListPage, TodoList
from snappy.domain.update_models import ListUpdate, TemplateUpdate, TodoUpdate
from snappy.domain.user import AuthSession, User


__all__ = [
    "ActiveFocus",
    "Activity",
    "ActivityAction",
    "ActivityActor",
    "ActivityPage",
    "ActivityStats",
    "ActivityTarget",
    "AuthSession",
    "Collaborator",
    "CollaboratorInvite",
    "CollaboratorRole",
    "FocusSession",
    "FocusSessionPage",
    "FocusStats",
    "ListCreate",
    "ListPage",
    "ListUpdate",
    "Pagination",
    "StatsPeriod",
    "SubStep",
    "TaskBlueprint",
    "Template",
    "TemplateCategory",
    "TemplateCreate",
    "TemplatePage",
    "TemplateUpdate",
    "Todo",
    "TodoCreate",
    "TodoList",
    "TodoPage",
    "TodoStatus",
    "TodoUpdate",
    "User",
    "apply_status",
]
