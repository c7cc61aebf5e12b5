"""
Task list document and its registry-backed store.

The list is persisted as JSON behind the (todoListModule, todoList) slot.
"""

from .models import ListItem, TodoList
from .store import TodoListStore

__all__ = ["ListItem", "TodoList", "TodoListStore"]
