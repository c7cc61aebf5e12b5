from __future__ import annotations

from typing import List
from uuid import uuid4

from pydantic import BaseModel, Field


class ListItem(BaseModel):
    item_id: str = Field(default_factory=lambda: str(uuid4()), alias="itemId")
    label: str
    is_complete: bool = Field(default=False, alias="isComplete")

    model_config = {"populate_by_name": True}


class TodoList(BaseModel):
    """
    Persistent task list serialized to JSON and stored behind a registry entry.

    Fields
    - items: the list's entries in display order.

    Notes
    - Serialization uses the camelCase aliases (`itemId`, `isComplete`) so the
      stored document matches what browser-side callers read and write.
    """

    items: List[ListItem] = Field(default_factory=list, description="List entries")

    model_config = {"populate_by_name": True}

    @classmethod
    def empty(cls) -> "TodoList":
        """Convenience constructor for a fresh, empty list."""
        return cls()
