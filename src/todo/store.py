from __future__ import annotations

import logging
from typing import Optional

from common.errors import NotFoundError
from persistence.coordinator import PersistenceCoordinator
from persistence.serializers import ModelSerializer

from .models import TodoList


# Values identifying the task list's registry slot
KEYPAIR_TAG = "todoListModule"
DATAKEY_TAG = "todoList"

_log = logging.getLogger(__name__)


class TodoListStore:
    """
    Registry-backed persistence for `TodoList`.

    Usage
    - `hydrate()` returns the saved list, or `TodoList.empty()` if nothing has
      been saved for this slot yet. Any other failure propagates.
    - `persist(todo_list)` saves and returns the resolver skylink.

    The coordinator must be configured with a `ModelSerializer(TodoList)`;
    `from_env()` and `with_clients()` take care of that.
    """

    def __init__(
        self,
        coordinator: PersistenceCoordinator,
        *,
        keypair_tag: str = KEYPAIR_TAG,
        datakey_tag: str = DATAKEY_TAG,
    ) -> None:
        self._coordinator = coordinator
        self._keypair_tag = keypair_tag
        self._datakey_tag = datakey_tag

    # -------- Construction helpers --------
    @classmethod
    def from_env(cls) -> "TodoListStore":
        return cls(PersistenceCoordinator.from_env(serializer=ModelSerializer(TodoList)))

    @classmethod
    def with_clients(cls, seed: bytes, *, blobs, registry, encrypt_at_rest: bool = False) -> "TodoListStore":
        coordinator = PersistenceCoordinator(
            seed,
            blobs=blobs,
            registry=registry,
            serializer=ModelSerializer(TodoList),
            encrypt_at_rest=encrypt_at_rest,
        )
        return cls(coordinator)

    async def aclose(self) -> None:
        await self._coordinator.aclose()

    async def __aenter__(self) -> "TodoListStore":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # -------- Core operations --------
    @property
    def locator(self) -> str:
        return self._coordinator.locator_for(self._keypair_tag, self._datakey_tag)

    async def hydrate(self) -> TodoList:
        _log.info("hydrating data")
        try:
            return await self._coordinator.load(self._keypair_tag, self._datakey_tag)
        except NotFoundError:
            _log.info("nothing saved at %s yet; starting empty", self.locator)
            return TodoList.empty()

    async def persist(self, todo_list: TodoList) -> str:
        locator = await self._coordinator.save(todo_list, self._keypair_tag, self._datakey_tag)
        _log.info("persisted %d items to %s", len(todo_list.items), locator)
        return locator


__all__ = ["TodoListStore", "KEYPAIR_TAG", "DATAKEY_TAG"]
