from __future__ import annotations

import json
from typing import Any, Generic, Type, TypeVar

from pydantic import BaseModel, ValidationError

from common.errors import DeserializationError, SerializationError


M = TypeVar("M", bound=BaseModel)


def _dump_json(obj: Any) -> bytes:
    # Deterministic JSON: stable key order, no extra whitespace
    return json.dumps(obj, separators=(",", ":"), sort_keys=True, allow_nan=False).encode("utf-8")


class JsonSerializer:
    """
    Plain JSON values (dicts with str keys, lists, scalars).

    Values JSON would silently coerce, such as tuples or non-str dict keys, are
    rejected so that `loads(dumps(doc)) == doc` holds for every accepted doc.
    """

    def dumps(self, document: Any) -> bytes:
        try:
            data = _dump_json(document)
        except (TypeError, ValueError) as ex:
            raise SerializationError(f"document is not JSON-serializable: {ex}") from ex
        if json.loads(data) != document:
            raise SerializationError("document does not survive a JSON round trip (tuple or non-str key?)")
        return data

    def loads(self, data: bytes) -> Any:
        try:
            return json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as ex:
            raise DeserializationError("stored bytes are not valid JSON") from ex


class ModelSerializer(Generic[M]):
    """
    JSON encoding of one pydantic model class.

    `loads()` validates against the model and never substitutes defaults for a
    payload that does not match the schema.
    """

    def __init__(self, model: Type[M]) -> None:
        self.model = model

    def dumps(self, document: M) -> bytes:
        if not isinstance(document, self.model):
            raise SerializationError(
                f"expected {self.model.__name__}, got {type(document).__name__}"
            )
        try:
            return _dump_json(document.model_dump(mode="json", by_alias=True))
        except (TypeError, ValueError) as ex:
            raise SerializationError(f"failed to serialize {self.model.__name__}: {ex}") from ex

    def loads(self, data: bytes) -> M:
        try:
            raw = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as ex:
            raise DeserializationError("stored bytes are not valid JSON") from ex
        try:
            return self.model.model_validate(raw)
        except ValidationError as ex:
            raise DeserializationError(
                f"stored document does not match {self.model.__name__}"
            ) from ex
