"""
Record schema - the unit of data flowing through a pipeline.

Every stage receives and emits records in this shape. Stages don't care
where a record came from, only what its content currently is:

    content   raw bytes (a fetched or read document) or decoded text
    metadata  open mapping that only ever grows as the record moves on
    vector    set by the embedding stage
    id        set by the storage stage, together with created_at

Example (wire shape):
    {
        "content": "The quick brown fox ...",
        "metadata": {"fileName": "fox.pdf", "pageNumber": 1},
        "vector": [0.013, -0.221, ...],
        "id": 42,
        "createdAt": "2026-01-01T12:00:00"
    }
"""
from __future__ import annotations

import os
from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBytes,
    StrictStr,
    ValidationError,
)

from ..errors import InputError, RecordError

# Fields frozen once a record has been persisted
_PERSISTED_FIELDS = frozenset({"content", "vector", "id", "created_at"})


class ContentKind(str, Enum):
    """The two shapes a record's content can take."""
    TEXT = "text"
    BYTES = "bytes"


class Record(BaseModel):
    """
    A content + metadata record.

    Records are validated on construction and on attribute assignment.
    ``metadata`` is merged, never replaced, and a persisted record (one
    with an ``id``) cannot have its content, vector or identity changed.
    Stages that transform a record should build a new one with
    ``derive()``.
    """

    model_config = ConfigDict(validate_assignment=True, populate_by_name=True)

    content: Union[StrictStr, StrictBytes]
    metadata: dict[str, Any] = Field(default_factory=dict)
    vector: Optional[list[float]] = None
    id: Optional[Union[int, str]] = None
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "metadata":
            raise RecordError("Record metadata is merged, never replaced; use merge_metadata()")
        if name in _PERSISTED_FIELDS and self.is_persisted:
            raise RecordError(f"Cannot change '{name}' of persisted record {self.id}")
        super().__setattr__(name, value)

    @property
    def kind(self) -> ContentKind:
        """Whether the content is decoded text or raw bytes."""
        return ContentKind.TEXT if isinstance(self.content, str) else ContentKind.BYTES

    @property
    def is_persisted(self) -> bool:
        """True once a storage stage has assigned an id."""
        return self.id is not None

    def merge_metadata(self, metadata: Optional[Mapping[str, Any]]) -> "Record":
        """Merge keys into this record's metadata in place. Returns self."""
        if metadata:
            self.metadata.update(metadata)
        return self

    def derive(
        self,
        content: Optional[Union[str, bytes]] = None,
        metadata: Optional[Mapping[str, Any]] = None,
        vector: Optional[list[float]] = None,
    ) -> "Record":
        """
        Create a new record from this one.

        The new record's metadata is this record's metadata with
        ``metadata`` merged over it. The vector carries over only while the
        content is unchanged.

        Raises:
            RecordError: If this record is persisted and a new content or
                vector is requested
        """
        merged = {**self.metadata, **(metadata or {})}

        if self.is_persisted:
            if content is not None or vector is not None:
                raise RecordError(f"Cannot derive new content or vector from persisted record {self.id}")
            return Record(
                content=self.content,
                metadata=merged,
                vector=self.vector,
                id=self.id,
                created_at=self.created_at,
            )

        if content is None:
            content = self.content
            if vector is None:
                vector = self.vector

        return Record(content=content, metadata=merged, vector=vector)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire shape, omitting unset optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True)


def validate_record(obj: Any) -> Record:
    """
    Check that ``obj`` has the shape of a record and return it as one.

    Records are returned as-is; mappings are validated into a new Record.

    Raises:
        pydantic.ValidationError: If a mapping fails the schema
        RecordError: If obj is neither a record nor a mapping, or a record's
            metadata was mutated into an invalid shape
    """
    if isinstance(obj, Record):
        bad_keys = [key for key in obj.metadata if not isinstance(key, str)]
        if bad_keys:
            raise RecordError(f"Metadata keys must be strings, got {bad_keys!r}")
        return obj

    if isinstance(obj, Mapping):
        return Record.model_validate(obj)

    raise RecordError(f"Expected a record, got {type(obj).__name__}")


def coerce_input(item: Any) -> Record:
    """
    Normalize one pipeline input into a new Record.

    Accepts text, bytes-like objects, filesystem paths, mappings with a
    ``content`` key, and records (which are copied, so merging pipeline
    metadata never touches the caller's object).

    Raises:
        InputError: If the item cannot be represented as a record
    """
    if isinstance(item, Record):
        return item.model_copy(update={"metadata": dict(item.metadata)})

    if isinstance(item, (str, bytes)):
        return Record(content=item)

    if isinstance(item, (bytearray, memoryview)):
        return Record(content=bytes(item))

    if isinstance(item, os.PathLike):
        return Record(content=str(os.fspath(item)))

    if isinstance(item, Mapping) and "content" in item:
        try:
            return Record.model_validate(item)
        except ValidationError as e:
            raise InputError(f"Invalid record input: {e}") from e

    raise InputError(f"Unsupported pipeline input of type {type(item).__name__}")
