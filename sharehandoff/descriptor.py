"""Wire format of staged Descriptors.

Single item::

    {"content": "...", "type": "image", "message": "...", "timestamp": 1700000000}

Batch::

    {"files": [{"content": "...", "type": "image", "message": "..."}],
     "type": "multiple_files", "timestamp": 1700000000}
"""

from __future__ import annotations

import json
from typing import Literal, Union

from pydantic import BaseModel, Field, ValidationError

from .errors import DescriptorDecodeError
from .models import Kind, MultiItemBatch, ShareItem

Shared = Union[ShareItem, MultiItemBatch]


class ItemRecord(BaseModel):
    content: str = Field(min_length=1)
    type: Kind
    message: str = ""
    timestamp: int | None = None


class BatchRecord(BaseModel):
    files: list[ItemRecord] = Field(min_length=1)
    type: Literal["multiple_files"]
    timestamp: int


def encode(shared: Shared) -> str:
    """Serialize an item or batch to Descriptor JSON."""
    if isinstance(shared, MultiItemBatch):
        record: BaseModel = BatchRecord(
            files=[
                ItemRecord(content=item.content, type=item.kind, message=item.message)
                for item in shared.items
            ],
            type="multiple_files",
            timestamp=shared.timestamp,
        )
        payload = record.model_dump(mode="json")
        for entry in payload["files"]:
            entry.pop("timestamp", None)
    else:
        record = ItemRecord(
            content=shared.content,
            type=shared.kind,
            message=shared.message,
            timestamp=shared.timestamp,
        )
        payload = record.model_dump(mode="json")
    return json.dumps(payload, ensure_ascii=False)


def decode(raw: str | bytes, name: str | None = None) -> Shared:
    """Parse Descriptor JSON back into an item or batch."""
    try:
        payload = json.loads(raw)
    except (ValueError, UnicodeDecodeError) as exc:
        raise DescriptorDecodeError(f"Descriptor is not valid JSON: {exc}", name=name) from exc
    if not isinstance(payload, dict):
        raise DescriptorDecodeError("Descriptor must be a JSON object", name=name)

    try:
        if payload.get("type") == MultiItemBatch.kind:
            batch = BatchRecord.model_validate(payload)
            return MultiItemBatch(
                items=tuple(
                    ShareItem(
                        content=entry.content,
                        kind=entry.type,
                        message=entry.message,
                        timestamp=batch.timestamp,
                    )
                    for entry in batch.files
                ),
                timestamp=batch.timestamp,
            )
        record = ItemRecord.model_validate(payload)
        if record.timestamp is None:
            raise DescriptorDecodeError("Descriptor is missing its timestamp", name=name)
        return ShareItem(
            content=record.content,
            kind=record.type,
            message=record.message,
            timestamp=record.timestamp,
        )
    except (ValidationError, ValueError) as exc:
        raise DescriptorDecodeError(f"Descriptor failed validation: {exc}", name=name) from exc


def to_payload(shared: Shared) -> dict:
    """Descriptor as a plain dict, as handed to host listeners."""
    return json.loads(encode(shared))
