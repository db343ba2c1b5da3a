"""JSON wire form of records: camelCase keys, ISO-8601 timestamps."""

from __future__ import annotations

import json
from dataclasses import fields
from datetime import datetime
from typing import Any

from pydantic.alias_generators import to_camel

from vigil.models.records import Alert, Application, ErrorEvent, Metric

Record = Application | Metric | ErrorEvent | Alert


def to_wire(record: Record) -> dict[str, Any]:
    """Convert a record dataclass to its camelCase JSON-ready dict."""
    out: dict[str, Any] = {}
    for f in fields(record):
        value = getattr(record, f.name)
        if isinstance(value, datetime):
            value = value.isoformat()
        out[to_camel(f.name)] = value
    return out


def to_wire_list(records: list) -> list[dict[str, Any]]:
    return [to_wire(r) for r in records]


def encode_event(kind: str, record: Record) -> str:
    """Encode a push-channel change event: ``{"type": kind, "data": record}``."""
    return json.dumps({"type": kind, "data": to_wire(record)})
