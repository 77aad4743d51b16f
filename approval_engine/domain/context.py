"""Request Context - Tagged values keyed by dotted field path

Callers hand the engine a plain mapping describing the business object.
At the boundary it is flattened ("expense.amount") and every leaf is tagged
with its ValueKind, so the condition evaluator can switch on the tag instead
of relying on implicit coercion.
"""
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, model_validator

from .enums import ValueKind
from .errors import ValidationError
from ..utils.time import parse_iso


class ContextValue(BaseModel):
    """A single tagged context value"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: ValueKind
    value: Any = None
    items: Optional[List["ContextValue"]] = None

    @model_validator(mode="before")
    @classmethod
    def _restore_dates(cls, data: Any) -> Any:
        # Stored documents may carry DATE values as ISO strings
        if isinstance(data, dict) and data.get("kind") in (ValueKind.DATE, ValueKind.DATE.value):
            raw = data.get("value")
            if isinstance(raw, str):
                data = {**data, "value": parse_iso(raw)}
        return data

    @classmethod
    def of(cls, raw: Any) -> "ContextValue":
        """Tag a raw Python value"""
        if isinstance(raw, ContextValue):
            return raw
        if raw is None:
            return cls(kind=ValueKind.NULL)
        if isinstance(raw, bool):
            return cls(kind=ValueKind.BOOLEAN, value=raw)
        if isinstance(raw, (int, float)):
            return cls(kind=ValueKind.NUMBER, value=raw)
        if isinstance(raw, Decimal):
            return cls(kind=ValueKind.NUMBER, value=float(raw))
        if isinstance(raw, datetime):
            if raw.tzinfo is None:
                raw = raw.replace(tzinfo=timezone.utc)
            return cls(kind=ValueKind.DATE, value=raw)
        if isinstance(raw, date):
            return cls(
                kind=ValueKind.DATE,
                value=datetime(raw.year, raw.month, raw.day, tzinfo=timezone.utc)
            )
        if isinstance(raw, str):
            return cls(kind=ValueKind.STRING, value=raw)
        if isinstance(raw, (list, tuple, set, frozenset)):
            return cls(kind=ValueKind.LIST, items=[cls.of(item) for item in raw])
        raise ValueError(f"Unsupported context value type: {type(raw).__name__}")

    def to_python(self) -> Any:
        """Untag back to a plain Python value"""
        if self.kind == ValueKind.LIST:
            return [item.to_python() for item in self.items or []]
        return self.value


ContextValue.model_rebuild()

RequestContext = Dict[str, ContextValue]


def build_context(raw: Optional[Mapping[str, Any]]) -> RequestContext:
    """
    Flatten and tag a caller-supplied mapping

    Nested mappings become dotted paths: {"expense": {"amount": 5}} ->
    {"expense.amount": NUMBER(5)}. The nested mapping itself is not kept as
    a value.

    Raises:
        ValidationError: If a key is not a string or a leaf has an unsupported type
    """
    context: RequestContext = {}
    if not raw:
        return context

    def _walk(prefix: str, node: Mapping[str, Any]) -> None:
        for key, value in node.items():
            if not isinstance(key, str) or not key:
                raise ValidationError(
                    "Context keys must be non-empty strings",
                    details={"key": repr(key)}
                )
            path = f"{prefix}.{key}" if prefix else key
            if isinstance(value, Mapping):
                _walk(path, value)
                continue
            try:
                context[path] = ContextValue.of(value)
            except ValueError as e:
                raise ValidationError(str(e), details={"field": path})

    _walk("", raw)
    return context
