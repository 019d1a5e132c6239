"""
wondekit/merge.py
-----------------

Combining JSON payloads.

Both the pagination loop of a single school and the "aggregate" mode of the
multi-school client fold a series of ``data`` payloads into one value. They
share ``merge_payloads`` so the two call sites always agree:

- ARRAY into ARRAY: concatenate, order kept, duplicates allowed
- OBJECT into OBJECT: shallow merge, later keys overwrite earlier ones
- SCALAR or NULL incoming: the accumulated value is kept (first wins)
"""

from enum import Enum
from typing import Any, Iterable

from .errors import MergeAmbiguityError


class PayloadKind(str, Enum):
    """The closed set of shapes a decoded JSON value can take."""

    ARRAY = "array"
    OBJECT = "object"
    SCALAR = "scalar"
    NULL = "null"


def classify_payload(value: Any) -> PayloadKind:
    if value is None:
        return PayloadKind.NULL
    if isinstance(value, list):
        return PayloadKind.ARRAY
    if isinstance(value, dict):
        return PayloadKind.OBJECT
    return PayloadKind.SCALAR


def merge_payloads(accumulated: Any, incoming: Any) -> Any:
    """
    Fold ``incoming`` into ``accumulated`` and return the result.

    ``accumulated`` starts out as ``None``; the first non-null payload simply
    takes its place. Neither argument is mutated.

    Raises:
        MergeAmbiguityError: if ``incoming`` is an array or object whose kind
            does not match what has been accumulated so far.
    """
    current = classify_payload(accumulated)
    kind = classify_payload(incoming)

    if current is PayloadKind.NULL:
        return incoming

    if kind is PayloadKind.ARRAY:
        if current is not PayloadKind.ARRAY:
            raise MergeAmbiguityError(accumulated, incoming)
        return [*accumulated, *incoming]

    if kind is PayloadKind.OBJECT:
        if current is not PayloadKind.OBJECT:
            raise MergeAmbiguityError(accumulated, incoming)
        return {**accumulated, **incoming}

    # SCALAR or NULL: nothing to fold in
    return accumulated


def merge_all(payloads: Iterable[Any]) -> Any:
    """Fold every payload in order, starting from ``None``."""
    merged: Any = None
    for payload in payloads:
        merged = merge_payloads(merged, payload)
    return merged
