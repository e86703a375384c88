"""Canonical serialization of audit payloads for stable cross-platform hashing.

The canonical form is JSON-shaped text with three determinism guarantees on top
of RFC 8785 leaf encoding:

- strings (values and keys) are NFC-normalized before quoting;
- mapping keys are ordered by the UTF-8 bytes of their quoted form;
- non-finite floats render as ``null``.

Leaf quoting and float rendering are delegated to :mod:`rfc8785`, which
implements the ECMAScript number form, so the output matches what a
JavaScript or Go implementation of the same rules produces.
"""

from __future__ import annotations

import math
import unicodedata
from collections.abc import Mapping, Sequence
from typing import TypeAlias, Union

import rfc8785

CanonicalValue: TypeAlias = Union[
    None,
    bool,
    int,
    float,
    str,
    Sequence["CanonicalValue"],
    Mapping[str, "CanonicalValue"],
]


class InvalidInputError(ValueError):
    """Raised when a value cannot be canonicalized (cycle or unsupported type)."""


def _quote(text: str) -> str:
    normalized = unicodedata.normalize("NFC", text)
    try:
        return rfc8785.dumps(normalized).decode("utf-8")
    except (rfc8785.CanonicalizationError, UnicodeEncodeError) as exc:
        raise InvalidInputError(f"String is not encodable as UTF-8: {exc}") from exc


def _number(value: int | float) -> str:
    if isinstance(value, int):
        return str(int(value))
    if not math.isfinite(value):
        return "null"
    try:
        return rfc8785.dumps(float(value)).decode("utf-8")
    except rfc8785.CanonicalizationError as exc:
        raise InvalidInputError(f"Unsupported float value {value!r}: {exc}") from exc


def _render(value: object, path: str, active: set[int]) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return _number(value)
    if isinstance(value, str):
        return _quote(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        raise InvalidInputError(f"Binary value at {path} is not canonicalizable")
    if isinstance(value, Mapping):
        return _render_mapping(value, path, active)
    if isinstance(value, Sequence):
        return _render_sequence(value, path, active)
    raise InvalidInputError(f"Unsupported type {type(value).__name__} at {path}")


def _render_sequence(value: Sequence[object], path: str, active: set[int]) -> str:
    marker = id(value)
    if marker in active:
        raise InvalidInputError(f"Cyclic reference at {path}")
    active.add(marker)
    try:
        parts = [_render(item, f"{path}[{index}]", active) for index, item in enumerate(value)]
    finally:
        active.discard(marker)
    return "[" + ",".join(parts) + "]"


def _render_mapping(value: Mapping[object, object], path: str, active: set[int]) -> str:
    marker = id(value)
    if marker in active:
        raise InvalidInputError(f"Cyclic reference at {path}")
    active.add(marker)
    try:
        entries: dict[bytes, str] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise InvalidInputError(
                    f"Mapping key {key!r} at {path} is {type(key).__name__}, expected str"
                )
            quoted_key = _quote(key)
            sort_key = quoted_key.encode("utf-8")
            if sort_key in entries:
                raise InvalidInputError(
                    f"Duplicate key {quoted_key} at {path} after Unicode normalization"
                )
            entries[sort_key] = quoted_key + ":" + _render(item, f"{path}.{key}", active)
    finally:
        active.discard(marker)
    return "{" + ",".join(entries[k] for k in sorted(entries)) + "}"


def canonicalize(value: CanonicalValue) -> str:
    """Return the canonical text form of ``value``.

    Parameters
    ----------
    value:
        ``None``, ``bool``, ``int``, ``float``, ``str``, or a list/tuple/mapping
        nesting of those. Mapping keys must be strings.

    Returns
    -------
    str
        Deterministic canonical text. Equal logical values yield identical
        text regardless of key insertion order or Unicode normalization form.

    Raises
    ------
    InvalidInputError
        If the value is cyclic, nested too deeply, or contains an unsupported
        type (bytes, sets, ``Decimal``, datetimes, arbitrary objects).
    """
    try:
        return _render(value, "$", set())
    except RecursionError as exc:
        raise InvalidInputError("Value is nested too deeply to canonicalize") from exc


def canonicalize_bytes(value: CanonicalValue) -> bytes:
    """Return the UTF-8 encoding of :func:`canonicalize`."""
    return canonicalize(value).encode("utf-8")
