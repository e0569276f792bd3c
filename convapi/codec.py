"""Codec - JSON encoding and decoding with configurable date handling.

Values are converted with pydantic: request bodies are dumped to plain
Python data, dates are rendered according to the active DateStrategy, and
the result is serialized with pydantic_core. Response bodies are validated
into the requested type with a TypeAdapter, then checked against the
decoding DateStrategy.

CodecSettings are snapshotted by the client at the start of every call;
mutating them while calls are in flight gives no ordering guarantee.
"""

from __future__ import annotations

import dataclasses
from datetime import datetime, timezone
from enum import Enum
from functools import lru_cache
from typing import Any, Mapping, TypeVar

import pydantic_core
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from convapi.errors import CodecError

T = TypeVar("T")


class DateStrategy(str, Enum):
    """How datetime values are represented in JSON."""

    ISO8601 = "iso8601"  # "2019-01-18T12:10:28Z" (default)
    SECONDS_SINCE_1970 = "seconds_since_1970"  # 1547813428.0


class CodecSettings(BaseModel):
    """Encode/decode configuration owned by a single client.

    date_encoding and date_decoding are independent: a client may send
    epoch seconds while still reading ISO-8601 strings, or vice versa.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    date_encoding: DateStrategy = Field(
        default=DateStrategy.ISO8601, description="Date rendering for request bodies"
    )
    date_decoding: DateStrategy = Field(
        default=DateStrategy.ISO8601, description="Date parsing for response bodies"
    )


# =============================================================================
# Encoding
# =============================================================================


def _render_date(value: datetime, strategy: DateStrategy) -> str | float:
    # Naive datetimes are taken to be UTC.
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    if strategy is DateStrategy.SECONDS_SINCE_1970:
        return value.timestamp()
    timespec = "seconds" if value.microsecond == 0 else "microseconds"
    rendered = value.isoformat(timespec=timespec)
    if rendered.endswith("+00:00"):
        rendered = rendered[: -len("+00:00")] + "Z"
    return rendered


def _to_plain(value: Any) -> Any:
    """Dump models and dataclasses to builtin containers, keeping datetimes."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="python", by_alias=True)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return TypeAdapter(type(value)).dump_python(value, mode="python")
    return value


def _apply_date_strategy(value: Any, strategy: DateStrategy) -> Any:
    if isinstance(value, datetime):
        return _render_date(value, strategy)
    if isinstance(value, BaseModel) or (
        dataclasses.is_dataclass(value) and not isinstance(value, type)
    ):
        return _apply_date_strategy(_to_plain(value), strategy)
    if isinstance(value, Mapping):
        return {key: _apply_date_strategy(item, strategy) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_apply_date_strategy(item, strategy) for item in value]
    return value


def encode(value: Any, settings: CodecSettings | None = None) -> bytes:
    """Serialize a value to JSON bytes.

    Args:
        value: A pydantic model, dataclass, mapping, sequence or scalar.
        settings: Codec settings; defaults apply when None.

    Returns:
        UTF-8 encoded JSON.

    Raises:
        CodecError: If the value cannot be represented as JSON.
    """
    settings = settings or CodecSettings()
    try:
        plain = _apply_date_strategy(_to_plain(value), settings.date_encoding)
        return pydantic_core.to_json(plain)
    except (pydantic_core.PydanticSerializationError, ValueError, TypeError) as e:
        raise CodecError(f"Cannot encode {type(value).__name__}: {e}") from e


# =============================================================================
# Decoding
# =============================================================================


@lru_cache(maxsize=256)
def _adapter(type_: Any) -> TypeAdapter[Any]:
    return TypeAdapter(type_)


def _check_dates(decoded: Any, raw: Any, strategy: DateStrategy, path: str) -> None:
    """Walk a decoded value alongside its raw JSON and enforce the date strategy.

    pydantic accepts both ISO strings and epoch numbers for datetime fields;
    this narrows that to the representation the strategy names.
    """
    if isinstance(decoded, datetime):
        if strategy is DateStrategy.ISO8601 and not isinstance(raw, str):
            raise CodecError(f"{path or '<root>'}: expected ISO-8601 date string, got {raw!r}")
        if strategy is DateStrategy.SECONDS_SINCE_1970 and (
            isinstance(raw, bool) or not isinstance(raw, (int, float))
        ):
            raise CodecError(f"{path or '<root>'}: expected seconds since 1970, got {raw!r}")
        return

    if isinstance(decoded, BaseModel) and isinstance(raw, Mapping):
        for name, field in type(decoded).model_fields.items():
            key = field.alias or name
            if key in raw:
                _check_dates(getattr(decoded, name), raw[key], strategy, f"{path}.{key}")
    elif dataclasses.is_dataclass(decoded) and isinstance(raw, Mapping):
        for field in dataclasses.fields(decoded):
            if field.name in raw:
                _check_dates(
                    getattr(decoded, field.name), raw[field.name], strategy, f"{path}.{field.name}"
                )
    elif isinstance(decoded, Mapping) and isinstance(raw, Mapping):
        for key, item in decoded.items():
            if key in raw:
                _check_dates(item, raw[key], strategy, f"{path}.{key}")
    elif isinstance(decoded, (list, tuple)) and isinstance(raw, list):
        for index, (item, raw_item) in enumerate(zip(decoded, raw)):
            _check_dates(item, raw_item, strategy, f"{path}[{index}]")


def decode(data: bytes, type_: type[T] | Any, settings: CodecSettings | None = None) -> T:
    """Validate JSON bytes into an instance of type_.

    Args:
        data: Raw JSON bytes.
        type_: Any type pydantic can validate (models, dataclasses, TypedDicts,
               builtin containers).
        settings: Codec settings; defaults apply when None.

    Returns:
        The decoded value.

    Raises:
        CodecError: If the bytes are not JSON, do not match type_, or carry
                    dates in the wrong representation.
    """
    settings = settings or CodecSettings()
    try:
        raw = pydantic_core.from_json(data)
        value = _adapter(type_).validate_python(raw)
    except (ValidationError, ValueError, TypeError) as e:
        # TypeError: TypeAdapter cannot build a schema for type_
        raise CodecError(f"Cannot decode {getattr(type_, '__name__', type_)}: {e}") from e
    _check_dates(value, raw, settings.date_decoding, "")
    return value
