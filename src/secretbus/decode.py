"""Typed decoding of values returned by the Secret Service.

Replies arrive as loosely typed Python values. Each helper checks one field
against the type the protocol prescribes and raises :class:`DecodeError`
on mismatch instead of falling back to a default.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from secretbus.exceptions import DecodeError
from secretbus.models import Secret


def _invalid(expected: str, value: Any) -> DecodeError:
    return DecodeError(
        f"invalid type: expected a '{expected}' but got '{type(value).__name__}'"
    )


def expect_arity(body: tuple[Any, ...], count: int) -> tuple[Any, ...]:
    """Check that a reply body carries exactly *count* values."""
    if not isinstance(body, (tuple, list)):
        raise _invalid("tuple", body)
    if len(body) != count:
        raise DecodeError(f"expected {count} results but got {len(body)}")
    return tuple(body)


def expect_single(body: tuple[Any, ...]) -> Any:
    return expect_arity(body, 1)[0]


def expect_str(value: Any) -> str:
    if not isinstance(value, str):
        raise _invalid("string", value)
    return value


def expect_bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise _invalid("bool", value)
    return value


def expect_object_path(value: Any) -> str:
    """Object paths are strings rooted at ``/``."""
    if not isinstance(value, str) or not value.startswith("/"):
        raise _invalid("ObjectPath", value)
    return value


def expect_object_paths(value: Any) -> list[str]:
    if not isinstance(value, (list, tuple)):
        raise _invalid("[]ObjectPath", value)
    return [expect_object_path(v) for v in value]


def expect_attributes(value: Any) -> dict[str, str]:
    if not isinstance(value, dict):
        raise _invalid("map[string]string", value)
    for key, val in value.items():
        if not isinstance(key, str) or not isinstance(val, str):
            raise _invalid("map[string]string", value)
    return dict(value)


def expect_timestamp(value: Any) -> datetime:
    """Decode a D-Bus ``t`` (seconds since the epoch) into an aware UTC datetime."""
    # bool is an int subclass
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise _invalid("uint64", value)
    return datetime.fromtimestamp(value, tz=timezone.utc)


def expect_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    raise _invalid("[]byte", value)


def expect_secret(value: Any) -> Secret:
    """Decode an ``(oayays)`` struct into a :class:`Secret`."""
    session, parameters, payload, content_type = expect_arity(value, 4)
    return Secret(
        session=expect_object_path(session),
        parameters=expect_bytes(parameters),
        value=expect_bytes(payload),
        content_type=expect_str(content_type),
    )


def expect_secret_map(value: Any) -> dict[str, Secret]:
    """Decode the ``a{o(oayays)}`` reply of ``Service.GetSecrets``."""
    if not isinstance(value, dict):
        raise _invalid("map[ObjectPath]Secret", value)
    return {
        expect_object_path(path): expect_secret(secret)
        for path, secret in value.items()
    }
