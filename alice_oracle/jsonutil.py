"""orjson wrappers used for payloads, the recall file and CLI output."""

from __future__ import annotations

from typing import Any

import orjson


def loads(data: str | bytes | bytearray) -> Any:
    """Parse JSON text; raises ``ValueError`` (``orjson.JSONDecodeError``) on garbage."""
    return orjson.loads(data)


def dumps_bytes(obj: Any, *, indent: int | None = None, sort_keys: bool = False) -> bytes:
    option = 0
    if indent:
        option |= orjson.OPT_INDENT_2
    if sort_keys:
        option |= orjson.OPT_SORT_KEYS
    # unsupported types are written as str()
    return orjson.dumps(obj, option=option, default=str)


def dumps(obj: Any, *, indent: int | None = None, sort_keys: bool = False) -> str:
    return dumps_bytes(obj, indent=indent, sort_keys=sort_keys).decode("utf-8")


__all__ = ["dumps", "dumps_bytes", "loads"]
