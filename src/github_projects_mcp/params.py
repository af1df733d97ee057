"""Typed extraction of tool arguments.

Schema validation in the dispatch layer already rejects most malformed input; these helpers
are what handlers use to pull values out with the right Python type and defaults.
"""

from __future__ import annotations

from typing import Any, TypeVar

from .errors import SafeError

T = TypeVar("T")

_KIND_NAMES: dict[type, str] = {
    str: "a string",
    bool: "a boolean",
    int: "an integer",
    float: "a number",
    dict: "an object",
    list: "an array",
}


def _matches(value: object, kind: type) -> bool:
    # bool is an int subclass; never accept it for numeric parameters.
    if kind in (int, float) and isinstance(value, bool):
        return False
    if kind is float:
        return isinstance(value, (int, float))
    return isinstance(value, kind)


def _wrong_type(name: str, kind: type) -> SafeError:
    return SafeError(code="UserInput", message=f"Parameter '{name}' must be {_KIND_NAMES.get(kind, kind.__name__)}")


def required_param(arguments: dict[str, Any], name: str, kind: type[T]) -> T:
    """Return a required parameter, failing when absent, null, empty or mistyped."""
    if name not in arguments or arguments[name] is None:
        raise SafeError(code="UserInput", message=f"Missing required parameter: {name}")
    value = arguments[name]
    if not _matches(value, kind):
        raise _wrong_type(name, kind)
    if kind is str and not value:
        raise SafeError(code="UserInput", message=f"Missing required parameter: {name}")
    return value


def optional_param(arguments: dict[str, Any], name: str, kind: type[T], default: T | None = None) -> T | None:
    """Return an optional parameter or `default` when absent or null."""
    value = arguments.get(name)
    if value is None:
        return default
    if not _matches(value, kind):
        raise _wrong_type(name, kind)
    return value


def optional_int_param(arguments: dict[str, Any], name: str, default: int) -> int:
    """Return an optional integer parameter.

    JSON clients frequently send whole numbers as floats (`20.0`); those are accepted.
    """
    value = arguments.get(name)
    if value is None:
        return default
    if isinstance(value, bool):
        raise _wrong_type(name, int)
    if isinstance(value, float):
        if not value.is_integer():
            raise _wrong_type(name, int)
        return int(value)
    if not isinstance(value, int):
        raise _wrong_type(name, int)
    return value


def _string_array(name: str, value: object) -> list[str]:
    if not isinstance(value, list):
        raise _wrong_type(name, list)
    out: list[str] = []
    for idx, item in enumerate(value):
        if not isinstance(item, str):
            raise SafeError(code="UserInput", message=f"Parameter '{name}' element {idx} must be a string")
        out.append(item)
    return out


def required_string_array_param(arguments: dict[str, Any], name: str) -> list[str]:
    """Return a required array whose elements must all be strings."""
    if arguments.get(name) is None:
        raise SafeError(code="UserInput", message=f"Missing required parameter: {name}")
    return _string_array(name, arguments[name])


def optional_string_array_param(arguments: dict[str, Any], name: str) -> list[str]:
    """Return an optional string array, empty when absent."""
    value = arguments.get(name)
    if value is None:
        return []
    return _string_array(name, value)
