"""Path variable converters.

Each converter knows how to recognise, parse, and format one kind of
path segment (``{id:int}``, ``{slug}``, ``{rest:path}``). ``parse`` and
``format`` are inverses over the values a converter accepts, which is
what makes ``decode(encode(route))`` hold.
"""

import math
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote, unquote


@dataclass(frozen=True, slots=True)
class Converter:
    """Recognise, parse, and format a single kind of path variable."""

    name: str
    regex: str
    parse: Callable[[str], Any]
    format: Callable[[Any], str]
    catch_all: bool = False


def _parse_str(raw: str) -> str:
    value = unquote(raw)
    if not value:
        msg = "empty segment"
        raise ValueError(msg)
    return value


def _format_str(value: Any) -> str:
    if not isinstance(value, str):
        msg = f"Expected str, got {type(value).__name__}"
        raise ValueError(msg)
    if not value:
        msg = "Cannot encode an empty string as a path segment"
        raise ValueError(msg)
    return quote(value, safe="")


def _format_int(value: Any) -> str:
    if isinstance(value, bool) or not isinstance(value, int):
        msg = f"Expected int, got {type(value).__name__}"
        raise ValueError(msg)
    return str(value)


def _format_float(value: Any) -> str:
    if isinstance(value, bool) or not isinstance(value, int | float):
        msg = f"Expected float, got {type(value).__name__}"
        raise ValueError(msg)
    number = float(value)
    if not math.isfinite(number):
        msg = f"Cannot encode non-finite float {number!r} as a path segment"
        raise ValueError(msg)
    return repr(number)


def _parse_float(raw: str) -> float:
    number = float(raw)
    if not math.isfinite(number):
        msg = f"non-finite float {raw!r}"
        raise ValueError(msg)
    return number


def _format_uuid(value: Any) -> str:
    return str(uuid.UUID(str(value)))


def _parse_path(raw: str) -> str:
    value = unquote(raw)
    if not value:
        msg = "empty path"
        raise ValueError(msg)
    return value


def _format_path(value: Any) -> str:
    if not isinstance(value, str):
        msg = f"Expected str, got {type(value).__name__}"
        raise ValueError(msg)
    # Empty segments would be dropped by the router
    if not value or value.startswith("/") or value.endswith("/") or "//" in value:
        msg = f"Cannot encode {value!r} as a path tail"
        raise ValueError(msg)
    return quote(value, safe="/")


CONVERTERS: dict[str, Converter] = {
    "str": Converter("str", r"[^/]+", _parse_str, _format_str),
    "int": Converter("int", r"-?[0-9]+", int, _format_int),
    "float": Converter(
        "float",
        r"[-+]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][-+]?[0-9]+)?",
        _parse_float,
        _format_float,
    ),
    "uuid": Converter(
        "uuid",
        r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}",
        uuid.UUID,
        _format_uuid,
    ),
    "path": Converter("path", r".+", _parse_path, _format_path, catch_all=True),
}

# Field annotation -> converter name, used when a pattern omits ``:type``
_ANNOTATION_CONVERTERS: dict[Any, str] = {
    str: "str",
    int: "int",
    float: "float",
    uuid.UUID: "uuid",
}


def converter_for_annotation(annotation: Any) -> str:
    """Pick a converter name from a route field's type annotation.

    Unknown or missing annotations fall back to ``"str"``.
    """
    return _ANNOTATION_CONVERTERS.get(annotation, "str")


def convert_param(value: str, param_type: str) -> Any:
    """Convert a captured path segment to the target type.

    Raises ``ValueError`` if the string cannot be converted.
    Raises ``KeyError`` if *param_type* is not a registered converter.
    """
    return CONVERTERS[param_type].parse(value)
