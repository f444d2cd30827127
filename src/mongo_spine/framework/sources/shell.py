"""
Mongo shell filter syntax.

Import configurations often carry filters written for the mongo shell rather
than strict Extended JSON::

    {status: 'open', _id: ObjectId('64e1f0c2a1b2c3d4e5f60718')}
    {"ts": {"$gte": ISODate("2025-08-20T04:34:56Z")}}

``parse_query`` reads strict Extended JSON first and only falls back to
``shell_to_extended_json``, which rewrites the shell constructs below into
their Extended JSON form so ``bson.json_util`` does the actual decoding.

    unquoted keys           status:            -> "status":
    single-quoted strings   'open'             -> "open"
    ObjectId(s)                                -> {"$oid": s}
    ISODate(s), [new] Date(s)                  -> {"$date": s}
    Date(millis)                               -> {"$date": {"$numberLong": millis}}
    NumberLong / NumberInt / NumberDecimal(x)  -> {"$numberLong": "x"} ...

Regular expression literals, functions and comments are not supported.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Iterator
from typing import Any

from bson import json_util
from bson.errors import BSONError

_TOKEN_RE = re.compile(
    r"""
      (?P<space>\s+)
    | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')    # either quote style
    | (?P<number>[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)
    | (?P<name>[A-Za-z_$][\w$]*)                         # keys, literals, constructors
    | (?P<punct>[{}\[\]:,()])
    """,
    re.VERBOSE | re.DOTALL,
)

_JSON_NUMBER_RE = re.compile(r"-?(?:0|[1-9]\d*)(?:\.\d+)?(?:[eE][-+]?\d+)?")
_ESCAPE_RE = re.compile(r"\\(.)|\"", re.DOTALL)

_LITERALS = frozenset({"true", "false", "null"})


class ShellSyntaxError(ValueError):
    """Query text is neither Extended JSON nor supported shell syntax."""


def _tokenize(text: str) -> Iterator[tuple[str, str, int]]:
    pos = 0
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            raise ShellSyntaxError(f"Unexpected character {text[pos]!r} at offset {pos}")
        kind = match.lastgroup or ""
        if kind != "space":
            yield kind, match.group(), pos
        pos = match.end()


def _unquote(token: str) -> str:
    def _escape(match: re.Match[str]) -> str:
        if match.group(1) is None:
            return '\\"'
        return "'" if match.group(1) == "'" else match.group(0)

    return json.loads('"' + _ESCAPE_RE.sub(_escape, token[1:-1]) + '"')


def _number(token: str) -> str:
    token = token.lstrip("+")
    if _JSON_NUMBER_RE.fullmatch(token):
        return token
    return repr(float(token))


def _single_arg(name: str, args: list[tuple[str, str]]) -> tuple[str, str]:
    if len(args) != 1:
        raise ShellSyntaxError(f"{name}() takes exactly one argument, got {len(args)}")
    return args[0]


def _object_id(name: str, args: list[tuple[str, str]]) -> dict[str, Any]:
    kind, value = _single_arg(name, args)
    if kind != "string":
        raise ShellSyntaxError(f"{name}() expects a hex string")
    return {"$oid": value}


def _date(name: str, args: list[tuple[str, str]]) -> dict[str, Any]:
    kind, value = _single_arg(name, args)
    if kind == "number":
        return {"$date": {"$numberLong": str(int(float(value)))}}
    return {"$date": value}


def _numeric(wrapper: str) -> Callable[[str, list[tuple[str, str]]], dict[str, Any]]:
    def _convert(name: str, args: list[tuple[str, str]]) -> dict[str, Any]:
        _, value = _single_arg(name, args)
        return {wrapper: value}

    return _convert


_CONSTRUCTORS: dict[str, Callable[[str, list[tuple[str, str]]], dict[str, Any]]] = {
    "ObjectId": _object_id,
    "ISODate": _date,
    "Date": _date,
    "NumberLong": _numeric("$numberLong"),
    "NumberInt": _numeric("$numberInt"),
    "NumberDecimal": _numeric("$numberDecimal"),
}


def _call_args(
    tokens: list[tuple[str, str, int]], start: int, name: str
) -> tuple[list[tuple[str, str]], int]:
    """Collect constructor arguments from ``start``; returns them and the index after ``)``."""
    args: list[tuple[str, str]] = []
    index = start
    while index < len(tokens):
        kind, value, pos = tokens[index]
        if value == ")" and kind == "punct":
            return args, index + 1
        if kind == "string":
            args.append((kind, _unquote(value)))
        elif kind == "number":
            args.append((kind, _number(value)))
        elif value != ",":
            raise ShellSyntaxError(f"Unexpected {value!r} in {name}() at offset {pos}")
        index += 1
    raise ShellSyntaxError(f"Unclosed {name}(")


def shell_to_extended_json(text: str) -> str:
    """Rewrite mongo shell filter syntax into Extended JSON text.

    Raises:
        ShellSyntaxError: The text uses a construct that is not supported
    """
    tokens = list(_tokenize(text))
    out: list[str] = []
    index = 0
    while index < len(tokens):
        kind, value, pos = tokens[index]
        following = tokens[index + 1][1] if index + 1 < len(tokens) else None

        match kind:
            case "string":
                out.append(json.dumps(_unquote(value)))
            case "number":
                out.append(_number(value))
            case "punct":
                out.append(value)
            case _:
                if following == ":":
                    out.append(json.dumps(value))
                elif value in _LITERALS:
                    out.append(value)
                elif value == "new" and following in _CONSTRUCTORS:
                    pass
                elif value in _CONSTRUCTORS and following == "(":
                    args, index = _call_args(tokens, index + 2, value)
                    out.append(json.dumps(_CONSTRUCTORS[value](value, args)))
                    continue
                else:
                    raise ShellSyntaxError(f"Unexpected name {value!r} at offset {pos}")
        index += 1
    return "".join(out)


def parse_query(text: str) -> Any:
    """Decode query text as Extended JSON, falling back to shell syntax.

    Raises:
        ValueError: Neither form parses (``ShellSyntaxError`` included)
        BSONError: An Extended JSON wrapper holds an invalid value
    """
    try:
        return json_util.loads(text)
    except (ValueError, TypeError, BSONError):
        return json_util.loads(shell_to_extended_json(text))


__all__ = ["ShellSyntaxError", "parse_query", "shell_to_extended_json"]
