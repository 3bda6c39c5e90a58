"""Canonical encoding of values into JSON trees (and back).

The encoding is what commitments hash, so it must not depend on how an
environment happens to be laid out:

- a closure's environment is pruned to the free variables of its body
  and emitted as a key-sorted object;
- cons chains are flattened: ["cons", [car, ...], tail] with a non-cons tail;
- ints are JSON integers; strings and names are already NFC (values
  normalize their text on construction).

Strict mode (used for commitments) refuses suspended computations.
"""

from typing import Any, Dict, List

from .errors import SerializationError
from .syntax import free_variables
from .values import (
    NIL,
    Closure,
    Cons,
    Env,
    Fix,
    Nil,
    Num,
    Str,
    Sym,
    Thunk,
    Value,
    make_list,
    split_list,
)


def _encode_env(env: Env, names, strict: bool, path: str) -> Dict[str, Any]:
    captured = env.restrict(names)
    return {
        name: _encode(value, strict=strict, path=f"{path}.env.{name}")
        for name, value in captured.items()
    }


def _encode(value: Value, strict: bool, path: str) -> Any:
    if isinstance(value, Num):
        if isinstance(value.value, bool) or not isinstance(value.value, int):
            raise SerializationError(
                f"Numbers must be integers at {path}, got {type(value.value).__name__}"
            )
        return ["num", value.value]
    if isinstance(value, Sym):
        return ["sym", value.name]
    if isinstance(value, Str):
        return ["str", value.value]
    if isinstance(value, Nil):
        return ["nil"]
    if isinstance(value, Cons):
        items, tail = split_list(value)
        return [
            "cons",
            [_encode(item, strict, f"{path}[{i}]") for i, item in enumerate(items)],
            _encode(tail, strict, f"{path}.tail"),
        ]
    if isinstance(value, Closure):
        names = free_variables(value.body) - set(value.params)
        return [
            "fun",
            list(value.params),
            _encode(value.body, strict, f"{path}.body"),
            _encode_env(value.env, names, strict, path),
        ]
    if isinstance(value, Fix):
        names = free_variables(value.body) - set(value.params) - {value.name}
        return [
            "fix",
            value.name,
            list(value.params),
            _encode(value.body, strict, f"{path}.body"),
            _encode_env(value.env, names, strict, path),
        ]
    if isinstance(value, Thunk):
        if strict:
            raise SerializationError(
                f"Suspended computation at {path} has no canonical encoding; force it first"
            )
        names = free_variables(value.expr)
        return [
            "thunk",
            _encode(value.expr, strict, f"{path}.expr"),
            _encode_env(value.env, names, strict, path),
        ]
    raise SerializationError(
        f"Value at {path} is outside the representable subset: {type(value).__name__}"
    )


def encode_value(value: Value, strict: bool = True, path: str = "$") -> Any:
    """Encode a value as a canonical JSON tree.

    Args:
        value: Value to encode
        strict: If True, suspended computations raise SerializationError
        path: Location used in error messages

    Returns:
        JSON-compatible tree (lists, dicts, str, int)

    Raises:
        SerializationError: If value is outside the representable subset
            or nested too deeply to encode
    """
    try:
        return _encode(value, strict, path)
    except RecursionError:
        raise SerializationError(f"Value at {path} is nested too deeply to encode") from None


def _expect(cond: bool, message: str) -> None:
    if not cond:
        raise SerializationError(message)


def _decode_env(obj: Any, path: str) -> Env:
    _expect(isinstance(obj, dict), f"Environment at {path} must be an object")
    return Env({name: _decode(v, f"{path}.{name}") for name, v in obj.items()})


def _decode_params(obj: Any, path: str):
    _expect(
        isinstance(obj, list) and all(isinstance(p, str) for p in obj),
        f"Parameters at {path} must be a list of names",
    )
    return tuple(obj)


def _decode(obj: Any, path: str) -> Value:
    _expect(isinstance(obj, list) and obj and isinstance(obj[0], str), f"Malformed value at {path}")
    tag = obj[0]
    if tag == "num":
        _expect(len(obj) == 2 and isinstance(obj[1], int) and not isinstance(obj[1], bool),
                f"Malformed num at {path}")
        return Num(obj[1])
    if tag == "sym":
        _expect(len(obj) == 2 and isinstance(obj[1], str), f"Malformed sym at {path}")
        return Sym(obj[1])
    if tag == "str":
        _expect(len(obj) == 2 and isinstance(obj[1], str), f"Malformed str at {path}")
        return Str(obj[1])
    if tag == "nil":
        _expect(len(obj) == 1, f"Malformed nil at {path}")
        return NIL
    if tag == "cons":
        _expect(len(obj) == 3 and isinstance(obj[1], list) and obj[1], f"Malformed cons at {path}")
        items: List[Value] = [_decode(item, f"{path}[{i}]") for i, item in enumerate(obj[1])]
        tail = _decode(obj[2], f"{path}.tail")
        _expect(not isinstance(tail, Cons), f"Non-canonical cons tail at {path}")
        return make_list(items, tail)
    if tag == "fun":
        _expect(len(obj) == 4, f"Malformed fun at {path}")
        return Closure(
            _decode_params(obj[1], path),
            _decode(obj[2], f"{path}.body"),
            _decode_env(obj[3], f"{path}.env"),
        )
    if tag == "fix":
        _expect(len(obj) == 5 and isinstance(obj[1], str), f"Malformed fix at {path}")
        return Fix(
            obj[1],
            _decode_params(obj[2], path),
            _decode(obj[3], f"{path}.body"),
            _decode_env(obj[4], f"{path}.env"),
        )
    raise SerializationError(f"Unknown value tag '{tag}' at {path}")


def decode_value(obj: Any, path: str = "$") -> Value:
    """Inverse of encode_value; raises SerializationError on malformed input."""
    try:
        return _decode(obj, path)
    except RecursionError:
        raise SerializationError(f"Value at {path} is nested too deeply to decode") from None
