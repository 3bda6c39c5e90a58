"""Value domain of the reference evaluator.

Expressions are values too (code is data): the reader produces Sym/Num/Str
atoms and Cons lists, and the evaluator interprets them.
"""

from __future__ import annotations

import unicodedata
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union


def nfc(text: str) -> str:
    """NFC form of text; names and strings are kept in this form only."""
    if unicodedata.is_normalized("NFC", text):
        return text
    return unicodedata.normalize("NFC", text)


@dataclass(frozen=True)
class Num:
    value: int


@dataclass(frozen=True)
class Sym:
    name: str

    def __post_init__(self):
        object.__setattr__(self, "name", nfc(self.name))


@dataclass(frozen=True)
class Str:
    value: str

    def __post_init__(self):
        object.__setattr__(self, "value", nfc(self.value))


@dataclass(frozen=True)
class Nil:
    pass


@dataclass(frozen=True)
class Cons:
    car: "Value"
    cdr: "Value"


@dataclass(frozen=True)
class Closure:
    """A function value: parameters, body expression and captured environment."""
    params: Tuple[str, ...]
    body: "Value"
    env: "Env"

    def __post_init__(self):
        object.__setattr__(self, "params", tuple(nfc(p) for p in self.params))


@dataclass(frozen=True)
class Fix:
    """Self-reference bound by letrec; looking it up yields a Closure.

    env is the environment the lambda was defined in, without the
    binding for name itself, so the structure stays finite.
    """
    name: str
    params: Tuple[str, ...]
    body: "Value"
    env: "Env"

    def __post_init__(self):
        object.__setattr__(self, "name", nfc(self.name))
        object.__setattr__(self, "params", tuple(nfc(p) for p in self.params))

    def materialize(self) -> Closure:
        return Closure(self.params, self.body, self.env.extend({self.name: self}))


@dataclass(frozen=True)
class Thunk:
    """A suspended computation created by (delay ...)."""
    expr: "Value"
    env: "Env"


Value = Union[Num, Sym, Str, Nil, Cons, Closure, Fix, Thunk]

NIL = Nil()
T = Sym("t")


class Env:
    """Immutable name -> value mapping; extend() returns a new Env."""

    __slots__ = ("_bindings",)

    def __init__(self, bindings: Optional[Mapping[str, Value]] = None):
        self._bindings: Dict[str, Value] = {nfc(k): v for k, v in (bindings or {}).items()}

    def extend(self, bindings: Mapping[str, Value]) -> "Env":
        merged = dict(self._bindings)
        merged.update(bindings)
        return Env(merged)

    def lookup(self, name: str) -> Optional[Value]:
        return self._bindings.get(name)

    def restrict(self, names: Iterable[str]) -> "Env":
        return Env({n: self._bindings[n] for n in names if n in self._bindings})

    def names(self) -> List[str]:
        return sorted(self._bindings)

    def items(self):
        return sorted(self._bindings.items())

    def __contains__(self, name: str) -> bool:
        return name in self._bindings

    def __len__(self) -> int:
        return len(self._bindings)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Env) and self._bindings == other._bindings

    def __hash__(self) -> int:
        return hash(tuple(self.names()))

    def __repr__(self) -> str:
        return f"Env({self.names()})"


EMPTY_ENV = Env()


def is_function(value: Value) -> bool:
    return isinstance(value, (Closure, Fix))


def as_closure(value: Value) -> Closure:
    if isinstance(value, Fix):
        return value.materialize()
    if isinstance(value, Closure):
        return value
    raise TypeError(f"not a function: {print_value(value)}")


def truthy(value: Value) -> bool:
    return not isinstance(value, Nil)


def from_bool(flag: bool) -> Value:
    return T if flag else NIL


def make_list(items: Iterable[Value], tail: Value = NIL) -> Value:
    result = tail
    for item in reversed(list(items)):
        result = Cons(item, result)
    return result


def split_list(value: Value) -> Tuple[List[Value], Value]:
    """Return (items, tail) of a possibly improper list."""
    items = []
    while isinstance(value, Cons):
        items.append(value.car)
        value = value.cdr
    return items, value


def to_list(value: Value) -> Optional[List[Value]]:
    """Items of a proper list, or None if value is not a proper list."""
    items, tail = split_list(value)
    if not isinstance(tail, Nil):
        return None
    return items


def _print_string(s: str) -> str:
    escaped = s.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def print_value(value: Value) -> str:
    """Render a value as s-expression text."""
    if isinstance(value, Num):
        return str(value.value)
    if isinstance(value, Sym):
        return value.name
    if isinstance(value, Str):
        return _print_string(value.value)
    if isinstance(value, Nil):
        return "nil"
    if isinstance(value, Cons):
        if isinstance(value.car, Sym) and value.car.name == "quote":
            quoted = to_list(value.cdr)
            if quoted is not None and len(quoted) == 1:
                return "'" + print_value(quoted[0])
        items, tail = split_list(value)
        inner = " ".join(print_value(item) for item in items)
        if not isinstance(tail, Nil):
            inner += " . " + print_value(tail)
        return f"({inner})"
    if isinstance(value, (Closure, Fix)):
        return f"<FUNCTION ({' '.join(value.params)}) {print_value(value.body)}>"
    if isinstance(value, Thunk):
        return f"<THUNK {print_value(value.expr)}>"
    return f"<HOST {type(value).__name__}>"
