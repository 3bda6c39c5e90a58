"""Syntax of the reference expression language: special forms, builtins, scoping."""

from typing import Dict, FrozenSet, Set, Tuple

from .values import Cons, Nil, Num, Str, Sym, Value, split_list, to_list


SPECIAL_FORMS = frozenset({"quote", "lambda", "let", "letrec", "if", "begin", "delay"})

SELF_EVALUATING = frozenset({"t", "nil"})

# builtin name -> (family, arity). Families become NIVC circuit indices.
BUILTINS: Dict[str, Tuple[str, int]] = {
    "+": ("arith", 2),
    "-": ("arith", 2),
    "*": ("arith", 2),
    "/": ("arith", 2),
    "%": ("arith", 2),
    "=": ("cmp", 2),
    "<": ("cmp", 2),
    ">": ("cmp", 2),
    "<=": ("cmp", 2),
    ">=": ("cmp", 2),
    "eq": ("cmp", 2),
    "cons": ("pair", 2),
    "car": ("pair", 1),
    "cdr": ("pair", 1),
    "atom": ("pair", 1),
    "force": ("core", 1),
}

BUILTIN_FAMILIES: Tuple[str, ...] = ("arith", "cmp", "pair")

CORE_META = "core"


def head_name(expr: Value):
    """Name of the head symbol of a form, or None."""
    if isinstance(expr, Cons) and isinstance(expr.car, Sym):
        return expr.car.name
    return None


def binding_pairs(bindings: Value):
    """Parse ((name expr) ...) into [(name, expr)], or None if malformed."""
    items = to_list(bindings)
    if items is None:
        return None
    pairs = []
    for item in items:
        parts = to_list(item)
        if parts is None or len(parts) != 2 or not isinstance(parts[0], Sym):
            return None
        pairs.append((parts[0].name, parts[1]))
    return pairs


def param_names(params: Value):
    """Parse (a b c) into a tuple of names, or None if malformed."""
    items = to_list(params)
    if items is None or not all(isinstance(p, Sym) for p in items):
        return None
    names = tuple(p.name for p in items)
    if len(set(names)) != len(names):
        return None
    return names


def _union(exprs) -> Set[str]:
    result: Set[str] = set()
    for e in exprs:
        result |= free_variables(e)
    return result


def free_variables(expr: Value) -> FrozenSet[str]:
    """Names referenced but not bound inside expr.

    Malformed special forms are scanned as plain applications; the
    evaluator reports the syntax error when (if) the form is evaluated.
    """
    if isinstance(expr, Sym):
        if expr.name in SELF_EVALUATING:
            return frozenset()
        return frozenset({expr.name})
    if not isinstance(expr, Cons):
        return frozenset()

    items, _tail = split_list(expr)
    name = head_name(expr)
    args = items[1:]

    if name == "quote":
        return frozenset()
    if name == "lambda" and len(args) == 2:
        params = param_names(args[0])
        if params is not None:
            return frozenset(free_variables(args[1]) - set(params))
    if name in ("let", "letrec") and len(args) == 2:
        pairs = binding_pairs(args[0])
        if pairs is not None:
            acc = set(free_variables(args[1]))
            for bound, value_expr in reversed(pairs):
                acc.discard(bound)
                value_free = set(free_variables(value_expr))
                if name == "letrec":
                    value_free.discard(bound)
                acc |= value_free
            return frozenset(acc)
    if name in SPECIAL_FORMS or name in BUILTINS:
        return frozenset(_union(args))
    return frozenset(_union(items))


def is_atom(value: Value) -> bool:
    return isinstance(value, (Num, Sym, Str, Nil))
