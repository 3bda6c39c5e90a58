"""Evaluator oracle contract and the reference small-step evaluator.

The chain controller only depends on EvaluatorOracle. The reference
Evaluator is a CEK-style machine: every reduction moves the machine from
one state to the next, and with tracing on each reduction is recorded as a
Frame linking the digest of the state before to the digest of the state
after. Two boundary states are defined independently of the machine so
the prover can recompute them from public data:

- call_state(fn_ref, args): the application the chain step starts from,
  where fn_ref is the head commitment (hex) rather than the function body;
- halt_state(result): the machine after producing its final value.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple, Union, runtime_checkable

from .encoding import encode_value
from .errors import EvaluationError
from .hash_utils import CanonicalizationError, state_digest
from .records import Frame
from .syntax import (
    BUILTINS,
    CORE_META,
    binding_pairs,
    free_variables,
    head_name,
    is_atom,
    param_names,
)
from .values import (
    EMPTY_ENV,
    NIL,
    T,
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
    from_bool,
    print_value,
    to_list,
    truthy,
)


logger = logging.getLogger(__name__)

DEFAULT_STEP_LIMIT = 10_000


@dataclass
class Evaluation:
    """Outcome of an evaluation: the value, step count and (optionally) frames."""
    value: Value
    steps: int
    frames: Optional[List[Frame]] = None


@runtime_checkable
class EvaluatorOracle(Protocol):
    """Deterministic reducer the chain controller depends on."""

    def evaluate(
        self,
        expr: Value,
        env: Env = EMPTY_ENV,
        *,
        limit: Optional[int] = None,
        trace: bool = False,
    ) -> Evaluation:
        """Evaluate expr in env. Raises EvaluationError on failure."""
        ...

    def apply(
        self,
        fn: Value,
        args: Sequence[Value],
        *,
        fn_ref: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> Evaluation:
        """Apply fn to args, always producing frames.

        The first frame's input is digest(call_state(fn_ref, args)) and the
        last frame's output is digest(halt_state(value)).
        """
        ...


def call_state(fn_ref: Any, args_encoding: List[Any]) -> Dict[str, Any]:
    return {"control": ["call", fn_ref, args_encoding], "kont": []}


def halt_state(result_encoding: Any) -> Dict[str, Any]:
    return {"control": ["halt", result_encoding], "kont": []}


# --- continuation frames -------------------------------------------------

@dataclass(frozen=True)
class _KArgs:
    """Evaluating operands; tag is a builtin name or 'apply'."""
    tag: str
    pending: Tuple[Value, ...]
    done: Tuple[Value, ...]
    env: Env
    next: Optional["_Kont"]

    def encode(self) -> Any:
        names = set()
        for expr in self.pending:
            names |= free_variables(expr)
        return [
            "args",
            self.tag,
            [encode_value(e, strict=False) for e in self.pending],
            [encode_value(v, strict=False) for v in self.done],
            _encode_scope(self.env, names),
        ]


@dataclass(frozen=True)
class _KIf:
    then: Value
    otherwise: Value
    env: Env
    next: Optional["_Kont"]

    def encode(self) -> Any:
        names = free_variables(self.then) | free_variables(self.otherwise)
        return [
            "if",
            encode_value(self.then, strict=False),
            encode_value(self.otherwise, strict=False),
            _encode_scope(self.env, names),
        ]


@dataclass(frozen=True)
class _KLet:
    name: str
    rest: Tuple[Tuple[str, Value], ...]
    body: Value
    env: Env
    next: Optional["_Kont"]

    def encode(self) -> Any:
        names = set(free_variables(self.body))
        for bound, expr in reversed(self.rest):
            names.discard(bound)
            names |= free_variables(expr)
        names.discard(self.name)
        return [
            "let",
            self.name,
            [[n, encode_value(e, strict=False)] for n, e in self.rest],
            encode_value(self.body, strict=False),
            _encode_scope(self.env, names),
        ]


@dataclass(frozen=True)
class _KBegin:
    rest: Tuple[Value, ...]
    env: Env
    next: Optional["_Kont"]

    def encode(self) -> Any:
        names = set()
        for expr in self.rest:
            names |= free_variables(expr)
        return [
            "begin",
            [encode_value(e, strict=False) for e in self.rest],
            _encode_scope(self.env, names),
        ]


_Kont = Union[_KArgs, _KIf, _KLet, _KBegin]


def _encode_scope(env: Env, names) -> Dict[str, Any]:
    return {n: encode_value(v, strict=False) for n, v in env.restrict(names).items()}


def _encode_kont(kont: Optional[_Kont]) -> List[Any]:
    frames = []
    while kont is not None:
        frames.append(kont.encode())
        kont = kont.next
    return frames


# --- machine states -------------------------------------------------------

@dataclass(frozen=True)
class _Eval:
    expr: Value
    env: Env
    kont: Optional[_Kont]


@dataclass(frozen=True)
class _Ret:
    value: Value
    kont: Optional[_Kont]


@dataclass(frozen=True)
class _Call:
    fn: Value
    args: Tuple[Value, ...]
    fn_ref: Any


@dataclass(frozen=True)
class _Halt:
    value: Value


def _state_digest(state) -> str:
    try:
        return state_digest(_encode_state(state))
    except CanonicalizationError as e:
        raise EvaluationError(f"Machine state cannot be hashed: {e}") from e
    except RecursionError:
        raise EvaluationError("Machine state is nested too deeply to hash") from None


def _encode_state(state) -> Any:
    if isinstance(state, _Eval):
        return {
            "control": [
                "eval",
                encode_value(state.expr, strict=False),
                _encode_scope(state.env, free_variables(state.expr)),
            ],
            "kont": _encode_kont(state.kont),
        }
    if isinstance(state, _Ret):
        return {
            "control": ["ret", encode_value(state.value, strict=False)],
            "kont": _encode_kont(state.kont),
        }
    if isinstance(state, _Call):
        return call_state(state.fn_ref, [encode_value(a, strict=False) for a in state.args])
    return halt_state(encode_value(state.value, strict=False))


# --- builtins ---------------------------------------------------------------

def _num(op: str, value: Value) -> int:
    if not isinstance(value, Num):
        raise EvaluationError(f"'{op}' expects numbers, got {print_value(value)}")
    return value.value


def _apply_builtin(op: str, args: Tuple[Value, ...]) -> Value:
    if op in ("+", "-", "*", "/", "%"):
        a, b = _num(op, args[0]), _num(op, args[1])
        if op == "+":
            return Num(a + b)
        if op == "-":
            return Num(a - b)
        if op == "*":
            return Num(a * b)
        if b == 0:
            raise EvaluationError(f"'{op}' by zero")
        return Num(a // b if op == "/" else a % b)
    if op in ("=", "<", ">", "<=", ">="):
        a, b = _num(op, args[0]), _num(op, args[1])
        return from_bool({
            "=": a == b,
            "<": a < b,
            ">": a > b,
            "<=": a <= b,
            ">=": a >= b,
        }[op])
    if op == "eq":
        return from_bool(args[0] == args[1])
    if op == "cons":
        return Cons(args[0], args[1])
    if op in ("car", "cdr"):
        target = args[0]
        if isinstance(target, Nil):
            return NIL
        if not isinstance(target, Cons):
            raise EvaluationError(f"'{op}' expects a pair, got {print_value(target)}")
        return target.car if op == "car" else target.cdr
    if op == "atom":
        return from_bool(is_atom(args[0]))
    raise EvaluationError(f"Unknown builtin '{op}'")


class Evaluator:
    """Reference implementation of EvaluatorOracle.

    Args:
        step_limit: Default reduction budget; exceeding it is an EvaluationError
    """

    def __init__(self, step_limit: int = DEFAULT_STEP_LIMIT):
        if step_limit <= 0:
            raise ValueError("step_limit must be positive")
        self.step_limit = step_limit

    def evaluate(
        self,
        expr: Value,
        env: Env = EMPTY_ENV,
        *,
        limit: Optional[int] = None,
        trace: bool = False,
    ) -> Evaluation:
        return self._run(_Eval(expr, env, None), limit, trace)

    def apply(
        self,
        fn: Value,
        args: Sequence[Value],
        *,
        fn_ref: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> Evaluation:
        if fn_ref is None:
            fn_ref = encode_value(fn, strict=False)
        return self._run(_Call(fn, tuple(args), fn_ref), limit, True)

    def _run(self, state, limit: Optional[int], trace: bool) -> Evaluation:
        budget = self.step_limit if limit is None else limit
        frames: Optional[List[Frame]] = [] if trace else None
        steps = 0
        current_digest = _state_digest(state) if trace else None

        while not isinstance(state, _Halt):
            if steps >= budget:
                raise EvaluationError(f"Step budget exceeded (limit {budget})")
            state, meta = self._step(state)
            if trace:
                next_digest = _state_digest(state)
                frames.append(Frame(index=steps, input=current_digest, output=next_digest, meta=meta))
                current_digest = next_digest
            steps += 1

        logger.debug("evaluation halted after %d steps", steps)
        return Evaluation(value=state.value, steps=steps, frames=frames)

    # One reduction: returns (next_state, meta)
    def _step(self, state):
        if isinstance(state, _Eval):
            return self._eval(state.expr, state.env, state.kont), CORE_META
        if isinstance(state, _Ret):
            return self._ret(state.value, state.kont)
        if isinstance(state, _Call):
            return self._apply_function(state.fn, state.args, None), CORE_META
        raise EvaluationError(f"Machine is not runnable in state {type(state).__name__}")

    def _apply_function(self, fn: Value, args: Tuple[Value, ...], kont):
        if isinstance(fn, Fix):
            fn = fn.materialize()
        if not isinstance(fn, Closure):
            raise EvaluationError(f"Cannot apply non-function {print_value(fn)}")
        if len(args) != len(fn.params):
            raise EvaluationError(
                f"Function expects {len(fn.params)} argument(s), got {len(args)}"
            )
        env = fn.env.extend(dict(zip(fn.params, args)))
        return _Eval(fn.body, env, kont)

    def _eval(self, expr: Value, env: Env, kont):
        if isinstance(expr, (Num, Str, Nil)):
            return _Ret(expr, kont)
        if isinstance(expr, Sym):
            if expr.name == "t":
                return _Ret(T, kont)
            value = env.lookup(expr.name)
            if value is None:
                raise EvaluationError(f"Unbound variable '{expr.name}'")
            if isinstance(value, Fix):
                value = value.materialize()
            return _Ret(value, kont)
        if not isinstance(expr, Cons):
            raise EvaluationError(f"Cannot evaluate {print_value(expr)}")

        items = to_list(expr)
        if items is None:
            raise EvaluationError(f"Improper list in expression {print_value(expr)}")
        name = head_name(expr)
        args = items[1:]

        if name == "quote":
            if len(args) != 1:
                raise EvaluationError("quote expects exactly one argument")
            return _Ret(args[0], kont)

        if name == "lambda":
            params = param_names(args[0]) if len(args) == 2 else None
            if params is None:
                raise EvaluationError(f"Malformed lambda: {print_value(expr)}")
            return _Ret(Closure(params, args[1], env), kont)

        if name == "let":
            pairs = binding_pairs(args[0]) if len(args) == 2 else None
            if pairs is None:
                raise EvaluationError(f"Malformed let: {print_value(expr)}")
            if not pairs:
                return _Eval(args[1], env, kont)
            first, rest = pairs[0], tuple(pairs[1:])
            return _Eval(first[1], env, _KLet(first[0], rest, args[1], env, kont))

        if name == "letrec":
            pairs = binding_pairs(args[0]) if len(args) == 2 else None
            if pairs is None:
                raise EvaluationError(f"Malformed letrec: {print_value(expr)}")
            scope = env
            for bound, value_expr in pairs:
                lam = to_list(value_expr)
                if head_name(value_expr) != "lambda" or lam is None or len(lam) != 3:
                    raise EvaluationError(f"letrec binding '{bound}' must be a lambda")
                params = param_names(lam[1])
                if params is None:
                    raise EvaluationError(f"Malformed lambda in letrec binding '{bound}'")
                scope = scope.extend({bound: Fix(bound, params, lam[2], scope)})
            return _Eval(args[1], scope, kont)

        if name == "if":
            if len(args) not in (2, 3):
                raise EvaluationError(f"Malformed if: {print_value(expr)}")
            otherwise = args[2] if len(args) == 3 else NIL
            return _Eval(args[0], env, _KIf(args[1], otherwise, env, kont))

        if name == "begin":
            if not args:
                return _Ret(NIL, kont)
            if len(args) == 1:
                return _Eval(args[0], env, kont)
            return _Eval(args[0], env, _KBegin(tuple(args[1:]), env, kont))

        if name == "delay":
            if len(args) != 1:
                raise EvaluationError("delay expects exactly one argument")
            return _Ret(Thunk(args[0], env), kont)

        if name in BUILTINS:
            _family, arity = BUILTINS[name]
            if len(args) != arity:
                raise EvaluationError(f"'{name}' expects {arity} argument(s), got {len(args)}")
            return _Eval(args[0], env, _KArgs(name, tuple(args[1:]), (), env, kont))

        return _Eval(items[0], env, _KArgs("apply", tuple(args), (), env, kont))

    def _ret(self, value: Value, kont):
        if kont is None:
            return _Halt(value), CORE_META

        if isinstance(kont, _KArgs):
            done = kont.done + (value,)
            if kont.pending:
                nxt = _KArgs(kont.tag, kont.pending[1:], done, kont.env, kont.next)
                return _Eval(kont.pending[0], kont.env, nxt), CORE_META
            if kont.tag == "apply":
                return self._apply_function(done[0], done[1:], kont.next), CORE_META
            if kont.tag == "force":
                target = done[0]
                if isinstance(target, Thunk):
                    return _Eval(target.expr, target.env, kont.next), CORE_META
                return _Ret(target, kont.next), CORE_META
            family, _arity = BUILTINS[kont.tag]
            return _Ret(_apply_builtin(kont.tag, done), kont.next), family

        if isinstance(kont, _KIf):
            branch = kont.then if truthy(value) else kont.otherwise
            return _Eval(branch, kont.env, kont.next), CORE_META

        if isinstance(kont, _KLet):
            scope = kont.env.extend({kont.name: value})
            if kont.rest:
                (bound, expr), rest = kont.rest[0], kont.rest[1:]
                return _Eval(expr, scope, _KLet(bound, rest, kont.body, scope, kont.next)), CORE_META
            return _Eval(kont.body, scope, kont.next), CORE_META

        if isinstance(kont, _KBegin):
            if len(kont.rest) == 1:
                return _Eval(kont.rest[0], kont.env, kont.next), CORE_META
            return _Eval(kont.rest[0], kont.env, _KBegin(kont.rest[1:], kont.env, kont.next)), CORE_META

        raise EvaluationError(f"Unknown continuation {type(kont).__name__}")
