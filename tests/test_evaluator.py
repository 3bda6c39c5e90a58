"""Tests for the reference evaluator and its traces."""

import sys

import pytest

from chainproof.kernel.encoding import encode_value
from chainproof.kernel.errors import EvaluationError
from chainproof.kernel.evaluator import Evaluator, EvaluatorOracle, call_state, halt_state
from chainproof.kernel.hash_utils import state_digest
from chainproof.kernel.reader import read
from chainproof.kernel.values import NIL, T, Closure, Num, Str, Thunk, make_list, print_value


INT_DIGIT_LIMIT = getattr(sys, "get_int_max_str_digits", lambda: 0)()


def run(text, **kwargs):
    return Evaluator(**kwargs).evaluate(read(text)).value


class TestEvaluation:
    @pytest.mark.parametrize("text, expected", [
        ("(+ 2 3)", Num(5)),
        ("(- 2 3)", Num(-1)),
        ("(* 4 5)", Num(20)),
        ("(/ 7 2)", Num(3)),
        ("(/ -7 2)", Num(-4)),
        ("(% 7 3)", Num(1)),
        ("(< 1 2)", T),
        ("(>= 1 2)", NIL),
        ("(= 3 3)", T),
        ("(eq 'a 'a)", T),
        ("(eq 'a 'b)", NIL),
        ("(atom 1)", T),
        ("(atom '(1))", NIL),
        ("(car '(1 2))", Num(1)),
        ("(cdr '(1 2))", make_list([Num(2)])),
        ("(car nil)", NIL),
        ("(cdr nil)", NIL),
        ('"text"', Str("text")),
        ("t", T),
        ("nil", NIL),
    ])
    def test_builtins_and_atoms(self, text, expected):
        assert run(text) == expected

    def test_if(self):
        assert run("(if (< 1 2) 'yes 'no)") == read("yes")
        assert run("(if nil 1)") == NIL

    def test_let_is_sequential(self):
        assert run("(let ((a 1) (b (+ a 1))) (* a b))") == Num(2)

    def test_letrec_recursion(self):
        src = "(letrec ((fact (lambda (n) (if (= n 0) 1 (* n (fact (- n 1))))))) (fact 5))"
        assert run(src) == Num(120)

    def test_begin_returns_last(self):
        assert run("(begin 1 2 3)") == Num(3)
        assert run("(begin)") == NIL

    def test_quote(self):
        assert print_value(run("'(a b)")) == "(a b)"

    def test_lambda_captures_env(self):
        value = run("(let ((k 2)) (lambda (x) (* x k)))")
        assert isinstance(value, Closure)
        assert value.params == ("x",)
        assert value.env.lookup("k") == Num(2)

    def test_closures_apply(self):
        assert run("((lambda (x y) (- x y)) 10 4)") == Num(6)

    def test_delay_and_force(self):
        assert isinstance(run("(delay (+ 1 2))"), Thunk)
        assert run("(force (delay (+ 1 2)))") == Num(3)
        assert run("(force 5)") == Num(5)

    def test_deterministic(self):
        src = "(letrec ((f (lambda (n) (if (= n 0) nil (cons n (f (- n 1))))))) (f 4))"
        assert run(src) == run(src)
        assert print_value(run(src)) == "(4 3 2 1)"


class TestEvaluationErrors:
    @pytest.mark.parametrize("text, message", [
        ("y", "Unbound variable 'y'"),
        ("(1 2)", "Cannot apply non-function"),
        ("((lambda (x) x))", "expects 1 argument"),
        ("(+ 1)", "'\\+' expects 2 argument"),
        ("(+ 1 'a)", "expects numbers"),
        ("(/ 1 0)", "by zero"),
        ("(% 1 0)", "by zero"),
        ("(car 5)", "expects a pair"),
        ("(lambda x)", "Malformed lambda"),
        ("(lambda (x x) x)", "Malformed lambda"),
        ("(let (x) x)", "Malformed let"),
        ("(letrec ((x 1)) x)", "must be a lambda"),
        ("(if)", "Malformed if"),
        ("(quote)", "quote expects"),
        ("(1 . 2)", "Improper list"),
    ])
    def test_errors(self, text, message):
        with pytest.raises(EvaluationError, match=message):
            run(text)

    def test_step_budget(self):
        with pytest.raises(EvaluationError, match="Step budget exceeded \\(limit 100\\)"):
            run("(letrec ((loop (lambda (n) (loop n)))) (loop 0))", step_limit=100)

    def test_per_call_limit_overrides_default(self):
        evaluator = Evaluator(step_limit=10_000)
        with pytest.raises(EvaluationError, match="limit 3"):
            evaluator.evaluate(read("(+ (+ 1 2) 3)"), limit=3)

    def test_non_positive_step_limit_rejected(self):
        with pytest.raises(ValueError):
            Evaluator(step_limit=0)


class TestTraces:
    def _apply(self, fn_src, arg, fn_ref="0x" + "ab" * 32):
        evaluator = Evaluator()
        fn = evaluator.evaluate(read(fn_src)).value
        return evaluator.apply(fn, [arg], fn_ref=fn_ref), fn_ref

    def test_reference_evaluator_satisfies_oracle(self):
        assert isinstance(Evaluator(), EvaluatorOracle)

    def test_evaluate_without_trace_has_no_frames(self):
        assert Evaluator().evaluate(read("(+ 1 2)")).frames is None

    def test_frames_link_and_are_indexed(self):
        evaluation, _ = self._apply("(lambda (x) (+ x 1))", Num(1))
        frames = evaluation.frames
        assert [f.index for f in frames] == list(range(len(frames)))
        for a, b in zip(frames, frames[1:]):
            assert a.output == b.input
        assert evaluation.steps == len(frames)

    def test_boundary_states(self):
        evaluation, fn_ref = self._apply("(lambda (x) (cons x nil))", Num(4))
        assert evaluation.frames[0].input == state_digest(call_state(fn_ref, [["num", 4]]))
        assert evaluation.frames[-1].output == state_digest(halt_state(encode_value(evaluation.value)))

    def test_builtin_frames_carry_family(self):
        evaluation, _ = self._apply("(lambda (x) (cons (+ x 1) (< x 2)))", Num(1))
        metas = [f.meta for f in evaluation.frames]
        assert "arith" in metas
        assert "cmp" in metas
        assert "pair" in metas
        assert set(metas) <= {"core", "arith", "cmp", "pair"}

    def test_traces_are_deterministic(self):
        first, _ = self._apply("(lambda (x) (* x x))", Num(3))
        second, _ = self._apply("(lambda (x) (* x x))", Num(3))
        assert first.frames == second.frames

    def test_different_fn_ref_changes_start_state(self):
        a, _ = self._apply("(lambda (x) x)", Num(1), fn_ref="0x" + "00" * 32)
        b, _ = self._apply("(lambda (x) x)", Num(1), fn_ref="0x" + "11" * 32)
        assert a.frames[0].input != b.frames[0].input
        assert a.frames[-1].output == b.frames[-1].output

    @pytest.mark.skipif(not INT_DIGIT_LIMIT, reason="interpreter has no integer string limit")
    def test_unhashable_state_is_evaluation_error(self):
        big = Num(10 ** (INT_DIGIT_LIMIT // 2 + 10))
        with pytest.raises(EvaluationError, match="cannot be hashed"):
            self._apply("(lambda (x) (* x x))", big)
