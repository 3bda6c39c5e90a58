"""Tests for the value domain and its canonical encoding."""

import pytest

from chainproof.kernel.encoding import decode_value, encode_value
from chainproof.kernel.errors import SerializationError
from chainproof.kernel.evaluator import Evaluator
from chainproof.kernel.reader import read
from chainproof.kernel.values import (
    EMPTY_ENV,
    NIL,
    Closure,
    Cons,
    Env,
    Fix,
    Num,
    Str,
    Sym,
    Thunk,
    as_closure,
    make_list,
    print_value,
    to_list,
)


def _eval(text):
    return Evaluator().evaluate(read(text)).value


class TestEncoding:
    def test_atoms(self):
        assert encode_value(Num(7)) == ["num", 7]
        assert encode_value(Sym("a")) == ["sym", "a"]
        assert encode_value(Str("hi")) == ["str", "hi"]
        assert encode_value(NIL) == ["nil"]

    def test_proper_list_is_flattened(self):
        value = make_list([Num(1), Num(2), Num(3)])
        assert encode_value(value) == ["cons", [["num", 1], ["num", 2], ["num", 3]], ["nil"]]

    def test_dotted_pair_keeps_tail(self):
        assert encode_value(Cons(Num(1), Num(2))) == ["cons", [["num", 1]], ["num", 2]]

    def test_closure_encodes_params_body_and_pruned_env(self):
        value = _eval("(let ((k 3) (unused 4)) (lambda (x) (+ x k)))")
        tag, params, body, env = encode_value(value)
        assert tag == "fun"
        assert params == ["x"]
        assert body == encode_value(read("(+ x k)"))
        assert env == {"k": ["num", 3]}

    def test_letrec_function_encodes_fix(self):
        value = _eval("(letrec ((f (lambda (n) (f n)))) (lambda (y) (f y)))")
        env = encode_value(value)[3]
        assert env["f"][0] == "fix"
        assert env["f"][1] == "f"

    def test_thunk_rejected_in_strict_mode(self):
        thunk = _eval("(delay (+ 1 2))")
        assert isinstance(thunk, Thunk)
        with pytest.raises(SerializationError, match="Suspended computation"):
            encode_value(thunk)

    def test_thunk_inside_closure_env_rejected(self):
        value = _eval("(let ((p (delay 1))) (lambda (x) (cons x p)))")
        with pytest.raises(SerializationError, match=r"\$\.env\.p"):
            encode_value(value)

    def test_thunk_encodable_when_not_strict(self):
        thunk = _eval("(delay (+ 1 2))")
        assert encode_value(thunk, strict=False)[0] == "thunk"


class TestDecoding:
    def test_decode_inverts_encode(self):
        for text in ["42", "'(1 2 . 3)", '"s"', "(lambda (x) x)", "'(a (b c))"]:
            value = _eval(text)
            assert encode_value(decode_value(encode_value(value))) == encode_value(value)

    def test_decode_fix(self):
        obj = ["fix", "f", ["n"], encode_value(read("(f n)")), {}]
        value = decode_value(obj)
        assert isinstance(value, Fix)
        assert as_closure(value).env.lookup("f") == value

    @pytest.mark.parametrize("obj", [
        [],
        "num",
        ["num"],
        ["num", "1"],
        ["num", True],
        ["cons", [], ["nil"]],
        ["cons", [["num", 1]], ["cons", [["num", 2]], ["nil"]]],
        ["fun", ["x"], ["sym", "x"]],
        ["fun", [1], ["sym", "x"], {}],
        ["fun", ["x"], ["sym", "x"], []],
        ["thunk", ["num", 1], {}],
        ["bogus", 1],
    ])
    def test_malformed_rejected(self, obj):
        with pytest.raises(SerializationError):
            decode_value(obj)

    def test_deep_nesting_rejected(self):
        value = NIL
        obj = ["nil"]
        for _ in range(5000):
            value = Cons(value, NIL)
            obj = ["cons", [obj], ["nil"]]
        with pytest.raises(SerializationError, match="nested too deeply"):
            encode_value(value)
        with pytest.raises(SerializationError, match="nested too deeply"):
            decode_value(obj)


class TestValues:
    def test_env_is_persistent(self):
        base = Env({"a": Num(1)})
        extended = base.extend({"b": Num(2)})
        assert "b" not in base
        assert extended.names() == ["a", "b"]

    def test_env_equality_ignores_order(self):
        assert Env({"a": Num(1), "b": Num(2)}) == Env({"b": Num(2), "a": Num(1)})

    def test_to_list_rejects_improper(self):
        assert to_list(Cons(Num(1), Num(2))) is None
        assert to_list(make_list([Num(1)])) == [Num(1)]

    def test_text_normalized_on_construction(self):
        assert Str("e\u0301").value == "\u00e9"
        assert Sym("e\u0301") == Sym("\u00e9")
        assert Closure(("e\u0301",), Sym("x"), EMPTY_ENV).params == ("\u00e9",)
        assert "\u00e9" in Env({"e\u0301": Num(1)})
        assert decode_value(["str", "e\u0301"]) == Str("\u00e9")

    def test_print_value(self):
        assert print_value(make_list([Num(1), Sym("a"), Str("s")])) == '(1 a "s")'
        assert print_value(Cons(Num(1), Num(2))) == "(1 . 2)"
        assert print_value(read("'x")) == "'x"
        assert print_value(Closure(("x",), Sym("x"), EMPTY_ENV)) == "<FUNCTION (x) x>"
