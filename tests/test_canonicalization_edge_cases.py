"""Targeted tests for canonicalization edge cases and determinism."""

import unicodedata

import pytest
from chainproof.kernel.commitment import commitment_of_encoding
from chainproof.kernel.encoding import encode_value
from chainproof.kernel.errors import SerializationError
from chainproof.kernel.evaluator import Evaluator
from chainproof.kernel.reader import read
from chainproof.kernel.values import Closure, Env, Num, Str, Sym


def _value(text):
    return Evaluator().evaluate(read(text)).value


class TestCanonicalizationDeterminism:
    """Prove canonicalization is deterministic across runs."""

    def test_same_value_same_commitment_repeated_runs(self):
        value = _value("(lambda (x) (cons x nil))")
        digests = {commitment_of_encoding(encode_value(value)).hex for _ in range(3)}
        assert len(digests) == 1

    def test_independently_built_values_commit_equal(self):
        """Two evaluations of the same source commit identically."""
        a = _value("(let ((k 3)) (lambda (x) (+ x k)))")
        b = _value("(let ((k 3)) (lambda (x) (+ x k)))")
        assert commitment_of_encoding(encode_value(a)) == commitment_of_encoding(encode_value(b))

    def test_env_insertion_order_irrelevant(self):
        body = read("(+ a b)")
        env1 = Env({"a": Num(1), "b": Num(2)})
        env2 = Env({"b": Num(2), "a": Num(1)})
        c1 = Closure(("x",), body, env1)
        c2 = Closure(("x",), body, env2)
        assert encode_value(c1) == encode_value(c2)

    def test_unused_env_entries_pruned(self):
        """Bindings the body never references do not affect the commitment."""
        body = read("(+ x a)")
        lean = Closure(("x",), body, Env({"a": Num(1)}))
        padded = Closure(("x",), body, Env({"a": Num(1), "junk": Num(99)}))
        assert commitment_of_encoding(encode_value(lean)) == commitment_of_encoding(encode_value(padded))

    def test_shadowed_param_not_captured(self):
        body = read("(+ x 1)")
        c = Closure(("x",), body, Env({"x": Num(5)}))
        assert encode_value(c)[3] == {}

    def test_unicode_normalization_nfc(self):
        """Same string in different normalization forms -> same commitment (NFC)."""
        nfc_form = "café"
        nfd_form = unicodedata.normalize("NFD", nfc_form)
        a = commitment_of_encoding(encode_value(Str(nfc_form)))
        b = commitment_of_encoding(encode_value(Str(nfd_form)))
        assert a == b

    def test_different_values_differ(self):
        assert commitment_of_encoding(encode_value(Num(1))) != commitment_of_encoding(encode_value(Num(2)))
        assert commitment_of_encoding(encode_value(Sym("a"))) != commitment_of_encoding(encode_value(Str("a")))


class TestNonRepresentable:
    def test_float_number_rejected(self):
        with pytest.raises(SerializationError, match="integers"):
            encode_value(Num(1.5))

    def test_bool_number_rejected(self):
        with pytest.raises(SerializationError):
            encode_value(Num(True))

    def test_host_object_rejected(self):
        with pytest.raises(SerializationError, match="outside the representable subset"):
            encode_value(object())
