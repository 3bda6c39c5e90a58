"""Tests for the s-expression reader."""

import sys

import pytest

from chainproof.kernel.errors import EvaluationError, ReadError
from chainproof.kernel.reader import read, read_all, tokenize
from chainproof.kernel.values import NIL, Cons, Num, Str, Sym, make_list


MAX_DEPTH_OK = 100
INT_DIGIT_LIMIT = getattr(sys, "get_int_max_str_digits", lambda: 0)()


def test_atoms():
    assert read("42") == Num(42)
    assert read("-7") == Num(-7)
    assert read("+3") == Num(3)
    assert read("foo") == Sym("foo")
    assert read("nil") == NIL
    assert read('"a b"') == Str("a b")


def test_lists_and_nesting():
    assert read("(a (b 1) ())") == make_list([Sym("a"), make_list([Sym("b"), Num(1)]), NIL])


def test_dotted_pair():
    assert read("(1 . 2)") == Cons(Num(1), Num(2))
    assert read("(1 2 . 3)") == Cons(Num(1), Cons(Num(2), Num(3)))


def test_quote_sugar():
    assert read("'x") == make_list([Sym("quote"), Sym("x")])


def test_comments_and_whitespace_ignored():
    assert read("; leading\n (a ; inline\n b)") == make_list([Sym("a"), Sym("b")])


def test_string_escapes():
    assert read(r'"a\"b\\c\nd"') == Str('a"b\\c\nd')


def test_read_all():
    assert read_all("1 2 (3)") == [Num(1), Num(2), make_list([Num(3)])]


def test_tokenize_reports_offsets():
    assert tokenize("(a)") == [("open", "(", 0), ("atom", "a", 1), ("close", ")", 2)]


@pytest.mark.parametrize("text, message", [
    ("", "Empty expression"),
    ("   ; only a comment", "Empty expression"),
    ("(a b", "Unclosed"),
    (")", "Unexpected '\\)'"),
    ("1 2", "Trailing input"),
    ("( . 1)", "Dotted pair without head"),
    ("(1 . 2 3)", "Expected '\\)'"),
    (r'"bad \q"', "Invalid escape"),
    ('"unterminated', "Unexpected character"),
])
def test_malformed_input(text, message):
    with pytest.raises(ReadError, match=message):
        read(text)


def test_read_error_is_evaluation_error():
    with pytest.raises(EvaluationError):
        read("(")


def test_nesting_depth_bounded():
    read("(" * MAX_DEPTH_OK + ")" * MAX_DEPTH_OK)
    with pytest.raises(ReadError, match="nested deeper"):
        read("(" * 5000 + ")" * 5000)
    with pytest.raises(ReadError, match="nested deeper"):
        read("'" * 5000 + "x")


@pytest.mark.skipif(not INT_DIGIT_LIMIT, reason="interpreter has no integer string limit")
def test_overlong_integer_literal():
    with pytest.raises(ReadError, match="too long"):
        read("1" + "0" * INT_DIGIT_LIMIT)


def test_text_is_nfc_normalized():
    assert read('"e\u0301"') == Str("\u00e9")
    assert read("cafe\u0301") == Sym("caf\u00e9")
