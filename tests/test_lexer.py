import pytest

from errors import TMParseError
from lexer import Lexer


def _types(source):
    return [t.type for t in Lexer(source, "<test>").tokenize()]


def _values(source):
    return [t.value for t in Lexer(source, "<test>").tokenize()]


def test_keywords_and_moves():
    assert _types("run trace render <H> -> <- --") == [
        "RUN", "TRACE", "RENDER", "SYMBOL", "MOVE_RIGHT", "MOVE_LEFT", "STAY", "NEWLINE", "EOF",
    ]


def test_symbols_include_digits_and_punctuation():
    assert _values("99 H here h29-j a.b")[:5] == ["99", "H", "here", "h29-j", "a.b"]
    assert set(_types("99 H here h29-j a.b")[:5]) == {"SYMBOL"}


def test_blank_lines_collapse():
    assert _types("\n\nhello\n\n\nworld\n") == ["SYMBOL", "NEWLINE", "SYMBOL", "NEWLINE", "EOF"]


def test_brackets_commas_and_colon():
    assert _types("m:\n[a, b,]") == [
        "SYMBOL", "COLON", "NEWLINE", "LBRACKET", "SYMBOL", "COMMA", "SYMBOL", "COMMA", "RBRACKET", "NEWLINE", "EOF",
    ]


def test_comments_are_skipped():
    assert _values("a # comment -> here\nb") == ["a", "\n", "b", "\n", ""]


def test_run_line():
    assert _values(" run name 0 x [0,1] ")[:9] == ["run", "name", "0", "x", "[", "0", ",", "1", "]"]


def test_empty_source():
    assert _types("") == ["EOF"]


def test_byte_order_mark_is_skipped():
    assert _values("\ufeffm:")[:2] == ["m", ":"]


def test_positions_are_tracked():
    tokens = Lexer("m:\n  q a b -> q\n", "<test>").tokenize()
    q = tokens[3]
    assert (q.value, q.line, q.column) == ("q", 2, 3)


def test_unexpected_character():
    with pytest.raises(TMParseError) as info:
        Lexer("m:\nq a b -> q!\n", "prog.tm").tokenize()
    assert "prog.tm:2:11" in str(info.value)
