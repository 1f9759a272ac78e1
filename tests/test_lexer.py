import pytest

from compiler import CompileError
from lexer import tokenize


def test_tokenize_let_statement():
    toks = tokenize("let x = 1 + 2 * 3;")
    assert [t.type for t in toks] == [
        "LET", "IDENT", "EQUAL", "NUMBER", "PLUS", "NUMBER", "ASTERIX", "NUMBER", "SEMICOLON",
    ]
    assert [t.value for t in toks if t.type == "NUMBER"] == [1, 2, 3]


def test_keywords_are_whole_words():
    toks = tokenize("exit letter;")
    assert [(t.type, t.value) for t in toks] == [("EXIT", "exit"), ("IDENT", "letter"), ("SEMICOLON", ";")]


def test_block_comments_are_skipped_and_lines_counted():
    toks = tokenize("/* first\n * second */\nexit 3;")
    assert [t.type for t in toks] == ["EXIT", "NUMBER", "SEMICOLON"]
    assert toks[0].lineno == 3


def test_line_numbers_restart_for_each_scan():
    tokenize("\n\n\nexit 1;")
    assert tokenize("exit 1;")[0].lineno == 1


def test_unexpected_character_is_fatal():
    with pytest.raises(CompileError, match=r"unexpected character '\$', line 2"):
        tokenize("let x = 1;\nexit $;")


def test_unterminated_comment_is_fatal():
    with pytest.raises(CompileError, match="unterminated comment, line 2"):
        tokenize("exit 1;\n/* never closed")
