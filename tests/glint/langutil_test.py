import re

import pytest

from glint.lang.util import (
    _MUNGE_REPLACEMENTS,
    JS_RESERVED_WORDS,
    genname,
    munge,
    regex_from_str,
)

_IDENTIFIER = re.compile(r"[A-Za-z_$][A-Za-z0-9_$]*")


@pytest.mark.parametrize(
    "expected,input",
    [
        ("_PLUS_", "+"),
        ("_", "-"),
        ("_STAR_ns_STAR_", "*ns*"),
        ("_SLASH_", "/"),
        ("_LT_", "<"),
        ("_GT_", ">"),
        ("swap_BANG_", "swap!"),
        ("_EQ_", "="),
        ("string_QMARK_", "string?"),
        ("_AMPERSAND_form", "&form"),
        ("kebab_case_name", "kebab-case-name"),
        ("__GT__GT_", "->>"),
    ],
)
def test_munge_disallows_syms(expected, input):
    assert expected == munge(input)


def test_munge_produces_identifiers():
    for c in _MUNGE_REPLACEMENTS:
        assert _IDENTIFIER.fullmatch(munge(f"a{c}b"))


def test_munge_disallows_reserved_words():
    for word in JS_RESERVED_WORDS:
        assert f"{word}_" == munge(word)


def test_munge_allows_reserved_words():
    assert "class" == munge("class", allow_reserved=True)
    assert "default" == munge("default", allow_reserved=True)


def test_munge_leaves_valid_names():
    assert "render" == munge("render")
    assert "$el" == munge("$el")
    assert "classes" == munge("classes")


def test_genname():
    first = genname("x")
    second = genname("x")
    assert first != second
    assert re.fullmatch(r"x_\d+", first)
    assert int(second.split("_")[-1]) > int(first.split("_")[-1])


def test_regex_from_str():
    assert regex_from_str("a+").fullmatch("aaa")
