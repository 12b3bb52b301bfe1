from __future__ import annotations

import logging

import pytest

from resmand.parser import is_valid_key, parse_config, split_entry


@pytest.mark.parametrize(
    "key",
    ["foo", "Xft.dpi", "gnome-terminal.font_size", "a", "i3-wm.bar.0.position", "0"],
)
def test_valid_keys(key: str) -> None:
    assert is_valid_key(key)


@pytest.mark.parametrize(
    "key",
    ["", "bad key!", "with space", "star*", "colouré", "tab\tkey", "Xft/dpi"],
)
def test_invalid_keys(key: str) -> None:
    assert not is_valid_key(key)


def test_scenario_valid_lines_survive_and_bad_key_is_dropped(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="resmand.parser"):
        parsed = parse_config("foo: 1\nbar : 2\nbad key!: 3\n")

    assert parsed == {"foo": "1", "bar": "2"}
    assert "bad key!" in caplog.text


def test_split_happens_at_first_colon_only() -> None:
    assert split_entry("url : http://example.com:8080") == ("url", "http://example.com:8080")
    assert parse_config("a.b:c:d") == {"a.b": "c:d"}


def test_lines_without_colon_are_ignored() -> None:
    text = "# a comment without delimiter\n\njust words\nkey: value\n"
    assert parse_config(text) == {"key": "value"}


def test_later_line_wins_within_one_file() -> None:
    assert parse_config("k: first\nk: second\n") == {"k": "second"}


def test_value_may_be_empty_and_is_trimmed() -> None:
    assert parse_config("  empty :   \n spaced :  a  b  \n") == {"empty": "", "spaced": "a  b"}


def test_empty_key_is_rejected() -> None:
    assert parse_config(": orphan value\n") == {}


def test_windows_line_endings() -> None:
    assert parse_config("a: 1\r\nb: 2\r\n") == {"a": "1", "b": "2"}


def test_only_newline_ends_a_line() -> None:
    text = "key: a\u2028b\nff: x\x0cy\r\nvt: p\x0bq\x85r\n"

    assert parse_config(text) == {"key": "a\u2028b", "ff": "x\x0cy", "vt": "p\x0bq\x85r"}
