from __future__ import annotations

import re

import pytest

from mode_control import process_patterns as pp


def _matches(raw: str, name: str) -> bool:
    return pp.first_match({name}, pp.compile_patterns(raw)) == name


@pytest.mark.parametrize("raw", [None, "", "   ", "\r\n ; , \n"])
def test_blank_input_yields_empty_set(raw):
    patterns = pp.compile_patterns(raw)

    assert patterns == pp.EMPTY_PATTERN_SET
    assert pp.first_match({"anything"}, patterns) is None


def test_split_tokens_handles_all_separators_and_dedupes_case_insensitively():
    raw = "Game.exe\r\nsteam; OBS64,game.EXE\n  Steam  ;;"

    assert pp.split_tokens(raw) == ["Game.exe", "steam", "OBS64"]


def test_split_tokens_keeps_first_spelling():
    assert pp.split_tokens("Chrome\nCHROME\nchrome") == ["Chrome"]


def test_literal_token_matches_identical_name_only():
    assert _matches("notepad", "notepad")
    assert _matches("notepad", "NotePad")
    assert not _matches("notepad", "notepad2")
    assert not _matches("notepad", "mynotepad")


@pytest.mark.parametrize("name", ["Game", "Game2", "GameLauncher", "game"])
def test_trailing_wildcard_matches_prefix(name):
    assert _matches("Game*", name)


def test_trailing_wildcard_does_not_match_other_prefix():
    assert not _matches("Game*", "MyGame")


def test_wildcard_bridges_middle():
    assert _matches("steam*helper", "steamwebhelper")
    assert _matches("steam*helper", "steamhelper")
    assert not _matches("steam*helper", "steamwebhelper64")


def test_exe_suffix_is_ignored():
    with_suffix = pp.compile_patterns("foo.exe")
    without_suffix = pp.compile_patterns("foo")

    assert [p.pattern for p in with_suffix] == [p.pattern for p in without_suffix]
    assert pp.first_match({"FOO"}, with_suffix) == "FOO"


def test_regex_metacharacters_are_literal():
    patterns = pp.compile_patterns("a.b+c(1)")

    assert pp.first_match({"a.b+c(1)"}, patterns) == "a.b+c(1)"
    assert pp.first_match({"axbbc1"}, patterns) is None


def test_bad_token_is_skipped_without_failing_the_rest(monkeypatch):
    real_compile_token = pp.compile_token

    def flaky_compile(token: str):
        if token == "broken":
            raise re.error("boom")
        return real_compile_token(token)

    monkeypatch.setattr(pp, "compile_token", flaky_compile)

    patterns = pp.compile_patterns("first; broken; last")

    assert len(patterns) == 2
    assert pp.first_match({"last"}, patterns) == "last"


def test_token_that_is_only_exe_is_dropped():
    kept = pp.compile_patterns(".exe; real")

    assert [p.pattern for p in kept] == [p.pattern for p in pp.compile_patterns("real")]


def test_first_match_is_deterministic():
    patterns = pp.compile_patterns("*")
    live = {"zeta", "Alpha", "beta"}

    assert pp.first_match(live, patterns) == "Alpha"
    assert pp.first_match(set(reversed(sorted(live))), patterns) == "Alpha"


def test_first_match_with_empty_names():
    assert pp.first_match(set(), pp.compile_patterns("game")) is None
