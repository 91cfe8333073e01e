from __future__ import annotations

import pytest

from pyrcman.env import MappingEnvSource, OsEnvSource, env_var_name, parse_env_value


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("true", True),
        ("FALSE", False),
        ("42", 42),
        ("-7", -7),
        ("1.5", 1.5),
        ("[1, 2]", [1, 2]),
        ('{"a": 1}', {"a": 1}),
        ("[not json", "[not json"),
        ("dark", "dark"),
    ],
)
def test_parse_order(raw, expected):
    value = parse_env_value(raw)
    assert value == expected
    assert type(value) is type(expected)


def test_env_var_name():
    assert env_var_name("myapp", "ui", "font-size") == "MYAPP_UI_FONT_SIZE"


def test_sources(monkeypatch):
    monkeypatch.setenv("DEMO_UI_THEME", "dark")
    assert OsEnvSource().lookup("DEMO_UI_THEME") == "dark"
    src = MappingEnvSource({"X": "1"})
    assert src.lookup("X") == "1"
    assert src.lookup("Y") is None
