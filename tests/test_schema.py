from __future__ import annotations

import pytest

from pyrcman.errors import ConfigError, InvalidSettingValueError, UnknownSettingError
from pyrcman.schema import Schema, SettingMetadata


def test_number_bounds():
    meta = SettingMetadata.integer(10, min=1, max=20)
    meta.validate(20, "a.b")
    with pytest.raises(InvalidSettingValueError) as exc:
        meta.validate(21, "a.b")
    assert exc.value.address == "a.b"
    assert "maximum" in exc.value.reason


def test_bool_is_not_an_integer():
    with pytest.raises(InvalidSettingValueError):
        SettingMetadata.integer(1).validate(True, "a.b")


def test_select_membership():
    meta = SettingMetadata.select("a", ["a", "b"])
    meta.validate("b", "x.y")
    with pytest.raises(InvalidSettingValueError):
        meta.validate("c", "x.y")


def test_pattern_error_message():
    meta = SettingMetadata.string("", pattern=r"\d+", pattern_error="digits only")
    with pytest.raises(InvalidSettingValueError) as exc:
        meta.validate("12a", "x.y")
    assert exc.value.reason == "digits only"


def test_invalid_metadata_rejected():
    with pytest.raises(ConfigError):
        SettingMetadata("colour")
    with pytest.raises(ConfigError):
        Schema({"flat": SettingMetadata.string()})
    with pytest.raises(InvalidSettingValueError):
        Schema({"a.b": SettingMetadata.integer(50, max=10)})


def test_schema_lookup_and_defaults():
    schema = Schema({"ui.theme": SettingMetadata.string("light"), "api.key": SettingMetadata.password()})
    assert schema.defaults() == {"ui": {"theme": "light"}, "api": {"key": ""}}
    assert schema.secret_addresses() == ["api.key"]
    assert schema.categories() == ["ui", "api"]
    with pytest.raises(UnknownSettingError):
        schema.get("ui.missing")


def test_validate_object_rejects_unknown_fields():
    schema = Schema(
        {"host": SettingMetadata.string(), "auth.user": SettingMetadata.string()},
        categorized=False,
    )
    schema.validate_object({"host": "h", "auth": {"user": "u"}}, "remotes.a")
    with pytest.raises(InvalidSettingValueError) as exc:
        schema.validate_object({"host": "h", "port": 1}, "remotes.a")
    assert exc.value.address == "remotes.a.port"
    with pytest.raises(InvalidSettingValueError):
        schema.validate_object(["not", "an", "object"], "remotes.a")
