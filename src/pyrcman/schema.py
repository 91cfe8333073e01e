"""Declarative metadata for settings.

The engine consults metadata only for defaults, validation and secret
routing; rendering concerns such as ``label`` are carried along for callers.
"""
from __future__ import annotations

import json
import re
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from .document import is_json_like, set_path
from .errors import ConfigError, InvalidSettingValueError, UnknownSettingError

KINDS = ("string", "integer", "number", "boolean", "select", "list", "object")
STRING_KINDS = ("string", "select")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


_KIND_CHECKS = {
    "string": lambda v: isinstance(v, str),
    "integer": _is_int,
    "number": _is_number,
    "boolean": lambda v: isinstance(v, bool),
    "select": lambda v: True,
    "list": lambda v: isinstance(v, list),
    "object": lambda v: isinstance(v, dict),
}


@dataclass(frozen=True)
class SettingMetadata:
    """Metadata for one setting address."""

    kind: str
    default: Any = None
    min: float | None = None
    max: float | None = None
    step: float | None = None
    options: tuple[Any, ...] = ()
    pattern: str | None = None
    pattern_error: str | None = None
    secret: bool = False
    requires_restart: bool = False
    label: str = ""
    description: str = ""
    _regex: re.Pattern[str] | None = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.kind not in KINDS:
            raise ConfigError(f"unknown setting kind: {self.kind!r}")
        if not is_json_like(self.default):
            raise ConfigError(f"default {self.default!r} is not JSON-like")
        object.__setattr__(self, "options", tuple(self.options))
        if self.pattern is not None:
            try:
                object.__setattr__(self, "_regex", re.compile(self.pattern))
            except re.error as exc:
                raise ConfigError(f"invalid pattern {self.pattern!r}: {exc}") from exc
        if self.kind == "select" and not self.options:
            raise ConfigError("select settings need options")

    # ----- convenience constructors -----

    @classmethod
    def string(cls, default: str = "", **kw: Any) -> SettingMetadata:
        return cls("string", default, **kw)

    @classmethod
    def integer(cls, default: int = 0, **kw: Any) -> SettingMetadata:
        return cls("integer", default, **kw)

    @classmethod
    def number(cls, default: float = 0.0, **kw: Any) -> SettingMetadata:
        return cls("number", default, **kw)

    @classmethod
    def boolean(cls, default: bool = False, **kw: Any) -> SettingMetadata:
        return cls("boolean", default, **kw)

    @classmethod
    def select(cls, default: Any, options: Sequence[Any], **kw: Any) -> SettingMetadata:
        return cls("select", default, options=tuple(options), **kw)

    @classmethod
    def password(cls, default: str = "", **kw: Any) -> SettingMetadata:
        return cls("string", default, secret=True, **kw)

    # ----- secret encoding -----

    def encode_secret(self, value: Any) -> str:
        """Credential stores hold text; non-string kinds are stored as JSON."""
        if self.kind in STRING_KINDS and isinstance(value, str):
            return value
        return json.dumps(value)

    def decode_secret(self, text: str) -> Any:
        if self.kind in STRING_KINDS:
            return text
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return text

    # ----- validation -----

    def validate(self, value: Any, address: str) -> None:
        """Raise :class:`InvalidSettingValueError` if *value* is not acceptable."""
        if value is None and self.default is None:
            return
        if not is_json_like(value):
            raise InvalidSettingValueError(address, f"{type(value).__name__} is not storable")
        if not _KIND_CHECKS[self.kind](value):
            raise InvalidSettingValueError(address, f"expected {self.kind}, got {type(value).__name__}")
        if _is_number(value):
            if self.min is not None and value < self.min:
                raise InvalidSettingValueError(address, f"{value} is below minimum {self.min}")
            if self.max is not None and value > self.max:
                raise InvalidSettingValueError(address, f"{value} is above maximum {self.max}")
        if self.options and value not in self.options:
            allowed = ", ".join(repr(o) for o in self.options)
            raise InvalidSettingValueError(address, f"{value!r} is not one of {allowed}")
        if self._regex is not None and isinstance(value, str):
            if self._regex.fullmatch(value) is None:
                raise InvalidSettingValueError(
                    address, self.pattern_error or f"does not match pattern {self.pattern}"
                )


class Schema:
    """Mapping of dotted addresses to :class:`SettingMetadata`.

    With ``categorized=True`` (main settings) every address must be exactly
    ``category.key``; sub-settings schemas may use deeper field paths.
    """

    def __init__(
        self,
        fields: Mapping[str, SettingMetadata] | None = None,
        *,
        categorized: bool = True,
    ) -> None:
        self._fields: dict[str, SettingMetadata] = {}
        self.categorized = categorized
        for address, meta in (fields or {}).items():
            self.add(address, meta)

    def add(self, address: str, meta: SettingMetadata) -> None:
        parts = address.split(".")
        if any(not p for p in parts):
            raise ConfigError(f"invalid address: {address!r}")
        if self.categorized and len(parts) != 2:
            raise ConfigError(f"address must be 'category.key': {address!r}")
        meta.validate(meta.default, address)
        self._fields[address] = meta

    def __contains__(self, address: object) -> bool:
        return address in self._fields

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def get(self, address: str) -> SettingMetadata:
        try:
            return self._fields[address]
        except KeyError:
            raise UnknownSettingError(address) from None

    def items(self) -> Iterator[tuple[str, SettingMetadata]]:
        return iter(self._fields.items())

    def categories(self) -> list[str]:
        seen: dict[str, None] = {}
        for address in self._fields:
            seen.setdefault(address.split(".", 1)[0], None)
        return list(seen)

    def secret_addresses(self) -> list[str]:
        return [a for a, m in self._fields.items() if m.secret]

    def defaults(self) -> dict[str, Any]:
        """Return the defaults as a nested document."""
        out: dict[str, Any] = {}
        for address, meta in self._fields.items():
            set_path(out, address, meta.default)
        return out

    def validate_object(self, obj: Any, label: str) -> None:
        """Validate a sub-settings entity, rejecting undeclared fields."""
        if not isinstance(obj, dict):
            raise InvalidSettingValueError(label, "entity must be an object")
        self._walk(obj, "", label)

    def _walk(self, node: dict[str, Any], prefix: str, label: str) -> None:
        for key, value in node.items():
            path = f"{prefix}{key}"
            meta = self._fields.get(path)
            if meta is not None:
                meta.validate(value, f"{label}.{path}")
                continue
            nested = any(a.startswith(path + ".") for a in self._fields)
            if nested and isinstance(value, dict):
                self._walk(value, path + ".", label)
                continue
            raise InvalidSettingValueError(f"{label}.{path}", "unknown field")
