"""Placeholder expansion over an ambient key/value scope.

Supported placeholders:
    $name, ${name}          value lookup
    $a.b.0, ${a.b.0}        dotted path through mappings and sequences
    $Func(arg)              callable invocation, Func(value, state) -> value

Unknown placeholders are left untouched so a later scope can still expand
them.  A string made of exactly one placeholder expands to the raw value,
which may be a mapping or sequence.
"""

import json
import re
from collections.abc import Callable, Mapping
from typing import Any

from .errors import NeatlyError, SubstitutionError

Udf = Callable[[Any, "State"], Any]

_NAME = r"[A-Za-z_][\w\-]*(?:\.[\w\-]+)*"
PLACEHOLDER = re.compile(
    r"\$(?:"
    r"\{(?P<braced>" + _NAME + r")\}"
    r"|(?P<func>[A-Za-z_]\w*)\((?P<arg>[^()]*)\)"
    r"|(?P<name>[A-Za-z_]\w*(?:\.\w+)*)"
    r")"
)
MAX_PASSES = 8

MISSING = object()


def as_text(value: Any) -> str:
    """Render a value for embedding into text."""
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def lookup(source: Mapping, path: str) -> Any:
    """Resolve a dotted path, returning ``MISSING`` when any hop is absent."""
    current: Any = source
    for part in path.split("."):
        if isinstance(current, Mapping):
            if part not in current:
                return MISSING
            current = current[part]
        elif isinstance(current, list):
            try:
                current = current[int(part)]
            except (ValueError, IndexError):
                return MISSING
        else:
            return MISSING
    return current


class State(dict):
    """Ambient scope: plain entries plus callables usable as ``$Func(arg)``."""

    def has_path(self, path: str) -> bool:
        return lookup(self, path) is not MISSING

    def callables(self) -> dict[str, Udf]:
        return {k: v for k, v in self.items() if callable(v)}

    def expand(self, value: Any) -> Any:
        """Expand placeholders in strings nested anywhere inside value."""
        if isinstance(value, str):
            return self._expand_string(value)
        if isinstance(value, dict):
            return {k: self.expand(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self.expand(v) for v in value]
        return value

    def expand_as_text(self, text: str) -> str:
        return as_text(self._expand_string(text))

    def _expand_string(self, text: str) -> Any:
        if "$" not in text:
            return text
        for _ in range(MAX_PASSES):
            whole = PLACEHOLDER.fullmatch(text)
            if whole:
                value, suffix = self._resolve(whole)
                if value is MISSING:
                    return text
                if suffix:
                    value = as_text(value) + suffix
                if not isinstance(value, str) or "$" not in value or value == text:
                    return value
                text = value
                continue
            expanded = PLACEHOLDER.sub(self._substitute, text)
            if expanded == text:
                break
            text = expanded
        return text

    def _substitute(self, match: re.Match) -> str:
        value, suffix = self._resolve(match)
        if value is MISSING:
            return match.group(0)
        return as_text(value) + suffix

    def _resolve(self, match: re.Match) -> tuple[Any, str]:
        """Resolve a placeholder to (value, unconsumed trailing text)."""
        if match.group("func"):
            func = self.get(match.group("func"))
            if not callable(func):
                return MISSING, ""
            arg = match.group("arg")
            if "$" in arg:
                arg = self.expand_as_text(arg)
                if PLACEHOLDER.search(arg):
                    return MISSING, ""
            return self._call(match.group("func"), func, _decode_argument(arg)), ""
        if match.group("braced"):
            value = lookup(self, match.group("braced"))
            return (MISSING if callable(value) else value), ""
        # $a.b.c: use the longest resolvable prefix, e.g. "$index.json"
        parts = match.group("name").split(".")
        for size in range(len(parts), 0, -1):
            value = lookup(self, ".".join(parts[:size]))
            if value is not MISSING and not callable(value):
                rest = parts[size:]
                return value, ("." + ".".join(rest)) if rest else ""
        return MISSING, ""

    def _call(self, name: str, func: Udf, arg: Any) -> Any:
        try:
            return func(arg, self)
        except NeatlyError:
            raise
        except Exception as e:
            raise SubstitutionError(f"${name}({arg!r}) failed: {e}") from e


def _decode_argument(arg: str) -> Any:
    arg = arg.strip()
    if arg[:1] in ("{", "[") and arg[-1:] in ("}", "]"):
        try:
            return json.loads(arg)
        except ValueError:
            return arg
    return arg


def expand_with(mapping: Mapping, value: Any) -> Any:
    """Expand value against an arbitrary mapping."""
    if isinstance(mapping, State):
        return mapping.expand(value)
    return State(mapping).expand(value)
