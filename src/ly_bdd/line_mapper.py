"""
Compile step phrases into line matchers.

A phrase mixes literal text with ``{name}`` placeholders::

    >>> mapper("I wait {seconds} seconds", types={"seconds": int})("I wait 3 seconds")
    [3]

Each placeholder becomes a non-greedy capture, so a placeholder stops at the next literal.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Pattern, Sequence, Union

__all__ = ["LineMapper", "ParamType", "PatternTypeConversionError", "mapper"]

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


class ParamType(Enum):
    """Scalar types a placeholder can be converted to."""

    STRING = "string"
    INT = "int"
    DOUBLE = "double"
    BOOL = "bool"

    @classmethod
    def coerce(cls, value: ParamTypeLike) -> ParamType:
        """Accept a ParamType, its name, or one of the builtin types str/int/float/bool."""
        if isinstance(value, ParamType):
            return value
        if isinstance(value, str):
            return cls(value.lower())
        try:
            return _BUILTIN_TYPES[value]
        except KeyError:
            raise TypeError(f"Unsupported placeholder type: {value!r}") from None

    def convert(self, raw: str) -> Any:
        if self is ParamType.INT:
            return int(raw)
        if self is ParamType.DOUBLE:
            return float(raw)
        if self is ParamType.BOOL:
            lowered = raw.lower()
            if lowered not in ("true", "false"):
                raise ValueError(f"invalid literal for bool: {raw!r}")
            return lowered == "true"
        return raw


ParamTypeLike = Union[ParamType, str, type]

_BUILTIN_TYPES: dict[Any, ParamType] = {
    str: ParamType.STRING,
    int: ParamType.INT,
    float: ParamType.DOUBLE,
    bool: ParamType.BOOL,
}


class PatternTypeConversionError(ValueError):
    """A captured value could not be converted to the placeholder's declared type."""

    def __init__(self, name: str, raw: str, param_type: ParamType):
        self.name = name
        self.raw = raw
        self.param_type = param_type
        super().__init__(f'Cannot convert "{raw}" to {param_type.value} for placeholder {{{name}}}')


@dataclass(frozen=True, eq=False)
class LineMapper:
    """A compiled step phrase. Calling it returns the converted values or None."""

    pattern: str
    types: Mapping[str, ParamType] = field(default_factory=dict)
    names: Sequence[str] = field(init=False)
    _regex: Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        parts = _PLACEHOLDER.split(self.pattern)
        # re.split with one group alternates literal, name, literal, ...
        literals, names = parts[0::2], parts[1::2]
        regex = "(.+?)".join(re.escape(literal) for literal in literals)
        object.__setattr__(self, "names", tuple(names))
        object.__setattr__(self, "_regex", re.compile(regex))

    def matches(self, line: str) -> bool:
        """Whether the line has the phrase's shape, without converting any values."""
        return self._regex.fullmatch(line) is not None

    def __call__(self, line: str) -> list[Any] | None:
        match = self._regex.fullmatch(line)
        if match is None:
            return None
        return [self._convert(name, raw) for name, raw in zip(self.names, match.groups())]

    def _convert(self, name: str, raw: str) -> Any:
        param_type = self.types.get(name, ParamType.STRING)
        try:
            return param_type.convert(raw)
        except ValueError as e:
            raise PatternTypeConversionError(name, raw, param_type) from e

    def __str__(self) -> str:
        return self.pattern


def mapper(pattern: str, types: Mapping[str, ParamTypeLike] | None = None) -> LineMapper:
    """Compile a phrase with optional placeholder types (string by default)."""
    return LineMapper(
        pattern=pattern,
        types={name: ParamType.coerce(kind) for name, kind in (types or {}).items()},
    )


MapperLike = Union[LineMapper, str]
