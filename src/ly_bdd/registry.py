"""Map step text to step functions."""
from __future__ import annotations

import inspect
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Mapping, Sequence, TypeVar, Union

from .line_mapper import LineMapper, MapperLike, ParamTypeLike, mapper
from .model import DataTable, DocString, SourceLocation

__all__ = ["StepContext", "StepFunction", "StepMatch", "StepRegistry"]

ContextT = TypeVar("ContextT")

# Quoted text or a bare integer.
_SUGGESTED_PARAM = re.compile(r'"([^"]*)"|\b\d+\b')


@dataclass(frozen=True)
class StepContext:
    """Everything a step function gets besides the test context."""

    args: Sequence[Any] = ()
    table: DataTable | None = None
    doc_string: DocString | None = None
    location: SourceLocation | None = None

    def arg(self, index: int) -> Any:
        return self.args[index]

    @property
    def first_arg(self) -> Any:
        return self.args[0]

    @property
    def has_table(self) -> bool:
        return self.table is not None

    @property
    def has_doc_string(self) -> bool:
        return self.doc_string is not None

    @property
    def table_rows(self) -> list[dict[str, str]]:
        if self.table is None:
            raise ValueError("Step has no data table")
        return self.table.to_maps()

    @property
    def doc_content(self) -> str:
        if self.doc_string is None:
            raise ValueError("Step has no doc string")
        return self.doc_string.content


StepFunction = Callable[[ContextT, StepContext], Union[Awaitable[None], None]]


@dataclass(frozen=True)
class StepMatch(Generic[ContextT]):
    function: StepFunction[ContextT]
    params: Sequence[Any]
    mapper: LineMapper | None = None

    async def execute(
        self,
        context: ContextT,
        *,
        table: DataTable | None = None,
        doc_string: DocString | None = None,
        location: SourceLocation | None = None,
        resolved_args: Sequence[Any] | None = None,
    ):
        """Call the step function. ``resolved_args`` replaces the matched params."""
        step_context = StepContext(
            args=tuple(self.params if resolved_args is None else resolved_args),
            table=table,
            doc_string=doc_string,
            location=location,
        )
        result = self.function(context, step_context)
        if inspect.isawaitable(result):
            await result


@dataclass(frozen=True)
class _StepEntry(Generic[ContextT]):
    mapper: LineMapper
    function: StepFunction[ContextT]


@dataclass
class StepRegistry(Generic[ContextT]):
    """
    Ordered step definitions.

    The first registered pattern that matches a line wins, so register the more specific
    phrasing first::

        registry = StepRegistry()

        @registry.given("I have {count} cucumbers", types={"count": int})
        def have_cucumbers(context, ctx):
            context.cucumbers = ctx.arg(0)
    """

    _entries: list[_StepEntry[ContextT]] = field(default_factory=list)

    @classmethod
    def from_mapping(
        cls, steps: Mapping[MapperLike, StepFunction[ContextT]]
    ) -> StepRegistry[ContextT]:
        registry: StepRegistry[ContextT] = cls()
        for pattern, function in steps.items():
            registry.register(pattern, function)
        return registry

    def register(
        self,
        pattern: MapperLike,
        function: StepFunction[ContextT],
        types: Mapping[str, ParamTypeLike] | None = None,
    ):
        line_mapper = pattern if isinstance(pattern, LineMapper) else mapper(pattern, types)
        self._entries.append(_StepEntry(mapper=line_mapper, function=function))

    def step(
        self, pattern: MapperLike, types: Mapping[str, ParamTypeLike] | None = None
    ) -> Callable[[StepFunction[ContextT]], StepFunction[ContextT]]:
        """Decorate a step function to register it."""

        def decorator(function: StepFunction[ContextT]) -> StepFunction[ContextT]:
            self.register(pattern, function, types)
            return function

        return decorator

    # Keywords do not take part in matching.
    given = when = then = step

    def match(self, line: str) -> StepMatch[ContextT] | None:
        for entry in self._entries:
            params = entry.mapper(line)
            if params is not None:
                return StepMatch(function=entry.function, params=params, mapper=entry.mapper)
        return None

    def has_match(self, line: str) -> bool:
        """Whether any pattern matches the line, ignoring placeholder type conversion."""
        return any(entry.mapper.matches(line) for entry in self._entries)

    def merge(self, other: StepRegistry[ContextT]) -> StepRegistry[ContextT]:
        """Combine two registries. Steps from this registry take precedence."""
        return StepRegistry(_entries=[*self._entries, *other._entries])

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def patterns(self) -> list[str]:
        return [entry.mapper.pattern for entry in self._entries]

    @staticmethod
    def suggest_placeholder(step_text: str) -> str:
        """
        Generate a step definition stub for a step that is not registered.

        Quoted text is treated as a string parameter and bare integers as int parameters.
        """
        extractors: list[str] = []
        types: list[str] = []
        counts = {"text": 0, "number": 0}

        def _param(match: re.Match[str]) -> str:
            kind = "text" if match.group(1) is not None else "number"
            counts[kind] += 1
            name = kind if counts[kind] == 1 else f"{kind}{counts[kind]}"
            extractors.append(f"    {name} = ctx.arg({len(extractors)})")
            if kind == "number":
                types.append(f'"{name}": int')
                return f"{{{name}}}"
            return f'"{{{name}}}"'

        pattern = _SUGGESTED_PARAM.sub(_param, step_text)

        types_arg = f", types={{{', '.join(types)}}}" if types else ""
        lines = [
            f"# Missing step: {step_text}",
            f"@registry.step({pattern!r}{types_arg})",
            "async def step_impl(context, ctx):",
            *extractors,
            f"    raise NotImplementedError({step_text!r})",
        ]
        return "\n".join(lines) + "\n"
