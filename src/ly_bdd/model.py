"""Document model for parsed feature files."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from textwrap import dedent
from typing import Iterable, Iterator, Mapping

__all__ = [
    "Background",
    "DataTable",
    "DocString",
    "ExampleTable",
    "Feature",
    "Scenario",
    "ScenarioOutline",
    "SourceLocation",
    "Step",
    "StepKeyword",
]


def unique(items: Iterable[str]) -> tuple[str, ...]:
    """Drop duplicates, keeping first-seen order."""
    return tuple(dict.fromkeys(items))


@dataclass(frozen=True)
class SourceLocation:
    """A file path and 1-based line, rendered as a clickable ``path:line``."""

    path: str
    line: int

    def __str__(self) -> str:
        return f"{self.path}:{self.line}"


class StepKeyword(Enum):
    GIVEN = "Given"
    WHEN = "When"
    THEN = "Then"
    AND = "And"
    BUT = "But"


@dataclass(frozen=True)
class DataTable:
    """
    A table attached to a step.

    The first row of the table is the header row.
    """

    headers: tuple[str, ...]
    rows: tuple[tuple[str, ...], ...] = ()
    location: SourceLocation | None = field(default=None, compare=False)

    def to_maps(self) -> list[dict[str, str]]:
        return [dict(zip(self.headers, row)) for row in self.rows]

    @property
    def all_rows(self) -> list[tuple[str, ...]]:
        return [self.headers, *self.rows]


@dataclass(frozen=True)
class DocString:
    """A multi-line string attached to a step, with the delimiter's optional media type."""

    content: str
    media_type: str | None = None
    location: SourceLocation | None = field(default=None, compare=False)

    @property
    def dedented(self) -> str:
        return dedent(self.content)


@dataclass(frozen=True)
class Step:
    keyword: StepKeyword
    text: str
    location: SourceLocation | None = field(default=None, compare=False)
    data_table: DataTable | None = None
    doc_string: DocString | None = None

    @property
    def full_text(self) -> str:
        return f"{self.keyword.value} {self.text}"

    def __str__(self) -> str:
        return self.full_text


@dataclass(frozen=True)
class Background:
    steps: tuple[Step, ...] = ()


@dataclass(frozen=True)
class Scenario:
    name: str
    tags: tuple[str, ...] = ()
    steps: tuple[Step, ...] = ()


@dataclass(frozen=True)
class ExampleTable:
    """Rows substituted into a scenario outline, one scenario per row."""

    headers: tuple[str, ...]
    rows: tuple[tuple[str, ...], ...] = ()
    name: str | None = None
    tags: tuple[str, ...] = ()
    location: SourceLocation | None = field(default=None, compare=False)

    def to_maps(self) -> list[dict[str, str]]:
        return [dict(zip(self.headers, row)) for row in self.rows]


@dataclass(frozen=True)
class ScenarioOutline:
    """
    A scenario template.

    Steps reference example columns as ``<column>`` or ``{column}``. Tokens that do not name a
    column are left as they are.
    """

    name: str
    tags: tuple[str, ...] = ()
    steps: tuple[Step, ...] = ()
    examples: tuple[ExampleTable, ...] = ()

    def expand_to_scenarios(self) -> list[Scenario]:
        return list(self._expand())

    def _expand(self) -> Iterator[Scenario]:
        for table in self.examples:
            tags = unique([*self.tags, *table.tags])
            for index, values in enumerate(table.to_maps(), start=1):
                label = f"{table.name} #{index}" if table.name else f"Example {index}"
                yield Scenario(
                    name=f"{self.name} ({label})",
                    tags=tags,
                    steps=tuple(_substitute(step, values) for step in self.steps),
                )


def _substitute(step: Step, values: Mapping[str, str]) -> Step:
    text = step.text
    for key, value in values.items():
        text = text.replace(f"<{key}>", value).replace(f"{{{key}}}", value)
    return replace(step, text=text)


@dataclass(frozen=True)
class Feature:
    name: str
    path: str
    description: str | None = None
    tags: tuple[str, ...] = ()
    background: Background | None = None
    scenarios: tuple[Scenario, ...] = ()
    scenario_outlines: tuple[ScenarioOutline, ...] = ()

    @property
    def all_scenarios(self) -> list[Scenario]:
        """Plain scenarios followed by every expanded outline."""
        expanded = [
            scenario
            for outline in self.scenario_outlines
            for scenario in outline.expand_to_scenarios()
        ]
        return [*self.scenarios, *expanded]

    @property
    def background_steps(self) -> tuple[Step, ...]:
        return self.background.steps if self.background else ()
