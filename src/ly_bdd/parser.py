"""
Parse Gherkin feature text into the document model.

The parser is a single pass over the lines. Its state is one :class:`_ParserState`: the current
section, the block (background, scenario or outline) being built, the pending examples table,
and at most one open collector for a step's data table or doc string.

Malformed input never raises. Unknown lines are ignored, an unterminated doc string collects to
the end of the input, and a document without a ``Feature:`` line is named "Unnamed Feature".
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from enum import Enum, auto
from typing import Union

from .model import (
    Background,
    DataTable,
    DocString,
    ExampleTable,
    Feature,
    Scenario,
    ScenarioOutline,
    SourceLocation,
    Step,
    StepKeyword,
)
from .source import FeatureSource

logger = logging.getLogger(__name__)

__all__ = ["discover_feature_files", "parse_feature", "parse_feature_file"]

UNNAMED_FEATURE = "Unnamed Feature"
DOC_STRING_DELIMITERS = ('"""', "'''")
_OUTLINE_HEADERS = ("Scenario Outline:", "Scenario Template:")
_EXAMPLES_HEADERS = ("Examples:", "Scenarios:")
_TAG_SPLIT = re.compile(r"\s+")


class Section(Enum):
    NONE = auto()
    FEATURE = auto()
    BACKGROUND = auto()
    SCENARIO = auto()
    OUTLINE = auto()
    EXAMPLES = auto()


@dataclass
class _Block:
    """A background, scenario or outline under construction."""

    kind: Section
    name: str = ""
    tags: list[str] = field(default_factory=list)
    steps: list[Step] = field(default_factory=list)
    examples: list[ExampleTable] = field(default_factory=list)


@dataclass
class _PendingExamples:
    name: str
    tags: list[str]
    location: SourceLocation
    headers: list[str] = field(default_factory=list)
    rows: list[list[str]] = field(default_factory=list)

    def build(self) -> ExampleTable | None:
        if not self.headers:
            return None
        return ExampleTable(
            name=self.name or None,
            tags=tuple(self.tags),
            headers=tuple(self.headers),
            rows=tuple(tuple(row) for row in self.rows),
            location=self.location,
        )


@dataclass
class _TableCollector:
    location: SourceLocation
    headers: list[str]
    rows: list[list[str]] = field(default_factory=list)

    def attach(self, step: Step) -> Step:
        table = DataTable(
            headers=tuple(self.headers),
            rows=tuple(tuple(row) for row in self.rows),
            location=self.location,
        )
        return replace(step, data_table=table)


@dataclass
class _DocStringCollector:
    location: SourceLocation
    delimiter: str
    media_type: str
    lines: list[str] = field(default_factory=list)

    def closes(self, line: str) -> bool:
        return line.startswith(self.delimiter)

    def attach(self, step: Step) -> Step:
        doc_string = DocString(
            content="\n".join(self.lines),
            media_type=self.media_type or None,
            location=self.location,
        )
        return replace(step, doc_string=doc_string)


_Collector = Union[_TableCollector, _DocStringCollector, None]


@dataclass
class _ParserState:
    path: str
    section: Section = Section.NONE
    feature_name: str | None = None
    feature_tags: list[str] = field(default_factory=list)
    description: list[str] = field(default_factory=list)
    in_description: bool = False
    pending_tags: list[str] = field(default_factory=list)
    background: Background | None = None
    scenarios: list[Scenario] = field(default_factory=list)
    outlines: list[ScenarioOutline] = field(default_factory=list)
    block: _Block | None = None
    examples: _PendingExamples | None = None
    collector: _Collector = None

    def location(self, line_number: int) -> SourceLocation:
        return SourceLocation(path=self.path, line=line_number)

    @property
    def steps(self) -> list[Step]:
        return self.block.steps if self.block is not None else []

    def take_tags(self) -> list[str]:
        tags, self.pending_tags = self.pending_tags, []
        return tags

    def close_collector(self):
        """Attach an open data table or doc string to the most recent step."""
        collector, self.collector = self.collector, None
        if collector is None or self.block is None or not self.block.steps:
            return
        self.block.steps[-1] = collector.attach(self.block.steps[-1])

    def close_examples(self):
        examples, self.examples = self.examples, None
        if examples is None:
            return
        table = examples.build()
        if table is None:
            return
        if self.block is not None and self.block.kind is Section.OUTLINE:
            self.block.examples.append(table)
        else:
            logger.debug("%s: examples outside of a scenario outline are ignored", table.location)

    def close_block(self):
        """Finish whatever background, scenario or outline is being built."""
        self.close_collector()
        self.close_examples()
        block, self.block = self.block, None
        if block is None:
            return
        if block.kind is Section.BACKGROUND:
            self.background = Background(steps=tuple(block.steps))
        elif not block.name:
            logger.debug("%s: dropping unnamed %s", self.path, block.kind.name.lower())
        elif block.kind is Section.OUTLINE:
            self.outlines.append(
                ScenarioOutline(
                    name=block.name,
                    tags=tuple(block.tags),
                    steps=tuple(block.steps),
                    examples=tuple(block.examples),
                )
            )
        else:
            self.scenarios.append(
                Scenario(name=block.name, tags=tuple(block.tags), steps=tuple(block.steps))
            )

    def open_block(self, kind: Section, name: str = ""):
        self.close_block()
        tags = self.take_tags() if kind is not Section.BACKGROUND else []
        self.block = _Block(kind=kind, name=name, tags=tags)
        self.section = kind
        self.in_description = False

    def build(self) -> Feature:
        return Feature(
            name=self.feature_name or UNNAMED_FEATURE,
            path=self.path,
            description="\n".join(self.description) if self.description else None,
            tags=tuple(self.feature_tags),
            background=self.background,
            scenarios=tuple(self.scenarios),
            scenario_outlines=tuple(self.outlines),
        )


def parse_feature(content: str, path: str) -> Feature:
    """Parse the text of one feature file."""
    state = _ParserState(path=path)
    for line_number, raw_line in enumerate(content.split("\n"), start=1):
        _parse_line(state, raw_line, line_number)
    state.close_block()
    feature = state.build()
    logger.debug(
        "Parsed %s: %d scenario(s), %d outline(s)",
        path,
        len(feature.scenarios),
        len(feature.scenario_outlines),
    )
    return feature


def _parse_line(state: _ParserState, raw_line: str, line_number: int):
    line = raw_line.strip()

    if isinstance(state.collector, _DocStringCollector):
        if state.collector.closes(line):
            state.close_collector()
        else:
            state.collector.lines.append(raw_line)
        return

    if line.startswith(DOC_STRING_DELIMITERS) and state.steps:
        state.close_collector()
        state.collector = _DocStringCollector(
            location=state.location(line_number),
            delimiter=line[:3],
            media_type=line[3:].strip(),
        )
        return

    if line.startswith("|") and state.steps and state.section is not Section.EXAMPLES:
        cells = parse_table_row(line)
        if isinstance(state.collector, _TableCollector):
            state.collector.rows.append(cells)
        else:
            state.collector = _TableCollector(location=state.location(line_number), headers=cells)
        return
    if isinstance(state.collector, _TableCollector):
        state.close_collector()

    if line.startswith("|") and state.examples is not None:
        cells = parse_table_row(line)
        if state.examples.headers:
            state.examples.rows.append(cells)
        else:
            state.examples.headers = cells
        return

    if not line:
        state.in_description = False
        return
    if line.startswith("#") or line.startswith("import "):
        return

    if line.startswith("@"):
        state.pending_tags.extend(
            tag[1:] for tag in _TAG_SPLIT.split(line) if tag.startswith("@") and len(tag) > 1
        )
        return

    if _parse_header(state, line, line_number):
        return

    step = parse_step(line, state.location(line_number))
    if step is not None:
        if state.block is None:
            logger.debug("%s: step outside of a scenario is ignored", step.location)
        else:
            state.block.steps.append(step)
        state.in_description = False
        return

    if state.in_description and state.section is Section.FEATURE:
        state.description.append(line)


def _parse_header(state: _ParserState, line: str, line_number: int) -> bool:
    if line.startswith("Feature:"):
        state.close_block()
        state.feature_name = _after(line, "Feature:")
        state.feature_tags.extend(state.take_tags())
        state.section = Section.FEATURE
        state.in_description = True
        return True
    if line.startswith("Background:"):
        state.open_block(Section.BACKGROUND)
        return True
    for header in _OUTLINE_HEADERS:
        if line.startswith(header):
            state.open_block(Section.OUTLINE, _after(line, header))
            return True
    for header in _EXAMPLES_HEADERS:
        if line.startswith(header):
            state.close_collector()
            state.close_examples()
            state.examples = _PendingExamples(
                name=_after(line, header),
                tags=state.take_tags(),
                location=state.location(line_number),
            )
            state.section = Section.EXAMPLES
            return True
    if line.startswith("Scenario:"):
        state.open_block(Section.SCENARIO, _after(line, "Scenario:"))
        return True
    return False


def _after(line: str, prefix: str) -> str:
    return line[len(prefix) :].strip()


def parse_table_row(line: str) -> list[str]:
    """Split a ``| a | b |`` row into trimmed cells."""
    cells = [cell.strip() for cell in line.split("|")]
    # Leading and trailing pipes produce empty edge cells.
    if cells and not cells[0]:
        cells = cells[1:]
    if cells and not cells[-1]:
        cells = cells[:-1]
    return cells


def parse_step(line: str, location: SourceLocation | None = None) -> Step | None:
    for keyword in StepKeyword:
        prefix = f"{keyword.value} "
        if line.startswith(prefix):
            return Step(keyword=keyword, text=line[len(prefix) :].strip(), location=location)
    return None


async def discover_feature_files(root: str, source: FeatureSource) -> list[str]:
    """List the feature files under a root (a directory or a single file)."""
    paths = await source.list(root)
    logger.debug("Discovered %d feature file(s) under %s", len(paths), root)
    return paths


async def parse_feature_file(path: str, source: FeatureSource) -> Feature:
    return parse_feature(await source.read(path), path)
