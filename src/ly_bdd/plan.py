"""Turn parsed features into a framework independent test plan."""
from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, Iterable, Iterator, Sequence, TypeVar

from .model import Feature, Step, unique
from .registry import StepRegistry

logger = logging.getLogger(__name__)

__all__ = [
    "FeatureTestFactory",
    "MissingStepsError",
    "TestCase",
    "TestGroup",
    "TestPlan",
    "TestStructure",
]

ContextT = TypeVar("ContextT")


class TestStructure(Enum):
    """How features are grouped."""

    __test__ = False

    FLAT = "flat"
    TREE = "tree"


@dataclass(frozen=True)
class TestCase:
    """One scenario, with feature and scenario tags merged."""

    __test__ = False

    name: str
    steps: tuple[Step, ...] = ()
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class TestGroup:
    """
    A feature, or a directory of features in tree mode.

    Feature groups carry their feature and its background steps, which run before every test
    case of the group.
    """

    __test__ = False

    name: str
    tests: tuple[TestCase, ...] = ()
    children: tuple[TestGroup, ...] = ()
    background_steps: tuple[Step, ...] = ()
    feature: Feature | None = field(default=None, compare=False, repr=False)

    @property
    def total_tests(self) -> int:
        return len(self.tests) + sum(child.total_tests for child in self.children)

    def walk(self) -> Iterator[TestGroup]:
        """This group and its descendants, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass(frozen=True)
class TestPlan:
    __test__ = False

    groups: tuple[TestGroup, ...] = ()

    @property
    def total_tests(self) -> int:
        return sum(group.total_tests for group in self.groups)

    def walk(self) -> Iterator[TestGroup]:
        for group in self.groups:
            yield from group.walk()


class MissingStepsError(Exception):
    """Feature files use steps that are not registered."""

    def __init__(self, missing_steps: Sequence[Step]):
        self.missing_steps = list(missing_steps)
        lines = [f"  - {step.location}: {step.text}" for step in self.missing_steps]
        super().__init__("\n".join([f"{len(self.missing_steps)} step(s) not found:", *lines]))


@dataclass
class FeatureTestFactory(Generic[ContextT]):
    """
    Build test plans and find missing steps.

    ``roots`` is one feature root or several. In tree mode a feature is bucketed by its directory
    relative to the deepest root that contains it.
    """

    roots: str | Sequence[str]
    registry: StepRegistry[ContextT]
    structure: TestStructure = TestStructure.TREE

    def build_test_plan(self, features: Sequence[Feature]) -> TestPlan:
        if self.structure is TestStructure.FLAT:
            plan = self._build_flat_plan(features)
        else:
            plan = self._build_tree_plan(features)
        logger.debug(
            "Built %s plan: %d group(s), %d test(s)",
            self.structure.value,
            len(plan.groups),
            plan.total_tests,
        )
        return plan

    def _build_flat_plan(self, features: Iterable[Feature]) -> TestPlan:
        return TestPlan(groups=tuple(feature_to_group(feature) for feature in features))

    def _build_tree_plan(self, features: Sequence[Feature]) -> TestPlan:
        by_folder: dict[str, list[Feature]] = {}
        for feature in features:
            folder = posixpath.dirname(self._relative_path(feature.path))
            by_folder.setdefault(folder, []).append(feature)

        if list(by_folder) == [""]:
            return self._build_flat_plan(features)

        groups: list[TestGroup] = []
        for folder, folder_features in by_folder.items():
            children = tuple(feature_to_group(feature) for feature in folder_features)
            if folder:
                groups.append(TestGroup(name=folder, children=children))
            else:
                groups.extend(children)
        return TestPlan(groups=tuple(groups))

    @property
    def _normalized_roots(self) -> list[str]:
        roots = [self.roots] if isinstance(self.roots, str) else list(self.roots)
        normalized = {_normalize(root) for root in roots if root}
        return sorted(normalized, key=lambda root: (root != ".", len(root)), reverse=True)

    def _relative_path(self, path: str) -> str:
        path = _normalize(path)
        for root in self._normalized_roots:
            if root == ".":
                return path
            if path == root:
                return posixpath.basename(path)
            if path.startswith(f"{root}/"):
                return path[len(root) + 1 :]
        return path

    def find_missing_steps(self, features: Iterable[Feature]) -> list[Step]:
        """Unregistered steps, one per distinct step text, in document order."""
        seen: set[str] = set()
        missing: list[Step] = []
        for feature in features:
            steps = [
                *feature.background_steps,
                *(step for scenario in feature.all_scenarios for step in scenario.steps),
            ]
            for step in steps:
                if step.text in seen or self.registry.has_match(step.text):
                    continue
                seen.add(step.text)
                missing.append(step)
        if missing:
            logger.debug("%d missing step(s)", len(missing))
        return missing

    def generate_placeholders(self, missing_steps: Iterable[Step]) -> str:
        chunks = ["# Add these step definitions to your registry:", ""]
        for step in missing_steps:
            chunks.append(StepRegistry.suggest_placeholder(step.text))
        return "\n".join(chunks)


def feature_to_group(feature: Feature) -> TestGroup:
    tests = tuple(
        TestCase(
            name=scenario.name,
            steps=scenario.steps,
            tags=unique([*feature.tags, *scenario.tags]),
        )
        for scenario in feature.all_scenarios
    )
    return TestGroup(
        name=feature.name,
        tests=tests,
        background_steps=feature.background_steps,
        feature=feature,
    )


def _normalize(path: str) -> str:
    """``./features/`` and ``features`` name the same root."""
    return posixpath.normpath(path.replace("\\", "/"))
