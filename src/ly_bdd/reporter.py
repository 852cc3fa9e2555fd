"""
Observe a run and report on it.

Reporters receive feature, scenario and step events. The host may run test cases concurrently, so
a scenario can start before the previous one completes. Every scenario and step event carries
the feature path and scenario name it belongs to, and :class:`ReportLog` files events under that
key. The most recently started scenario is only used for events that carry no feature path.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Sequence, Union

import click

from .model import Scenario

logger = logging.getLogger(__name__)

__all__ = [
    "BddReporter",
    "BufferedReporter",
    "BufferedResults",
    "CompositeReporter",
    "ContinuousReporter",
    "FeatureRecord",
    "FeatureResult",
    "FeatureStatus",
    "PrintingReporter",
    "RecordingReporter",
    "ReportFeature",
    "ReportLog",
    "ReportMode",
    "ReportScenario",
    "ReportStep",
    "ReporterConfig",
    "ReporterConfigError",
    "ScenarioRecord",
    "ScenarioResult",
    "ScenarioStatus",
    "StepRecord",
    "StepResult",
    "StepStatus",
    "SummaryReporter",
    "TestSummary",
]

Printer = Callable[[str], None]


class StepStatus(Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


class ScenarioStatus(Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


class FeatureStatus(Enum):
    PASSED = "passed"
    FAILED = "failed"
    MIXED = "mixed"


@dataclass(frozen=True)
class ReportFeature:
    name: str
    path: str
    tags: tuple[str, ...] = ()
    # Parsed scenarios, so reports can list the ones that never ran.
    source_scenarios: tuple[Scenario, ...] = field(default=(), compare=False, repr=False)


@dataclass(frozen=True)
class ReportScenario:
    name: str
    tags: tuple[str, ...] = ()
    feature_path: str | None = None

    @property
    def key(self) -> tuple[str, str] | None:
        if self.feature_path is None:
            return None
        return (self.feature_path, self.name)


@dataclass(frozen=True)
class ReportStep:
    keyword: str
    text: str
    has_table: bool = False
    has_doc_string: bool = False
    feature_path: str | None = None
    scenario_name: str | None = None

    @property
    def key(self) -> tuple[str, str] | None:
        if self.feature_path is None or self.scenario_name is None:
            return None
        return (self.feature_path, self.scenario_name)

    def __str__(self) -> str:
        return f"{self.keyword} {self.text}"


@dataclass(frozen=True)
class StepResult:
    status: StepStatus
    duration: float | None = None
    error: str | None = None

    @classmethod
    def passed(cls, duration: float) -> StepResult:
        return cls(StepStatus.PASSED, duration=duration)

    @classmethod
    def failed(cls, duration: float, error: str) -> StepResult:
        return cls(StepStatus.FAILED, duration=duration, error=error)

    @classmethod
    def skipped(cls) -> StepResult:
        return cls(StepStatus.SKIPPED)


@dataclass(frozen=True)
class ScenarioResult:
    status: ScenarioStatus
    error: str | None = None

    @classmethod
    def passed(cls) -> ScenarioResult:
        return cls(ScenarioStatus.PASSED)

    @classmethod
    def failed(cls, error: str) -> ScenarioResult:
        return cls(ScenarioStatus.FAILED, error=error)

    @classmethod
    def skipped(cls) -> ScenarioResult:
        return cls(ScenarioStatus.SKIPPED)


@dataclass(frozen=True)
class FeatureResult:
    status: FeatureStatus

    @classmethod
    def passed(cls) -> FeatureResult:
        return cls(FeatureStatus.PASSED)

    @classmethod
    def failed(cls) -> FeatureResult:
        return cls(FeatureStatus.FAILED)

    @classmethod
    def mixed(cls) -> FeatureResult:
        return cls(FeatureStatus.MIXED)

    @classmethod
    def from_scenarios(cls, statuses: Iterable[ScenarioStatus]) -> FeatureResult:
        """Passed when nothing failed, failed when everything failed, otherwise mixed."""
        statuses = list(statuses)
        failures = statuses.count(ScenarioStatus.FAILED)
        if not failures:
            return cls.passed()
        if failures == len(statuses):
            return cls.failed()
        return cls.mixed()


class BddReporter:
    """Base reporter. Every event is a no-op, override the ones you need."""

    def on_feature_start(self, feature: ReportFeature):
        pass

    def on_feature_complete(self, feature: ReportFeature, result: FeatureResult):
        pass

    def on_scenario_start(self, scenario: ReportScenario):
        pass

    def on_scenario_complete(self, scenario: ReportScenario, result: ScenarioResult):
        pass

    def on_step_start(self, step: ReportStep):
        pass

    def on_step_complete(self, step: ReportStep, result: StepResult):
        pass

    def flush(self):
        """No more events will arrive for this run."""


@dataclass(frozen=True)
class FeatureStartEvent:
    feature: ReportFeature

    def __str__(self) -> str:
        return f"FeatureStart: {self.feature.name}"


@dataclass(frozen=True)
class FeatureCompleteEvent:
    feature: ReportFeature
    result: FeatureResult

    def __str__(self) -> str:
        return f"FeatureComplete: {self.feature.name} ({self.result.status.value})"


@dataclass(frozen=True)
class ScenarioStartEvent:
    scenario: ReportScenario

    def __str__(self) -> str:
        return f"ScenarioStart: {self.scenario.name}"


@dataclass(frozen=True)
class ScenarioCompleteEvent:
    scenario: ReportScenario
    result: ScenarioResult

    def __str__(self) -> str:
        return f"ScenarioComplete: {self.scenario.name} ({self.result.status.value})"


@dataclass(frozen=True)
class StepStartEvent:
    step: ReportStep

    def __str__(self) -> str:
        return f"StepStart: {self.step}"


@dataclass(frozen=True)
class StepCompleteEvent:
    step: ReportStep
    result: StepResult

    def __str__(self) -> str:
        return f"StepComplete: {self.step} ({self.result.status.value})"


ReporterEvent = Union[
    FeatureStartEvent,
    FeatureCompleteEvent,
    ScenarioStartEvent,
    ScenarioCompleteEvent,
    StepStartEvent,
    StepCompleteEvent,
]


class ContinuousReporter(BddReporter):
    """Hand every event to ``on_event`` as it happens."""

    def __init__(self, on_event: Callable[[ReporterEvent], None]):
        self.on_event = on_event

    def on_feature_start(self, feature: ReportFeature):
        self.on_event(FeatureStartEvent(feature))

    def on_feature_complete(self, feature: ReportFeature, result: FeatureResult):
        self.on_event(FeatureCompleteEvent(feature, result))

    def on_scenario_start(self, scenario: ReportScenario):
        self.on_event(ScenarioStartEvent(scenario))

    def on_scenario_complete(self, scenario: ReportScenario, result: ScenarioResult):
        self.on_event(ScenarioCompleteEvent(scenario, result))

    def on_step_start(self, step: ReportStep):
        self.on_event(StepStartEvent(step))

    def on_step_complete(self, step: ReportStep, result: StepResult):
        self.on_event(StepCompleteEvent(step, result))


@dataclass
class StepRecord:
    step: ReportStep
    result: StepResult | None = None


@dataclass
class ScenarioRecord:
    scenario: ReportScenario
    result: ScenarioResult | None = None
    steps: list[StepRecord] = field(default_factory=list)

    @property
    def status(self) -> ScenarioStatus | None:
        """The reported status, or one derived from the steps seen so far."""
        if self.result is not None:
            return self.result.status
        if not self.steps:
            return None
        if any(
            record.result is not None and record.result.status is StepStatus.FAILED
            for record in self.steps
        ):
            return ScenarioStatus.FAILED
        return ScenarioStatus.PASSED


@dataclass
class FeatureRecord:
    feature: ReportFeature
    result: FeatureResult | None = None
    scenarios: list[ScenarioRecord] = field(default_factory=list)

    @property
    def status(self) -> FeatureStatus | None:
        if self.result is not None:
            return self.result.status
        statuses = [record.status for record in self.scenarios if record.status is not None]
        if not statuses:
            return None
        return FeatureResult.from_scenarios(statuses).status

    @property
    def executed_names(self) -> set[str]:
        return {record.scenario.name for record in self.scenarios}

    @property
    def unexecuted(self) -> list[Scenario]:
        """Source scenarios with no start event, such as skipped work in progress."""
        executed = self.executed_names
        return [
            scenario
            for scenario in self.feature.source_scenarios
            if scenario.name not in executed
        ]


class ReportLog:
    """
    Features, scenarios and steps of a run, filed by feature path and scenario name.

    Every method takes the log's lock, so events may arrive from several threads in any order.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.features: list[FeatureRecord] = []
        self._features_by_path: dict[str, FeatureRecord] = {}
        self._scenarios: dict[tuple[str, str], ScenarioRecord] = {}
        self._current_feature: FeatureRecord | None = None
        self._current_scenario: ScenarioRecord | None = None

    def feature(self, path: str) -> FeatureRecord | None:
        with self._lock:
            return self._features_by_path.get(path)

    def scenario(self, feature_path: str, name: str) -> ScenarioRecord | None:
        with self._lock:
            return self._scenarios.get((feature_path, name))

    def start_feature(self, feature: ReportFeature) -> FeatureRecord:
        with self._lock:
            record = self._features_by_path.get(feature.path)
            if record is None:
                record = FeatureRecord(feature)
                self.features.append(record)
                self._features_by_path[feature.path] = record
            self._current_feature = record
            return record

    def complete_feature(self, feature: ReportFeature, result: FeatureResult):
        with self._lock:
            record = self._features_by_path.get(feature.path)
            if record is None:
                record = FeatureRecord(feature)
                self.features.append(record)
                self._features_by_path[feature.path] = record
            record.result = result
            if record is self._current_feature:
                self._current_feature = None

    def start_scenario(self, scenario: ReportScenario) -> ScenarioRecord:
        with self._lock:
            record = ScenarioRecord(scenario)
            if scenario.feature_path is not None:
                feature = self._features_by_path.get(scenario.feature_path)
            else:
                feature = self._current_feature
            if feature is None:
                logger.debug("Scenario %r started outside of a known feature", scenario.name)
            else:
                feature.scenarios.append(record)
            if scenario.key is not None:
                self._scenarios[scenario.key] = record
            self._current_scenario = record
            return record

    def complete_scenario(self, scenario: ReportScenario, result: ScenarioResult):
        with self._lock:
            record = self._find_scenario(scenario.key)
            if record is None:
                logger.debug("Completed scenario %r was never started", scenario.name)
                return
            record.result = result
            if record is self._current_scenario:
                self._current_scenario = None

    def start_step(self, step: ReportStep):
        with self._lock:
            record = self._find_scenario(step.key)
            if record is not None:
                record.steps.append(StepRecord(step))

    def complete_step(self, step: ReportStep, result: StepResult):
        with self._lock:
            record = self._find_scenario(step.key)
            if record is None:
                return
            for step_record in reversed(record.steps):
                if step_record.result is None and step_record.step == step:
                    step_record.result = result
                    return
            # Steps may complete without a start event, e.g. skipped ones.
            record.steps.append(StepRecord(step, result))

    def _find_scenario(self, key: tuple[str, str] | None) -> ScenarioRecord | None:
        if key is not None:
            return self._scenarios.get(key)
        return self._current_scenario


class RecordingReporter(BddReporter):
    """Base for reporters that file every event in a :class:`ReportLog`."""

    def __init__(self):
        self.log = ReportLog()

    def on_feature_start(self, feature: ReportFeature):
        self.log.start_feature(feature)

    def on_feature_complete(self, feature: ReportFeature, result: FeatureResult):
        self.log.complete_feature(feature, result)

    def on_scenario_start(self, scenario: ReportScenario):
        self.log.start_scenario(scenario)

    def on_scenario_complete(self, scenario: ReportScenario, result: ScenarioResult):
        self.log.complete_scenario(scenario, result)

    def on_step_start(self, step: ReportStep):
        self.log.start_step(step)

    def on_step_complete(self, step: ReportStep, result: StepResult):
        self.log.complete_step(step, result)


@dataclass(frozen=True)
class BufferedResults:
    features: Sequence[FeatureRecord]

    def __str__(self) -> str:
        lines: list[str] = []
        for feature in self.features:
            lines.append(f"Feature: {feature.feature.name}{_status_suffix(feature.status)}")
            for scenario in feature.scenarios:
                suffix = _status_suffix(scenario.status)
                lines.append(f"  Scenario: {scenario.scenario.name}{suffix}")
                for step in scenario.steps:
                    status = step.result.status if step.result is not None else None
                    lines.append(f"    {step.step}{_status_suffix(status)}")
        return "\n".join(lines)


def _status_suffix(status: Enum | None) -> str:
    return f" ({status.value})" if status is not None else ""


class BufferedReporter(RecordingReporter):
    """Collect the whole run and hand it to ``on_complete`` on flush."""

    def __init__(self, on_complete: Callable[[BufferedResults], None]):
        super().__init__()
        self.on_complete = on_complete

    def flush(self):
        self.on_complete(BufferedResults(list(self.log.features)))


@dataclass(frozen=True)
class TestSummary:
    __test__ = False

    feature_count: int = 0
    scenario_passed: int = 0
    scenario_failed: int = 0
    scenario_skipped: int = 0
    step_passed: int = 0
    step_failed: int = 0
    step_skipped: int = 0

    @property
    def scenario_total(self) -> int:
        return self.scenario_passed + self.scenario_failed + self.scenario_skipped

    @property
    def step_total(self) -> int:
        return self.step_passed + self.step_failed + self.step_skipped

    def __str__(self) -> str:
        return (
            f"{_plural(self.feature_count, 'feature')}, "
            f"{_plural(self.scenario_total, 'scenario')} "
            f"({self.scenario_passed} passed, {self.scenario_failed} failed, "
            f"{self.scenario_skipped} skipped)"
        )


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


class SummaryReporter(BddReporter):
    """Count features, scenarios and steps. Hands a :class:`TestSummary` to ``on_summary``."""

    def __init__(self, on_summary: Callable[[TestSummary], None]):
        self.on_summary = on_summary
        self._lock = threading.Lock()
        self._features = 0
        self._scenarios = {status: 0 for status in ScenarioStatus}
        self._steps = {status: 0 for status in StepStatus}

    def on_feature_start(self, feature: ReportFeature):
        with self._lock:
            self._features += 1

    def on_scenario_complete(self, scenario: ReportScenario, result: ScenarioResult):
        with self._lock:
            self._scenarios[result.status] += 1

    def on_step_complete(self, step: ReportStep, result: StepResult):
        with self._lock:
            self._steps[result.status] += 1

    @property
    def summary(self) -> TestSummary:
        with self._lock:
            return TestSummary(
                feature_count=self._features,
                scenario_passed=self._scenarios[ScenarioStatus.PASSED],
                scenario_failed=self._scenarios[ScenarioStatus.FAILED],
                scenario_skipped=self._scenarios[ScenarioStatus.SKIPPED],
                step_passed=self._steps[StepStatus.PASSED],
                step_failed=self._steps[StepStatus.FAILED],
                step_skipped=self._steps[StepStatus.SKIPPED],
            )

    def flush(self):
        self.on_summary(self.summary)


class CompositeReporter(BddReporter):
    """Forward every event to each reporter, in order."""

    def __init__(self, reporters: Iterable[BddReporter]):
        self.reporters = list(reporters)

    def on_feature_start(self, feature: ReportFeature):
        for reporter in self.reporters:
            reporter.on_feature_start(feature)

    def on_feature_complete(self, feature: ReportFeature, result: FeatureResult):
        for reporter in self.reporters:
            reporter.on_feature_complete(feature, result)

    def on_scenario_start(self, scenario: ReportScenario):
        for reporter in self.reporters:
            reporter.on_scenario_start(scenario)

    def on_scenario_complete(self, scenario: ReportScenario, result: ScenarioResult):
        for reporter in self.reporters:
            reporter.on_scenario_complete(scenario, result)

    def on_step_start(self, step: ReportStep):
        for reporter in self.reporters:
            reporter.on_step_start(step)

    def on_step_complete(self, step: ReportStep, result: StepResult):
        for reporter in self.reporters:
            reporter.on_step_complete(step, result)

    def flush(self):
        for reporter in self.reporters:
            reporter.flush()


STEP_INDICATORS = {StepStatus.PASSED: "✓", StepStatus.FAILED: "✗", StepStatus.SKIPPED: "-"}


class PrintingReporter(BddReporter):
    """Print features, scenarios and finished steps with an indicator per step."""

    def __init__(self, printer: Printer = click.echo):
        self.printer = printer

    def on_feature_start(self, feature: ReportFeature):
        self.printer(f"Feature: {feature.name}")

    def on_scenario_start(self, scenario: ReportScenario):
        self.printer(f"  Scenario: {scenario.name}")

    def on_step_complete(self, step: ReportStep, result: StepResult):
        self.printer(f"    {STEP_INDICATORS[result.status]} {step}")


class ReportMode(Enum):
    CONTINUOUS = "continuous"
    FULL = "full"
    SUMMARY = "summary"
    FILE = "file"

    @property
    def is_live(self) -> bool:
        return self is ReportMode.CONTINUOUS

    @property
    def is_buffered(self) -> bool:
        return self is ReportMode.FULL

    @property
    def is_summary_only(self) -> bool:
        return self is ReportMode.SUMMARY

    @property
    def writes_to_file(self) -> bool:
        return self is ReportMode.FILE


class ReporterConfigError(ValueError):
    """The reporter configuration cannot build a reporter."""


def format_event(event: ReporterEvent) -> str | None:
    """One console line for a live event, or None for events that print nothing."""
    if isinstance(event, FeatureStartEvent):
        return f"\nFeature: {event.feature.name}"
    if isinstance(event, ScenarioStartEvent):
        return f"  Scenario: {event.scenario.name}"
    if isinstance(event, StepCompleteEvent):
        return f"    {STEP_INDICATORS[event.result.status]} {event.step}"
    return None


@dataclass(frozen=True)
class ReporterConfig:
    """
    Build reporters from report modes.

    ``modes`` wins over ``mode`` when given. Several modes give a :class:`CompositeReporter`.
    File mode needs ``output_dir``.
    """

    mode: ReportMode = ReportMode.CONTINUOUS
    modes: Sequence[ReportMode] = ()
    output_dir: str | None = None
    clean_first: bool = False
    printer: Printer | None = None

    @property
    def all_modes(self) -> list[ReportMode]:
        return list(self.modes) if self.modes else [self.mode]

    def create_reporter(self) -> BddReporter:
        modes = self.all_modes
        if len(modes) == 1:
            return self._create_single_reporter(modes[0])
        return CompositeReporter(self._create_single_reporter(mode) for mode in modes)

    def _create_single_reporter(self, mode: ReportMode) -> BddReporter:
        printer = self.printer or click.echo

        if mode is ReportMode.CONTINUOUS:

            def _print_event(event: ReporterEvent):
                line = format_event(event)
                if line is not None:
                    printer(line)

            return ContinuousReporter(on_event=_print_event)
        if mode is ReportMode.FULL:
            return BufferedReporter(on_complete=lambda results: printer(str(results)))
        if mode is ReportMode.SUMMARY:
            return SummaryReporter(on_summary=lambda summary: printer(str(summary)))
        if self.output_dir is None:
            raise ReporterConfigError("output_dir is required for file report mode")
        from .markdown import MarkdownFileReporter

        return MarkdownFileReporter(output_dir=self.output_dir, clean_first=self.clean_first)
