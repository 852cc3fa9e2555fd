"""
Run a test plan through a host test framework.

The runner registers one test per scenario with a :class:`TestAdapter`. The host decides when
and how concurrently those tests run. Steps of one test always run in order.
"""
from __future__ import annotations

import abc
import asyncio
import inspect
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, NoReturn, Sequence, TypeVar, Union

from .environ import env_flag
from .model import Feature, Step
from .output import BddOutput
from .parser import parse_feature_file
from .plan import FeatureTestFactory, TestCase, TestGroup, TestPlan, TestStructure
from .registry import StepRegistry
from .reporter import (
    BddReporter,
    FeatureResult,
    ReportFeature,
    ReportScenario,
    ReportStep,
    ScenarioResult,
    ScenarioStatus,
    StepResult,
)
from .scheme import SchemeResolver
from .source import FeatureNotFound, FeatureSource, FileSystemSource

logger = logging.getLogger(__name__)

__all__ = [
    "BddHooks",
    "BddTestRunner",
    "StepFailedError",
    "StepNotFoundError",
    "TestAdapter",
    "run_bdd_tests",
]

ContextT = TypeVar("ContextT")

TestCallback = Callable[[ContextT], Awaitable[None]]
HookResult = Union[Awaitable[None], None]

RUN_WIP_ENV = "BDD_RUN_WIP"
NO_FEATURES_TEST = "No feature files found"


class StepNotFoundError(LookupError):
    """No registered pattern matches one or more steps."""

    def __init__(self, steps: Sequence[Step]):
        self.steps = list(steps)
        if len(self.steps) == 1:
            message = f"Step not found: {self.steps[0].full_text}{_at(self.steps[0])}"
        else:
            lines = [f"  - {_location_prefix(step)}{step.full_text}" for step in self.steps]
            message = "\n".join([f"{len(self.steps)} missing step(s):", *lines])
        super().__init__(message)


class StepFailedError(Exception):
    """A step, or the resolution of its parameters, raised an error."""

    def __init__(self, step: Step, error: BaseException):
        self.step = step
        self.error = error
        super().__init__(f"Step failed{_at(step)}: {step.full_text}\n{error}")


def _at(step: Step) -> str:
    return f" at {step.location}" if step.location is not None else ""


def _location_prefix(step: Step) -> str:
    return f"{step.location}: " if step.location is not None else ""


class TestAdapter(abc.ABC, Generic[ContextT]):
    """
    The operations the runner needs from a host test framework.

    ``test`` and ``group`` are called while the plan is registered. ``group`` must call its body
    right away. ``fail`` is called from inside a running test and is expected to raise the host's
    failure exception.
    """

    __test__ = False

    @abc.abstractmethod
    def test(
        self,
        name: str,
        callback: TestCallback[ContextT],
        *,
        tags: Sequence[str] = (),
        skip: bool = False,
    ):
        ...

    @abc.abstractmethod
    def group(self, name: str, body: Callable[[], None]):
        ...

    @abc.abstractmethod
    def set_up_all(self, body: Callable[[], Awaitable[None]]):
        ...

    @abc.abstractmethod
    def tear_down_all(self, body: Callable[[], Awaitable[None]]):
        ...

    @abc.abstractmethod
    def fail(self, message: str) -> NoReturn:
        ...


@dataclass(frozen=True)
class BddHooks:
    """Lifecycle hooks. Each may be a plain function or a coroutine function."""

    before_all: Callable[[], HookResult] | None = None
    after_all: Callable[[], HookResult] | None = None
    before_each: Callable[[str, Sequence[str]], HookResult] | None = None
    after_each: Callable[[str, bool, Sequence[str]], HookResult] | None = None


async def _call_hook(hook: Callable[..., HookResult] | None, *args: Any):
    if hook is None:
        return
    result = hook(*args)
    if inspect.isawaitable(result):
        await result


@dataclass
class BddTestRunner(Generic[ContextT]):
    """
    Discover features under ``roots`` and register them with the adapter.

    Scenarios tagged ``wip_tag`` are registered as skipped unless ``run_wip`` is set. When
    ``run_wip`` is not given, the ``BDD_RUN_WIP`` environment variable decides.
    """

    roots: Sequence[str]
    registry: StepRegistry[ContextT]
    adapter: TestAdapter[ContextT]
    source: FeatureSource = field(default_factory=FileSystemSource)
    structure: TestStructure = TestStructure.TREE
    output: BddOutput = field(default_factory=BddOutput)
    hooks: BddHooks = field(default_factory=BddHooks)
    scheme_resolver: SchemeResolver | None = None
    reporter: BddReporter = field(default_factory=BddReporter)
    wip_tag: str = "wip"
    run_wip: bool | None = None
    features: list[Feature] = field(default_factory=list, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _report_features: dict[str, ReportFeature] = field(default_factory=dict, init=False)
    _outcomes: dict[str, list[ScenarioStatus]] = field(default_factory=dict, init=False)

    def __post_init__(self):
        if self.run_wip is None:
            self.run_wip = env_flag(RUN_WIP_ENV)

    async def run(self) -> TestPlan | None:
        """Discover, parse and register every test. Returns None when no features were found."""
        self.features = await self._discover()
        if not self.features:
            self._register_no_features()
            return None

        factory = FeatureTestFactory(
            roots=self.roots, registry=self.registry, structure=self.structure
        )
        plan = factory.build_test_plan(self.features)
        self._register_plan(plan)
        return plan

    async def _discover(self) -> list[Feature]:
        paths: list[str] = []
        for root in self.roots:
            paths.extend(await self.source.list(root))
        logger.debug("Found %d feature file(s) in %s", len(paths), ", ".join(self.roots))
        return list(await asyncio.gather(*(parse_feature_file(p, self.source) for p in paths)))

    def _register_no_features(self):
        message = f"No .feature files found in: {', '.join(self.roots)}"

        async def _no_features(_context: ContextT):
            self._fail(FeatureNotFound(message))

        self.adapter.test(NO_FEATURES_TEST, _no_features)
        self.adapter.tear_down_all(self._flush)

    def _register_plan(self, plan: TestPlan):
        if self.hooks.before_all is not None:
            self.adapter.set_up_all(self._set_up)
        self.adapter.tear_down_all(self._tear_down)
        for group in plan.groups:
            self._register_group(group)

    async def _set_up(self):
        await _call_hook(self.hooks.before_all)

    async def _tear_down(self):
        try:
            await _call_hook(self.hooks.after_all)
        finally:
            await self._flush()

    async def _flush(self):
        self._complete_features()
        self.reporter.flush()

    def _complete_features(self):
        # Tests may finish in any order, so features complete only at the end of the run.
        with self._lock:
            completed = [
                (feature, FeatureResult.from_scenarios(self._outcomes.get(path, [])))
                for path, feature in self._report_features.items()
            ]
        for feature, result in completed:
            self.reporter.on_feature_complete(feature, result)

    def _record_outcome(self, feature_path: str | None, status: ScenarioStatus):
        if feature_path is None:
            return
        with self._lock:
            self._outcomes.setdefault(feature_path, []).append(status)

    def _register_group(self, group: TestGroup):
        def _body():
            self.output.print_feature(group.name)
            report_feature = None
            if group.feature is not None:
                feature = group.feature
                report_feature = ReportFeature(
                    name=feature.name,
                    path=feature.path,
                    tags=feature.tags,
                    source_scenarios=tuple(feature.all_scenarios),
                )
                with self._lock:
                    self._report_features[feature.path] = report_feature
                self.reporter.on_feature_start(report_feature)

            for child in group.children:
                self._register_group(child)
            for test_case in group.tests:
                self._register_test(test_case, group.background_steps, report_feature)

        self.adapter.group(group.name, _body)

    def _register_test(
        self,
        test_case: TestCase,
        background_steps: Sequence[Step],
        feature: ReportFeature | None,
    ):
        scenario = ReportScenario(
            name=test_case.name,
            tags=test_case.tags,
            feature_path=feature.path if feature is not None else None,
        )
        skip = self.wip_tag in test_case.tags and not self.run_wip
        if skip:
            logger.debug("Skipping work in progress: %s", test_case.name)
            self.reporter.on_scenario_start(scenario)
            self.reporter.on_scenario_complete(scenario, ScenarioResult.skipped())
            self._record_outcome(scenario.feature_path, ScenarioStatus.SKIPPED)

        steps = [*background_steps, *test_case.steps]

        async def _callback(context: ContextT):
            await self._run_test(context, test_case, steps, scenario)

        self.adapter.test(test_case.name, _callback, tags=test_case.tags, skip=skip)

    async def _run_test(
        self,
        context: ContextT,
        test_case: TestCase,
        steps: Sequence[Step],
        scenario: ReportScenario,
    ):
        self.output.print_scenario(test_case.name)
        self.reporter.on_scenario_start(scenario)
        error: BaseException | None = None
        try:
            missing = [step for step in steps if not self.registry.has_match(step.text)]
            if missing:
                self._report_missing(steps, missing, scenario)
                self._fail(StepNotFoundError(missing))
            await _call_hook(self.hooks.before_each, test_case.name, test_case.tags)
            await self._run_steps(context, steps, scenario)
        except BaseException as e:
            error = e
            raise
        finally:
            if error is None:
                status, result = ScenarioStatus.PASSED, ScenarioResult.passed()
            else:
                status, result = ScenarioStatus.FAILED, ScenarioResult.failed(str(error))
            self.reporter.on_scenario_complete(scenario, result)
            self._record_outcome(scenario.feature_path, status)
            await _call_hook(self.hooks.after_each, test_case.name, error is None, test_case.tags)

    async def _run_steps(self, context: ContextT, steps: Sequence[Step], scenario: ReportScenario):
        for index, step in enumerate(steps):
            try:
                await self._run_step(context, step, scenario)
            except BaseException:
                for skipped in steps[index + 1 :]:
                    self.reporter.on_step_complete(
                        self._report_step(skipped, scenario), StepResult.skipped()
                    )
                raise

    async def _run_step(self, context: ContextT, step: Step, scenario: ReportScenario):
        keyword = step.keyword.value
        report_step = self._report_step(step, scenario)
        self.reporter.on_step_start(report_step)
        started = time.perf_counter()
        try:
            match = self.registry.match(step.text)
            if match is None:
                raise StepNotFoundError([step])
            resolved_args = None
            if self.scheme_resolver is not None:
                resolved = await self.scheme_resolver.resolve_all(match.params)
                resolved_args = [param.resolved for param in resolved]
            await match.execute(
                context,
                table=step.data_table,
                doc_string=step.doc_string,
                location=step.location,
                resolved_args=resolved_args,
            )
        except Exception as e:
            elapsed = time.perf_counter() - started
            error = e if isinstance(e, StepNotFoundError) else StepFailedError(step, e)
            logger.debug("%s", error)
            self.output.print_step_failed(keyword, step.text)
            self.reporter.on_step_complete(report_step, StepResult.failed(elapsed, str(error)))
            self._fail(error)

        elapsed = time.perf_counter() - started
        self.output.print_step_complete(keyword, step.text, elapsed)
        self.reporter.on_step_complete(report_step, StepResult.passed(elapsed))

    def _report_missing(
        self, steps: Sequence[Step], missing: Sequence[Step], scenario: ReportScenario
    ):
        for step in steps:
            report_step = self._report_step(step, scenario)
            if step in missing:
                message = str(StepNotFoundError([step]))
                self.reporter.on_step_complete(report_step, StepResult.failed(0.0, message))
            else:
                self.reporter.on_step_complete(report_step, StepResult.skipped())

    @staticmethod
    def _report_step(step: Step, scenario: ReportScenario) -> ReportStep:
        return ReportStep(
            keyword=step.keyword.value,
            text=step.text,
            has_table=step.data_table is not None,
            has_doc_string=step.doc_string is not None,
            feature_path=scenario.feature_path,
            scenario_name=scenario.name,
        )

    def _fail(self, error: Exception) -> NoReturn:
        """Fail through the host, or raise ``error`` if the host's ``fail`` returns."""
        self.adapter.fail(str(error))
        raise error


async def run_bdd_tests(
    roots: Sequence[str],
    registry: StepRegistry[ContextT],
    adapter: TestAdapter[ContextT],
    **options: Any,
) -> TestPlan | None:
    """Build a :class:`BddTestRunner` and register every test with ``adapter``."""
    runner = BddTestRunner(roots=roots, registry=registry, adapter=adapter, **options)
    return await runner.run()
