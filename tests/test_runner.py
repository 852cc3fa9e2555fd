import asyncio
from textwrap import dedent

import pytest

from ly_bdd.environ import environ
from ly_bdd.host import LocalTestHost, Outcome
from ly_bdd.output import BddOutput
from ly_bdd.registry import StepRegistry
from ly_bdd.reporter import (
    BufferedReporter,
    FeatureStatus,
    RecordingReporter,
    ScenarioStatus,
    StepStatus,
    SummaryReporter,
)
from ly_bdd.runner import (
    NO_FEATURES_TEST,
    BddHooks,
    BddTestRunner,
    StepFailedError,
    StepNotFoundError,
    run_bdd_tests,
)
from ly_bdd.scheme import SchemeResolver
from ly_bdd.source import MappingSource
from ly_bdd.translation import MapTranslationHandler

CALC = dedent(
    """\
    Feature: Calculator

      Background:
        Given a calculator

      Scenario: Add
        When I add 2 and 3
        Then the result is 5

      Scenario: Wrong
        When I add 2 and 2
        Then the result is 5
        And nothing else happens
    """
)

WIP = dedent(
    """\
    Feature: Later

      @wip
      Scenario: Not ready
        Given a calculator
    """
)

GREETING = dedent(
    """\
    Feature: Greeting

      Scenario: Hello
        When I greet {t:hello(name: 'Ann')}
        Then the greeting is "Hello Ann!"
    """
)

CALC_PATH = "features/calc.feature"


def calculator_steps() -> StepRegistry:
    registry = StepRegistry()

    @registry.given("a calculator")
    def calculator(context, ctx):
        context.result = 0

    @registry.when("I add {a} and {b}", types={"a": int, "b": int})
    async def add(context, ctx):
        await asyncio.sleep(0)
        context.result = ctx.arg(0) + ctx.arg(1)

    @registry.then("the result is {value}", types={"value": int})
    def result(context, ctx):
        if context.result != ctx.arg(0):
            raise AssertionError(f"got {context.result}")

    @registry.then("nothing else happens")
    def nothing(context, ctx):
        pass

    return registry


async def run_features(features, registry=None, host=None, **options):
    host = host or LocalTestHost()
    runner = BddTestRunner(
        roots=["features"],
        registry=calculator_steps() if registry is None else registry,
        adapter=host,
        source=MappingSource(features),
        **options,
    )
    await runner.run()
    outcomes = await host.run()
    return host, {outcome.name: outcome for outcome in outcomes}


@pytest.mark.asyncio
async def test_pass_and_fail_with_location():
    reporter = RecordingReporter()
    host, outcomes = await run_features({CALC_PATH: CALC}, reporter=reporter)

    assert outcomes["Add"].outcome is Outcome.PASSED
    assert outcomes["Add"].full_name == "Calculator > Add"
    wrong = outcomes["Wrong"]
    assert wrong.outcome is Outcome.FAILED
    assert wrong.message == f"Step failed at {CALC_PATH}:12: Then the result is 5\ngot 4"
    assert (host.passed, host.failed, host.skipped) == (1, 1, 0)

    record = reporter.log.scenario(CALC_PATH, "Wrong")
    assert record is not None
    assert [(step.step.text, step.result.status) for step in record.steps] == [
        ("a calculator", StepStatus.PASSED),
        ("I add 2 and 2", StepStatus.PASSED),
        ("the result is 5", StepStatus.FAILED),
        ("nothing else happens", StepStatus.SKIPPED),
    ]
    assert record.status is ScenarioStatus.FAILED

    feature = reporter.log.feature(CALC_PATH)
    assert feature is not None
    assert feature.result is not None
    assert feature.status is FeatureStatus.MIXED


@pytest.mark.asyncio
async def test_missing_steps_reported_together():
    """Every missing step of a scenario is reported, not just the first."""
    registry = StepRegistry()
    registry.register("a calculator", lambda context, ctx: None)
    reporter = RecordingReporter()
    calls = []
    hooks = BddHooks(after_each=lambda name, success, tags: calls.append((name, success)))
    _, outcomes = await run_features(
        {CALC_PATH: CALC}, registry=registry, reporter=reporter, hooks=hooks
    )

    assert outcomes["Add"].message == (
        "2 missing step(s):\n"
        f"  - {CALC_PATH}:7: When I add 2 and 3\n"
        f"  - {CALC_PATH}:8: Then the result is 5"
    )
    record = reporter.log.scenario(CALC_PATH, "Add")
    assert record is not None
    assert [step.result.status for step in record.steps] == [
        StepStatus.SKIPPED,
        StepStatus.FAILED,
        StepStatus.FAILED,
    ]
    assert ("Add", False) in calls


@pytest.mark.asyncio
async def test_single_missing_step_message():
    registry = StepRegistry()
    _, outcomes = await run_features(
        {"features/later.feature": WIP}, registry=registry, run_wip=True
    )
    assert outcomes["Not ready"].message == (
        "Step not found: Given a calculator at features/later.feature:5"
    )


@pytest.mark.asyncio
async def test_wip_scenarios_are_skipped():
    reporter = RecordingReporter()
    host, outcomes = await run_features(
        {"features/later.feature": WIP}, reporter=reporter, run_wip=False
    )
    assert outcomes["Not ready"].outcome is Outcome.SKIPPED
    assert host.success
    record = reporter.log.scenario("features/later.feature", "Not ready")
    assert record is not None
    assert record.status is ScenarioStatus.SKIPPED
    assert record.steps == []


@pytest.mark.asyncio
async def test_wip_scenarios_run_with_environment_flag():
    with environ(BDD_RUN_WIP="true"):
        _, outcomes = await run_features({"features/later.feature": WIP})
    assert outcomes["Not ready"].outcome is Outcome.PASSED

    with environ(BDD_RUN_WIP="0"):
        _, outcomes = await run_features({"features/later.feature": WIP})
    assert outcomes["Not ready"].outcome is Outcome.SKIPPED


@pytest.mark.asyncio
async def test_custom_wip_tag():
    later = WIP.replace("@wip", "@pending")
    _, outcomes = await run_features({"features/later.feature": later}, wip_tag="pending")
    assert outcomes["Not ready"].outcome is Outcome.SKIPPED


@pytest.mark.asyncio
async def test_no_features_registers_a_failing_test():
    """An empty run must not look like a passing one."""
    host = LocalTestHost()
    summaries = []
    runner = BddTestRunner(
        roots=["features"],
        registry=StepRegistry(),
        adapter=host,
        source=MappingSource({}),
        reporter=SummaryReporter(summaries.append),
    )
    assert await runner.run() is None
    outcomes = await host.run()
    assert [outcome.name for outcome in outcomes] == [NO_FEATURES_TEST]
    assert outcomes[0].outcome is Outcome.FAILED
    assert outcomes[0].message == "No .feature files found in: features"
    assert [str(summary) for summary in summaries] == [
        "0 features, 0 scenarios (0 passed, 0 failed, 0 skipped)"
    ]


@pytest.mark.asyncio
async def test_scheme_parameters_are_resolved():
    registry = StepRegistry()

    @registry.when("I greet {name}")
    def greet(context, ctx):
        context.greeting = ctx.arg(0)

    @registry.then('the greeting is "{expected}"')
    def greeting_is(context, ctx):
        assert context.greeting == ctx.arg(0)

    resolver = SchemeResolver({"t": MapTranslationHandler({"hello": "Hello {name}!"})})
    _, outcomes = await run_features(
        {"features/greeting.feature": GREETING}, registry=registry, scheme_resolver=resolver
    )
    assert outcomes["Hello"].outcome is Outcome.PASSED


@pytest.mark.asyncio
async def test_unknown_scheme_fails_the_step():
    registry = StepRegistry()
    registry.register("I greet {name}", lambda context, ctx: None)
    registry.register('the greeting is "{expected}"', lambda context, ctx: None)
    _, outcomes = await run_features(
        {"features/greeting.feature": GREETING},
        registry=registry,
        scheme_resolver=SchemeResolver(),
    )
    assert outcomes["Hello"].outcome is Outcome.FAILED
    assert 'Unknown scheme "t"' in outcomes["Hello"].message


@pytest.mark.asyncio
async def test_hooks():
    calls = []

    async def after_all():
        calls.append("after_all")

    hooks = BddHooks(
        before_all=lambda: calls.append("before_all"),
        after_all=after_all,
        before_each=lambda name, tags: calls.append(f"before {name}"),
        after_each=lambda name, success, tags: calls.append(f"after {name} {success}"),
    )
    await run_features({CALC_PATH: CALC}, hooks=hooks)
    assert calls == [
        "before_all",
        "before Add",
        "after Add True",
        "before Wrong",
        "after Wrong False",
        "after_all",
    ]


@pytest.mark.asyncio
async def test_console_output():
    lines = []
    await run_features({CALC_PATH: CALC}, output=BddOutput.steps(printer=lines.append))
    assert lines[:5] == [
        "\nFeature: Calculator",
        "  Scenario: Add",
        "    ✓ Given a calculator",
        "    ✓ When I add 2 and 3",
        "    ✓ Then the result is 5",
    ]
    assert "    ✗ Then the result is 5" in lines


@pytest.mark.asyncio
async def test_concurrent_scenarios_are_correlated():
    """Interleaved scenarios still land under their own feature with their own steps."""
    results = []
    other = CALC.replace("Calculator", "Other calculator")
    features = {CALC_PATH: CALC, "features/nested/other.feature": other}
    host = LocalTestHost(concurrent=True)
    await run_features(features, host=host, reporter=BufferedReporter(results.append))

    assert host.passed == 2
    assert host.failed == 2
    report = str(results[0]).splitlines()
    assert report[:10] == [
        "Feature: Calculator (mixed)",
        "  Scenario: Add (passed)",
        "    Given a calculator (passed)",
        "    When I add 2 and 3 (passed)",
        "    Then the result is 5 (passed)",
        "  Scenario: Wrong (failed)",
        "    Given a calculator (passed)",
        "    When I add 2 and 2 (passed)",
        "    Then the result is 5 (failed)",
        "    And nothing else happens (skipped)",
    ]
    assert report[10] == "Feature: Other calculator (mixed)"
    assert report[10:] == [
        line.replace("Calculator", "Other calculator") if index == 0 else line
        for index, line in enumerate(report[:10])
    ]


class ReturningHost(LocalTestHost):
    def __init__(self):
        super().__init__()
        self.messages = []

    def fail(self, message):
        self.messages.append(message)


@pytest.mark.asyncio
async def test_error_is_raised_when_host_fail_returns():
    host = ReturningHost()
    _, outcomes = await run_features({CALC_PATH: CALC}, host=host)
    assert outcomes["Wrong"].outcome is Outcome.FAILED
    assert host.messages == [outcomes["Wrong"].message]


@pytest.mark.asyncio
async def test_step_errors():
    registry = StepRegistry()

    def explode(context, ctx):
        raise RuntimeError("boom")

    registry.register("a calculator", explode)
    host = ReturningHost()
    runner = BddTestRunner(
        roots=["features"],
        registry=registry,
        adapter=host,
        source=MappingSource({"features/later.feature": WIP}),
        run_wip=True,
    )
    await runner.run()
    callback = host.tests[0].callback
    with pytest.raises(StepFailedError) as excinfo:
        await callback(None)
    assert isinstance(excinfo.value.error, RuntimeError)
    assert excinfo.value.step.text == "a calculator"

    registry = StepRegistry()
    host = ReturningHost()
    runner = BddTestRunner(
        roots=["features"],
        registry=registry,
        adapter=host,
        source=MappingSource({"features/later.feature": WIP}),
        run_wip=True,
    )
    await runner.run()
    with pytest.raises(StepNotFoundError):
        await host.tests[0].callback(None)


@pytest.mark.asyncio
async def test_run_bdd_tests():
    host = LocalTestHost()
    plan = await run_bdd_tests(
        ["features"], calculator_steps(), host, source=MappingSource({CALC_PATH: CALC})
    )
    assert plan is not None
    assert plan.total_tests == 2
    assert [test.name for test in host.tests] == ["Add", "Wrong"]
    assert all(test.groups == ("Calculator",) for test in host.tests)
