import threading

import pytest

from ly_bdd.markdown import MarkdownFileReporter
from ly_bdd.reporter import (
    BufferedReporter,
    CompositeReporter,
    ContinuousReporter,
    FeatureResult,
    FeatureStatus,
    PrintingReporter,
    ReporterConfig,
    ReporterConfigError,
    ReportFeature,
    ReportLog,
    ReportMode,
    ReportScenario,
    ReportStep,
    ScenarioResult,
    ScenarioStatus,
    StepResult,
    StepStatus,
    SummaryReporter,
)

FEATURE = ReportFeature(name="Login", path="features/login.feature", tags=("auth",))
OTHER = ReportFeature(name="Cart", path="features/cart.feature")


def _scenario(name: str, feature: ReportFeature = FEATURE) -> ReportScenario:
    return ReportScenario(name=name, feature_path=feature.path)


def _step(text: str, scenario: ReportScenario) -> ReportStep:
    return ReportStep(
        keyword="Given",
        text=text,
        feature_path=scenario.feature_path,
        scenario_name=scenario.name,
    )


def test_interleaved_scenarios_keep_their_results():
    """Scenario B starts before A completes, results still land on the right scenario."""
    log = ReportLog()
    log.start_feature(FEATURE)
    a, b = _scenario("A"), _scenario("B")
    log.start_scenario(a)
    log.start_scenario(b)
    log.start_step(_step("a step", a))
    log.start_step(_step("b step", b))
    log.complete_step(_step("a step", a), StepResult.failed(0.1, "boom"))
    log.complete_step(_step("b step", b), StepResult.passed(0.1))
    log.complete_scenario(a, ScenarioResult.failed("boom"))
    log.complete_scenario(b, ScenarioResult.passed())

    record_a = log.scenario(FEATURE.path, "A")
    record_b = log.scenario(FEATURE.path, "B")
    assert record_a is not None and record_b is not None
    assert record_a.status is ScenarioStatus.FAILED
    assert record_b.status is ScenarioStatus.PASSED
    assert [step.step.text for step in record_a.steps] == ["a step"]
    assert [step.step.text for step in record_b.steps] == ["b step"]
    assert record_a.steps[0].result == StepResult.failed(0.1, "boom")


def test_scenarios_land_in_their_own_feature():
    log = ReportLog()
    log.start_feature(FEATURE)
    log.start_feature(OTHER)
    log.start_scenario(_scenario("login", FEATURE))
    log.start_scenario(_scenario("cart", OTHER))
    feature = log.feature(FEATURE.path)
    other = log.feature(OTHER.path)
    assert feature is not None and other is not None
    assert [record.scenario.name for record in feature.scenarios] == ["login"]
    assert [record.scenario.name for record in other.scenarios] == ["cart"]


def test_events_without_path_use_the_current_scenario():
    log = ReportLog()
    log.start_feature(FEATURE)
    scenario = ReportScenario(name="legacy")
    log.start_scenario(scenario)
    log.complete_step(ReportStep(keyword="Then", text="done"), StepResult.skipped())
    log.complete_scenario(scenario, ScenarioResult.skipped())
    record = log.features[0].scenarios[0]
    assert record.status is ScenarioStatus.SKIPPED
    assert record.steps[0].result == StepResult.skipped()


def test_many_threads():
    log = ReportLog()
    log.start_feature(FEATURE)
    scenarios = [_scenario(f"s{index}") for index in range(50)]

    def _run(scenario):
        log.start_scenario(scenario)
        log.complete_step(_step("x", scenario), StepResult.passed(0.0))
        log.complete_scenario(scenario, ScenarioResult.passed())

    threads = [threading.Thread(target=_run, args=(scenario,)) for scenario in scenarios]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    records = log.features[0].scenarios
    assert len(records) == 50
    assert all(record.status is ScenarioStatus.PASSED for record in records)
    assert all(len(record.steps) == 1 for record in records)


def test_feature_result_from_scenarios():
    passed, failed, skipped = ScenarioStatus.PASSED, ScenarioStatus.FAILED, ScenarioStatus.SKIPPED
    assert FeatureResult.from_scenarios([]) == FeatureResult.passed()
    assert FeatureResult.from_scenarios([passed, skipped]) == FeatureResult.passed()
    assert FeatureResult.from_scenarios([failed, failed]) == FeatureResult.failed()
    assert FeatureResult.from_scenarios([failed, passed]).status is FeatureStatus.MIXED


def _feed(reporter):
    reporter.on_feature_start(FEATURE)
    a, b = _scenario("A"), _scenario("B")
    reporter.on_scenario_start(a)
    reporter.on_scenario_start(b)
    reporter.on_step_start(_step("one", a))
    reporter.on_step_complete(_step("one", a), StepResult.passed(0.01))
    reporter.on_step_complete(_step("two", b), StepResult.failed(0.01, "bad"))
    reporter.on_step_complete(_step("three", b), StepResult.skipped())
    reporter.on_scenario_complete(b, ScenarioResult.failed("bad"))
    reporter.on_scenario_complete(a, ScenarioResult.passed())
    reporter.on_feature_complete(FEATURE, FeatureResult.mixed())
    reporter.flush()


def test_continuous_reporter():
    events = []
    _feed(ContinuousReporter(on_event=events.append))
    assert [str(event) for event in events] == [
        "FeatureStart: Login",
        "ScenarioStart: A",
        "ScenarioStart: B",
        "StepStart: Given one",
        "StepComplete: Given one (passed)",
        "StepComplete: Given two (failed)",
        "StepComplete: Given three (skipped)",
        "ScenarioComplete: B (failed)",
        "ScenarioComplete: A (passed)",
        "FeatureComplete: Login (mixed)",
    ]


def test_buffered_reporter():
    results = []
    _feed(BufferedReporter(on_complete=results.append))
    assert len(results) == 1
    assert str(results[0]) == "\n".join(
        [
            "Feature: Login (mixed)",
            "  Scenario: A (passed)",
            "    Given one (passed)",
            "  Scenario: B (failed)",
            "    Given two (failed)",
            "    Given three (skipped)",
        ]
    )


def test_summary_reporter():
    summaries = []
    _feed(SummaryReporter(on_summary=summaries.append))
    summary = summaries[0]
    assert summary.feature_count == 1
    assert (summary.scenario_passed, summary.scenario_failed, summary.scenario_skipped) == (1, 1, 0)
    assert (summary.step_passed, summary.step_failed, summary.step_skipped) == (1, 1, 1)
    assert summary.scenario_total == 2
    assert summary.step_total == 3
    assert str(summary) == "1 feature, 2 scenarios (1 passed, 1 failed, 0 skipped)"


def test_printing_reporter():
    lines = []
    _feed(PrintingReporter(printer=lines.append))
    assert lines == [
        "Feature: Login",
        "  Scenario: A",
        "  Scenario: B",
        "    ✓ Given one",
        "    ✗ Given two",
        "    - Given three",
    ]


def test_composite_reporter():
    events, summaries = [], []
    _feed(CompositeReporter([ContinuousReporter(events.append), SummaryReporter(summaries.append)]))
    assert len(events) == 10
    assert len(summaries) == 1


def test_reporter_config_single_and_composite(tmp_path):
    lines = []
    assert isinstance(ReporterConfig(printer=lines.append).create_reporter(), ContinuousReporter)
    assert isinstance(ReporterConfig(mode=ReportMode.FULL).create_reporter(), BufferedReporter)
    composite = ReporterConfig(
        modes=[ReportMode.SUMMARY, ReportMode.FILE], output_dir=str(tmp_path / "out")
    ).create_reporter()
    assert isinstance(composite, CompositeReporter)
    assert isinstance(composite.reporters[0], SummaryReporter)
    assert isinstance(composite.reporters[1], MarkdownFileReporter)


def test_reporter_config_continuous_output():
    lines = []
    _feed(ReporterConfig(printer=lines.append).create_reporter())
    assert lines == [
        "\nFeature: Login",
        "  Scenario: A",
        "  Scenario: B",
        "    ✓ Given one",
        "    ✗ Given two",
        "    - Given three",
    ]


def test_reporter_config_file_needs_output_dir():
    with pytest.raises(ReporterConfigError):
        ReporterConfig(mode=ReportMode.FILE).create_reporter()


def test_report_mode_flags():
    assert ReportMode.CONTINUOUS.is_live
    assert ReportMode.FULL.is_buffered
    assert ReportMode.SUMMARY.is_summary_only
    assert ReportMode.FILE.writes_to_file
    assert not ReportMode.FILE.is_live
    assert StepStatus("passed") is StepStatus.PASSED
