#!/usr/bin/env python
"""
Work with feature files from the command line.

* list: show the test plan
* check: find steps with no definition and suggest one
* run: run the features in-process
"""

from __future__ import annotations

import asyncio
import hashlib
import importlib
import importlib.util
import logging
import sys
from pathlib import Path
from textwrap import indent
from typing import Any, Sequence

import click

from .config import BddConfiguration, NoProjectFile
from .host import LocalTestHost, Outcome, TestOutcome
from .model import Feature
from .parser import discover_feature_files, parse_feature_file
from .plan import FeatureTestFactory, MissingStepsError, TestGroup
from .registry import StepRegistry
from .reporter import ReporterConfig, ReporterConfigError, ReportMode
from .runner import BddTestRunner
from .scheme import SchemeResolver
from .source import FileSystemSource

logger = logging.getLogger(__name__)

__all__ = ["main"]

_OUTCOME_SYMBOLS = {Outcome.PASSED: "✓", Outcome.FAILED: "✗", Outcome.SKIPPED: "-"}


@click.group()
@click.option("--verbose", is_flag=True, default=False)
@click.version_option(package_name="ly-bdd")
@click.pass_context
def main(ctx: click.Context, verbose: bool):
    if verbose:
        logging.basicConfig()
        logging.getLogger("ly_bdd").setLevel(logging.DEBUG)

    try:
        ctx.obj = BddConfiguration.get_config()
    except NoProjectFile as e:
        logger.debug(
            '"%s" could not be located in the search paths: %s', e.proj_filename, e.search_paths
        )
        ctx.obj = BddConfiguration.from_mapping({}, root_dir=Path.cwd())


@main.command("list")
@click.argument("roots", nargs=-1)
@click.pass_obj
def list_features(config: BddConfiguration, roots: Sequence[str]):
    """Print the test plan."""
    roots = list(roots) or list(config.roots)
    features = asyncio.run(load_features(roots))
    if not features:
        click.echo(f"No feature files found in: {', '.join(roots)}")
        return
    factory = FeatureTestFactory(
        roots=roots, registry=StepRegistry(), structure=config.structure
    )
    plan = factory.build_test_plan(features)
    for group in plan.groups:
        _echo_group(group, depth=0)
    click.echo(f"{plan.total_tests} test(s) in {len(features)} feature(s)")


@main.command()
@click.argument("roots", nargs=-1)
@click.option("--steps", "steps_ref", help="module:attr or path.py:attr of the step registry")
@click.pass_obj
def check(config: BddConfiguration, roots: Sequence[str], steps_ref: str | None):
    """Report steps that have no step definition."""
    roots = list(roots) or list(config.roots)
    registry = load_registry(steps_ref or config.steps)
    features = asyncio.run(load_features(roots))
    factory = FeatureTestFactory(
        roots=roots, registry=registry, structure=config.structure
    )
    missing = factory.find_missing_steps(features)
    if not missing:
        click.echo(f"All steps in {len(features)} feature(s) have a step definition.")
        return
    click.echo(str(MissingStepsError(missing)))
    click.echo()
    click.echo(factory.generate_placeholders(missing))
    sys.exit(1)


@main.command()
@click.argument("roots", nargs=-1)
@click.option("--steps", "steps_ref", help="module:attr or path.py:attr of the step registry")
@click.option("--schemes", "schemes_ref", help="module:attr or path.py:attr of a scheme resolver")
@click.option(
    "--report",
    "report_modes",
    multiple=True,
    type=click.Choice([mode.value for mode in ReportMode]),
    help="How to report the run. May be given more than once.",
)
@click.option("--output-dir", help="Output directory for the file report")
@click.option("--wip", is_flag=True, default=False, help="Run work in progress scenarios")
@click.option("--concurrent", is_flag=True, default=False, help="Run scenarios concurrently")
@click.pass_obj
def run(
    config: BddConfiguration,
    roots: Sequence[str],
    steps_ref: str | None,
    schemes_ref: str | None,
    report_modes: Sequence[str],
    output_dir: str | None,
    wip: bool,
    concurrent: bool,
):
    """Run the features."""
    roots = list(roots) or list(config.roots)
    registry = load_registry(steps_ref or config.steps)
    resolver = load_resolver(schemes_ref or config.schemes)
    modes = [ReportMode(mode) for mode in report_modes] or list(config.report)
    try:
        reporter = ReporterConfig(
            modes=modes, output_dir=output_dir or config.output_dir, clean_first=True
        ).create_reporter()
    except ReporterConfigError as e:
        raise click.UsageError(str(e)) from e

    host = LocalTestHost(concurrent=concurrent)
    runner = BddTestRunner(
        roots=roots,
        registry=registry,
        adapter=host,
        structure=config.structure,
        scheme_resolver=resolver,
        reporter=reporter,
        wip_tag=config.wip_tag,
        run_wip=wip or config.run_wip,
    )
    outcomes = asyncio.run(_run(runner, host))

    click.echo()
    for outcome in outcomes:
        _echo_outcome(outcome)
    click.echo(f"{host.passed} passed, {host.failed} failed, {host.skipped} skipped")
    if not host.success:
        click.echo("BDD run failed.")
        sys.exit(1)


async def _run(runner: BddTestRunner[Any], host: LocalTestHost) -> list[TestOutcome]:
    await runner.run()
    return await host.run()


async def load_features(roots: Sequence[str]) -> list[Feature]:
    source = FileSystemSource()
    paths = [path for root in roots for path in await discover_feature_files(root, source)]
    return list(await asyncio.gather(*(parse_feature_file(path, source) for path in paths)))


def load_reference(reference: str) -> Any:
    """Load ``module:attr`` or ``path/to/file.py:attr``."""
    module_name, sep, attr = reference.rpartition(":")
    if not sep or not module_name or not attr:
        raise click.BadParameter(f'"{reference}" is not of the form module:attr or file.py:attr')

    if module_name.endswith(".py"):
        path = Path(module_name).resolve()
        if not path.is_file():
            raise click.BadParameter(f"{module_name} does not exist")
        digest = hashlib.md5(path.as_posix().encode("utf8")).hexdigest()[:8]
        spec = importlib.util.spec_from_file_location(f"_ly_bdd_{path.stem}_{digest}", path)
        if spec is None or spec.loader is None:
            raise click.BadParameter(f"{module_name} cannot be imported")
        module = importlib.util.module_from_spec(spec)
        sys.modules[spec.name] = module
        spec.loader.exec_module(module)
    else:
        module = importlib.import_module(module_name)

    try:
        return getattr(module, attr)
    except AttributeError:
        raise click.BadParameter(f"{module_name} has no attribute {attr}") from None


def load_registry(reference: str | None) -> StepRegistry[Any]:
    if reference is None:
        logger.debug("No step registry configured, every step is missing")
        return StepRegistry()
    registry = load_reference(reference)
    if not isinstance(registry, StepRegistry):
        raise click.BadParameter(f"{reference} is not a StepRegistry")
    return registry


def load_resolver(reference: str | None) -> SchemeResolver | None:
    if reference is None:
        return None
    resolver = load_reference(reference)
    if not isinstance(resolver, SchemeResolver):
        raise click.BadParameter(f"{reference} is not a SchemeResolver")
    return resolver


def _echo_group(group: TestGroup, depth: int):
    prefix = "  " * depth
    click.echo(f"{prefix}{group.name} ({group.total_tests})")
    for child in group.children:
        _echo_group(child, depth + 1)
    for test in group.tests:
        tags = "".join(f" @{tag}" for tag in test.tags)
        click.echo(f"{prefix}  - {test.name}{tags}")


def _echo_outcome(outcome: TestOutcome):
    click.echo(f"{_OUTCOME_SYMBOLS[outcome.outcome]} {outcome.full_name}")
    if outcome.message:
        click.echo(indent(outcome.message, "    "))
