"""Give every scenario an empty project to run ly-bdd in."""
from __future__ import annotations

from pathlib import Path
from tempfile import TemporaryDirectory
from typing import Iterable

from behave import fixture, use_fixture
from behave.model import Scenario

from features.steps.cli_env import BddContext, BddEnvironment


@fixture
def bdd_environment(context: BddContext) -> Iterable[BddEnvironment]:
    with TemporaryDirectory() as tmp_dir:
        bdd = BddEnvironment(_path=Path(tmp_dir), verbose=False, project_files={})
        context.bdd = bdd
        context.result = None
        yield bdd


def before_scenario(context: BddContext, _scenario: Scenario):
    use_fixture(bdd_environment, context)
