"""Runners for the ly-bdd command line."""
from __future__ import annotations

import os
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from behave.runner import Context
from click.testing import CliRunner, Result

from ly_bdd.cli import main


@contextmanager
def set_directory(path: Path):
    """Sets the cwd within the context."""
    origin = Path().absolute()
    try:
        os.chdir(path)
        yield
    finally:
        os.chdir(origin)


@dataclass
class BddEnvironment:
    _path: Path
    verbose: bool = False
    project_files: dict[str, str] = field(default_factory=dict)
    _runner: CliRunner = field(init=False)

    @property
    def project_dir(self) -> Path:
        return self._path / "project"

    def __post_init__(self):
        self._runner = CliRunner(env={"BDD_RUN_WIP": None})

    def _setup_environment(self):
        self.project_dir.mkdir(parents=True)
        for rel_path, contents in self.project_files.items():
            (self.project_dir / rel_path).parent.mkdir(parents=True, exist_ok=True)
            (self.project_dir / rel_path).write_text(contents)

    def set_env(self, name: str, value: str):
        self._runner.env = {**self._runner.env, name: value}

    def run(self, *args: str) -> Result:
        if not self.project_dir.exists():
            self._setup_environment()
        invoke_args = ["--verbose", *args] if self.verbose else list(args)
        with set_directory(self.project_dir):
            return self._runner.invoke(main, invoke_args)


class BddContext(Context):
    bdd: BddEnvironment
    result: Result | None
