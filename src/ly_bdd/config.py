from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, ClassVar, Mapping, Sequence

import toml

from .environ import env_flag
from .plan import TestStructure
from .reporter import ReportMode
from .runner import RUN_WIP_ENV

__all__ = ["BddConfiguration", "NoProjectFile"]


@dataclass
class BddConfiguration:
    """Configuration for discovering and running features, from ``[tool.bdd]``."""

    name: str
    root_dir: Path
    roots: Sequence[str] = ("features",)
    structure: TestStructure = TestStructure.TREE
    wip_tag: str = "wip"
    run_wip: bool = False
    steps: str | None = None
    schemes: str | None = None
    report: Sequence[ReportMode] = (ReportMode.CONTINUOUS,)
    output_dir: str | None = None
    _config_file: ClassVar[Path] = Path("pyproject.toml")

    @classmethod
    def get_config(cls) -> BddConfiguration:
        pyproject = cls.get_configfile()
        bdd_config: Mapping[str, Any] = toml.load(pyproject).get("tool", {}).get("bdd", {})
        return cls.from_mapping(bdd_config, root_dir=pyproject.parent)

    @classmethod
    def from_mapping(cls, bdd_config: Mapping[str, Any], root_dir: Path) -> BddConfiguration:
        config = bdd_config
        roots = config.get("roots", ["features"])
        if isinstance(roots, str):
            roots = [roots]
        report = config.get("report", ["continuous"])
        if isinstance(report, str):
            report = [report]
        output_dir = config.get("output_dir", None)
        return BddConfiguration(
            name=root_dir.name,
            root_dir=root_dir,
            roots=[_relative_to(root_dir, root) for root in roots],
            structure=TestStructure(config.get("structure", TestStructure.TREE.value)),
            wip_tag=config.get("wip_tag", "wip"),
            run_wip=env_flag(RUN_WIP_ENV, default=bool(config.get("run_wip", False))),
            steps=config.get("steps", None),
            schemes=config.get("schemes", None),
            report=[ReportMode(mode) for mode in report],
            output_dir=_relative_to(root_dir, output_dir) if output_dir else None,
        )

    @classmethod
    def get_configfile(cls) -> Path:
        cwd = Path.cwd().absolute()
        paths = [cwd] + list(cwd.parents)
        for path in paths:
            pyproject = path / cls._config_file
            if pyproject.exists() and pyproject.is_file():
                break
        else:
            raise NoProjectFile(cls._config_file, search_paths=paths)
        return pyproject


def _relative_to(root_dir: Path, path: str) -> str:
    """Resolve a configured path against the project directory, relative to the cwd."""
    candidate = Path(path)
    if not candidate.is_absolute():
        candidate = root_dir / candidate
    return Path(os.path.relpath(candidate)).as_posix()


class NoProjectFile(Exception):
    """No project file could be found."""

    def __init__(self, proj_filename: Path, search_paths: Sequence[Path]):
        self.proj_filename = proj_filename.as_posix()
        self.search_paths = [path.as_posix() for path in search_paths]
        super().__init__(f'"{self.proj_filename}" could not be located in: {self.search_paths}')
