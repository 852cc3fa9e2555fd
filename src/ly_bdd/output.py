"""Console output while tests run, independent of any reporter."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import click

__all__ = ["BddOutput"]

Printer = Callable[[str], None]


@dataclass(frozen=True)
class BddOutput:
    """
    What to print while tests run.

    The default prints nothing and leaves output to the test host. Use :meth:`scenarios`,
    :meth:`steps` or :meth:`verbose` for more. ``show_step_timing`` only matters when steps are
    shown.
    """

    show_feature_names: bool = False
    show_scenario_names: bool = False
    show_steps: bool = False
    show_step_timing: bool = False
    printer: Printer = click.echo

    @classmethod
    def scenarios(cls, printer: Printer = click.echo) -> BddOutput:
        return cls(show_feature_names=True, show_scenario_names=True, printer=printer)

    @classmethod
    def steps(cls, printer: Printer = click.echo) -> BddOutput:
        return cls(
            show_feature_names=True, show_scenario_names=True, show_steps=True, printer=printer
        )

    @classmethod
    def verbose(cls, printer: Printer = click.echo) -> BddOutput:
        return cls(
            show_feature_names=True,
            show_scenario_names=True,
            show_steps=True,
            show_step_timing=True,
            printer=printer,
        )

    @staticmethod
    def format_feature(name: str) -> str:
        return f"\nFeature: {name}"

    @staticmethod
    def format_scenario(name: str) -> str:
        return f"  Scenario: {name}"

    def format_step_complete(self, keyword: str, text: str, duration: float) -> str:
        line = f"    ✓ {keyword} {text}"
        if self.show_step_timing:
            return f"{line} ({duration * 1000:.0f}ms)"
        return line

    @staticmethod
    def format_step_failed(keyword: str, text: str) -> str:
        return f"    ✗ {keyword} {text}"

    def print_feature(self, name: str):
        if self.show_feature_names:
            self.printer(self.format_feature(name))

    def print_scenario(self, name: str):
        if self.show_scenario_names:
            self.printer(self.format_scenario(name))

    def print_step_complete(self, keyword: str, text: str, duration: float):
        if self.show_steps:
            self.printer(self.format_step_complete(keyword, text, duration))

    def print_step_failed(self, keyword: str, text: str):
        if self.show_steps:
            self.printer(self.format_step_failed(keyword, text))

