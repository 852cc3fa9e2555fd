"""
Markdown reports for readers who do not read test output.

Each feature is written to ``<output_dir>/features/<flattened path>.md`` and ``index.md`` in the
output directory links them, grouped by the directory of the feature file.
"""
from __future__ import annotations

import logging
import posixpath
import shutil
from pathlib import Path

from .model import Scenario
from .reporter import (
    FeatureRecord,
    FeatureStatus,
    RecordingReporter,
    ScenarioRecord,
    ScenarioStatus,
    StepStatus,
)

logger = logging.getLogger(__name__)

__all__ = ["MarkdownFileReporter", "flat_name"]

SKIP_TAGS = frozenset({"wip", "skip"})

_SCENARIO_ICONS = {
    ScenarioStatus.PASSED: "✅",
    ScenarioStatus.FAILED: "❌",
    ScenarioStatus.SKIPPED: "⏭️",
}
_FEATURE_ICONS = {
    FeatureStatus.PASSED: "✅",
    FeatureStatus.FAILED: "❌",
    FeatureStatus.MIXED: "⚠️",
}
_STEP_MARKS = {StepStatus.PASSED: "", StepStatus.FAILED: " ❌", StepStatus.SKIPPED: " ⏭️"}
_KEYWORD_ICONS = {"Given": "📋", "When": "⚡", "Then": "✅", "And": "➕", "But": "➕"}


def flat_name(feature_path: str) -> str:
    """``features/auth/login.feature`` -> ``features_auth_login``."""
    return feature_path.replace(".feature", "").replace("/", "_").replace("\\", "_")


def _was_skipped(record: FeatureRecord) -> bool:
    return not record.scenarios and bool(SKIP_TAGS.intersection(record.feature.tags))


def _feature_status(record: FeatureRecord) -> FeatureStatus | None:
    # A skipped feature with nothing recorded is not an unknown one.
    if record.status is None and _was_skipped(record):
        return FeatureStatus.PASSED
    return record.status


class MarkdownFileReporter(RecordingReporter):
    """Buffer the run and write the markdown files on flush."""

    def __init__(self, output_dir: str | Path, clean_first: bool = True):
        super().__init__()
        self.output_dir = Path(output_dir)
        self.clean_first = clean_first
        if clean_first and self.output_dir.exists():
            shutil.rmtree(self.output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    @property
    def features_dir(self) -> Path:
        return self.output_dir / "features"

    def flush(self):
        self.features_dir.mkdir(parents=True, exist_ok=True)
        for record in self.log.features:
            path = self.features_dir / f"{flat_name(record.feature.path)}.md"
            path.write_text(self.render_feature(record), encoding="utf8")
        (self.output_dir / "index.md").write_text(self.render_index(), encoding="utf8")
        logger.debug("Wrote %d feature report(s) to %s", len(self.log.features), self.output_dir)

    def render_feature(self, record: FeatureRecord) -> str:
        lines = ["[← Back to index](../index.md)", "", f"# {record.feature.name}", ""]
        lines.extend(_tag_lines(record.feature.tags))
        for scenario in record.scenarios:
            lines.extend(_scenario_lines(scenario))

        unexecuted = record.unexecuted
        if unexecuted:
            lines.extend(["---", "", "## 🚧 Not Yet Implemented", ""])
            for scenario in unexecuted:
                lines.extend(_unexecuted_lines(scenario))
        return "\n".join(lines)

    def render_index(self) -> str:
        statuses = [_feature_status(record) for record in self.log.features]
        passed = statuses.count(FeatureStatus.PASSED)
        failed = statuses.count(FeatureStatus.FAILED)
        mixed = statuses.count(FeatureStatus.MIXED)
        lines = [
            "# Test Results",
            "",
            f"**Summary:** {passed} passed, {failed} failed, {mixed} mixed",
            "",
            "## Features",
            "",
        ]

        by_dir: dict[str, list[FeatureRecord]] = {}
        for record in self.log.features:
            by_dir.setdefault(posixpath.dirname(record.feature.path), []).append(record)

        for directory in sorted(by_dir):
            lines.extend([f"### {directory or '.'}", ""])
            for record in by_dir[directory]:
                if _was_skipped(record):
                    icon = "⏭️"
                else:
                    icon = _FEATURE_ICONS.get(_feature_status(record), "❓")
                link = f"features/{flat_name(record.feature.path)}.md"
                lines.append(f"- {icon} [{record.feature.name}]({link})")
                for scenario in record.scenarios:
                    scenario_icon = _SCENARIO_ICONS.get(scenario.status, "❓")
                    lines.append(f"  - {scenario_icon} {scenario.scenario.name}")
            lines.append("")
        return "\n".join(lines)


def _tag_lines(tags: tuple[str, ...]) -> list[str]:
    if not tags:
        return []
    return [f"**Tags:** {', '.join(tags)}", ""]


def _scenario_lines(record: ScenarioRecord) -> list[str]:
    icon = _SCENARIO_ICONS.get(record.status)
    prefix = f"{icon} " if icon else ""
    lines = [f"## {prefix}{record.scenario.name}", ""]
    lines.extend(_tag_lines(record.scenario.tags))
    for step_record in record.steps:
        step = step_record.step
        mark = _STEP_MARKS[step_record.result.status] if step_record.result is not None else ""
        icon = _KEYWORD_ICONS.get(step.keyword, "•")
        lines.append(f"- {icon} **{step.keyword}** {step.text}{mark}")
    lines.append("")
    return lines


def _unexecuted_lines(scenario: Scenario) -> list[str]:
    lines = [f"### 🚧 {scenario.name}", ""]
    lines.extend(_tag_lines(scenario.tags))
    for step in scenario.steps:
        keyword = step.keyword.value
        lines.append(f"- {_KEYWORD_ICONS[keyword]} **{keyword}** {step.text}")
    lines.append("")
    return lines
