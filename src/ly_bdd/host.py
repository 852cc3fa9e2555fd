"""An in-process test host on asyncio."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from types import SimpleNamespace
from typing import Any, Awaitable, Callable, NoReturn, Sequence

from .runner import TestAdapter, TestCallback

logger = logging.getLogger(__name__)

__all__ = ["LocalTestHost", "Outcome", "TestFailure", "TestOutcome"]


class TestFailure(AssertionError):
    """Raised by :meth:`LocalTestHost.fail`."""

    __test__ = False


class Outcome(Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class TestOutcome:
    __test__ = False

    name: str
    groups: tuple[str, ...]
    outcome: Outcome
    message: str | None = None

    @property
    def full_name(self) -> str:
        return " > ".join([*self.groups, self.name])


@dataclass(frozen=True)
class _RegisteredTest:
    name: str
    groups: tuple[str, ...]
    callback: TestCallback[Any]
    tags: tuple[str, ...]
    skip: bool


@dataclass
class LocalTestHost(TestAdapter[Any]):
    """
    Collect registered tests and run them with :meth:`run`.

    Tests run one after another, or all at once on the event loop with ``concurrent``. Each test
    gets a fresh context from ``context_factory``. A test that raises is failed, other tests
    carry on.
    """

    context_factory: Callable[[], Any] = SimpleNamespace
    concurrent: bool = False
    tests: list[_RegisteredTest] = field(default_factory=list, init=False)
    outcomes: list[TestOutcome] = field(default_factory=list, init=False)
    _groups: list[str] = field(default_factory=list, init=False, repr=False)
    _set_up: list[Callable[[], Awaitable[None]]] = field(default_factory=list, init=False)
    _tear_down: list[Callable[[], Awaitable[None]]] = field(default_factory=list, init=False)

    def test(
        self,
        name: str,
        callback: TestCallback[Any],
        *,
        tags: Sequence[str] = (),
        skip: bool = False,
    ):
        self.tests.append(
            _RegisteredTest(
                name=name,
                groups=tuple(self._groups),
                callback=callback,
                tags=tuple(tags),
                skip=skip,
            )
        )

    def group(self, name: str, body: Callable[[], None]):
        self._groups.append(name)
        try:
            body()
        finally:
            self._groups.pop()

    def set_up_all(self, body: Callable[[], Awaitable[None]]):
        self._set_up.append(body)

    def tear_down_all(self, body: Callable[[], Awaitable[None]]):
        self._tear_down.append(body)

    def fail(self, message: str) -> NoReturn:
        raise TestFailure(message)

    async def run(self) -> list[TestOutcome]:
        """Run set up, every registered test, then tear down."""
        try:
            for body in self._set_up:
                await body()
            if self.concurrent:
                outcomes = await asyncio.gather(*(self._run_test(test) for test in self.tests))
            else:
                outcomes = [await self._run_test(test) for test in self.tests]
        finally:
            for body in self._tear_down:
                await body()
        self.outcomes = list(outcomes)
        return self.outcomes

    async def _run_test(self, test: _RegisteredTest) -> TestOutcome:
        if test.skip:
            return TestOutcome(test.name, test.groups, Outcome.SKIPPED)
        try:
            await test.callback(self.context_factory())
        except Exception as e:
            logger.debug("Test failed: %s", test.name, exc_info=True)
            return TestOutcome(test.name, test.groups, Outcome.FAILED, message=str(e))
        return TestOutcome(test.name, test.groups, Outcome.PASSED)

    def _count(self, outcome: Outcome) -> int:
        return sum(1 for result in self.outcomes if result.outcome is outcome)

    @property
    def passed(self) -> int:
        return self._count(Outcome.PASSED)

    @property
    def failed(self) -> int:
        return self._count(Outcome.FAILED)

    @property
    def skipped(self) -> int:
        return self._count(Outcome.SKIPPED)

    @property
    def success(self) -> bool:
        return not self.failed
