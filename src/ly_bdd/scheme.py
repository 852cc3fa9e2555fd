"""
Resolve scheme-prefixed step parameters.

A parameter written as ``{scheme:key}`` or ``{scheme:key(name: 'Alice', count: 3)}`` is handed
to the handler registered for ``scheme``. Anything else is a literal::

    resolver = SchemeResolver()
    resolver.register("t", MapTranslationHandler({"greeting": "Hello {name}!"}))
    await resolver.resolve("{t:greeting(name: 'Alice')}")  # resolved == "Hello Alice!"
"""
from __future__ import annotations

import inspect
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Sequence, Union

logger = logging.getLogger(__name__)

__all__ = ["ResolvedParam", "SchemeHandler", "SchemeResolver", "UnknownSchemeError"]

SchemeHandler = Callable[[str, Mapping[str, str]], Union[Awaitable[Any], Any]]

_SCHEME = re.compile(r"\{(\w+):(.+)\}", re.DOTALL)
_KEY_WITH_PARAMS = re.compile(r"(\w+)\((.+)\)", re.DOTALL)


class UnknownSchemeError(LookupError):
    """No handler is registered for the parameter's scheme."""

    def __init__(self, scheme: str, param: str, registered: Sequence[str]):
        self.scheme = scheme
        self.param = param
        self.registered = sorted(registered)
        super().__init__(
            f'Unknown scheme "{scheme}" in parameter "{param}". '
            f"Registered schemes: {', '.join(self.registered)}"
        )


@dataclass(frozen=True)
class ResolvedParam:
    original: str
    value: str
    resolved: Any
    scheme: str | None = None
    params: Mapping[str, str] = field(default_factory=dict)

    @property
    def has_scheme(self) -> bool:
        return self.scheme is not None

    def __str__(self) -> str:
        if self.has_scheme:
            return f"{self.scheme}:{self.value} -> {self.resolved}"
        return f"literal: {self.value}"


class SchemeResolver:
    """Registry of scheme handlers. Handlers are registered before a run and then only read."""

    def __init__(self, handlers: Mapping[str, SchemeHandler] | None = None):
        self._handlers: dict[str, SchemeHandler] = dict(handlers or {})

    def register(self, scheme: str, handler: SchemeHandler) -> SchemeResolver:
        self._handlers[scheme] = handler
        return self

    def has_scheme(self, scheme: str) -> bool:
        return scheme in self._handlers

    @property
    def schemes(self) -> list[str]:
        return sorted(self._handlers)

    async def resolve(self, param: str) -> ResolvedParam:
        match = _SCHEME.fullmatch(param)
        if match is None:
            return ResolvedParam(original=param, value=param, resolved=param)

        scheme, raw_value = match.groups()
        handler = self._handlers.get(scheme)
        if handler is None:
            raise UnknownSchemeError(scheme, param, list(self._handlers))

        key_match = _KEY_WITH_PARAMS.fullmatch(raw_value)
        if key_match is not None:
            key, params = key_match.group(1), parse_params(key_match.group(2))
        else:
            key, params = raw_value, {}

        resolved = handler(key, params)
        if inspect.isawaitable(resolved):
            resolved = await resolved
        logger.debug("Resolved %s -> %r", param, resolved)
        return ResolvedParam(
            original=param, value=key, resolved=resolved, scheme=scheme, params=params
        )

    async def resolve_all(self, params: Sequence[Any]) -> list[ResolvedParam]:
        """Resolve string parameters in order. Other values pass through untouched."""
        results: list[ResolvedParam] = []
        for param in params:
            if isinstance(param, str):
                results.append(await self.resolve(param))
            else:
                results.append(ResolvedParam(original=str(param), value=str(param), resolved=param))
        return results


def parse_params(raw: str) -> dict[str, str]:
    """
    Parse ``name: 'Alice', count: 3`` into ``{"name": "Alice", "count": "3"}``.

    Single quotes around a value are stripped. Unquoted values are kept as written.
    """
    params: dict[str, str] = {}
    for part in raw.split(","):
        key, sep, value = part.partition(":")
        key, value = key.strip(), value.strip()
        if not sep or not key:
            continue
        if len(value) >= 2 and value[0] == value[-1] == "'":
            value = value[1:-1]
        params[key] = value
    return params
