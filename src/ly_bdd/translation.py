"""
Translation scheme handlers.

Translation values may contain ``{name}`` placeholders and ICU plural blocks::

    {count, plural, =0{no shots} =1{1 shot} other{{count} shots}}

A plural block picks the ``=N`` form equal to the parameter's integer value, or ``other``. A
``#`` inside the chosen form is replaced with the raw parameter value. CLDR categories such as
``one`` or ``few`` are parsed but never selected.
"""
from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Callable, Mapping

from .source import FeatureSource, FileSystemSource

logger = logging.getLogger(__name__)

__all__ = [
    "ArbTranslationHandler",
    "MapTranslationHandler",
    "TranslationKeyError",
    "format_message",
    "key_mapping_handler",
    "resolve_plurals",
    "translation_handler",
]

_PLURAL_START = re.compile(r"\{\s*(\w+)\s*,\s*plural\s*,")
_RULE_SELECTOR = re.compile(r"\s*(=\d+|\w+)\s*\{")


class TranslationKeyError(LookupError):
    """The translation key is missing or does not hold a string."""


def _closing_brace(text: str, open_index: int) -> int:
    """Index of the brace closing the one at ``open_index``, or -1 if unbalanced."""
    depth = 0
    for index in range(open_index, len(text)):
        char = text[index]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index
    return -1


def _parse_rules(body: str) -> dict[str, str]:
    rules: dict[str, str] = {}
    position = 0
    while True:
        selector = _RULE_SELECTOR.match(body, position)
        if selector is None:
            return rules
        open_index = selector.end() - 1
        close_index = _closing_brace(body, open_index)
        if close_index == -1:
            return rules
        rules[selector.group(1)] = body[open_index + 1 : close_index]
        position = close_index + 1


def _select_form(rules: Mapping[str, str], value: str) -> str:
    try:
        exact = f"={int(value)}"
    except ValueError:
        exact = None
    if exact is not None and exact in rules:
        return rules[exact]
    return rules.get("other", "")


def resolve_plurals(template: str, params: Mapping[str, str]) -> str:
    """Replace every plural block whose parameter is supplied with its selected form."""
    # Rightmost first, so the offsets of earlier blocks stay valid.
    starts = [match for match in _PLURAL_START.finditer(template)]
    for match in reversed(starts):
        name = match.group(1)
        if name not in params:
            continue
        close_index = _closing_brace(template, match.start())
        if close_index == -1:
            logger.debug("Unbalanced plural block for %s in %r", name, template)
            continue
        rules = _parse_rules(template[match.end() : close_index])
        form = _select_form(rules, params[name]).replace("#", params[name])
        template = template[: match.start()] + form + template[close_index + 1 :]
    return template


def format_message(template: str, params: Mapping[str, str]) -> str:
    """Resolve plural blocks, then substitute ``{name}`` placeholders."""
    if not params:
        return template
    message = resolve_plurals(template, params)
    for name, value in params.items():
        message = message.replace(f"{{{name}}}", value)
    return message


def _available(keys: Any) -> str:
    names = [key for key in keys if not key.startswith("@")]
    return ", ".join(names[:10]) + ("..." if len(names) > 10 else "")


class MapTranslationHandler:
    """Translations from an in-memory mapping."""

    def __init__(self, translations: Mapping[str, str]):
        self._translations = dict(translations)

    async def __call__(self, key: str, params: Mapping[str, str]) -> str:
        try:
            value = self._translations[key]
        except KeyError:
            raise TranslationKeyError(
                f'Translation key "{key}" not found. '
                f"Available keys: {_available(self._translations)}"
            ) from None
        return format_message(value, params)


class ArbTranslationHandler:
    """
    Translations from an ARB (JSON) file.

    The file is read through a feature source on first use and cached on the handler. Concurrent
    first uses share a single read.
    """

    def __init__(self, path: str, source: FeatureSource | None = None):
        self.path = path
        self._source = source or FileSystemSource()
        self._cache: dict[str, Any] | None = None
        self._lock = asyncio.Lock()

    async def translations(self) -> Mapping[str, Any]:
        if self._cache is None:
            async with self._lock:
                if self._cache is None:
                    content = await self._source.read(self.path)
                    self._cache = json.loads(content)
                    logger.debug("Loaded %d ARB entries from %s", len(self._cache), self.path)
        return self._cache

    async def __call__(self, key: str, params: Mapping[str, str]) -> str:
        translations = await self.translations()
        if key not in translations:
            raise TranslationKeyError(
                f'Translation key "{key}" not found in {self.path}. '
                f"Available keys: {_available(translations)}"
            )
        value = translations[key]
        if not isinstance(value, str):
            raise TranslationKeyError(
                f'Translation key "{key}" is not a string value in {self.path}.'
            )
        return format_message(value, params)


def translation_handler(lookup: Callable[[str], str]):
    """Wrap a plain ``key -> text`` lookup. Parameters are ignored."""

    async def _handler(key: str, params: Mapping[str, str]) -> str:
        return lookup(key)

    return _handler


def key_mapping_handler(lookup: Callable[[str], Any]):
    """Wrap a ``name -> key object`` lookup, e.g. to find UI elements by name."""

    async def _handler(name: str, params: Mapping[str, str]) -> Any:
        return lookup(name)

    return _handler
