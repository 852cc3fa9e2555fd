"""Where feature files come from."""
from __future__ import annotations

import abc
import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Mapping

logger = logging.getLogger(__name__)

__all__ = [
    "FeatureNotFound",
    "FeatureSource",
    "FeatureSourceError",
    "FileSystemSource",
    "MappingSource",
]

FEATURE_SUFFIX = ".feature"


class FeatureSourceError(Exception):
    """A feature source could not complete the request."""


class FeatureNotFound(FeatureSourceError):
    """The requested document does not exist."""


class FeatureSource(abc.ABC):
    """Lists and reads feature documents by identifier."""

    @abc.abstractmethod
    async def read(self, path: str) -> str:
        """Return the raw text, raising FeatureNotFound if the document does not exist."""

    @abc.abstractmethod
    async def list(self, path: str) -> list[str]:
        """
        List feature documents under a root.

        A single feature file lists as itself. Directories are searched recursively and the
        result is sorted.
        """

    @abc.abstractmethod
    async def exists(self, path: str) -> bool:
        ...


class FileSystemSource(FeatureSource):
    """Reads feature files from disk."""

    async def read(self, path: str) -> str:
        file_ = Path(path)
        if not file_.is_file():
            raise FeatureNotFound(f"Feature file not found: {path}")
        return await asyncio.to_thread(file_.read_text, encoding="utf8")

    async def list(self, path: str) -> list[str]:
        root = Path(path)
        if root.is_file() and root.suffix == FEATURE_SUFFIX:
            return [path]
        if not root.is_dir():
            logger.debug("No feature directory at %s", path)
            return []
        return sorted(
            file_.as_posix() for file_ in root.rglob(f"*{FEATURE_SUFFIX}") if file_.is_file()
        )

    async def exists(self, path: str) -> bool:
        return Path(path).exists()


class MappingSource(FeatureSource):
    """
    Reads features from memory or from a loader coroutine.

    Useful for bundled features and for tests that should not touch the file system.
    """

    def __init__(
        self,
        features: Mapping[str, str] | None = None,
        *,
        loader: Callable[[str], Awaitable[str]] | None = None,
        lister: Callable[[str], Awaitable[list[str]]] | None = None,
    ):
        if features is None and loader is None:
            raise ValueError("MappingSource needs either features or a loader")
        self._features = dict(features) if features is not None else None
        self._loader = loader
        self._lister = lister

    @classmethod
    def from_loader(
        cls,
        loader: Callable[[str], Awaitable[str]],
        lister: Callable[[str], Awaitable[list[str]]] | None = None,
    ) -> MappingSource:
        return cls(loader=loader, lister=lister)

    async def read(self, path: str) -> str:
        if self._features is not None:
            try:
                return self._features[path]
            except KeyError:
                available = ", ".join(self._features)
                raise FeatureNotFound(
                    f"Feature not found: {path}\nAvailable: {available}"
                ) from None
        if self._loader is None:
            raise FeatureNotFound(f"Feature not found: {path}")
        return await self._loader(path)

    async def list(self, path: str) -> list[str]:
        if self._features is not None:
            if path.endswith(FEATURE_SUFFIX):
                return [path] if path in self._features else []
            prefix = path if not path or path.endswith("/") else f"{path}/"
            return sorted(
                key
                for key in self._features
                if key.endswith(FEATURE_SUFFIX) and key.startswith(prefix)
            )
        if self._lister is not None:
            return await self._lister(path)
        if path.endswith(FEATURE_SUFFIX):
            return [path]
        raise FeatureSourceError(
            f'Cannot list directory "{path}" without a lister. '
            "Pass a lister to MappingSource.from_loader or list feature files explicitly."
        )

    async def exists(self, path: str) -> bool:
        if self._features is not None:
            return path in self._features
        try:
            await self.read(path)
        except FeatureSourceError:
            return False
        return True
