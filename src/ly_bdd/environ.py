from __future__ import annotations

import os
from contextlib import contextmanager

__all__ = ["env_flag", "environ"]

_TRUTHY = frozenset({"1", "true", "yes", "on"})


@contextmanager
def environ(**env: str):
    """Temporarily set environment variables inside the context manager and
    fully restore previous environment afterwards
    """
    original_env = {key: os.getenv(key) for key in env}
    os.environ.update(env)
    try:
        yield
    finally:
        for key, value in original_env.items():
            if value is None:
                del os.environ[key]
            else:
                os.environ[key] = value


def env_flag(name: str, default: bool = False) -> bool:
    """Read a boolean flag such as ``BDD_RUN_WIP=true`` from the environment."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUTHY
