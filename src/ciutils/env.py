"""Access to the process environment for CI detection."""

import os
import typing as t

import pydantic

__all__ = ["CIDetectionOptions", "Environ", "get_env", "is_truthy"]

Environ = t.Mapping[str, t.Optional[str]]


class CIDetectionOptions(pydantic.BaseModel, frozen=True):
    """Options shared by the detection and getter helpers."""

    env: t.Optional[t.Dict[str, t.Optional[str]]] = None
    """An environment to use instead of os.environ. Useful for testing."""
    strict: bool = True
    """Only report a positive detection when it is certain."""


def get_env(options: t.Optional[CIDetectionOptions] = None) -> Environ:
    """Get the environment mapping to inspect."""
    if options is not None and options.env is not None:
        return options.env
    return os.environ


def is_truthy(value: t.Optional[str]) -> bool:
    """Check whether an environment value reads as enabled."""
    if value is None:
        return False
    return value.strip().lower() not in ("", "0", "false", "no", "off")
