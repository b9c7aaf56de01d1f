"""A module for shared types."""

import typing as t

P = t.ParamSpec("P")

Hook = t.Callable[[], t.Union[None, t.Awaitable[None]]]
"""A lifecycle callback that may return an awaitable."""

ErrorHook = t.Callable[[BaseException], t.Union[None, t.Awaitable[None]]]
"""A lifecycle callback receiving the error that caused a failure."""

__all__ = ["P", "Hook", "ErrorHook"]
