"""Supervised execution of a single operation with lifecycle hooks.

The runner invokes hooks in a fixed order around one operation:

    on_before -> operation -> on_after | on_fail -> on_last

The operation may be raced against a timeout. Hook failures are logged and
never change the outcome. On failure the error is either re-raised or, when
configured, the process is terminated with an exit code once on_last has run.
"""

import asyncio
import functools
import inspect
import sys
import typing as t

import pydantic

import ciutils.logger as logger
from ciutils.exceptions import OperationTimeoutError
from ciutils.exit_codes import MAX_EXIT_CODE, ExitCode
from ciutils.types import ErrorHook, Hook, P
from ciutils.types.outcome import Err, Ok, Outcome

T = t.TypeVar("T")

Operation = t.Callable[[], t.Union[T, t.Awaitable[T]]]
"""A zero argument callable, sync or async."""

__all__ = [
    "Operation",
    "SafeRunOptions",
    "safe_run",
    "safely",
    "supervise",
]

_background_tasks: t.Set["asyncio.Future[t.Any]"] = set()
"""Timed out operations still running. Held so they are not garbage collected."""


class SafeRunOptions(pydantic.BaseModel, frozen=True):
    """Lifecycle hooks and failure handling for a supervised run."""

    on_before: t.Optional[Hook] = None
    """Run before the operation starts."""
    on_after: t.Optional[Hook] = None
    """Run after the operation completed without raising."""
    on_fail: t.Optional[ErrorHook] = None
    """Run when the operation fails or times out. Receives the error."""
    on_last: t.Optional[Hook] = None
    """Run last on every path, including before the process is terminated."""
    exit_on_failed: bool = False
    """Terminate the process instead of re-raising when the operation fails."""
    exit_fail_code: t.Annotated[int, pydantic.Field(ge=0, le=MAX_EXIT_CODE)] = int(
        ExitCode.GENERAL_ERROR
    )
    """The exit code used when exit_on_failed is set."""
    timeout_ms: t.Optional[float] = None
    """Bound on the operation's wall clock duration. None or <= 0 disables it."""
    abort_on_before_failed: bool = False
    """Treat a failing on_before hook as the failure of the run and skip the operation."""
    terminate: t.Optional[t.Callable[[int], t.Any]] = None
    """Process termination primitive. Defaults to sys.exit at call time."""

    @pydantic.field_validator("exit_fail_code", mode="before")
    @classmethod
    def _reject_bool(cls, value: t.Any) -> t.Any:
        if isinstance(value, bool):
            raise ValueError("exit_fail_code must be an integer, not a boolean")
        return value

    @property
    def timeout_enabled(self) -> bool:
        return self.timeout_ms is not None and self.timeout_ms > 0

    def with_overrides(self, **overrides: t.Any) -> "SafeRunOptions":
        """Return a validated copy of the options with fields replaced."""
        if not overrides:
            return self
        return type(self)(**{**dict(self), **overrides})

    @classmethod
    def resolve(
        cls,
        options: t.Union["SafeRunOptions", t.Mapping[str, t.Any], None] = None,
        **overrides: t.Any,
    ) -> "SafeRunOptions":
        """Coerce options given as a model, a mapping or nothing."""
        if options is None:
            return cls(**overrides)
        if not isinstance(options, SafeRunOptions):
            options = cls.model_validate(dict(options))
        return options.with_overrides(**overrides)

    @classmethod
    def from_config(
        cls, config: t.Optional[t.Mapping[str, t.Any]], **overrides: t.Any
    ) -> "SafeRunOptions":
        """Build options from the runner section of a configuration.

        Only the scalar settings are read. Hooks are supplied in code.
        """
        keys = ("exit_on_failed", "exit_fail_code", "timeout_ms", "abort_on_before_failed")
        section = config or {}
        settings = {k: section[k] for k in keys if k in section}
        return cls(**{**settings, **overrides})


async def _resolve(value: t.Union[T, t.Awaitable[T]]) -> T:
    """Await a value if it is awaitable."""
    if inspect.isawaitable(value):
        return await value
    return t.cast(T, value)


async def _call(operation: Operation[T]) -> T:
    return await _resolve(operation())


def _takes_arguments(func: t.Callable[..., t.Any]) -> bool:
    """Check whether a callable accepts at least one positional argument."""
    try:
        params = inspect.signature(func).parameters.values()
    except (TypeError, ValueError):
        return True
    return any(
        p.kind
        in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD, p.VAR_POSITIONAL)
        for p in params
    )


async def _invoke_hook(
    name: str, hook: t.Optional[t.Callable[..., t.Any]], *args: t.Any
) -> t.Optional[Exception]:
    """Invoke a hook, logging and swallowing any exception it raises.

    Arguments are only passed to hooks that accept them, so an on_fail hook may
    ignore the error entirely.

    Returns:
        The exception raised by the hook, if any.
    """
    if hook is None:
        return None
    if args and not _takes_arguments(hook):
        args = ()
    try:
        await _resolve(hook(*args))
    except Exception as e:
        logger.exception("Hook %s failed: %s", name, e)
        return e
    return None


def _expire(timer: "asyncio.Future[None]") -> None:
    if not timer.done():
        timer.set_result(None)


def _discard_result(task: "asyncio.Future[t.Any]") -> None:
    _background_tasks.discard(task)
    if not task.cancelled():
        task.exception()


async def _race(operation: Operation[T], timeout_ms: float) -> T:
    """Race the operation against a timer.

    The operation is not cancelled when the timer wins. It keeps running in the
    background and whatever it produces later is dropped.

    Raises:
        OperationTimeoutError: If the timer fires first.
    """
    loop = asyncio.get_running_loop()
    task = asyncio.ensure_future(_call(operation))
    timer: "asyncio.Future[None]" = loop.create_future()
    handle = loop.call_later(timeout_ms / 1000, _expire, timer)
    try:
        await asyncio.wait((task, timer), return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        handle.cancel()
        if not timer.done():
            timer.cancel()
    if task.done():
        return task.result()
    _background_tasks.add(task)
    task.add_done_callback(_discard_result)
    raise OperationTimeoutError(timeout_ms)


async def _execute(
    operation: Operation[T], timeout_ms: t.Optional[float]
) -> Outcome[T, Exception]:
    try:
        if timeout_ms is not None and timeout_ms > 0:
            value = await _race(operation, timeout_ms)
        else:
            value = await _call(operation)
    except Exception as e:
        return Err(e)
    return Ok(value)


async def supervise(
    operation: Operation[T],
    options: t.Union[SafeRunOptions, t.Mapping[str, t.Any], None] = None,
    **overrides: t.Any,
) -> Outcome[T, Exception]:
    """Run an operation with its before, after and fail hooks and return the outcome.

    Unlike safe_run, this neither raises the failure nor terminates the process,
    and it does not run on_last.

    Args:
        operation: The zero argument callable to run.
        options: Hooks and settings for the run.
        **overrides: Fields of SafeRunOptions replacing those in options.

    Returns:
        Ok with the operation's return value, or Err with the failure. A timeout is
        an Err for which is_timeout() is true.
    """
    opts = SafeRunOptions.resolve(options, **overrides)

    before_error = await _invoke_hook("on_before", opts.on_before)
    if before_error is not None and opts.abort_on_before_failed:
        outcome: Outcome[T, Exception] = Err(before_error)
    else:
        outcome = await _execute(operation, opts.timeout_ms)

    if outcome.is_ok():
        await _invoke_hook("on_after", opts.on_after)
    else:
        error = outcome.unwrap_err()
        if outcome.is_timeout():
            logger.warning(str(error))
        await _invoke_hook("on_fail", opts.on_fail, error)
    return outcome


async def safe_run(
    operation: Operation[t.Any],
    options: t.Union[SafeRunOptions, t.Mapping[str, t.Any], None] = None,
    **overrides: t.Any,
) -> None:
    """Safely execute an operation with lifecycle hooks and error handling.

    Example:
        >>> await safe_run(
        ...     perform_risky_operation,
        ...     on_before=lambda: print("Starting..."),
        ...     on_after=lambda: print("Success!"),
        ...     on_fail=lambda err: print("Failed:", err),
        ...     on_last=lambda: print("Cleanup"),
        ...     exit_on_failed=True,
        ...     exit_fail_code=1,
        ...     timeout_ms=5000,
        ... )

    Args:
        operation: The zero argument callable to run. Its result is awaited if awaitable.
        options: Hooks and settings for the run.
        **overrides: Fields of SafeRunOptions replacing those in options.

    Raises:
        OperationTimeoutError: If the operation exceeds the configured timeout.
        Exception: The operation's own error when it fails and exit_on_failed is not set.
        SystemExit: When the operation fails and exit_on_failed is set, via sys.exit.
            If a custom terminate returns instead of exiting, the operation's
            error is raised as if exit_on_failed were not set.
    """
    opts = SafeRunOptions.resolve(options, **overrides)
    try:
        outcome = await supervise(operation, opts)
    finally:
        await _invoke_hook("on_last", opts.on_last)

    if outcome.is_err() and opts.exit_on_failed:
        logger.error(
            "Operation failed, exiting with code %d: %s",
            opts.exit_fail_code,
            outcome.unwrap_err(),
        )
        terminate = opts.terminate or sys.exit
        terminate(opts.exit_fail_code)
    outcome.unwrap()


def safely(
    options: t.Union[SafeRunOptions, t.Mapping[str, t.Any], None] = None,
    **overrides: t.Any,
) -> t.Callable[[t.Callable[P, t.Any]], t.Callable[P, t.Coroutine[t.Any, t.Any, None]]]:
    """Decorate a function so each call runs through safe_run.

    Args:
        options: Hooks and settings for every call.
        **overrides: Fields of SafeRunOptions replacing those in options.

    Returns:
        A decorator producing a coroutine function.
    """
    opts = SafeRunOptions.resolve(options, **overrides)

    def decorator(
        func: t.Callable[P, t.Any],
    ) -> t.Callable[P, t.Coroutine[t.Any, t.Any, None]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> None:
            await safe_run(functools.partial(func, *args, **kwargs), opts)

        return wrapper

    return decorator
