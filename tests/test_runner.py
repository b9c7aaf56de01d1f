"""Tests for the supervised runner."""

import asyncio
import logging
import typing as t

import pydantic
import pytest

import ciutils.runner as runner
from ciutils.exceptions import OperationTimeoutError
from ciutils.exit_codes import ExitCode
from ciutils.runner import SafeRunOptions, safe_run, safely, supervise


@pytest.fixture
def calls() -> t.List[t.Any]:
    return []


@pytest.fixture
def hooks(calls: t.List[t.Any]) -> t.Dict[str, t.Callable[..., None]]:
    """Hooks recording their invocation order."""
    return {
        "on_before": lambda: calls.append("before"),
        "on_after": lambda: calls.append("after"),
        "on_fail": lambda err: calls.append(("fail", err)),
        "on_last": lambda: calls.append("last"),
    }


def test_success_runs_hooks_in_order(calls, hooks):
    async def operation():
        calls.append("operation")

    assert asyncio.run(safe_run(operation, **hooks)) is None
    assert calls == ["before", "operation", "after", "last"]


def test_sync_operation_is_supported(calls, hooks):
    asyncio.run(safe_run(lambda: calls.append("operation"), **hooks))
    assert calls == ["before", "operation", "after", "last"]


def test_async_hooks_are_awaited(calls):
    async def hook():
        await asyncio.sleep(0)
        calls.append("hook")

    asyncio.run(safe_run(lambda: None, on_before=hook, on_after=hook, on_last=hook))
    assert calls == ["hook", "hook", "hook"]


def test_failure_reraises_original_error(calls, hooks):
    boom = ValueError("boom")

    def operation():
        raise boom

    with pytest.raises(ValueError, match="boom") as exc_info:
        asyncio.run(safe_run(operation, **hooks))

    assert exc_info.value is boom
    assert calls == ["before", ("fail", boom), "last"]


def test_async_failure_reraises_original_error(calls, hooks):
    async def operation():
        await asyncio.sleep(0)
        raise RuntimeError("async boom")

    with pytest.raises(RuntimeError, match="async boom"):
        asyncio.run(safe_run(operation, **hooks))
    assert calls[0] == "before"
    assert calls[1][0] == "fail"
    assert str(calls[1][1]) == "async boom"
    assert calls[2] == "last"
    assert "after" not in calls


def test_timeout_fails_with_configured_duration(calls, hooks):
    async def operation():
        await asyncio.sleep(10)

    with pytest.raises(OperationTimeoutError) as exc_info:
        asyncio.run(safe_run(operation, timeout_ms=50, **hooks))

    err = exc_info.value
    assert err.timeout_ms == 50
    assert isinstance(err, TimeoutError)
    assert str(err) == "Operation timed out after 50ms"
    assert calls == ["before", ("fail", err), "last"]


def test_late_completion_does_not_change_outcome(calls, hooks):
    async def scenario():
        async def operation():
            await asyncio.sleep(0.1)
            calls.append("operation finished")
            return "late"

        with pytest.raises(OperationTimeoutError):
            await safe_run(operation, timeout_ms=20, **hooks)
        assert runner._background_tasks
        await asyncio.sleep(0.2)

    asyncio.run(scenario())
    assert "after" not in calls
    assert calls[-1] == "operation finished"
    assert not runner._background_tasks


def test_late_failure_is_discarded(calls):
    async def scenario():
        async def operation():
            await asyncio.sleep(0.05)
            raise ValueError("too late to matter")

        outcome = await supervise(operation, timeout_ms=10)
        assert outcome.is_timeout()
        await asyncio.sleep(0.1)
        return outcome

    outcome = asyncio.run(scenario())
    assert isinstance(outcome.unwrap_err(), OperationTimeoutError)
    assert not runner._background_tasks


@pytest.mark.parametrize("timeout_ms", [None, 0, -1])
def test_timeout_disabled(timeout_ms, calls, hooks):
    async def operation():
        await asyncio.sleep(0.05)
        calls.append("operation")

    asyncio.run(safe_run(operation, timeout_ms=timeout_ms, **hooks))
    assert calls == ["before", "operation", "after", "last"]


def test_success_before_timeout_clears_timer(mocker, calls, hooks):
    async def scenario():
        loop = asyncio.get_running_loop()
        spy = mocker.spy(loop, "call_later")
        await safe_run(lambda: calls.append("operation"), timeout_ms=1000, **hooks)
        assert spy.call_count == 1
        return spy.spy_return

    handle = asyncio.run(scenario())
    assert handle.cancelled()
    assert calls == ["before", "operation", "after", "last"]


def test_failing_hooks_do_not_change_success(calls, caplog):
    def failing_hook(*_):
        calls.append("hook")
        raise RuntimeError("hook exploded")

    with caplog.at_level(logging.ERROR, logger="ciutils"):
        asyncio.run(
            safe_run(
                lambda: calls.append("operation"),
                on_before=failing_hook,
                on_after=failing_hook,
                on_last=failing_hook,
            )
        )

    assert calls == ["hook", "operation", "hook", "hook"]
    assert "Hook on_before failed" in caplog.text
    assert "Hook on_last failed" in caplog.text


def test_failing_hooks_do_not_mask_failure(calls):
    boom = KeyError("boom")

    def operation():
        raise boom

    def failing_hook(*_):
        raise RuntimeError("hook exploded")

    with pytest.raises(KeyError) as exc_info:
        asyncio.run(
            safe_run(
                operation,
                on_before=failing_hook,
                on_fail=failing_hook,
                on_last=failing_hook,
            )
        )
    assert exc_info.value is boom


def test_fail_hook_without_parameters_still_runs(calls, caplog):
    async def operation():
        raise ValueError("bad input")

    async def on_fail_async():
        calls.append("async fail")

    with caplog.at_level(logging.ERROR, logger="ciutils"):
        for on_fail in (lambda: calls.append("fail"), on_fail_async):
            with pytest.raises(ValueError):
                asyncio.run(safe_run(operation, on_fail=on_fail))
    assert calls == ["fail", "async fail"]
    assert "Hook on_fail failed" not in caplog.text


def test_fail_hook_accepting_varargs_receives_error(calls):
    boom = RuntimeError("boom")

    def operation():
        raise boom

    with pytest.raises(RuntimeError):
        asyncio.run(safe_run(operation, on_fail=lambda *args: calls.append(args)))
    assert calls == [(boom,)]


def test_failing_before_hook_aborts_when_configured(calls):
    before_error = RuntimeError("not ready")

    def on_before():
        raise before_error

    with pytest.raises(RuntimeError, match="not ready"):
        asyncio.run(
            safe_run(
                lambda: calls.append("operation"),
                on_before=on_before,
                on_fail=lambda err: calls.append(("fail", err)),
                on_last=lambda: calls.append("last"),
                abort_on_before_failed=True,
            )
        )
    assert calls == [("fail", before_error), "last"]


def test_exit_on_failed_terminates_after_cleanup(calls, hooks):
    def terminate(code: int) -> None:
        calls.append(("exit", code))
        raise SystemExit(code)

    def operation():
        raise ValueError("boom")

    with pytest.raises(SystemExit) as exc_info:
        asyncio.run(
            safe_run(
                operation,
                exit_on_failed=True,
                exit_fail_code=1,
                terminate=terminate,
                **hooks,
            )
        )

    assert exc_info.value.code == 1
    assert calls[0] == "before"
    assert calls[1][0] == "fail"
    assert calls[2:] == ["last", ("exit", 1)]


def test_returning_terminate_reraises_error(calls, hooks):
    boom = ValueError("boom")

    def operation():
        raise boom

    with pytest.raises(ValueError) as exc_info:
        asyncio.run(
            safe_run(
                operation,
                exit_on_failed=True,
                exit_fail_code=3,
                terminate=lambda code: calls.append(("exit", code)),
                **hooks,
            )
        )
    assert exc_info.value is boom
    assert calls[-2:] == ["last", ("exit", 3)]


def test_exit_on_failed_defaults_to_sys_exit(mocker, calls, hooks):
    exit_mock = mocker.patch("ciutils.runner.sys.exit")
    exit_mock.side_effect = lambda code: calls.append(("exit", code))

    def operation():
        raise ValueError("boom")

    # The patched sys.exit returns, so the error is re-raised afterwards
    with pytest.raises(ValueError):
        asyncio.run(
            safe_run(
                operation,
                exit_on_failed=True,
                exit_fail_code=ExitCode.SIGINT,
                **hooks,
            )
        )
    exit_mock.assert_called_once_with(130)
    assert calls[-2:] == ["last", ("exit", 130)]


def test_exit_on_failed_is_not_triggered_by_success(mocker):
    terminate = mocker.Mock()
    asyncio.run(safe_run(lambda: None, exit_on_failed=True, terminate=terminate))
    terminate.assert_not_called()


def test_timeout_with_exit_on_failed(mocker):
    terminate = mocker.Mock(side_effect=SystemExit(2))

    async def operation():
        await asyncio.sleep(10)

    with pytest.raises(SystemExit):
        asyncio.run(
            safe_run(
                operation,
                timeout_ms=10,
                exit_on_failed=True,
                exit_fail_code=2,
                terminate=terminate,
            )
        )
    terminate.assert_called_once_with(2)


def test_cancellation_still_runs_last_hook(calls):
    async def scenario():
        async def operation():
            await asyncio.sleep(10)

        task = asyncio.ensure_future(
            safe_run(operation, on_last=lambda: calls.append("last"))
        )
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())
    assert calls == ["last"]


def test_concurrent_runs_are_independent():
    async def scenario():
        seen: t.Dict[str, t.List[str]] = {"a": [], "b": []}

        async def operation(name: str, delay: float):
            await asyncio.sleep(delay)
            seen[name].append("operation")

        def failing():
            raise ValueError("b failed")

        results = await asyncio.gather(
            safe_run(
                lambda: operation("a", 0.02),
                on_after=lambda: seen["a"].append("after"),
                on_fail=lambda err: seen["a"].append("fail"),
            ),
            safe_run(
                failing,
                on_after=lambda: seen["b"].append("after"),
                on_fail=lambda err: seen["b"].append("fail"),
            ),
            return_exceptions=True,
        )
        return seen, results

    seen, results = asyncio.run(scenario())
    assert seen == {"a": ["operation", "after"], "b": ["fail"]}
    assert results[0] is None
    assert isinstance(results[1], ValueError)


def test_supervise_returns_outcome():
    ok = asyncio.run(supervise(lambda: 42))
    assert ok.is_ok()
    assert ok.unwrap() == 42

    err = asyncio.run(supervise(lambda: 1 / 0))
    assert err.is_err()
    assert not err.is_timeout()
    assert isinstance(err.unwrap_err(), ZeroDivisionError)


def test_supervise_does_not_run_last_hook(calls):
    asyncio.run(supervise(lambda: None, on_last=lambda: calls.append("last")))
    assert calls == []


def test_safely_decorator(calls):
    @safely(on_last=lambda: calls.append("last"))
    async def add(a: int, b: int) -> None:
        calls.append(a + b)

    @safely({"on_fail": lambda err: calls.append(type(err).__name__)})
    def explode() -> None:
        raise LookupError("nope")

    asyncio.run(add(1, 2))
    with pytest.raises(LookupError):
        asyncio.run(explode())
    assert calls == [3, "last", "LookupError"]
    assert add.__name__ == "add"


def test_options_validation():
    assert SafeRunOptions().exit_fail_code == 1
    assert SafeRunOptions(exit_fail_code=255).exit_fail_code == 255
    for bad in (-1, 256, True):
        with pytest.raises(pydantic.ValidationError):
            SafeRunOptions(exit_fail_code=bad)


def test_options_resolution():
    base = SafeRunOptions(timeout_ms=100)
    assert SafeRunOptions.resolve(base) is base
    assert SafeRunOptions.resolve(base, exit_on_failed=True).timeout_ms == 100
    assert SafeRunOptions.resolve({"timeout_ms": "25"}).timeout_ms == 25
    assert SafeRunOptions.resolve(None, timeout_ms=5).timeout_enabled
    assert not SafeRunOptions(timeout_ms=0).timeout_enabled
    assert not SafeRunOptions().timeout_enabled


def test_options_from_config():
    options = SafeRunOptions.from_config(
        {"timeout_ms": "1500", "exit_on_failed": "true", "unrelated": "x"},
        exit_fail_code=3,
    )
    assert options.timeout_ms == 1500
    assert options.exit_on_failed is True
    assert options.exit_fail_code == 3
    assert SafeRunOptions.from_config(None) == SafeRunOptions()
