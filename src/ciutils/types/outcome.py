"""Outcome values for supervised runs.

An outcome is a Result monad specialised to the terminal state of a single run:
``Ok`` for success, ``Err`` for failure. A timeout is an ``Err`` whose error is an
:class:`~ciutils.exceptions.OperationTimeoutError`.
"""

from __future__ import annotations

import abc
import typing as t

from ciutils.exceptions import OperationTimeoutError

T = t.TypeVar("T")  # The type of the value inside the Outcome
U = t.TypeVar("U")  # The transformed type of the value inside the Outcome
E = t.TypeVar(
    "E", bound=BaseException, covariant=True
)  # The type of the error inside the Outcome

__all__ = ["Outcome", "Ok", "Err", "as_exception"]


def as_exception(value: t.Any) -> BaseException:
    """Coerce a failure value into an exception.

    Exceptions are returned as-is. Anything else is wrapped in a RuntimeError
    carrying its string form.
    """
    if isinstance(value, BaseException):
        return value
    return RuntimeError(str(value))


class Outcome(t.Generic[T, E], abc.ABC):
    def __init__(self, value: T) -> None:
        self._value = value

    def __hash__(self) -> int:
        return hash(self._value)

    @abc.abstractmethod
    def is_ok(self) -> bool:
        pass

    @abc.abstractmethod
    def is_err(self) -> bool:
        pass

    def is_timeout(self) -> bool:
        """Returns True if the Outcome is a failure caused by a timeout."""
        return False

    @abc.abstractmethod
    def unwrap(self) -> T:
        pass

    @abc.abstractmethod
    def unwrap_or(self, default: U) -> t.Union[T, U]:
        pass

    @abc.abstractmethod
    def unwrap_err(self) -> BaseException:
        pass

    @abc.abstractmethod
    def to_parts(self) -> t.Tuple[t.Optional[T], t.Optional[E]]:
        pass

    @abc.abstractmethod
    def bind(self, func: t.Callable[[T], "Outcome[U, E]"]) -> "Outcome[U, E]":
        pass

    @abc.abstractmethod
    def map(self, func: t.Callable[[T], U]) -> "Outcome[U, E]":
        pass

    def __eq__(self, other: object) -> bool:
        if type(self) is not type(other):
            return NotImplemented
        return self.to_parts() == t.cast(Outcome, other).to_parts()


class Ok(Outcome[T, E]):
    def bind(self, func: t.Callable[[T], Outcome[U, E]]) -> Outcome[U, E]:
        """Applies a function to the value of the Ok.

        Args:
            func: A function that takes a value of type T and returns an Outcome.

        Returns:
            The Outcome produced by the function.
        """
        return func(self._value)

    def map(self, func: t.Callable[[T], U]) -> Outcome[U, E]:
        """Applies a mapping function to the value of the Ok.

        Args:
            func: A function that takes a value of type T and returns a value of type U.

        Returns:
            A new Ok with the mapped value, or an Err if the function raised.
        """
        try:
            return Ok(func(self._value))
        except Exception as e:
            return Err(t.cast(E, e))

    def is_ok(self) -> bool:
        """Returns True if the Outcome is an Ok."""
        return True

    def is_err(self) -> bool:
        """Returns False if the Outcome is an Ok."""
        return False

    def unwrap(self) -> T:
        """Unwraps the value of the Ok."""
        return self._value

    def unwrap_or(self, default: t.Any) -> T:
        return self._value

    def unwrap_err(self) -> BaseException:
        """Raises a ValueError since the Outcome is an Ok."""
        raise ValueError("Called unwrap_err on Ok")

    def to_parts(self) -> t.Tuple[T, None]:
        """Unpacks the value of the Ok."""
        return (self._value, None)

    def __hash__(self) -> int:
        return hash(self._value)

    def __repr__(self) -> str:
        return f"Ok({self._value!r})"


class Err(Outcome[T, E]):
    def __init__(self, error: t.Any) -> None:
        """Initializes an Err with an error.

        Args:
            error: The error to wrap. Non-exception values are coerced with
                :func:`as_exception`.
        """
        self._error = t.cast(E, as_exception(error))

    def __hash__(self) -> int:
        return hash(self._error)

    def bind(self, func: t.Callable[[T], Outcome[U, E]]) -> "Err[T, E]":
        return self

    def map(self, func: t.Callable[[T], U]) -> "Err[T, E]":
        return self

    def is_ok(self) -> bool:
        """Returns False if the Outcome is an Err."""
        return False

    def is_err(self) -> bool:
        """Returns True if the Outcome is an Err."""
        return True

    def is_timeout(self) -> bool:
        """Returns True if the error is an OperationTimeoutError."""
        return isinstance(self._error, OperationTimeoutError)

    def unwrap(self) -> T:
        """Raises the captured error."""
        raise self._error

    def unwrap_or(self, default: U) -> U:
        """Returns a default value since the Outcome is an Err."""
        return default

    def unwrap_err(self) -> BaseException:
        """Unwraps the error of the Err."""
        return self._error

    def to_parts(self) -> t.Tuple[None, E]:
        """Unpacks the error of the Err."""
        return (None, self._error)

    def __repr__(self) -> str:
        return f"Err({self._error!r})"
