"""
Two-variant outcome type used as the return contract of every fallible step.

Expected failures travel as ``Failure(error)`` instead of raised exceptions,
so a chain of steps can be composed with ``map``/``flat_map`` and collapsed
into a UI-facing value with ``fold``.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from revision_ai.core.errors import ProcessingError, UnexpectedError

T = TypeVar("T")
U = TypeVar("U")
R = TypeVar("R")


class Result(ABC, Generic[T]):
    @property
    @abstractmethod
    def is_success(self) -> bool:
        raise NotImplementedError

    @property
    def is_failure(self) -> bool:
        return not self.is_success

    @property
    @abstractmethod
    def value_or_none(self) -> T | None:
        raise NotImplementedError

    @property
    @abstractmethod
    def error_or_none(self) -> ProcessingError | None:
        raise NotImplementedError

    @abstractmethod
    def value_or(self, default: T) -> T:
        raise NotImplementedError

    @abstractmethod
    def map(self, transform: Callable[[T], U]) -> "Result[U]":
        raise NotImplementedError

    @abstractmethod
    def flat_map(self, transform: Callable[[T], "Result[U]"]) -> "Result[U]":
        raise NotImplementedError

    @abstractmethod
    def map_error(self, transform: Callable[[ProcessingError], ProcessingError]) -> "Result[T]":
        raise NotImplementedError

    @abstractmethod
    def fold(
        self,
        *,
        success: Callable[[T], R],
        failure: Callable[[ProcessingError], R],
    ) -> R:
        raise NotImplementedError

    @staticmethod
    def capture(fn: Callable[..., T], *args: Any, **kwargs: Any) -> "Result[T]":
        """Run ``fn`` and turn whatever it raises into a ``Failure``."""
        try:
            return Success(fn(*args, **kwargs))
        except ProcessingError as e:
            return Failure(e)
        except Exception as e:
            return Failure(UnexpectedError.wrap(e))


@dataclass(frozen=True)
class Success(Result[T]):
    value: T

    @property
    def is_success(self) -> bool:
        return True

    @property
    def value_or_none(self) -> T | None:
        return self.value

    @property
    def error_or_none(self) -> ProcessingError | None:
        return None

    def value_or(self, default: T) -> T:
        return self.value

    def map(self, transform: Callable[[T], U]) -> Result[U]:
        return Success(transform(self.value))

    def flat_map(self, transform: Callable[[T], Result[U]]) -> Result[U]:
        return transform(self.value)

    def map_error(self, transform: Callable[[ProcessingError], ProcessingError]) -> Result[T]:
        return self

    def fold(
        self,
        *,
        success: Callable[[T], R],
        failure: Callable[[ProcessingError], R],
    ) -> R:
        return success(self.value)


@dataclass(frozen=True)
class Failure(Result[T]):
    error: ProcessingError

    @property
    def is_success(self) -> bool:
        return False

    @property
    def value_or_none(self) -> T | None:
        return None

    @property
    def error_or_none(self) -> ProcessingError | None:
        return self.error

    def value_or(self, default: T) -> T:
        return default

    def map(self, transform: Callable[[T], U]) -> Result[U]:
        return Failure(self.error)

    def flat_map(self, transform: Callable[[T], Result[U]]) -> Result[U]:
        return Failure(self.error)

    def map_error(self, transform: Callable[[ProcessingError], ProcessingError]) -> Result[T]:
        return Failure(transform(self.error))

    def fold(
        self,
        *,
        success: Callable[[T], R],
        failure: Callable[[ProcessingError], R],
    ) -> R:
        return failure(self.error)
