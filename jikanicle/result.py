"""Result values for jikanicle.

Every fallible operation in the storage and repository layers returns
either an Ok wrapping the value or an Err wrapping a typed error, instead
of raising for expected failures (missing file, lock contention, bad JSON).
"""

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")


class UnwrapError(Exception):
    """Raised when unwrap() is called on the wrong variant.

    This signals a programming error, never an expected failure.
    """


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful result."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_err(self):
        raise UnwrapError(f"Called unwrap_err() on Ok: {self.value!r}")


@dataclass(frozen=True)
class Err(Generic[E]):
    """Failed result."""

    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self):
        raise UnwrapError(f"Called unwrap() on Err: {self.error!r}")

    def unwrap_err(self) -> E:
        return self.error


Result = Union[Ok[T], Err[E]]
