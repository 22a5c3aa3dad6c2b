"""Success-or-error values delivered by the host-facing update API."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar


T = TypeVar("T")
E = TypeVar("E", bound=BaseException)


@dataclass(frozen=True, slots=True)
class Result(Generic[T, E]):
    """Discriminated union capturing either a success value or an error.

    A successful result may carry ``None`` (for example when no update is
    available), so success is decided by the absence of an error.
    """

    value: Optional[T] = None
    error: Optional[E] = None

    @classmethod
    def ok(cls, value: Optional[T] = None) -> "Result[T, E]":
        return cls(value=value)

    @classmethod
    def err(cls, error: E) -> "Result[T, E]":
        return cls(error=error)

    def is_ok(self) -> bool:
        return self.error is None

    def is_err(self) -> bool:
        return self.error is not None

    def unwrap(self) -> Optional[T]:
        """Return the success value, re-raising the captured error otherwise."""

        if self.error is not None:
            raise self.error
        return self.value


__all__ = ["Result"]
