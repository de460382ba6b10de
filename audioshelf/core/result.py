"""
Explicit success/failure values.

Storage operations that can fail for reasons outside the program's control
(disk exhaustion, corrupt files) return one of these instead of raising, so the
loading sequence decides remediation in exactly one place.

Usage:
    result = await loader.open(path)
    if isinstance(result, Err):
        kind = classify(result.error)
        ...
    store = result.value
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E", bound=BaseException)


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    error: E


Result = Union[Ok[T], Err[E]]

__all__ = ["Ok", "Err", "Result"]
