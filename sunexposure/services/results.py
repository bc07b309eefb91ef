"""
Tagged results for expected outcomes of an exposure query.

Low confidence and unknown ids are ordinary outcomes, so the query facade
returns one of these instead of raising. Exceptions stay reserved for
dependency outages and programming errors.
"""
from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Unreliable(Generic[T]):
    """A usable value computed from degraded inputs."""

    value: T
    reasons: tuple[str, ...]


@dataclass(frozen=True)
class NotFound:
    entity: str
    entity_id: Any


@dataclass(frozen=True)
class InvalidArgument:
    reason: str


Result = Union[Ok, Unreliable, NotFound, InvalidArgument]


def has_value(result: Result) -> bool:
    """True for Ok and Unreliable."""
    return isinstance(result, (Ok, Unreliable))
