"""Enrichment outcomes as explicit values instead of exceptions.

``Ok``        primary call (or cache) produced the value
``Degraded``  the provider failed; ``value`` is the fallback (may be None
              for kinds without a synthetic fallback)
``Fatal``     a programming/infra error; ``unwrap()`` re-raises it

Callers that persist data use ``.value``/``unwrap()`` and cannot
accidentally let a provider outage abort the write.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T
    cached: bool = False

    @property
    def degraded(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Degraded(Generic[T]):
    value: T
    reason: str

    @property
    def degraded(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Fatal:
    error: BaseException

    @property
    def degraded(self) -> bool:
        return True

    @property
    def value(self) -> None:
        return None

    def unwrap(self) -> None:
        raise self.error


EnrichmentResult = Union[Ok[T], Degraded[T], Fatal]
