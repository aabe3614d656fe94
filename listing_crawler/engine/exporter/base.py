"""Persistence sink contract used by the dedup pipeline."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

from ..records import Record


class BaseSink(ABC):
    """Durable append-only destination receiving batched record writes."""

    @abstractmethod
    def append(self, records: Sequence[Record]) -> None:
        """Persist one batch, preserving its order."""

    @abstractmethod
    def close(self) -> None:
        """Release underlying resources."""


__all__ = ["BaseSink"]
