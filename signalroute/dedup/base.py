"""Abstract base class for platform-specific duplicate rules."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from signalroute.models import EventFingerprint

if TYPE_CHECKING:
    from signalroute.dedup.index import FingerprintIndex


class BasePlatformRule(ABC):
    """Last-resort duplicate heuristic for one platform."""

    def __init__(self, config: dict):
        self.config = config

    @abstractmethod
    def find_match(
        self,
        fingerprint: EventFingerprint,
        data: dict[str, Any],
        index: FingerprintIndex,
    ) -> tuple[str, float] | None:
        """Return ``(original_id, confidence)`` for a duplicate, else None.

        Called with the engine lock held; must not block.
        """
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Rule name."""
        ...
