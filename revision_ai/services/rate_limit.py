from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from loguru import logger


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


@dataclass
class RateLimitStore:
    """Holds the last successful invocation time for one rate-limited action."""
    last_success: datetime | None = None


@dataclass
class RateLimiter:
    """
    Cooldown gate keyed on the last successful invocation.

    The store and clock are injected per owner, so two use-case instances
    (or two tests) never share a timestamp unless they share a store.
    """
    cooldown: timedelta
    store: RateLimitStore = field(default_factory=RateLimitStore)
    clock: Clock = field(default_factory=SystemClock)

    def remaining(self) -> timedelta | None:
        """Time left in the cooldown, or None when the action is allowed."""
        last = self.store.last_success
        if last is None:
            return None
        elapsed = self.clock.now() - last
        if elapsed >= self.cooldown:
            return None
        return self.cooldown - elapsed

    def is_limited(self) -> bool:
        return self.remaining() is not None

    def stamp(self) -> None:
        self.store.last_success = self.clock.now()

    def reset(self) -> None:
        self.store.last_success = None
        logger.debug("Rate limit reset")
