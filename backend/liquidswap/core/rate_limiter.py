"""Per-user sliding-window rate limiter for offer, message and like actions."""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, Dict, Optional, Tuple

from liquidswap.config import Settings

logger = logging.getLogger(__name__)

HOUR_SECONDS = 3600.0


class RateLimitAction(str, Enum):
    """
    Action categories with independent limits.

    SEND_MESSAGE is not checked by the engine; the chat service asks the
    shared limiter before posting a message.
    """
    CREATE_OFFER = "create_offer"
    SEND_MESSAGE = "send_message"
    LIKE_ITEM = "like_item"


@dataclass(frozen=True)
class RateLimitRule:
    max_attempts: int
    window_seconds: float
    cooldown_seconds: float
    max_per_hour: Optional[int] = None


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    message: Optional[str] = None
    retry_after: float = 0.0


def _seconds(value: float) -> int:
    return max(1, math.ceil(value))


# (window exceeded, cooldown active) hint templates per action
_MESSAGES = {
    RateLimitAction.CREATE_OFFER: (
        "Too many offers. Please wait {seconds} seconds before trying again.",
        "Please wait {seconds} seconds before sending another offer.",
    ),
    RateLimitAction.SEND_MESSAGE: (
        "Slow down! Wait {seconds} seconds.",
        "Please wait {seconds} seconds.",
    ),
    RateLimitAction.LIKE_ITEM: (
        "Too fast! Please slow down.",
        "Too fast! Please slow down.",
    ),
}

_HOURLY_MESSAGE = "You've reached the hourly limit for offers. Please try again later."


class RateLimiter:
    """
    Tracks action timestamps per (user, action) and enforces limits.

    Once a window is exhausted the key enters a cooldown; every attempt during
    the cooldown is refused with the remaining time. Rules with
    ``max_per_hour`` also enforce an hourly cap.

    One instance is shared by all requests of an application; it holds only
    process-local state.
    """

    def __init__(
        self,
        rules: Dict[RateLimitAction, RateLimitRule],
        clock: Callable[[], float] = time.monotonic,
    ):
        self._rules = dict(rules)
        self._clock = clock
        self._lock = asyncio.Lock()
        self._timestamps: Dict[Tuple[str, RateLimitAction], Deque[float]] = {}
        self._hourly: Dict[Tuple[str, RateLimitAction], Deque[float]] = {}
        self._cooldowns: Dict[Tuple[str, RateLimitAction], float] = {}

    @classmethod
    def from_settings(cls, settings: Settings, clock: Callable[[], float] = time.monotonic) -> "RateLimiter":
        rules = {
            RateLimitAction.CREATE_OFFER: RateLimitRule(
                max_attempts=settings.OFFER_RATE_LIMIT_PER_MINUTE,
                window_seconds=settings.OFFER_RATE_LIMIT_WINDOW_SECONDS,
                cooldown_seconds=settings.OFFER_COOLDOWN_SECONDS,
                max_per_hour=settings.OFFER_RATE_LIMIT_PER_HOUR,
            ),
            RateLimitAction.SEND_MESSAGE: RateLimitRule(
                max_attempts=settings.MESSAGE_RATE_LIMIT_PER_MINUTE,
                window_seconds=60,
                cooldown_seconds=settings.MESSAGE_COOLDOWN_SECONDS,
            ),
            RateLimitAction.LIKE_ITEM: RateLimitRule(
                max_attempts=settings.LIKE_RATE_LIMIT_PER_MINUTE,
                window_seconds=60,
                cooldown_seconds=settings.LIKE_COOLDOWN_SECONDS,
            ),
        }
        return cls(rules, clock=clock)

    async def can_perform(self, user_id: str, action: RateLimitAction) -> RateDecision:
        """
        Check whether ``user_id`` may perform ``action`` now and record it if so.

        Returns:
            RateDecision; when refused, ``message`` is a hint to show the user
            and ``retry_after`` the number of seconds to wait.
        """
        action = RateLimitAction(action)
        rule = self._rules[action]
        key = (user_id, action)
        window_msg, cooldown_msg = _MESSAGES[action]

        async with self._lock:
            now = self._clock()

            # 1. Active cooldown
            started = self._cooldowns.get(key)
            if started is not None:
                elapsed = now - started
                if elapsed < rule.cooldown_seconds:
                    remaining = rule.cooldown_seconds - elapsed
                    return RateDecision(False, cooldown_msg.format(seconds=_seconds(remaining)), remaining)
                del self._cooldowns[key]

            # 2. Sliding window
            window = self._prune(self._timestamps, key, now - rule.window_seconds)
            if len(window) >= rule.max_attempts:
                self._cooldowns[key] = now
                logger.info(f"Rate limit hit for user {user_id} action {action.value}")
                return RateDecision(
                    False,
                    window_msg.format(seconds=_seconds(rule.cooldown_seconds)),
                    rule.cooldown_seconds,
                )

            # 3. Hourly cap
            hourly = None
            if rule.max_per_hour is not None:
                hourly = self._prune(self._hourly, key, now - HOUR_SECONDS)
                if len(hourly) >= rule.max_per_hour:
                    retry_after = hourly[0] + HOUR_SECONDS - now
                    logger.info(f"Hourly limit hit for user {user_id} action {action.value}")
                    return RateDecision(False, _HOURLY_MESSAGE, retry_after)

            # 4. Record
            window.append(now)
            if hourly is not None:
                hourly.append(now)
            return RateDecision(True)

    async def remaining(self, user_id: str, action: RateLimitAction) -> int:
        """Attempts left in the current window."""
        action = RateLimitAction(action)
        rule = self._rules[action]
        async with self._lock:
            window = self._prune(self._timestamps, (user_id, action), self._clock() - rule.window_seconds)
            return max(0, rule.max_attempts - len(window))

    async def reset(self, user_id: str, action: Optional[RateLimitAction] = None) -> None:
        """Forget recorded attempts for one action, or for all actions of the user."""
        actions = [RateLimitAction(action)] if action is not None else list(RateLimitAction)
        async with self._lock:
            for act in actions:
                key = (user_id, act)
                self._timestamps.pop(key, None)
                self._hourly.pop(key, None)
                self._cooldowns.pop(key, None)

    @staticmethod
    def _prune(store, key, cutoff: float) -> Deque[float]:
        entries = store.setdefault(key, deque())
        while entries and entries[0] <= cutoff:
            entries.popleft()
        return entries
