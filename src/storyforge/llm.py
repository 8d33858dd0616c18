"""Provider-neutral client interface for text generation services."""

from __future__ import annotations

import logging
import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Callable, Mapping, Sequence, TypeVar

logger = logging.getLogger(__name__)

_ROLES = frozenset({"system", "user", "assistant"})


def _require_text(value: str, *, field_name: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{field_name} must be a string, got {type(value)!r}")
    stripped = value.strip()
    if not stripped:
        raise ValueError(f"{field_name} must be a non-empty string")
    return stripped


@dataclass(frozen=True)
class LLMMessage:
    """One chat-style message sent to or received from a provider."""

    role: str
    content: str

    def __post_init__(self) -> None:
        role = _require_text(self.role, field_name="role").lower()
        if role not in _ROLES:
            raise ValueError(f"role must be one of {sorted(_ROLES)}, got {role!r}")
        object.__setattr__(self, "role", role)
        object.__setattr__(self, "content", _require_text(self.content, field_name="content"))


@dataclass(frozen=True)
class LLMResponse:
    """A completion plus optional token usage reported by the provider."""

    message: LLMMessage
    usage: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        usage = {}
        for key, value in (self.usage or {}).items():
            if not isinstance(value, int) or isinstance(value, bool):
                raise TypeError(f"usage value for {key!r} must be an int")
            usage[str(key)] = value
        object.__setattr__(self, "usage", MappingProxyType(usage))

    @property
    def text(self) -> str:
        return self.message.content


class LLMClient(ABC):
    """Blocking interface every generation provider adapter implements."""

    @abstractmethod
    def complete(
        self, messages: Sequence[LLMMessage], *, temperature: float | None = None
    ) -> LLMResponse:
        """Return the provider's reply to ``messages``."""

    def complete_prompt(self, prompt: str, *, temperature: float | None = None) -> LLMResponse:
        return self.complete([LLMMessage(role="user", content=prompt)], temperature=temperature)


class LLMClientError(RuntimeError):
    """Raised by adapters when the provider call fails."""


class LLMRateLimitError(LLMClientError):
    """The provider refused the call because of a quota or rate limit."""


class LLMErrorCategory(str, Enum):
    TRANSIENT = "transient"
    RATE_LIMIT = "rate_limit"
    FATAL = "fatal"

    def is_retryable(self) -> bool:
        return self in (LLMErrorCategory.TRANSIENT, LLMErrorCategory.RATE_LIMIT)


class LLMErrorClassifier:
    """Map exceptions to :class:`LLMErrorCategory` values.

    Rules are checked in registration order; the first ``isinstance`` match
    wins. Unmatched errors fall back to ``default_category``. The default
    classifier treats :class:`LLMRateLimitError` as a rate limit and other
    :class:`LLMClientError`, ``ConnectionError`` and ``TimeoutError`` as
    transient.
    """

    def __init__(
        self,
        *,
        default_category: LLMErrorCategory = LLMErrorCategory.FATAL,
        rules: Sequence[tuple[LLMErrorCategory, type[Exception]]] | None = None,
    ) -> None:
        self._default_category = default_category
        self._rules: list[tuple[type[Exception], LLMErrorCategory]] = []
        for category, exc_type in rules or ():
            self.register(category, exc_type)

    @classmethod
    def default(cls) -> "LLMErrorClassifier":
        classifier = cls()
        classifier.register(LLMErrorCategory.RATE_LIMIT, LLMRateLimitError)
        classifier.register(
            LLMErrorCategory.TRANSIENT, LLMClientError, ConnectionError, TimeoutError
        )
        return classifier

    def register(self, category: LLMErrorCategory, *exception_types: type[Exception]) -> None:
        if not exception_types:
            raise ValueError("at least one exception type must be provided")
        for exc_type in exception_types:
            if not isinstance(exc_type, type) or not issubclass(exc_type, Exception):
                raise TypeError(f"exception_types must be Exception subclasses, got {exc_type!r}")
            self._rules.append((exc_type, category))

    def classify(self, error: Exception) -> LLMErrorCategory:
        for exc_type, category in self._rules:
            if isinstance(error, exc_type):
                return category
        return self._default_category


@dataclass(frozen=True)
class LLMRetryPolicy:
    """Bounded exponential backoff for provider calls."""

    max_attempts: int = 3
    initial_backoff: float = 0.5
    backoff_multiplier: float = 2.0
    max_backoff: float = 30.0
    jitter: float = 0.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_backoff < 0 or self.max_backoff < 0 or self.jitter < 0:
            raise ValueError("backoff values must be non-negative")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")

    def compute_backoff(
        self, attempt: int, *, random_func: Callable[[], float] | None = None
    ) -> float:
        """Return the delay after failed ``attempt`` (1-indexed)."""

        if attempt < 1:
            raise ValueError("attempt must be >= 1")
        delay = min(
            self.initial_backoff * (self.backoff_multiplier ** (attempt - 1)), self.max_backoff
        )
        if self.jitter <= 0 or delay == 0:
            return delay
        rng = random_func or random.random
        return max(0.0, delay + (rng() * 2 - 1) * delay * self.jitter)


T = TypeVar("T")


def call_with_retries(
    operation: Callable[[], T],
    *,
    retry_policy: LLMRetryPolicy | None = None,
    classifier: LLMErrorClassifier | None = None,
    sleep: Callable[[float], None] | None = None,
    random_func: Callable[[], float] | None = None,
) -> T:
    """Run ``operation``, retrying retryable failures under ``retry_policy``.

    The last error is re-raised once attempts are exhausted or as soon as a
    non-retryable error is seen.
    """

    policy = retry_policy or LLMRetryPolicy()
    error_classifier = classifier or LLMErrorClassifier.default()
    sleep_fn = sleep or time.sleep

    attempt = 1
    while True:
        try:
            return operation()
        except Exception as error:
            category = error_classifier.classify(error)
            if not category.is_retryable() or attempt >= policy.max_attempts:
                logger.warning(
                    "Provider call failed after %d attempt(s) (%s): %s",
                    attempt,
                    category.value,
                    error,
                )
                raise
            delay = policy.compute_backoff(attempt, random_func=random_func)
            logger.info(
                "Provider call attempt %d failed (%s); retrying in %.2fs",
                attempt,
                category.value,
                delay,
            )
            if delay > 0:
                sleep_fn(delay)
            attempt += 1


__all__ = [
    "LLMClient",
    "LLMClientError",
    "LLMErrorCategory",
    "LLMErrorClassifier",
    "LLMMessage",
    "LLMRateLimitError",
    "LLMResponse",
    "LLMRetryPolicy",
    "call_with_retries",
]
