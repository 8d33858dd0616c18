from __future__ import annotations

import pytest

from storyforge.llm import (
    LLMClientError,
    LLMErrorCategory,
    LLMErrorClassifier,
    LLMMessage,
    LLMRateLimitError,
    LLMResponse,
    LLMRetryPolicy,
    call_with_retries,
)


def test_message_normalises_role_and_content() -> None:
    message = LLMMessage(role=" User ", content="  Hello  ")

    assert message.role == "user"
    assert message.content == "Hello"


@pytest.mark.parametrize("role, content", [("user", "   "), ("narrator", "hi")])
def test_message_rejects_bad_values(role: str, content: str) -> None:
    with pytest.raises(ValueError):
        LLMMessage(role=role, content=content)


def test_response_usage_is_read_only() -> None:
    response = LLMResponse(
        message=LLMMessage(role="assistant", content="ok"), usage={"tokens": 3}
    )

    assert response.text == "ok"
    with pytest.raises(TypeError):
        response.usage["tokens"] = 4  # type: ignore[index]


def test_default_classifier_categories() -> None:
    classifier = LLMErrorClassifier.default()

    assert classifier.classify(LLMRateLimitError("slow down")) is LLMErrorCategory.RATE_LIMIT
    assert classifier.classify(LLMClientError("boom")) is LLMErrorCategory.TRANSIENT
    assert classifier.classify(TimeoutError()) is LLMErrorCategory.TRANSIENT
    assert classifier.classify(KeyError("x")) is LLMErrorCategory.FATAL


def test_backoff_grows_and_caps() -> None:
    policy = LLMRetryPolicy(initial_backoff=1.0, backoff_multiplier=3.0, max_backoff=5.0)

    assert [policy.compute_backoff(n) for n in (1, 2, 3)] == [1.0, 3.0, 5.0]


def test_policy_validates_arguments() -> None:
    with pytest.raises(ValueError):
        LLMRetryPolicy(max_attempts=0)
    with pytest.raises(ValueError):
        LLMRetryPolicy(backoff_multiplier=0.5)


def test_call_with_retries_recovers_from_transient_errors() -> None:
    attempts: list[int] = []
    delays: list[float] = []

    def flaky() -> str:
        attempts.append(1)
        if len(attempts) < 3:
            raise LLMClientError("temporary")
        return "done"

    result = call_with_retries(
        flaky, retry_policy=LLMRetryPolicy(max_attempts=3), sleep=delays.append
    )

    assert result == "done"
    assert delays == [0.5, 1.0]


def test_call_with_retries_gives_up_after_max_attempts() -> None:
    calls: list[int] = []

    def always_fails() -> str:
        calls.append(1)
        raise LLMClientError("still down")

    with pytest.raises(LLMClientError):
        call_with_retries(
            always_fails, retry_policy=LLMRetryPolicy(max_attempts=2), sleep=lambda _: None
        )
    assert len(calls) == 2


def test_fatal_errors_are_not_retried() -> None:
    calls: list[int] = []

    def broken() -> str:
        calls.append(1)
        raise ValueError("bad request")

    with pytest.raises(ValueError):
        call_with_retries(broken, sleep=lambda _: None)
    assert len(calls) == 1
