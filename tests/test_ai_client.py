import threading
import time

import httpx
import pytest

from conftest import FakeClock, FakeProvider, make_ai_client
from opvera.services.ai_client import (
    HARM_CATEGORIES,
    AIAttemptError,
    AIClient,
    AIOptions,
    AIUnavailableError,
    FailureKind,
    GeminiProvider,
    RateLimiter,
    _classify,
)
from opvera.services.ai_validation import validate_quiz_questions

VALID_QUIZ = (
    '[' + ','.join(
        '{"question": "Q%d", "options": ["a", "b", "c", "d"], "correctIndex": 1, "explanation": "b"}' % i
        for i in range(5)
    ) + ']'
)


def test_success_on_first_attempt():
    provider = FakeProvider("hello")
    response = make_ai_client(provider).call("hi")
    assert response.text == "hello"
    assert response.attempts == 1
    assert response.model == "fake-gemini"
    assert len(provider.calls) == 1


def test_two_failures_then_success_reports_three_attempts():
    sleeps = []
    provider = FakeProvider(RuntimeError("connection reset"), httpx.ConnectError("refused"), "finally")
    response = make_ai_client(provider, backoff_sleeps=sleeps).call("hi")
    assert response.text == "finally"
    assert response.attempts == 3
    assert sleeps == [1.0, 2.0]


def test_provider_that_always_hangs_fails_with_timeout_after_three_attempts():
    provider = FakeProvider(0.3)
    client = make_ai_client(provider, timeout=0.05)
    with pytest.raises(AIUnavailableError) as exc:
        client.call("hi")
    assert exc.value.kind == FailureKind.TIMEOUT
    assert exc.value.attempts == 3
    assert len(provider.calls) == 3


def test_concurrent_callers_each_get_the_full_timeout():
    provider = FakeProvider(0.2)
    client = AIClient(provider, RateLimiter(0.0), timeout=1.0, max_attempts=1)
    results = []

    def _call():
        try:
            results.append(client.call("hi").text)
        except AIUnavailableError as e:
            results.append(e.kind.value)

    threads = [threading.Thread(target=_call) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results == ["too late"] * 8
    assert len(provider.calls) == 8


def test_timed_out_attempt_is_not_sent_again_later():
    provider = FakeProvider(0.3)
    client = AIClient(provider, RateLimiter(0.0), timeout=0.05, max_attempts=1)
    with pytest.raises(AIUnavailableError):
        client.call("hi")
    time.sleep(0.4)
    assert len(provider.calls) == 1


def test_empty_reply_is_a_failed_attempt():
    provider = FakeProvider("   ", "answer")
    response = make_ai_client(provider).call("hi")
    assert response.attempts == 2


def test_blocked_reply_kind_is_reported():
    provider = FakeProvider(AIAttemptError(FailureKind.EMPTY, "blocked by safety"))
    with pytest.raises(AIUnavailableError) as exc:
        make_ai_client(provider).call("hi")
    assert exc.value.kind == FailureKind.EMPTY
    assert "blocked by safety" in exc.value.last_error


def test_shape_mismatch_is_retried_then_validated():
    provider = FakeProvider('[{"question": "only one"}]', VALID_QUIZ)
    response = make_ai_client(provider).call("quiz", AIOptions(json_output=True), validate_quiz_questions)
    assert response.attempts == 2
    assert len(response.data) == 5
    assert response.data[0]["correctIndex"] == 1


def test_persistent_shape_mismatch_becomes_typed_failure():
    provider = FakeProvider("not json at all", '{"questions": []}')
    with pytest.raises(AIUnavailableError) as exc:
        make_ai_client(provider).call("quiz", validator=validate_quiz_questions)
    assert exc.value.kind == FailureKind.SHAPE
    assert exc.value.attempts == 3


def test_transport_errors_never_escape():
    provider = FakeProvider(httpx.ConnectError("refused"))
    with pytest.raises(AIUnavailableError) as exc:
        make_ai_client(provider).call("hi")
    assert exc.value.kind == FailureKind.TRANSPORT


def test_backoff_doubles():
    client = AIClient(FakeProvider(), backoff_base=0.5)
    assert [client.backoff_delay(n) for n in (1, 2, 3)] == [0.5, 1.0, 2.0]


def test_options_reach_the_provider():
    provider = FakeProvider("ok")
    options = AIOptions(temperature=0.1, system_instruction="be brief")
    make_ai_client(provider, timeout=7.0).call("hi", options)
    call = provider.calls[0]
    assert call["options"] is options
    assert call["timeout"] == 7.0


@pytest.mark.parametrize(
    "exc, kind",
    [
        (TimeoutError(), FailureKind.TIMEOUT),
        (httpx.ReadTimeout("slow"), FailureKind.TIMEOUT),
        (httpx.ConnectError("down"), FailureKind.TRANSPORT),
        (AIAttemptError(FailureKind.MALFORMED, "bad json"), FailureKind.MALFORMED),
    ],
)
def test_classify(exc, kind):
    assert _classify(exc) == kind


# ---- RateLimiter ----


def test_rate_limiter_spaces_consecutive_calls():
    clock = FakeClock()
    limiter = RateLimiter(1.0, clock=clock, sleep=clock.sleep)
    assert limiter.acquire() == 0.0
    assert limiter.acquire() == pytest.approx(1.0)
    clock.now += 0.4
    assert limiter.acquire() == pytest.approx(0.6)
    clock.now += 5
    assert limiter.acquire() == 0.0
    assert limiter.last_call == clock.now


def test_rate_limiter_serializes_concurrent_callers():
    clock = FakeClock()
    limiter = RateLimiter(1.0, clock=clock, sleep=clock.sleep)
    waits = []
    threads = [threading.Thread(target=lambda: waits.append(limiter.acquire())) for _ in range(3)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert sorted(waits) == [0.0, pytest.approx(1.0), pytest.approx(1.0)]
    assert clock.now == pytest.approx(102.0)


def test_every_attempt_passes_the_rate_limiter():
    clock = FakeClock()
    provider = FakeProvider(RuntimeError("x"), "ok")
    client = AIClient(provider, RateLimiter(1.0, clock=clock, sleep=clock.sleep), backoff_base=0.0, sleep=clock.sleep)
    client.call("hi")
    # second attempt waited out the limiter (backoff of 0 does not advance the clock)
    assert clock.sleeps == [0.0, pytest.approx(1.0)]


# ---- Gemini provider helpers ----


def test_safety_settings_cover_every_category():
    settings = GeminiProvider("gemini-test", "BLOCK_ONLY_HIGH").safety_settings()
    assert [s.category for s in settings] == list(HARM_CATEGORIES)
    assert [s.threshold for s in settings] == ["BLOCK_ONLY_HIGH"] * len(HARM_CATEGORIES)


def test_build_contents_maps_assistant_to_model_role():
    contents = GeminiProvider.build_contents([
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "hello"},
        {"role": "user", "content": "   "},
    ])
    assert [c.role for c in contents] == ["user", "model"]
    assert contents[1].parts[0].text == "hello"
    assert GeminiProvider.build_contents("plain") == "plain"
