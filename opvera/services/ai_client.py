"""
Resilient client for the Gemini generation endpoint.

Every outbound AI call goes through AIClient.call():
- RateLimiter: min spacing between consecutive calls, process-wide; early callers wait.
- Each attempt is bounded by a timeout; a timeout is a failed attempt, not fatal.
- Up to max_attempts with exponential backoff (base, 2*base, 4*base ...).
- Optional validator turns raw text into structured data; a bad shape counts as a failed attempt.
- When attempts run out the caller gets AIUnavailableError (never a raw transport error).
"""
import enum
import logging
import threading
import time
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Protocol, Union

import httpx
from google.genai import errors as genai_errors

from opvera.config import get_settings

logger = logging.getLogger(__name__)

HARM_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)

# Chat-style prompt: [{"role": "user"|"assistant", "content": "..."}, ...]
Prompt = Union[str, list[dict]]


class FailureKind(str, enum.Enum):
    TIMEOUT = "timeout"
    TRANSPORT = "transport"
    BAD_STATUS = "bad_status"
    EMPTY = "empty"
    MALFORMED = "malformed"
    SHAPE = "shape"


class AIAttemptError(Exception):
    """One attempt failed; retried while attempts remain."""

    def __init__(self, kind: FailureKind, message: str):
        super().__init__(message)
        self.kind = kind


class AIResponseInvalid(AIAttemptError):
    """Response text did not parse or did not match the expected shape."""

    def __init__(self, message: str, kind: FailureKind = FailureKind.SHAPE):
        super().__init__(kind, message)


class AIUnavailableError(Exception):
    """All attempts failed. `kind` is the failure kind of the last attempt."""

    def __init__(self, kind: FailureKind, attempts: int, last_error: str):
        super().__init__(f"AI call failed after {attempts} attempt(s): {kind.value}: {last_error}")
        self.kind = kind
        self.attempts = attempts
        self.last_error = last_error


@dataclass
class AIOptions:
    temperature: float = 0.7
    top_k: int = 40
    top_p: float = 0.95
    max_output_tokens: int = 2048
    system_instruction: str | None = None
    json_output: bool = False


@dataclass
class AIResponse:
    text: str
    attempts: int
    data: Any = None
    model: str | None = None


class GenerationProvider(Protocol):
    model: str

    def generate(self, prompt: Prompt, options: AIOptions, timeout: float) -> str:
        ...


class RateLimiter:
    """
    Minimum spacing between consecutive calls. The lock is held while waiting,
    so concurrent callers queue up behind each other. Clock and sleep are injectable.
    """

    def __init__(
        self,
        min_interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_call: float | None = None

    @property
    def last_call(self) -> float | None:
        return self._last_call

    def acquire(self) -> float:
        """Block until a call may go out; returns seconds waited."""
        with self._lock:
            now = self._clock()
            waited = 0.0
            if self._last_call is not None:
                wait = self._last_call + self.min_interval - now
                if wait > 0:
                    self._sleep(wait)
                    waited = wait
                    now = self._clock()
            self._last_call = now
            return waited


class _AttemptThread(threading.Thread):
    """
    One provider call on its own thread, started right after the rate limiter
    admits it, so the timeout counts from the moment the request goes out.
    A call still running at the timeout is left to finish on its own.
    """

    def __init__(self, fn: Callable[..., str], *args: Any):
        super().__init__(name="ai-call", daemon=True)
        self._fn = fn
        self._args = args
        self.result: str | None = None
        self.error: Exception | None = None

    def run(self) -> None:
        try:
            self.result = self._fn(*self._args)
        except Exception as e:
            self.error = e


def _classify(exc: BaseException) -> FailureKind:
    if isinstance(exc, AIAttemptError):
        return exc.kind
    if isinstance(exc, (TimeoutError, httpx.TimeoutException)):
        return FailureKind.TIMEOUT
    if isinstance(exc, genai_errors.APIError):
        return FailureKind.BAD_STATUS
    return FailureKind.TRANSPORT


class AIClient:
    def __init__(
        self,
        provider: GenerationProvider,
        rate_limiter: RateLimiter | None = None,
        *,
        timeout: float = 30.0,
        max_attempts: int = 3,
        backoff_base: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.provider = provider
        self.rate_limiter = rate_limiter or RateLimiter()
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.backoff_base = backoff_base
        self._sleep = sleep

    @property
    def model(self) -> str | None:
        return getattr(self.provider, "model", None)

    def backoff_delay(self, attempt: int) -> float:
        """Delay after the given failed attempt (1-based)."""
        return self.backoff_base * (2 ** (attempt - 1))

    def _attempt(self, prompt: Prompt, options: AIOptions) -> str:
        self.rate_limiter.acquire()
        call = _AttemptThread(self.provider.generate, prompt, options, self.timeout)
        call.start()
        call.join(self.timeout)
        if call.is_alive():
            raise AIAttemptError(FailureKind.TIMEOUT, f"No response within {self.timeout:g}s")
        if call.error is not None:
            raise call.error
        return call.result

    def call(
        self,
        prompt: Prompt,
        options: AIOptions | None = None,
        validator: Callable[[str], Any] | None = None,
    ) -> AIResponse:
        options = options or AIOptions()
        kind = FailureKind.TRANSPORT
        last_error = ""
        for attempt in range(1, self.max_attempts + 1):
            try:
                text = self._attempt(prompt, options)
                if not text or not text.strip():
                    raise AIAttemptError(FailureKind.EMPTY, "Empty response from model")
                data = validator(text) if validator else None
                if attempt > 1:
                    logger.info("AI call succeeded on attempt %d", attempt)
                return AIResponse(text=text, attempts=attempt, data=data, model=self.model)
            except Exception as e:
                kind = _classify(e)
                last_error = str(e) or e.__class__.__name__
                logger.warning(
                    "AI call attempt %d/%d failed (%s): %s",
                    attempt, self.max_attempts, kind.value, last_error,
                )
            if attempt < self.max_attempts:
                self._sleep(self.backoff_delay(attempt))
        logger.error("AI call gave up after %d attempts (%s)", self.max_attempts, kind.value)
        raise AIUnavailableError(kind, self.max_attempts, last_error)


# ---- Gemini ----


class GeminiProvider:
    """google-genai backed provider. Client is created on first use."""

    def __init__(self, model: str, safety_threshold: str = "BLOCK_MEDIUM_AND_ABOVE"):
        self.model = model
        self.safety_threshold = safety_threshold
        self._client = None
        self._client_lock = threading.Lock()

    def _get_client(self):
        with self._client_lock:
            if self._client is not None:
                return self._client
            from google import genai

            settings = get_settings()
            if settings.gemini_api_key:
                self._client = genai.Client(api_key=settings.gemini_api_key)
                return self._client
            if not settings.vertex_project_id:
                raise RuntimeError("Neither gemini_api_key nor vertex_project_id is configured")

            credentials = None
            if settings.vertex_credentials_path:
                from google.oauth2 import service_account

                path = Path(settings.vertex_credentials_path)
                if path.is_file():
                    credentials = service_account.Credentials.from_service_account_file(
                        str(path),
                        scopes=["https://www.googleapis.com/auth/cloud-platform"],
                    )
            self._client = genai.Client(
                vertexai=True,
                project=settings.vertex_project_id,
                location=settings.vertex_location,
                credentials=credentials,
            )
            return self._client

    def safety_settings(self) -> list:
        from google.genai import types

        return [
            types.SafetySetting(category=category, threshold=self.safety_threshold)
            for category in HARM_CATEGORIES
        ]

    @staticmethod
    def build_contents(prompt: Prompt) -> Any:
        if isinstance(prompt, str):
            return prompt
        from google.genai import types

        contents = []
        for m in prompt:
            content = (m.get("content") or "").strip()
            if not content:
                continue
            role = "user" if m.get("role", "user") == "user" else "model"
            contents.append(types.Content(role=role, parts=[types.Part.from_text(text=content)]))
        return contents

    def generate(self, prompt: Prompt, options: AIOptions, timeout: float) -> str:
        from google.genai import types

        client = self._get_client()
        config = types.GenerateContentConfig(
            system_instruction=options.system_instruction,
            temperature=options.temperature,
            top_k=options.top_k,
            top_p=options.top_p,
            max_output_tokens=options.max_output_tokens,
            safety_settings=self.safety_settings(),
            response_mime_type="application/json" if options.json_output else None,
            http_options=types.HttpOptions(timeout=int(timeout * 1000)),
        )
        response = client.models.generate_content(
            model=self.model,
            contents=self.build_contents(prompt),
            config=config,
        )
        if not response or not response.candidates:
            feedback = getattr(response, "prompt_feedback", None)
            reason = getattr(feedback, "block_reason", None)
            raise AIAttemptError(FailureKind.EMPTY, f"No candidates in response (block_reason={reason})")
        candidate = response.candidates[0]
        if not candidate.content or not candidate.content.parts:
            raise AIAttemptError(FailureKind.EMPTY, "No text in model response")
        return getattr(response, "text", None) or candidate.content.parts[0].text


@lru_cache
def get_ai_client() -> AIClient:
    """Process-wide client; its RateLimiter holds the only state shared between calls."""
    settings = get_settings()
    return AIClient(
        GeminiProvider(settings.gemini_model, settings.ai_safety_threshold),
        RateLimiter(settings.ai_min_interval_seconds),
        timeout=settings.ai_timeout_seconds,
        max_attempts=settings.ai_max_attempts,
        backoff_base=settings.ai_backoff_base_seconds,
    )
