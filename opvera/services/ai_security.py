"""
Redact personal data and secrets from user text before it is sent to Gemini.
Quiz answers, chat messages and topics all pass through here.
"""
import re
from typing import Any


SECRET_PATTERNS = [
    (re.compile(r'(password|passwd|pwd|secret|token|api_key|apikey)\s*[:=]\s*["\']?[^\s"\']+', re.I), r'\1=***REDACTED***'),
    (re.compile(r'\bBearer\s+[A-Za-z0-9\-._~+/]+=*', re.I), 'Bearer ***REDACTED***'),
    (re.compile(r'\beyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\b'), '***JWT***'),
    (re.compile(r'\bAIza[0-9A-Za-z\-_]{20,}\b'), '***API_KEY***'),
    (re.compile(r'[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}'), '***EMAIL***'),
]

SENSITIVE_KEYS = {
    "password", "passwd", "pwd", "secret", "token", "credentials",
    "api_key", "apikey", "authorization", "auth", "email",
}


def redact_text(text: str) -> str:
    if not text or not isinstance(text, str):
        return ""
    out = text
    for pattern, repl in SECRET_PATTERNS:
        out = pattern.sub(repl, out)
    return out


def redact_structure(obj: Any) -> Any:
    """Recursively redact strings and values under sensitive keys."""
    if obj is None:
        return None
    if isinstance(obj, str):
        return redact_text(obj)
    if isinstance(obj, dict):
        return {
            k: "***REDACTED***" if (isinstance(k, str) and k.lower() in SENSITIVE_KEYS) else redact_structure(v)
            for k, v in obj.items()
        }
    if isinstance(obj, list):
        return [redact_structure(i) for i in obj]
    return obj
