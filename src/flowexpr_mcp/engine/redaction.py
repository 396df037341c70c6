"""Redaction of sensitive values in evaluation outputs and logs.

Two levels:
    - redact_value / redact_outputs: replace sensitive Values wholesale
    - SensitiveTextRedactor: scrub known sensitive raw strings that have
      leaked into free text (error messages, log lines, nested results)

Example:
    >>> outputs = {"user": Value("admin"), "password": Value("hunter22", sensitive=True)}
    >>> redact_outputs(outputs)
    {'user': 'admin', 'password': '***REDACTED***'}
"""

import re
from collections.abc import Iterable, Mapping
from typing import Any

from .values import SystemProperty, Value

REDACTION_MARKER = "***REDACTED***"


def redact_value(value: Any) -> Any:
    """Return the raw payload of a Value, or the redaction marker if sensitive."""
    if isinstance(value, Value):
        return REDACTION_MARKER if value.sensitive else value.raw
    return value


def redact_outputs(outputs: Mapping[str, Any]) -> dict[str, Any]:
    """Apply redact_value to every entry of an output mapping."""
    return {name: redact_value(value) for name, value in outputs.items()}


class SensitiveTextRedactor:
    """Redacts known sensitive strings wherever they appear.

    Values shorter than MIN_SECRET_LENGTH are ignored to avoid redacting
    common short strings.

    Attributes:
        redaction_patterns: Compiled patterns, longest secret first
    """

    MIN_SECRET_LENGTH = 4

    def __init__(self, secrets: Iterable[str] = ()) -> None:
        unique = {secret for secret in secrets if secret and len(secret) >= self.MIN_SECRET_LENGTH}
        # Longest first so a secret containing another is redacted whole
        self.redaction_patterns: list[re.Pattern[str]] = [
            re.compile(re.escape(secret)) for secret in sorted(unique, key=len, reverse=True)
        ]

    @classmethod
    def from_sources(
        cls,
        values: Iterable[Value] = (),
        properties: Iterable[SystemProperty] = (),
    ) -> "SensitiveTextRedactor":
        """Collect the string payloads of sensitive Values and SystemProperties."""
        secrets = [str(value.raw) for value in values if value.sensitive and value.raw is not None]
        secrets += [prop.value for prop in properties if prop.sensitive and prop.value]
        return cls(secrets)

    def redact(self, data: Any) -> Any:
        """Recursively redact strings inside dicts, lists and tuples."""
        if isinstance(data, str):
            return self._redact_string(data)
        if isinstance(data, Value):
            return REDACTION_MARKER if data.sensitive else self.redact(data.raw)
        if isinstance(data, Mapping):
            return {key: self.redact(value) for key, value in data.items()}
        if isinstance(data, list):
            return [self.redact(item) for item in data]
        if isinstance(data, tuple):
            return tuple(self.redact(item) for item in data)
        return data

    def _redact_string(self, text: str) -> str:
        for pattern in self.redaction_patterns:
            text = pattern.sub(REDACTION_MARKER, text)
        return text


__all__ = ["REDACTION_MARKER", "SensitiveTextRedactor", "redact_outputs", "redact_value"]
