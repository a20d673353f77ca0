"""Masking of credentials in outcomes and diagnostics before they are reported."""

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from typing import Any
from urllib.parse import quote, quote_plus

from browser_verifier.models.config import Credential
from browser_verifier.models.outcome import Outcome, Passed
from browser_verifier.models.result import DiagnosticEvent

REDACTED = "[REDACTED]"

SENSITIVE_KEYS = (
    "password",
    "passwd",
    "pwd",
    "secret",
    "token",
    "api_key",
    "apikey",
    "access_token",
    "authorization",
)

_SENSITIVE_PARAM = re.compile(
    rf"((?:^|[?&;\s])[\w.\-]*(?:{'|'.join(SENSITIVE_KEYS)})[\w.\-]*=)[^&#\s)\"']*",
    re.IGNORECASE,
)


@dataclass(frozen=True, kw_only=True)
class Redactor:
    """Replaces secret values and sensitive query parameters with a marker."""

    secrets: tuple[str, ...] = ()

    @classmethod
    def for_credentials(cls, credentials: Mapping[str, Credential]) -> "Redactor":
        values: set[str] = set()
        for credential in credentials.values():
            secret = credential.password.get_secret_value()
            if secret:
                values.update({secret, quote(secret, safe=""), quote_plus(secret)})
        # Longest first so an encoded form is never left half masked.
        return cls(secrets=tuple(sorted(values, key=len, reverse=True)))

    def text(self, value: str) -> str:
        for secret in self.secrets:
            value = value.replace(secret, REDACTED)
        return _SENSITIVE_PARAM.sub(rf"\1{REDACTED}", value)

    def outcome(self, outcome: Outcome) -> Outcome:
        if isinstance(outcome, Passed):
            return replace(outcome, details=self.text(outcome.details))
        return replace(outcome, reason=self.text(outcome.reason))

    def event(self, event: DiagnosticEvent) -> DiagnosticEvent:
        return replace(event, payload=self._value(event.payload))

    def events(self, events: Iterable[DiagnosticEvent]) -> list[DiagnosticEvent]:
        return [self.event(event) for event in events]

    def _value(self, value: Any) -> Any:
        match value:
            case str():
                return self.text(value)
            case Mapping():
                return {key: self._value(item) for key, item in value.items()}
            case list() | tuple():
                return [self._value(item) for item in value]
            case _:
                return value
