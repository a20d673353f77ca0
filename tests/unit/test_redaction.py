"""Tests for credential redaction."""

from collections.abc import Mapping

import pytest
from pydantic import SecretStr

from browser_verifier.models.config import Credential
from browser_verifier.models.outcome import Failed, NotRun, Passed
from browser_verifier.models.result import DiagnosticEvent
from browser_verifier.redaction import REDACTED, Redactor


@pytest.fixture
def redactor(credentials: Mapping[str, Credential]) -> Redactor:
    return Redactor.for_credentials(credentials)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (
            "login failed (url=http://app.test/login.html?user=admin&password=hunter2)",
            "login failed (url=http://app.test/login.html?user=admin&password=[REDACTED])",
        ),
        ("GET /api?api_key=abc123&page=2", "GET /api?api_key=[REDACTED]&page=2"),
        ("token=xyz", "token=[REDACTED]"),
        ("no secrets here", "no secrets here"),
    ],
)
def test_masks_sensitive_query_parameters(raw: str, expected: str) -> None:
    assert Redactor().text(raw) == expected


def test_masks_known_secret_values(redactor: Redactor) -> None:
    """Configured passwords are masked wherever they appear, encoded or not."""
    text = redactor.text("typed admin-secret into #q=admin-secret")

    assert "admin-secret" not in text
    assert text == f"typed {REDACTED} into #q={REDACTED}"


def test_masks_url_encoded_secret() -> None:
    credentials = {
        "admin": Credential(role="admin", username="admin", password=SecretStr("p@ss word"))
    }
    redactor = Redactor.for_credentials(credentials)

    assert redactor.text("/search?q=p%40ss%20word") == f"/search?q={REDACTED}"
    assert redactor.text("/search?q=p%40ss+word") == f"/search?q={REDACTED}"


def test_empty_passwords_are_ignored() -> None:
    credentials = {"guest": Credential(role="guest", username="guest", password=SecretStr(""))}

    assert Redactor.for_credentials(credentials).secrets == ()


def test_redacts_every_outcome_kind(redactor: Redactor) -> None:
    assert redactor.outcome(Passed("saw admin-secret")) == Passed(f"saw {REDACTED}")
    assert redactor.outcome(Failed("admin-secret leaked")) == Failed(f"{REDACTED} leaked")
    assert redactor.outcome(NotRun()) == NotRun()


def test_redacts_nested_diagnostic_payloads(redactor: Redactor) -> None:
    event = DiagnosticEvent(
        kind="network",
        timestamp=1.0,
        payload={
            "url": "http://app.test/login.html?password=admin-secret",
            "status": 200,
            "headers": [("x-token", "admin-secret")],
        },
    )

    redacted = redactor.event(event)

    assert redacted.payload == {
        "url": f"http://app.test/login.html?password={REDACTED}",
        "status": 200,
        "headers": [["x-token", REDACTED]],
    }
    assert redacted.kind == "network"
    assert event.payload["status"] == 200
