"""Fixtures for unit tests running against the in-memory fake driver."""

from collections.abc import AsyncGenerator, Mapping

import pytest
from pydantic import SecretStr

from browser_verifier.cases.base import CaseContext
from browser_verifier.models.config import Credential, RunSettings, SessionConfig, Target
from browser_verifier.session import BrowserSession
from browser_verifier.testing.fake_driver import FakeDriver, FakePage, FakeSite, demo_site

ADMIN_PASSWORD = "admin-secret"


@pytest.fixture
def site() -> FakeSite:
    """A healthy site accepting the admin account."""
    return demo_site(admin=ADMIN_PASSWORD)


@pytest.fixture
def driver(site: FakeSite) -> FakeDriver:
    return FakeDriver(site=site)


@pytest.fixture
def settings() -> RunSettings:
    """Settings with short timeouts so failing logins resolve quickly."""
    return RunSettings(case_timeout=5.0, session=SessionConfig(default_timeout_ms=300))


@pytest.fixture
def target() -> Target:
    return Target(name="app", base_url="http://app.test/")


@pytest.fixture
def credentials() -> Mapping[str, Credential]:
    return {
        "admin": Credential(
            role="admin", username="admin", password=SecretStr(ADMIN_PASSWORD)
        )
    }


@pytest.fixture
async def session(
    driver: FakeDriver, settings: RunSettings
) -> AsyncGenerator[BrowserSession, None]:
    """Open a session on the fake driver."""
    async with BrowserSession.open(driver, settings.session) as opened:
        yield opened


@pytest.fixture
def page(session: BrowserSession) -> FakePage:
    assert isinstance(session.page, FakePage)
    return session.page


@pytest.fixture
def context(
    session: BrowserSession,
    target: Target,
    credentials: Mapping[str, Credential],
    settings: RunSettings,
) -> CaseContext:
    return CaseContext(
        session=session, target=target, credentials=credentials, settings=settings
    )
