"""Fixtures for module tests driving a real browser against pytest-httpserver."""

from collections.abc import AsyncGenerator
from contextlib import AsyncExitStack

import pytest
from pytest_httpserver import HTTPServer

from browser_verifier.drivers.playwright import PlaywrightConfig, PlaywrightDriver
from browser_verifier.errors import DriverError

ADMIN_PASSWORD = "admin-secret"
SECURE_HEADERS = {"X-Content-Type-Options": "nosniff", "X-Frame-Options": "DENY"}
HEAD = '<head><title>{title}</title><link rel="icon" href="data:,"></head>'

HOME_PAGE = f"""<!doctype html>
<html>{HEAD.format(title="Home")}
<body><h1>Welcome</h1><a href="/login.html">Login</a></body>
</html>"""

LOGIN_PAGE = f"""<!doctype html>
<html>{HEAD.format(title="Login")}
<body>
  <input id="username"><input id="password" type="password">
  <button id="loginBtn" onclick="login()">Login</button>
  <div id="error" hidden>Invalid credentials</div>
  <script>
    function login() {{
      const user = document.getElementById("username").value;
      const password = document.getElementById("password").value;
      if (user === "admin" && password === "{ADMIN_PASSWORD}") {{
        location.href = "/dashboard.html";
      }} else {{
        document.getElementById("error").hidden = false;
      }}
    }}
  </script>
</body>
</html>"""

DASHBOARD_PAGE = f"""<!doctype html>
<html>{HEAD.format(title="Dashboard")}
<body><div id="welcome">Hello admin</div></body>
</html>"""


@pytest.fixture
def app(httpserver: HTTPServer) -> HTTPServer:
    """Serve a small application with a login form and a health endpoint."""
    httpserver.expect_request("/").respond_with_data(
        HOME_PAGE, content_type="text/html", headers=SECURE_HEADERS
    )
    httpserver.expect_request("/login.html").respond_with_data(
        LOGIN_PAGE, content_type="text/html"
    )
    httpserver.expect_request("/dashboard.html").respond_with_data(
        DASHBOARD_PAGE, content_type="text/html"
    )
    httpserver.expect_request("/api/health").respond_with_json({"status": "ok"})
    return httpserver


@pytest.fixture
def base_url(app: HTTPServer) -> str:
    return app.url_for("/").rstrip("/")


@pytest.fixture
async def driver() -> AsyncGenerator[PlaywrightDriver, None]:
    """Launch headless Chromium, skipping when no browser is installed."""
    async with AsyncExitStack() as stack:
        try:
            impl = await stack.enter_async_context(
                PlaywrightDriver.from_config(PlaywrightConfig())
            )
        except DriverError as exc:
            pytest.skip(f"Browser unavailable: {exc}")
        yield impl
