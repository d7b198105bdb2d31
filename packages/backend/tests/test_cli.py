"""CLI tests — commands run against a mocked HTTP backend.

Learn: `_client` is patched to an httpx client on a MockTransport, so
each test states exactly what the API answers and inspects what the
CLI sent and stored. Credentials go to a temp file.
"""

import json
import stat

import httpx
import pytest
from click.testing import CliRunner

import wayfarer.cli.main as cli
from wayfarer.cli.main import main


class FakeApi:
    """Routes (method, path) → (status, body); records requests."""

    def __init__(self):
        self.routes: dict[tuple[str, str], tuple[int, dict]] = {}
        self.requests: list[httpx.Request] = []

    def on(self, method: str, path: str, status: int, body: dict) -> None:
        self.routes[(method, path)] = (status, body)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body = self.routes.get(
            (request.method, request.url.path),
            (404, {"error": "NotFound", "message": "Not Found"}),
        )
        return httpx.Response(status, json=body)

    def sent_json(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


@pytest.fixture()
def api(monkeypatch):
    fake = FakeApi()
    monkeypatch.setattr(
        cli,
        "_client",
        lambda: httpx.AsyncClient(
            transport=httpx.MockTransport(fake.handler), base_url="http://test"
        ),
    )
    return fake


@pytest.fixture()
def creds(tmp_path, monkeypatch):
    path = tmp_path / "wayfarer" / "credentials.json"
    monkeypatch.setenv("WAYFARER_CREDENTIALS_FILE", str(path))
    return path


@pytest.fixture()
def runner():
    return CliRunner()


def _store(creds, access="access-1", refresh="refresh-1"):
    creds.parent.mkdir(parents=True, exist_ok=True)
    creds.write_text(json.dumps({"accessToken": access, "refreshToken": refresh}))


PROFILE = {
    "id": "7c9e6679-7425-40de-944b-e07fc1f90ae7",
    "userName": "alice",
    "email": "alice@example.com",
    "createdAt": "2026-03-01T12:00:00Z",
    "roles": ["User"],
}


def test_register(runner, api, creds):
    api.on("POST", "/api/v1/auth/register", 201, PROFILE)
    result = runner.invoke(
        main, ["register", "alice", "alice@example.com", "--password", "Passw0rd!"]
    )
    assert result.exit_code == 0, result.output
    assert "Registered alice@example.com" in result.output
    assert api.sent_json() == {
        "userName": "alice",
        "email": "alice@example.com",
        "password": "Passw0rd!",
    }
    assert not creds.exists()


def test_register_shows_validation_errors(runner, api, creds):
    api.on("POST", "/api/v1/auth/register", 400, {
        "error": "ValidationError",
        "message": "One or more validation errors occurred.",
        "errors": {"password": ["String should have at least 8 characters"]},
    })
    result = runner.invoke(
        main, ["register", "alice", "alice@example.com", "--password", "short"]
    )
    assert result.exit_code == 1
    assert "ValidationError" in result.output
    assert "password: String should have at least 8 characters" in result.output


def test_login_stores_tokens_privately(runner, api, creds):
    api.on("POST", "/api/v1/auth/login", 200, {
        "accessToken": "access-1",
        "refreshToken": "refresh-1",
        "expiresIn": 900,
        "tokenType": "bearer",
        "user": PROFILE,
    })
    result = runner.invoke(main, ["login", "alice@example.com", "--password", "Passw0rd!"])
    assert result.exit_code == 0, result.output
    assert "Logged in as alice" in result.output
    assert json.loads(creds.read_text()) == {
        "accessToken": "access-1",
        "refreshToken": "refresh-1",
    }
    assert stat.S_IMODE(creds.stat().st_mode) == 0o600


def test_login_failure(runner, api, creds):
    api.on("POST", "/api/v1/auth/login", 401, {
        "error": "InvalidCredentials",
        "message": "Invalid email or password",
    })
    result = runner.invoke(main, ["login", "alice@example.com", "--password", "wrong"])
    assert result.exit_code == 1
    assert "InvalidCredentials: Invalid email or password" in result.output
    assert not creds.exists()


def test_whoami_needs_login(runner, api, creds):
    result = runner.invoke(main, ["whoami"])
    assert result.exit_code == 1
    assert "Not logged in" in result.output
    assert api.requests == []


def test_whoami(runner, api, creds):
    _store(creds)
    api.on("GET", "/api/v1/users/me", 200, PROFILE)

    result = runner.invoke(main, ["whoami"])
    assert result.exit_code == 0, result.output
    assert "alice@example.com" in result.output
    assert api.requests[0].headers["Authorization"] == "Bearer access-1"

    result = runner.invoke(main, ["whoami", "--json"])
    assert json.loads(result.output) == PROFILE


def test_refresh_rotates_stored_tokens(runner, api, creds):
    _store(creds)
    api.on("POST", "/api/v1/auth/refresh", 200, {
        "accessToken": "access-2",
        "refreshToken": "refresh-2",
        "expiresIn": 900,
        "tokenType": "bearer",
    })
    result = runner.invoke(main, ["refresh"])
    assert result.exit_code == 0, result.output
    assert api.sent_json() == {"refreshToken": "refresh-1"}
    assert json.loads(creds.read_text())["refreshToken"] == "refresh-2"


def test_refresh_failure_forgets_tokens(runner, api, creds):
    _store(creds)
    api.on("POST", "/api/v1/auth/refresh", 401, {
        "error": "InvalidRefreshToken",
        "message": "Invalid or expired refresh token",
    })
    result = runner.invoke(main, ["refresh"])
    assert result.exit_code == 1
    assert not creds.exists()


def test_logout(runner, api, creds):
    _store(creds)
    api.on("POST", "/api/v1/auth/logout", 200, {"message": "Logged out successfully"})
    result = runner.invoke(main, ["logout"])
    assert result.exit_code == 0, result.output
    assert api.sent_json() == {"refreshToken": "refresh-1"}
    assert not creds.exists()


def test_forgot_password(runner, api, creds):
    message = "If an account with this email exists, a password reset link has been sent."
    api.on("POST", "/api/v1/auth/forgot-password", 200, {"message": message})
    result = runner.invoke(main, ["forgot-password", "alice@example.com"])
    assert result.exit_code == 0
    assert message in result.output


def test_reset_password(runner, api, creds):
    _store(creds)
    api.on("POST", "/api/v1/auth/reset-password", 200, {"message": "Password reset successfully."})
    result = runner.invoke(main, ["reset-password", "tok123", "--new-password", "NewPassw0rd!"])
    assert result.exit_code == 0, result.output
    assert api.sent_json() == {"token": "tok123", "newPassword": "NewPassw0rd!"}
    # Old session is dead server-side; drop it locally too.
    assert not creds.exists()


def test_reset_password_expired(runner, api, creds):
    api.on("POST", "/api/v1/auth/reset-password", 400, {
        "error": "TokenExpired",
        "message": "Reset token has expired",
    })
    result = runner.invoke(main, ["reset-password", "tok123", "--new-password", "NewPassw0rd!"])
    assert result.exit_code == 1
    assert "TokenExpired" in result.output
