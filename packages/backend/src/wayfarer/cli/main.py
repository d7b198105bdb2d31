"""Wayfarer CLI — account and session management against the HTTP API.

Usage:
    wayfarer register alice alice@example.com     # Create an account (prompts for password)
    wayfarer login alice@example.com              # Log in, store tokens locally
    wayfarer whoami                               # Show the logged-in profile
    wayfarer refresh                              # Rotate the stored refresh token
    wayfarer logout                               # Revoke and forget the stored tokens
    wayfarer forgot-password alice@example.com    # Ask for a reset link
    wayfarer reset-password TOKEN                 # Set a new password from a reset link
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from pathlib import Path

import click
import httpx

from wayfarer import __version__

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8000"


def _api_url() -> str:
    return os.environ.get("WAYFARER_API_URL", DEFAULT_API_URL).rstrip("/")


def _credentials_path() -> Path:
    override = os.environ.get("WAYFARER_CREDENTIALS_FILE")
    if override:
        return Path(override)
    return Path.home() / ".config" / "wayfarer" / "credentials.json"


def _client() -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the Wayfarer backend."""
    return httpx.AsyncClient(base_url=_api_url(), timeout=30.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an existing async context like tests) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        # No running loop: normal CLI invocation
        return asyncio.run(coro)
    else:
        # Already inside an event loop (e.g. test runner): run in a thread
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _pretty_json(data: dict | list) -> str:
    return json.dumps(data, indent=2, default=str)


def _load_tokens() -> dict:
    path = _credentials_path()
    if not path.exists():
        click.secho("Not logged in. Run `wayfarer login` first.", fg="red", err=True)
        sys.exit(1)
    return json.loads(path.read_text())


def _save_tokens(access_token: str, refresh_token: str) -> None:
    path = _credentials_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps({"accessToken": access_token, "refreshToken": refresh_token})
    )
    path.chmod(0o600)


def _forget_tokens() -> None:
    _credentials_path().unlink(missing_ok=True)


def _fail(r: httpx.Response) -> None:
    """Print the error envelope and exit non-zero."""
    try:
        body = r.json()
        msg = f"{body.get('error', r.status_code)}: {body.get('message', '')}"
        for field, problems in (body.get("errors") or {}).items():
            msg += f"\n  {field}: {'; '.join(problems)}"
    except ValueError:
        msg = f"HTTP {r.status_code}"
    click.secho(msg, fg="red", err=True)
    sys.exit(1)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="wayfarer")
def main():
    """Wayfarer — manage your account and session from the terminal."""


# ---------------------------------------------------------------------------
# wayfarer register / login
# ---------------------------------------------------------------------------


@main.command()
@click.argument("user_name")
@click.argument("email")
@click.password_option()
def register(user_name: str, email: str, password: str):
    """Create an account. Log in separately afterwards."""
    _run(_register_impl(user_name, email, password))


async def _register_impl(user_name: str, email: str, password: str):
    async with _client() as c:
        r = await c.post("/api/v1/auth/register", json={
            "userName": user_name,
            "email": email,
            "password": password,
        })
        if r.status_code != 201:
            _fail(r)
        user = r.json()
        click.secho(f"Registered {user['email']} ({user['id']})", fg="green")


@main.command()
@click.argument("email")
@click.option("--password", prompt=True, hide_input=True)
def login(email: str, password: str):
    """Log in and store the token pair locally."""
    _run(_login_impl(email, password))


async def _login_impl(email: str, password: str):
    async with _client() as c:
        r = await c.post("/api/v1/auth/login", json={"email": email, "password": password})
        if r.status_code != 200:
            _fail(r)
        body = r.json()
        _save_tokens(body["accessToken"], body["refreshToken"])
        click.secho(
            f"Logged in as {body['user']['userName']} "
            f"(access token valid {body['expiresIn']}s)",
            fg="green",
        )


# ---------------------------------------------------------------------------
# wayfarer refresh / logout / whoami
# ---------------------------------------------------------------------------


@main.command()
def refresh():
    """Rotate the stored refresh token."""
    _run(_refresh_impl())


async def _refresh_impl():
    tokens = _load_tokens()
    async with _client() as c:
        r = await c.post("/api/v1/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
        if r.status_code != 200:
            # Rotated or revoked elsewhere: the stored pair is useless now.
            _forget_tokens()
            _fail(r)
        body = r.json()
        _save_tokens(body["accessToken"], body["refreshToken"])
        click.secho("Tokens refreshed", fg="green")


@main.command()
def logout():
    """Revoke the stored refresh token and forget it."""
    _run(_logout_impl())


async def _logout_impl():
    tokens = _load_tokens()
    async with _client() as c:
        r = await c.post("/api/v1/auth/logout", json={"refreshToken": tokens["refreshToken"]})
        if r.status_code != 200:
            _fail(r)
    _forget_tokens()
    click.secho("Logged out", fg="green")


@main.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Raw JSON output")
def whoami(as_json: bool):
    """Show the profile of the logged-in account."""
    _run(_whoami_impl(as_json))


async def _whoami_impl(as_json: bool):
    tokens = _load_tokens()
    async with _client() as c:
        r = await c.get(
            "/api/v1/users/me",
            headers={"Authorization": f"Bearer {tokens['accessToken']}"},
        )
        if r.status_code != 200:
            _fail(r)
        user = r.json()

    if as_json:
        click.echo(_pretty_json(user))
        return
    click.secho(user["userName"], bold=True)
    click.echo(f"  id:      {user['id']}")
    click.echo(f"  email:   {user['email']}")
    click.echo(f"  roles:   {', '.join(user['roles']) or '—'}")
    click.echo(f"  since:   {user['createdAt']}")


# ---------------------------------------------------------------------------
# wayfarer forgot-password / reset-password
# ---------------------------------------------------------------------------


@main.command("forgot-password")
@click.argument("email")
def forgot_password(email: str):
    """Request a password reset link."""
    _run(_forgot_impl(email))


async def _forgot_impl(email: str):
    async with _client() as c:
        r = await c.post("/api/v1/auth/forgot-password", json={"email": email})
        if r.status_code != 200:
            _fail(r)
        click.echo(r.json()["message"])


@main.command("reset-password")
@click.argument("token")
@click.password_option("--new-password", prompt="New password")
def reset_password(token: str, new_password: str):
    """Set a new password using the token from a reset link."""
    _run(_reset_impl(token, new_password))


async def _reset_impl(token: str, new_password: str):
    async with _client() as c:
        r = await c.post("/api/v1/auth/reset-password", json={
            "token": token,
            "newPassword": new_password,
        })
        if r.status_code != 200:
            _fail(r)
        _forget_tokens()
        click.secho(r.json()["message"], fg="green")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    main()
