"""Stablehand CLI — dev tokens, live event tail, broker stats.

Usage:
    stablehand token 42                          # Mint a dev access token for user 42
    stablehand token 1 --admin                   # ...with the admin role
    stablehand tail                              # Print live events for $STABLEHAND_TOKEN
    stablehand tail -c horses --replay 10        # Extra channel + backfill
    stablehand stats                             # Admin connection/limiter stats
    stablehand serve                             # Run the API under uvicorn
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from typing import Optional

import click
import httpx

from stablehand import __version__
from stablehand.realtime.sse import parse_stream

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8000"


def _api_url() -> str:
    return os.environ.get("STABLEHAND_API_URL", DEFAULT_API_URL).rstrip("/")


def _client(token: str, timeout: Optional[float] = 30.0) -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the Stablehand backend."""
    return httpx.AsyncClient(
        base_url=_api_url(),
        headers={"Authorization": f"Bearer {token}"},
        timeout=timeout,
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    Offloads to a thread when a loop is already running (CliRunner in
    async tests).
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _token_from_ctx(token: Optional[str]) -> str:
    """Resolve the token from flag or STABLEHAND_TOKEN env var."""
    tok = token or os.environ.get("STABLEHAND_TOKEN")
    if not tok:
        click.secho(
            "Error: --token required (or set STABLEHAND_TOKEN env var)",
            fg="red",
            err=True,
        )
        sys.exit(1)
    return tok


def _pretty_json(data: dict | list) -> str:
    return json.dumps(data, indent=2, default=str)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="stablehand")
def main():
    """Stablehand — realtime event stream tooling."""


# ---------------------------------------------------------------------------
# stablehand token
# ---------------------------------------------------------------------------


@main.command()
@click.argument("user_id", type=int)
@click.option("--admin", is_flag=True, help="Issue the token with the admin role")
@click.option("--minutes", "-m", type=int, default=None, help="Lifetime in minutes")
def token(user_id: int, admin: bool, minutes: Optional[int]):
    """Mint a development access token (uses STABLEHAND_JWT_SECRET)."""
    from stablehand.auth.jwt import create_access_token

    click.echo(
        create_access_token(
            user_id, role="admin" if admin else "user", expires_minutes=minutes
        )
    )


# ---------------------------------------------------------------------------
# stablehand tail
# ---------------------------------------------------------------------------


@main.command()
@click.option("--token", "-t", help="Access token (or set STABLEHAND_TOKEN)")
@click.option("--channel", "-c", "channels", multiple=True, help="Extra channel (repeatable)")
@click.option("--replay", "-r", default=0, help="Backfill N recent events per channel")
def tail(token: Optional[str], channels: tuple[str, ...], replay: int):
    """Stream live events until interrupted."""
    try:
        _run(_tail_impl(_token_from_ctx(token), list(channels), replay))
    except KeyboardInterrupt:
        pass


async def _tail_impl(token: str, channels: list[str], replay: int):
    params: dict = {}
    if channels:
        params["channels"] = ",".join(channels)
    if replay:
        params["replay"] = replay

    async with _client(token, timeout=None) as c:
        async with c.stream("GET", "/api/realtime/events", params=params) as r:
            if r.status_code != 200:
                await r.aread()
                click.secho(f"Error {r.status_code}: {r.text}", fg="red", err=True)
                sys.exit(1)
            click.secho(f"Connected to {_api_url()}", bold=True)
            lines = []
            async for line in r.aiter_lines():
                lines.append(line)
                if line:
                    continue
                for event, data in parse_stream(lines):
                    name = click.style(event or "message", fg="cyan")
                    click.echo(f"{name}  {json.dumps(data, default=str)}")
                lines = []


# ---------------------------------------------------------------------------
# stablehand stats
# ---------------------------------------------------------------------------


@main.command()
@click.option("--token", "-t", help="Admin access token (or set STABLEHAND_TOKEN)")
def stats(token: Optional[str]):
    """Show connected clients, channels and limiter keys."""
    _run(_stats_impl(_token_from_ctx(token)))


async def _stats_impl(token: str):
    async with _client(token) as c:
        r = await c.get("/api/realtime/stats")
        if r.status_code != 200:
            click.secho(f"Error {r.status_code}: {r.text}", fg="red", err=True)
            sys.exit(1)
        click.echo(_pretty_json(r.json()))


# ---------------------------------------------------------------------------
# stablehand serve
# ---------------------------------------------------------------------------


@main.command()
@click.option("--host", default=None, help="Bind address (default from settings)")
@click.option("--port", "-p", type=int, default=None, help="Port (default from settings)")
def serve(host: Optional[str], port: Optional[int]):
    """Run the API with uvicorn (single worker: state is in-process)."""
    import uvicorn

    from stablehand.config import settings

    uvicorn.run(
        "stablehand.main:app",
        host=host or settings.host,
        port=port or settings.port,
        workers=1,
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    main()
