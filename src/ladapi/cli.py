"""ladapi CLI — serve an API, hash basic-auth passwords.

Usage:
    ladapi serve --routes myapp.routes:router --port 8080
    ladapi serve --routes myapp.routes:router --protocol https \
        --ssl-key key.pem --ssl-cert cert.pem
    ladapi hash-password "s3cret"
"""

from __future__ import annotations

import asyncio
import importlib
import sys
from typing import Optional

import click

from ladapi import API, __version__
from ladapi.auth.password import hash_password
from ladapi.config import Settings
from ladapi.logging import configure_logging


def load_object(path: str):
    """Import ``package.module:attribute``."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise click.BadParameter(f"expected 'module:attribute', got {path!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise click.BadParameter(f"cannot import {module_name!r}: {e}") from e
    try:
        return getattr(module, attr)
    except AttributeError as e:
        raise click.BadParameter(f"{module_name!r} has no attribute {attr!r}") from e


async def _serve(api, port: Optional[int]) -> None:
    await api.listen(port)
    try:
        await asyncio.Event().wait()
    finally:
        await api.close()


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(__version__, prog_name="ladapi")
def main():
    """Composable API server."""


@main.command()
@click.option("--routes", "routes_path", default=None, help="module:attribute of an APIRouter or ASGI app")
@click.option("--host", default=None, help="Bind host (default: API_HOST)")
@click.option("--port", type=int, default=None, help="Bind port (default: API_PORT)")
@click.option("--protocol", type=click.Choice(["http", "https"]), default=None)
@click.option("--ssl-key", default=None, type=click.Path(exists=True, dir_okay=False))
@click.option("--ssl-cert", default=None, type=click.Path(exists=True, dir_okay=False))
@click.option("--no-rate-limit", is_flag=True, help="Disable the redis rate limiter")
def serve(routes_path, host, port, protocol, ssl_key, ssl_cert, no_rate_limit):
    """Build an API and serve it until interrupted."""
    options: dict = {}
    if routes_path:
        options["routes"] = load_object(routes_path)
    if host:
        options["host"] = host
    if protocol:
        options["protocol"] = protocol
    if ssl_key or ssl_cert:
        options["ssl"] = {"key": ssl_key, "cert": ssl_cert}
    if no_rate_limit:
        options["rate_limit"] = None

    settings = Settings()
    configure_logging(settings.log_level, json_format=settings.log_json)

    try:
        api = API(options)
    except ValueError as e:
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(1)

    try:
        asyncio.run(_serve(api, port if port is not None else settings.port))
    except KeyboardInterrupt:
        click.echo("stopped")
    except OSError as e:
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(1)


@main.command("hash-password")
@click.argument("password")
@click.option("--rounds", type=int, default=12, show_default=True)
def hash_password_cmd(password, rounds):
    """Print a bcrypt hash usable as the basic-auth password."""
    click.echo(hash_password(password, rounds=rounds))


if __name__ == "__main__":
    main()
