#!/usr/bin/env python3
"""
Star Ledger CLI

Operator commands work on a local ledger database:
    starledger serve | validate | show <height>

Key and client commands:
    starledger keygen | sign
    starledger node request-validation | validate-signature | register | lookup
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Optional

import click
import requests
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from starledger.core.blockchain import Blockchain
from starledger.core.config import (
    API_HOST,
    API_PORT,
    DATABASE_PATH,
    ENVIRONMENT,
    LOG_FILE,
    LOG_LEVEL,
)
from starledger.core.crypto_utils import derive_identity, generate_keypair_hex, sign_message_hex
from starledger.core.exceptions import LedgerError
from starledger.core.logging_config import setup_logging
from starledger.core.storage import open_sqlite_stores

logger = logging.getLogger(__name__)
console = Console()


def _cli_fail(exc: Exception, exit_code: int = 1) -> None:
    """Centralized CLI error handler for consistent messaging/exit codes."""
    logger.error("CLI error: %s", exc, exc_info=True)
    console.print(f"[bold red]Error:[/] {exc}")
    sys.exit(exit_code)


def _open_chain(db_path: str) -> Blockchain:
    ledger_store, _ = open_sqlite_stores(db_path)
    return Blockchain(ledger_store)


class LedgerClient:
    """HTTP client for a running ledger node."""

    def __init__(self, node_url: str, timeout: float = 30.0):
        self.node_url = node_url.rstrip("/")
        self.timeout = timeout

    def _request(self, method: str, endpoint: str, **kwargs) -> tuple[int, Any]:
        url = f"{self.node_url}/{endpoint.lstrip('/')}"
        logger.debug("Node request: %s %s", method, url)
        try:
            response = requests.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            logger.error("Node API error: %s", e)
            raise click.ClickException(f"Node API error: {e}")
        try:
            payload = response.json()
        except ValueError:
            payload = {"message": response.text}
        return response.status_code, payload

    def request_validation(self, identity: str) -> tuple[int, Any]:
        return self._request("POST", "/requestValidation", json={"identity": identity})

    def validate_signature(self, identity: str, signature: str) -> tuple[int, Any]:
        return self._request(
            "POST",
            "/message-signature/validate",
            json={"identity": identity, "signature": signature},
        )

    def register(self, identity: str, star: dict[str, Any]) -> tuple[int, Any]:
        return self._request("POST", "/block", json={"identity": identity, "item": star})

    def block_by_height(self, height: int) -> tuple[int, Any]:
        return self._request("GET", f"/block/{height}")

    def block_by_hash(self, block_hash: str) -> tuple[int, Any]:
        return self._request("GET", f"/stars/hash:{block_hash}")

    def blocks_by_identity(self, identity: str) -> tuple[int, Any]:
        return self._request("GET", f"/stars/address:{identity}")


def _print_response(status: int, payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, ensure_ascii=False))
    if status >= 400:
        sys.exit(1)


@click.group()
@click.option("--log-level", default=LOG_LEVEL, show_default=True, help="Logging level")
@click.option("--log-file", default=LOG_FILE, help="Optional JSON log file")
@click.pass_context
def cli(ctx: click.Context, log_level: str, log_file: Optional[str]):
    """Star Ledger command line interface."""
    setup_logging(name="starledger", log_file=log_file, level=log_level, environment=ENVIRONMENT)
    ctx.ensure_object(dict)


@cli.command()
@click.option("--db", "db_path", default=DATABASE_PATH, show_default=True, help="Ledger database file")
@click.option("--host", default=API_HOST, show_default=True)
@click.option("--port", default=API_PORT, show_default=True, type=int)
def serve(db_path: str, host: str, port: int):
    """Run the HTTP API."""
    from starledger.api.server import create_app

    try:
        app = create_app(db_path=db_path)
    except LedgerError as exc:
        _cli_fail(exc)
    logger.info("API listening on %s:%d", host, port, extra={"event": "api.started"})
    app.run(host=host, port=port)


@cli.command()
@click.option("--db", "db_path", default=DATABASE_PATH, show_default=True, help="Ledger database file")
@click.option("--json", "json_output", is_flag=True, help="Print the raw report")
def validate(db_path: str, json_output: bool):
    """Audit every block; exits 1 when violations are found."""
    try:
        report = _open_chain(db_path).validate_chain()
    except LedgerError as exc:
        _cli_fail(exc)

    if json_output:
        click.echo(json.dumps(report.to_dict(), indent=2))
    elif report.valid:
        console.print(
            Panel(
                f"{report.blocks_checked} blocks checked, tip height {report.tip_height}",
                title="[bold green]Chain valid",
                border_style="green",
            )
        )
    else:
        table = Table(title="Integrity violations", box=box.ROUNDED)
        table.add_column("Height", justify="right", style="cyan")
        table.add_column("Type", style="red")
        table.add_column("Description")
        for violation in report.violations:
            table.add_row(str(violation.height), violation.kind, violation.description)
        console.print(table)

    if not report.valid:
        sys.exit(1)


@cli.command()
@click.argument("height", type=int)
@click.option("--db", "db_path", default=DATABASE_PATH, show_default=True, help="Ledger database file")
def show(height: int, db_path: str):
    """Print the block at HEIGHT."""
    try:
        block = _open_chain(db_path).get_block(height)
    except LedgerError as exc:
        _cli_fail(exc)
    if block is None:
        _cli_fail(click.ClickException(f"Block {height} not found"))
    click.echo(json.dumps(block.to_dict(), indent=2, ensure_ascii=False))


@cli.command()
def keygen():
    """Generate a secp256k1 key; the public key is the ledger identity."""
    private_hex, identity = generate_keypair_hex()
    click.echo(json.dumps({"private_key": private_hex, "identity": identity}, indent=2))


@cli.command()
@click.option("--private-key", required=True, envvar="STARLEDGER_PRIVATE_KEY", help="Private key hex")
@click.option("--message", required=True, help="Challenge returned by requestValidation")
def sign(private_key: str, message: str):
    """Sign a challenge."""
    try:
        click.echo(
            json.dumps(
                {
                    "identity": derive_identity(private_key),
                    "signature": sign_message_hex(private_key, message),
                },
                indent=2,
            )
        )
    except ValueError as exc:
        _cli_fail(exc)


@cli.group()
@click.option(
    "--node-url",
    default=f"http://{API_HOST}:{API_PORT}",
    show_default=True,
    envvar="STARLEDGER_NODE_URL",
)
@click.option("--timeout", default=30.0, show_default=True, type=float)
@click.pass_context
def node(ctx: click.Context, node_url: str, timeout: float):
    """Talk to a running ledger node."""
    ctx.obj["client"] = LedgerClient(node_url, timeout=timeout)


@node.command("request-validation")
@click.argument("identity")
@click.pass_context
def request_validation(ctx: click.Context, identity: str):
    """Request (or refresh) a challenge for IDENTITY."""
    _print_response(*ctx.obj["client"].request_validation(identity))


@node.command("validate-signature")
@click.argument("identity")
@click.argument("signature")
@click.pass_context
def validate_signature(ctx: click.Context, identity: str, signature: str):
    """Submit SIGNATURE over the challenge issued to IDENTITY."""
    _print_response(*ctx.obj["client"].validate_signature(identity, signature))


@node.command("register")
@click.argument("identity")
@click.option("--ra", required=True, help="Right ascension")
@click.option("--dec", required=True, help="Declination")
@click.option("--story", required=True, help="ASCII story, at most 500 bytes")
@click.option("--magnitude", default=None)
@click.option("--constellation", default=None)
@click.pass_context
def register(
    ctx: click.Context,
    identity: str,
    ra: str,
    dec: str,
    story: str,
    magnitude: Optional[str],
    constellation: Optional[str],
):
    """Register a star for an authorized IDENTITY."""
    star = {"field_a": ra, "field_b": dec, "text": story}
    if magnitude:
        star["magnitude"] = magnitude
    if constellation:
        star["constellation"] = constellation
    _print_response(*ctx.obj["client"].register(identity, star))


@node.command("lookup")
@click.option("--height", type=int, default=None)
@click.option("--hash", "block_hash", default=None)
@click.option("--identity", default=None)
@click.pass_context
def lookup(
    ctx: click.Context,
    height: Optional[int],
    block_hash: Optional[str],
    identity: Optional[str],
):
    """Look up blocks by exactly one of --height, --hash or --identity."""
    chosen = [value is not None for value in (height, block_hash, identity)]
    if sum(chosen) != 1:
        raise click.UsageError("Pass exactly one of --height, --hash or --identity")
    client: LedgerClient = ctx.obj["client"]
    if height is not None:
        _print_response(*client.block_by_height(height))
    elif block_hash is not None:
        _print_response(*client.block_by_hash(block_hash))
    else:
        _print_response(*client.blocks_by_identity(identity))


def main() -> int:
    cli(obj={})
    return 0


if __name__ == "__main__":
    sys.exit(main() or 0)
