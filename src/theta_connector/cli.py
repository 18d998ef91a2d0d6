"""CLI entry point for the theta connector."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Awaitable, Callable

import click

from .core.config import NETWORK_PROFILES, Settings
from .core.enums import NetworkName
from .core.errors import ConnectorError

if TYPE_CHECKING:
    from .connector import ThetaConnector


def _settings(ctx: click.Context) -> Settings:
    from .main import build_settings

    overrides: dict[str, Any] = {}
    if ctx.obj["network"]:
        overrides["network"] = ctx.obj["network"]
    return build_settings(config_path=ctx.obj["config"], overrides=overrides)


def _run(
    ctx: click.Context, operation: Callable[[ThetaConnector], Awaitable[Any]]
) -> Any:
    from .main import run

    try:
        return asyncio.run(run(_settings(ctx), operation))
    except ConnectorError as exc:
        raise click.ClickException(str(exc)) from exc


@click.group()
@click.option("--config", default=None, help="Config file path (TOML)")
@click.option(
    "--network",
    type=click.Choice([n.value for n in NetworkName]),
    default=None,
    help="Network profile override",
)
@click.pass_context
def main(ctx: click.Context, config: str | None, network: str | None) -> None:
    """Theta queueing-contract connector."""
    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["network"] = network


@main.command()
def networks() -> None:
    """List the network profiles."""
    for name, profile in NETWORK_PROFILES.items():
        chain_id = profile.chain_id if profile.chain_id is not None else "-"
        address = profile.contract_address or "(unset)"
        click.echo(f"{name.value:<18} chain={chain_id:<5} {profile.url}  {address}")


@main.command("encode-key")
@click.argument("word")
def encode_key_cmd(word: str) -> None:
    """Print the keccak256 hash the contract stores for WORD."""
    from .chain.encoding import encode_key

    click.echo(encode_key(word))


@main.command()
@click.argument("session_id")
@click.argument("secret_word")
@click.pass_context
def allocate(ctx: click.Context, session_id: str, secret_word: str) -> None:
    """Allocate a user for SESSION_ID."""
    allocation = _run(ctx, lambda c: c.allocate_user(session_id, secret_word))
    click.echo(f"user_id={allocation.user_id} encoded_key={allocation.encoded_key}")


@main.command("add-to-line")
@click.argument("user_id", type=int)
@click.pass_context
def add_to_line(ctx: click.Context, user_id: int) -> None:
    """Put USER_ID in line and print the assigned turn."""
    turn = _run(ctx, lambda c: c.add_to_line(user_id))
    click.echo(f"turn={turn}")


@main.command()
@click.pass_context
def peek(ctx: click.Context) -> None:
    """Remove the first user in line."""
    removed = _run(ctx, lambda c: c.peek())
    click.echo(f"removed={removed}")


@main.command("reward-token")
@click.argument("user_id", type=int)
@click.argument("nft_url")
@click.pass_context
def reward_token(ctx: click.Context, user_id: int, nft_url: str) -> None:
    """Mint a game token for USER_ID."""
    token_id = _run(ctx, lambda c: c.reward_game_token(user_id, nft_url))
    click.echo(f"token_id={token_id}")


@main.command("reward-points")
@click.argument("user_id", type=int)
@click.argument("points", type=int)
@click.pass_context
def reward_points(ctx: click.Context, user_id: int, points: int) -> None:
    """Add POINTS to USER_ID."""
    total = _run(ctx, lambda c: c.reward_points(user_id, points))
    click.echo(f"points={total}")


@main.command("sync-user")
@click.argument("user_id", type=int)
@click.pass_context
def sync_user(ctx: click.Context, user_id: int) -> None:
    """Print USER_ID's turn if it is still ahead of the line."""
    from .core.models import LineMember

    member = LineMember(user_id=user_id)
    updated = _run(ctx, lambda c: c.sync_user(member))
    if updated:
        click.echo(f"turn={member.turn}")
    else:
        click.echo("up to date")
