"""Operator commands, available as ``flask moderation <command>`` or ``python manage.py``."""

from datetime import timedelta

import click
from flask import current_app
from flask.cli import AppGroup

from siteapi.moderation.models import AllowEntry, BlockEntry, utcnow

moderation_cli = AppGroup("moderation", help="Inspect and edit the moderation ledger.")


def _ledger():
    return current_app.extensions["siteapi"].ledger


def _read_ips(ip, file):
    ips = [ip] if ip else []
    if file:
        for line in file:
            line = line.strip()
            if line and not line.startswith("#"):
                ips.append(line)
    if not ips:
        raise click.UsageError("Provide an IP or --file")
    return ips


@moderation_cli.command("block-ip")
@click.argument("ip", required=False)
@click.option("--reason", default="Blocked by administrator", show_default=True)
@click.option("--days", type=int, default=None, help="Expire the block after this many days.")
@click.option("--file", type=click.File("r"), help="File with one IP per line.")
def block_ip(ip, reason, days, file):
    """Block one IP or every IP listed in a file."""
    ledger = _ledger()
    now = utcnow()
    expires_at = now + timedelta(days=days) if days else None

    for address in _read_ips(ip, file):
        ledger.upsert_block(BlockEntry(
            ip=address, reason=reason, blocked_at=now, expires_at=expires_at, auto_blocked=False
        ))
        click.echo(f"Blocked {address}")


@moderation_cli.command("unblock-ip")
@click.argument("ip")
def unblock_ip(ip):
    """Remove the block list entry for an IP."""
    if _ledger().remove_block(ip=ip):
        click.echo(f"Unblocked {ip}")
    else:
        raise click.ClickException(f"IP not found in block list: {ip}")


@moderation_cli.command("allow-ip")
@click.argument("ip")
@click.option("--note", default="", help="Why this address is trusted.")
def allow_ip(ip, note):
    """Add an IP to the allowlist."""
    _, created = _ledger().upsert_allow(AllowEntry(ip=ip, note=note))
    click.echo(f"{'Allowlisted' if created else 'Updated allowlist entry for'} {ip}")


@moderation_cli.command("list-blocks")
def list_blocks():
    """Print the block list, newest first."""
    blocks = _ledger().list_blocks()
    if not blocks:
        click.echo("No blocked IP addresses found.")
        return

    click.echo(f"Total blocked IPs: {len(blocks)}")
    click.echo(f"{'IP Address':<40} {'Blocked At':<17} {'Active':<7} Reason")
    click.echo("-" * 80)
    for block in blocks:
        reason = block.reason if len(block.reason) <= 30 else block.reason[:30] + "..."
        click.echo(
            f"{block.ip:<40} {block.blocked_at.strftime('%Y-%m-%d %H:%M'):<17} "
            f"{'yes' if block.is_active() else 'no':<7} {reason}"
        )


@moderation_cli.command("check-config")
def check_config():
    """Show which collaborators are configured."""
    container = current_app.extensions["siteapi"]
    rows = [
        ("Environment", current_app.config.get("ENVIRONMENT")),
        ("Window store", type(container.window_store).__name__),
        ("Reputation", "enabled" if container.reputation else "disabled"),
        ("Chat webhook", "configured" if container.notifier.configured else "not configured"),
        ("Email", "configured" if container.mailer.configured else "not configured"),
        ("Stripe", "configured" if container.gateway.configured else "not configured"),
    ]
    for name, value in rows:
        click.echo(f"{name + ':':<16}{value}")


def init_cli(app):
    app.cli.add_command(moderation_cli)
