#!/usr/bin/env python3
"""
hostprep - Server provisioning filesystem helper

Main entry point for the hostprep CLI application.
"""

import functools

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from core import AuditLogger, CommandLine, Config, CurrentUser, is_root
from core.config import DEFAULT_CONFIG_PATH, parse_mode
from core.current_user import effective_user
from modules.provisioning import Filesystem


console = Console()


def get_audit_logger(config: Config) -> AuditLogger:
    """Get the audit logger configured for this run."""
    return AuditLogger(log_path=config.audit_log)


def get_filesystem(config: Config) -> Filesystem:
    """Get a filesystem gateway wired to the configured collaborators."""
    logger = get_audit_logger(config)
    current_user = CurrentUser(override=config.user)
    command_line = CommandLine(
        current_user,
        sudo=config.sudo,
        timeout=config.command_timeout,
        logger=logger
    )
    return Filesystem(command_line=command_line, current_user=current_user, logger=logger)


def reports_os_errors(command):
    """Print OSError from a command in red and exit with status 1."""
    @functools.wraps(command)
    def wrapper(*args, **kwargs):
        try:
            return command(*args, **kwargs)
        except OSError as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            raise SystemExit(1)
    return wrapper


def _owner(value):
    if value is None:
        return None
    return int(value) if value.isdigit() else value


def _mode(ctx, param, value):
    if value is None:
        return None
    try:
        return parse_mode(value)
    except ValueError as e:
        raise click.BadParameter(str(e))


def _check_owner_flags(owner, as_user):
    if owner is not None and as_user:
        raise click.UsageError("--owner and --as-user are mutually exclusive")


@click.group()
@click.version_option(version="0.1.0", prog_name="hostprep")
@click.option(
    "--config", "config_path",
    default=DEFAULT_CONFIG_PATH,
    envvar="HOSTPREP_CONFIG",
    show_default=True,
    help="Path to the YAML configuration file."
)
@click.pass_context
def hostprep(ctx, config_path):
    """
    hostprep - Server provisioning filesystem helper

    Creates directories, files and symlinks for server environments,
    optionally handing ownership to the non-root user.
    """
    try:
        ctx.obj = Config.load(config_path)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--config")


@hostprep.command()
@click.pass_obj
def status(config):
    """Show who hostprep runs as and where it logs."""
    console.print(Panel.fit(
        "[bold blue]hostprep[/bold blue]\n"
        "[dim]Version 0.1.0[/dim]",
        title="Status"
    ))

    root = "[yellow]yes[/yellow]" if is_root() else "no"
    console.print(f"\nRunning as: {escape(effective_user())} (root: {root})")
    console.print(f"Non-root user: {escape(CurrentUser(override=config.user)())}")
    console.print(f"Config file: {escape(str(config.path))}")
    console.print(f"Audit log: {escape(config.audit_log)}")
    console.print(f"Default mode: {config.default_mode:04o}")


@hostprep.command()
@click.argument("path")
@click.option("--owner", help="User name or uid to own the directory.")
@click.option("--mode", callback=_mode, help="Octal permission bits.")
@click.option("--as-user", is_flag=True, help="Give ownership to the non-root user.")
@click.option("--ensure", is_flag=True, help="Do nothing if the directory exists.")
@click.pass_obj
@reports_os_errors
def mkdir(config, path, owner, mode, as_user, ensure):
    """Create a directory and its parents."""
    _check_owner_flags(owner, as_user)
    fs = get_filesystem(config)
    mode = config.default_mode if mode is None else mode
    owner = fs.current_user() if as_user else _owner(owner)

    if ensure:
        fs.ensure_directory_exists(path, owner, mode)
    else:
        fs.create_directory(path, owner, mode)
    console.print(f"[green]Directory ready:[/green] {escape(path)}")


@hostprep.command()
@click.argument("path")
@click.option("--owner", help="User name or uid to own the file.")
@click.option("--as-user", is_flag=True, help="Give ownership to the non-root user.")
@click.pass_obj
@reports_os_errors
def touch(config, path, owner, as_user):
    """Create a file or update its modification time."""
    _check_owner_flags(owner, as_user)
    fs = get_filesystem(config)
    if as_user:
        fs.touch_as_user(path)
    else:
        fs.touch(path, _owner(owner))
    console.print(f"[green]Touched:[/green] {escape(path)}")


@hostprep.command()
@click.argument("path")
@click.pass_obj
@reports_os_errors
def cat(config, path):
    """Print a file's contents."""
    click.echo(get_filesystem(config).read_file(path), nl=False)


@hostprep.command()
@click.argument("path")
@click.option("--owner", help="User name or uid to own the file.")
@click.option("--as-user", is_flag=True, help="Give ownership to the non-root user.")
@click.option("--append", is_flag=True, help="Append instead of overwriting.")
@click.pass_obj
@reports_os_errors
def write(config, path, owner, as_user, append):
    """Write standard input to a file."""
    _check_owner_flags(owner, as_user)
    fs = get_filesystem(config)
    contents = click.get_text_stream("stdin").read()

    if append:
        if as_user:
            fs.append_file_as_user(path, contents)
        else:
            fs.append_file(path, contents, _owner(owner))
    else:
        if as_user:
            fs.write_file_as_user(path, contents)
        else:
            fs.write_file(path, contents, _owner(owner))
    console.print(f"[green]Wrote {len(contents)} characters to[/green] {escape(path)}")


@hostprep.command()
@click.argument("src")
@click.argument("dst")
@click.option("--as-user", is_flag=True, help="Give the copy to the non-root user.")
@click.pass_obj
@reports_os_errors
def copy(config, src, dst, as_user):
    """Copy a file, overwriting the destination."""
    fs = get_filesystem(config)
    if as_user:
        fs.copy_file_as_user(src, dst)
    else:
        fs.copy_file(src, dst)
    console.print(f"[green]Copied[/green] {escape(src)} -> {escape(dst)}")


@hostprep.command("link")
@click.argument("target")
@click.argument("link")
@click.option("--as-user", is_flag=True, help="Create the link as the non-root user.")
@click.pass_obj
@reports_os_errors
def link_command(config, target, link, as_user):
    """Point LINK at TARGET, replacing any existing link."""
    fs = get_filesystem(config)
    if as_user:
        fs.create_symlink_as_user(target, link)
    else:
        fs.create_symlink(target, link)
    console.print(f"[green]Linked[/green] {escape(link)} -> {escape(target)}")


@hostprep.command()
@click.argument("path")
@click.pass_obj
@reports_os_errors
def rm(config, path):
    """Remove a file or symlink (best-effort)."""
    get_filesystem(config).delete(path)


@hostprep.command()
@click.argument("path")
@click.argument("user")
@click.pass_obj
@reports_os_errors
def chown(config, path, user):
    """Change the owner of PATH."""
    get_filesystem(config).change_owner(path, _owner(user))


@hostprep.command()
@click.argument("path")
@click.argument("group")
@click.pass_obj
@reports_os_errors
def chgrp(config, path, group):
    """Change the group of PATH."""
    get_filesystem(config).change_group(path, _owner(group))


@hostprep.command()
@click.argument("path")
@click.pass_obj
@reports_os_errors
def realpath(config, path):
    """Print the canonical absolute path."""
    click.echo(get_filesystem(config).resolve_real_path(path))


@hostprep.command()
@click.argument("path")
@click.pass_obj
@reports_os_errors
def readlink(config, path):
    """Print the target of a symlink."""
    click.echo(get_filesystem(config).read_symlink_target(path))


@hostprep.command()
@click.option("--limit", default=20, show_default=True, help="Number of entries to show.")
@click.option("--failed", is_flag=True, help="Only show failed actions.")
@click.option("--export", "export_format", type=click.Choice(["json", "csv"]), help="Print the whole log in this format.")
@click.pass_obj
@reports_os_errors
def audit(config, limit, failed, export_format):
    """View the audit log."""
    logger = get_audit_logger(config)

    if export_format:
        click.echo(logger.export(format=export_format))
        return

    entries = logger.get_failed_actions(limit=limit) if failed else logger.get_recent(limit=limit)

    if not entries:
        console.print("[dim]No audit entries found.[/dim]")
        return

    table = Table(title="Recent Audit Log")
    table.add_column("Time", style="dim")
    table.add_column("Action")
    table.add_column("Status")
    table.add_column("Result")

    for entry in entries:
        time_str = entry.timestamp.split("T")[1].split(".")[0] if "T" in entry.timestamp else entry.timestamp

        status_str = entry.status
        if entry.status == "executed":
            status_str = f"[green]{entry.status}[/green]"
        elif entry.status == "failed":
            status_str = f"[red]{entry.status}[/red]"

        description = entry.description[:50] + "..." if len(entry.description) > 50 else entry.description

        table.add_row(
            time_str,
            escape(description),
            status_str,
            escape(entry.result or "")
        )

    console.print(table)


if __name__ == "__main__":
    hostprep()
