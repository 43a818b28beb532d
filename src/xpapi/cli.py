"""Root CLI group for xpapi with global flags and command registration."""

from __future__ import annotations

import click

from xpapi import __version__
from xpapi.commands import register_commands
from xpapi.commands._context import AppContext
from xpapi.config.settings import XpSettings


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="xpapi")
@click.option("--json", "json_output", is_flag=True, help="Structured JSON output.")
@click.option("-q", "--quiet", is_flag=True, help="Minimal output; fatal log messages only.")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging and timing spans.")
@click.option("--log-json", is_flag=True, help="Structured JSON log output to stderr.")
@click.option("-c", "--config", "config_path", default=None, help="Override config file path.")
@click.pass_context
def cli(
    ctx: click.Context,
    json_output: bool,
    quiet: bool,
    verbose: bool,
    log_json: bool,
    config_path: str | None,
) -> None:
    """xpapi — batch command API server."""
    ctx.ensure_object(dict)
    flags = {"json_output": json_output, "quiet": quiet, "verbose": verbose}
    if log_json:
        # Only an explicit flag overrides log_json from the config file.
        flags["log_json"] = True
    settings = XpSettings.from_cli(config_path=config_path, **flags)
    ctx.obj = AppContext(settings)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


register_commands(cli)
