"""Subcommand modules for xpapi.

Provides register_commands() which uses deferred imports to keep
``xpapi --help`` fast.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register the command group and standalone commands on the root CLI group."""
    from xpapi.commands.handlers import handlers

    cli.add_command(handlers)

    from xpapi.commands.docs import docs
    from xpapi.commands.run import run
    from xpapi.commands.serve import serve

    cli.add_command(serve)
    cli.add_command(run)
    cli.add_command(docs)
