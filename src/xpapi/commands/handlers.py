"""Command group: inspect and check registered handlers."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from xpapi.commands._base import HANDLER_NAME, XpGroup

if TYPE_CHECKING:
    from xpapi.commands._context import AppContext


@click.group(
    cls=XpGroup,
    examples="""\
  xpapi handlers list
  xpapi --json handlers list
  xpapi handlers show sumOfNumbers
  xpapi handlers show admin/users/create
  xpapi handlers check""",
)
def handlers() -> None:
    """Inspect the handler registry."""


@handlers.command(
    "list",
    examples="""\
  xpapi handlers list
  xpapi -v handlers list   # include source files""",
)
@click.pass_obj
def list_cmd(app: AppContext) -> None:
    """List every registered handler."""
    from xpapi.services.handlers import HandlerService

    app.emit(HandlerService(app.runtime).list_handlers())


@handlers.command(
    examples="""\
  xpapi handlers show sumOfNumbers
  xpapi --json handlers show multiArgTest""",
)
@click.argument("name", type=HANDLER_NAME)
@click.pass_obj
def show(app: AppContext, name: str) -> None:
    """Show one handler's arguments and rules."""
    from xpapi.services.handlers import HandlerService

    app.emit(HandlerService(app.runtime).show_handler(name))


@handlers.command(
    examples="""\
  xpapi handlers check
  xpapi --json handlers check""",
)
@click.pass_obj
def check(app: AppContext) -> None:
    """Load handlers and plugins and report problems."""
    from xpapi.services.handlers import HandlerService

    app.emit(HandlerService(app.runtime).check())
