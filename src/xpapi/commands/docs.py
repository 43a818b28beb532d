"""Command: render the HTML handler documentation."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import click

from xpapi.commands._base import XpCommand

if TYPE_CHECKING:
    from xpapi.commands._context import AppContext


@click.command(
    cls=XpCommand,
    examples="""\
  xpapi docs > api.html
  xpapi docs --output site/api.html""",
)
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the page to a file instead of stdout.",
)
@click.pass_obj
def docs(app: AppContext, output: Path | None) -> None:
    """Render the handler documentation page."""
    from xpapi.services.docs import DocsService
    from xpapi.services.result import ServiceResult

    result = DocsService(app.runtime).render()
    if output is None:
        click.echo(result.data["html"], nl=False)
        return

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(result.data["html"], encoding="utf-8")
    app.emit(
        ServiceResult(
            ok=True,
            op="docs",
            data={"path": str(output), "count": result.data["count"]},
            meta=result.meta,
        )
    )
