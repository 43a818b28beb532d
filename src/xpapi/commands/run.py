"""Command: dispatch a batch file locally, without a server."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, TextIO

import click

from xpapi.commands._base import NAMESPACE, XpCommand

if TYPE_CHECKING:
    from xpapi.commands._context import AppContext


@click.command(
    cls=XpCommand,
    examples="""\
  xpapi run batch.json
  xpapi run --namespace admin batch.json
  echo '{"cmds": [{"cmd": "ping"}]}' | xpapi --json run -""",
)
@click.argument("batch_file", type=click.File("r", encoding="utf-8"))
@click.option(
    "--namespace",
    type=NAMESPACE,
    default="",
    help="Sub-path namespace (multi-path routing).",
)
@click.pass_obj
def run(app: AppContext, batch_file: TextIO, namespace: str) -> None:
    """Run the batch in BATCH_FILE ('-' for stdin) and print the response."""
    from xpapi.services.result import ServiceError, ServiceResult
    from xpapi.services.runner import BatchRunner

    try:
        params = json.load(batch_file)
    except json.JSONDecodeError as exc:
        app.emit(
            ServiceResult(
                ok=False,
                op="run_batch",
                error=ServiceError(code="INVALID_JSON", message=f"{batch_file.name}: {exc}"),
            )
        )
        return

    app.emit(BatchRunner(app.runtime).run(params, namespace=namespace))
