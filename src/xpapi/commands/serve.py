"""serve — bootstrap the runtime and run the HTTP API with uvicorn."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from xpapi.commands._base import XpCommand

if TYPE_CHECKING:
    from xpapi.commands._context import AppContext


@click.command(
    cls=XpCommand,
    examples="""\
  # Serve with the settings from xpapi.toml
  xpapi serve

  # Listen on all interfaces, custom port
  xpapi serve --host 0.0.0.0 --port 9000

  # Disable hot reload of handler files
  xpapi serve --no-reload""",
)
@click.option("--host", default=None, help="Bind address (default: [api] host).")
@click.option("--port", default=None, type=int, help="Listen port (default: [api] port).")
@click.option("--no-reload", is_flag=True, help="Do not watch handler files for changes.")
@click.pass_obj
def serve(app: AppContext, host: str | None, port: int | None, no_reload: bool) -> None:
    """Start the batch API server."""
    import uvicorn

    from xpapi import __version__
    from xpapi.output.renderers import render_banner
    from xpapi.server.app import create_app

    settings = app.settings
    runtime = app.runtime
    host = host or settings.api.host
    port = port if port is not None else settings.api.port

    if settings.effective_verbosity > 0 and not settings.json_output:
        url = f"http://{host}:{port}/{settings.api.path.strip('/')}"
        click.echo(render_banner(settings.api.name, __version__, url), err=True)
        for warning in app.bootstrap_result.warnings if app.bootstrap_result else []:
            click.echo(f"WARNING: {warning}", err=True)

    asgi_app = create_app(runtime, watch=not no_reload)
    # log_config=None keeps uvicorn on the handler configure_logging installed.
    uvicorn.run(asgi_app, host=host, port=port, log_config=None)
