"""AppContext — shared Click context for all commands.

Created once by the root CLI group and flows to all subcommands via
``@click.pass_obj``.  Provides lazy runtime bootstrap and centralized
result emission (stdout/stderr routing + exit codes).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from xpapi.output.formatters import OutputSettings, format_result

if TYPE_CHECKING:
    from xpapi.config.settings import XpSettings
    from xpapi.runtime import Runtime
    from xpapi.services.result import ServiceResult


class AppContext:
    """Shared context flowing through Click's command hierarchy.

    The runtime is bootstrapped on first use so ``--help`` and
    ``--version`` never import handler or plugin files.
    """

    def __init__(self, settings: XpSettings) -> None:
        self.settings = settings
        self._runtime: Runtime | None = None
        self.bootstrap_result: ServiceResult | None = None

        from xpapi.config.logging import configure_logging

        configure_logging(verbosity=settings.effective_verbosity, log_json=settings.log_json)

        if settings.verbose:
            from xpapi.services.telemetry import enable_telemetry

            enable_telemetry()

    @property
    def runtime(self) -> Runtime:
        """The bootstrapped runtime; a failed bootstrap is emitted and exits 1."""
        if self._runtime is None:
            from xpapi.runtime import Runtime

            runtime = Runtime(self.settings)
            result = runtime.bootstrap()
            self.bootstrap_result = result
            if not result.ok:
                self.emit(result)
            self._runtime = runtime
        return self._runtime

    def emit(self, result: ServiceResult) -> None:
        """Format and output a ServiceResult with correct exit semantics.

        * Success (``result.ok``): writes to stdout, returns normally.
          Warnings go to stderr so they don't pollute piped output.
        * Failure: writes to stderr, exits with code 1.
        """
        settings = OutputSettings(
            json_output=self.settings.json_output,
            quiet=self.settings.quiet,
            verbose=self.settings.verbose,
        )
        output = format_result(result, settings=settings)
        if result.ok:
            click.echo(output)
            if not settings.json_output and not settings.quiet:
                for warning in result.warnings:
                    click.echo(f"WARNING: {warning}", err=True)
        else:
            click.echo(output, err=True)
            raise SystemExit(1)
