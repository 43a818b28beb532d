"""Click building blocks shared by the xpapi commands.

``XpCommand``/``XpGroup`` take an ``examples`` string and expose it as an
eager ``--examples`` flag.  ``HANDLER_NAME`` and ``NAMESPACE`` are parameter
types that accept handler names and namespaces the way users type them
(``admin/echo``, ``/admin/``) and hand the registry's form to the command.
"""

from __future__ import annotations

from typing import Any

import click

from xpapi.services.dispatch import normalize_namespace


class _ExamplesMixin:
    examples: str | None

    def _install_examples(self, examples: str | None) -> None:
        self.examples = examples
        if not examples:
            return
        self.params.append(  # type: ignore[attr-defined]
            click.Option(
                ["--examples"],
                is_flag=True,
                expose_value=False,
                is_eager=True,
                callback=self._show_examples,
                help="Show usage examples and exit.",
            )
        )

    def _show_examples(self, ctx: click.Context, _param: click.Parameter, value: bool) -> None:
        if not value or ctx.resilient_parsing:
            return
        click.echo(f"Examples for '{ctx.command_path}':\n")
        click.echo(self.examples)
        ctx.exit(0)


class XpCommand(_ExamplesMixin, click.Command):
    def __init__(self, *args: Any, examples: str | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._install_examples(examples)


class XpGroup(_ExamplesMixin, click.Group):
    """Group whose subcommands are ``XpCommand`` unless told otherwise."""

    command_class = XpCommand

    def __init__(self, *args: Any, examples: str | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._install_examples(examples)


class NamespaceType(click.ParamType):
    """A multi-path namespace, normalized to ``/a/b`` (or ``""`` for the root)."""

    name = "namespace"

    def convert(self, value: Any, param: click.Parameter | None, ctx: click.Context | None) -> str:
        if not isinstance(value, str):
            self.fail(f"{value!r} is not a namespace", param, ctx)
        return normalize_namespace(value)


class HandlerNameType(click.ParamType):
    """A registered handler name.

    Root handlers are bare (``ping``); namespaced ones are qualified with a
    leading slash, which users often leave off.
    """

    name = "handler"

    def convert(self, value: Any, param: click.Parameter | None, ctx: click.Context | None) -> str:
        if not isinstance(value, str) or not value.strip("/"):
            self.fail(f"{value!r} is not a handler name", param, ctx)
        namespace, _, cmd = value.strip("/").rpartition("/")
        if not namespace:
            return cmd
        return f"{normalize_namespace(namespace)}/{cmd}"


NAMESPACE = NamespaceType()
HANDLER_NAME = HandlerNameType()
