"""Operation-specific Rich renderers for ServiceResult.

Each renderer writes to a Rich Console (backed by StringIO).  The caller
extracts the rendered text via ``get_output(console)``.

Renderers are dispatched by ``result.op`` in :func:`render_result`.
Unknown ops fall through to a generic key-value renderer.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from xpapi.output.console import create_console, get_output

if TYPE_CHECKING:
    from rich.console import Console

    from xpapi.services.result import ServiceResult


# ── Public API ────────────────────────────────────────────────────────


def render_result(result: ServiceResult, *, verbose: bool = False) -> str:
    """Render a ServiceResult to a styled string via Rich.

    Returns plain text (no ANSI) when Rich detects no terminal,
    which is the case inside Click's CliRunner and piped output.
    """
    console = create_console()

    if result.ok:
        renderer = _OP_RENDERERS.get(result.op, _render_generic)
        renderer(result, console, verbose=verbose)
    else:
        _render_error(result, console, verbose=verbose)

    return get_output(console).rstrip("\n")


def render_quiet(result: ServiceResult) -> str:
    """Render minimal output for ``--quiet`` mode."""
    if not result.ok:
        msg = result.error.message if result.error else "Unknown error"
        return f"ERROR: {result.op}: {msg}"

    items = result.data.get("items")
    if items and isinstance(items, list):
        return "\n".join(str(item.get("name", "")) for item in items if isinstance(item, dict))

    return f"OK: {result.op}"


def render_banner(name: str, version: str, url: str) -> str:
    """Startup banner printed by ``xpapi serve``."""
    console = create_console(width=80)
    title = Text.assemble(("xpapi ", "xp.op"), (f"v{version}", "xp.key"))
    body = Text.assemble((name, "bold"), "\n", ("listening on ", "xp.key"), (url, "xp.path"))
    console.print(Panel(body, title=title, expand=False))
    return get_output(console).rstrip("\n")


# ── Helpers ───────────────────────────────────────────────────────────


def _status_line(console: Console, result: ServiceResult) -> None:
    """Print the OK status line."""
    label = Text("OK", style="xp.ok")
    op = Text(f"  {result.op}", style="xp.op")
    console.print(label, op, end="")
    console.print()


def _field(console: Console, key: str, value: Any) -> None:
    """Print a single indented key-value field."""
    k = Text(f"  {key}: ", style="xp.key")
    if key == "name":
        v = Text(str(value), style="xp.name")
    elif key in ("path", "source"):
        v = Text(str(value), style="xp.path")
    else:
        v = Text(str(value))
    console.print(k, v, sep="", end="")
    console.print()


def _format_rules(rules: list[list[Any]]) -> str:
    return " → ".join(
        step[0] if len(step) == 1 else f"{step[0]}({', '.join(map(str, step[1:]))})"
        for step in rules
    )


def _render_meta(console: Console, result: ServiceResult) -> None:
    """Print meta block including telemetry span tree (verbose only)."""
    if not result.meta:
        return

    console.print()
    console.print(Text("  meta:", style="dim"))

    for k, v in result.meta.items():
        if k == "telemetry":
            _render_telemetry_tree(console, v, indent=4)
        else:
            console.print(f"    {k}: {v}")


def _render_telemetry_tree(
    console: Console,
    span_data: dict[str, Any],
    indent: int = 4,
) -> None:
    """Render a hierarchical span tree with color-coded timing."""
    prefix = " " * indent
    name = span_data.get("name", "?")
    duration = span_data.get("duration_ms", 0.0)

    if duration > 1000:
        style = "bold red"
    elif duration > 100:
        style = "yellow"
    else:
        style = "dim"

    line = f"{prefix}[{style}]{duration:>8.2f}ms[/{style}]  {name}"
    annotations = span_data.get("annotations") or {}
    if annotations:
        line += f"  ({', '.join(f'{k}={v}' for k, v in annotations.items())})"

    console.print(line)

    for child in span_data.get("children", []):
        _render_telemetry_tree(console, child, indent=indent + 4)


# ── Error renderer ────────────────────────────────────────────────────


def _render_error(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    err = result.error
    msg = err.message if err else "Unknown error"
    label = Text("ERROR", style="xp.error")
    op = Text(f"  {result.op}", style="xp.op")
    console.print(label, op, Text(": "), Text(msg), sep="")

    if err is None:
        return
    # Shape violations are the point of the message, so they always print.
    for line in err.detail.get("errors", []):
        console.print(Text("  - ", style="xp.error"), Text(str(line)), sep="")
    if verbose:
        extra = {k: v for k, v in err.detail.items() if k != "errors"}
        if extra:
            console.print(Text("  detail:", style="dim"))
            for k, v in extra.items():
                console.print(f"    {k}: {v}")
        _render_meta(console, result)


# ── Runtime renderers ─────────────────────────────────────────────────


def _render_bootstrap(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    d = result.data
    _field(console, "name", d.get("name", ""))
    _field(console, "version", d.get("version", ""))
    _field(console, "handlers", len(d.get("handlers", [])))
    _field(console, "plugins", ", ".join(d.get("plugins", [])) or "none")
    if d.get("rules"):
        _field(console, "rules", ", ".join(d["rules"]))
    if verbose:
        _render_meta(console, result)


# ── Handler renderers ─────────────────────────────────────────────────


def _render_handler_table(
    result: ServiceResult, console: Console, *, verbose: bool = False
) -> None:
    items = result.data.get("items", [])
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("Name", style="xp.name", no_wrap=True)
    table.add_column("Args", justify="right")
    table.add_column("Description")
    if verbose:
        table.add_column("Source", style="xp.path")

    for item in items:
        row = [
            str(item.get("name", "")),
            str(len(item.get("args", []))),
            escape(str(item.get("description", ""))),
        ]
        if verbose:
            row.append(str(item.get("source", "")))
        table.add_row(*row)

    console.print(table)
    console.print(f"{result.data.get('count', len(items))} handlers")
    if verbose:
        _render_meta(console, result)


def _render_handler(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    lines = [escape(str(d.get("description", ""))) or "[dim]No description.[/dim]"]
    lines.append(f"[xp.key]source:[/xp.key] [xp.path]{d.get('source', '')}[/xp.path]")
    console.print(
        Panel("\n".join(lines), title=f"[xp.name]{d.get('name', '?')}[/xp.name]", expand=False)
    )

    args = d.get("args", [])
    if not args:
        console.print("[dim]This handler takes no arguments.[/dim]")
        return

    table = Table(show_header=True, pad_edge=False, expand=False)
    table.add_column("Argument", style="bold", no_wrap=True)
    table.add_column("Req", justify="center")
    table.add_column("Rules", style="xp.rule")
    table.add_column("Description")
    if verbose:
        table.add_column("Error message", style="dim")
    for arg in args:
        row = [
            str(arg.get("name", "")),
            "[xp.required]Y[/xp.required]" if arg.get("required") else "N",
            escape(_format_rules(arg.get("rules", []))),
            escape(str(arg.get("description") or "")),
        ]
        if verbose:
            row.append(escape(str(arg.get("errmsg") or "")))
        table.add_row(*row)
    console.print(table)


def _render_check(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render check results, errors before warnings."""
    issues = result.data.get("issues", [])
    handlers = result.data.get("handlers", 0)

    if not issues:
        console.print(f"[xp.ok]OK[/xp.ok]  {handlers} handlers, no issues found.")
        return

    severity_styles = {"error": "xp.error", "warning": "xp.warning"}
    for severity in ("error", "warning"):
        for issue in (i for i in issues if i.get("severity") == severity):
            style = severity_styles[severity]
            console.print(
                Text(f"  {severity:<7} ", style=style), Text(str(issue.get("message", ""))), sep=""
            )
    console.print(f"\n{len(issues)} issues in {handlers} handlers")


# ── Batch renderers ───────────────────────────────────────────────────


def _render_batch(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render a locally dispatched batch: counters, then one row per result."""
    response = result.data.get("response", {})
    console.print(
        f"[xp.op]{response.get('cmdCnt', 0)} commands[/xp.op]  "
        f"[xp.ok]worked {response.get('worked', 0)}[/xp.ok]  "
        f"[xp.error]failed {response.get('failed', 0)}[/xp.error]  "
        f"[dim]aborted {response.get('aborted', 0)}[/dim]"
    )
    results = response.get("results", [])
    if results:
        table = Table(show_header=True, pad_edge=False, expand=False)
        table.add_column("#", justify="right", style="dim")
        table.add_column("Id")
        table.add_column("Result")
        table.add_column("Code", style="xp.error")
        table.add_column("ms", justify="right", style="dim")
        for index, item in enumerate(results, start=1):
            if "errmsg" in item or "errcode" in item:
                shown = Text(str(item.get("errmsg", "")), style="xp.error")
            else:
                shown = Text(json.dumps(item.get("output"), default=str))
            table.add_row(
                str(index),
                str(item.get("id", "")),
                shown,
                str(item.get("errcode", "")),
                str(item.get("execTime", "")),
            )
        console.print(table)
    for cookie in result.data.get("cookies", []):
        _field(console, "set-cookie", cookie)
    if verbose:
        _render_meta(console, result)


def _render_docs(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    if "path" in result.data:
        _field(console, "path", result.data["path"])
    _field(console, "handlers", result.data.get("count", 0))


# ── Generic fallback ──────────────────────────────────────────────────


def _render_generic(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Fallback renderer: status line + all data as key-value pairs."""
    _status_line(console, result)
    for key, value in result.data.items():
        if isinstance(value, (dict, list)):
            _field(console, key, json.dumps(value, separators=(",", ":"), default=str))
        else:
            _field(console, key, value)
    if verbose:
        _render_meta(console, result)


# ── Dispatch table ────────────────────────────────────────────────────

_OP_RENDERERS: dict[str, Any] = {
    "bootstrap": _render_bootstrap,
    "list_handlers": _render_handler_table,
    "show_handler": _render_handler,
    "check": _render_check,
    "run_batch": _render_batch,
    "docs": _render_docs,
}
