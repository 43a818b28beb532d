"""Shared Jinja2 template loading with per-project override support."""

from __future__ import annotations

from pathlib import Path

from jinja2 import (
    BaseLoader,
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    PackageLoader,
    select_autoescape,
)


def build_template_environment(group: str, *, project_root: Path | None = None) -> Environment:
    """Build a Jinja2 environment with user overrides before packaged defaults.

    User overrides are loaded from ``.xpapi/templates/`` inside the project.
    Both a namespaced directory (for example ``.xpapi/templates/docs/``) and
    the shared root are searched.
    """

    loaders: list[BaseLoader] = []
    if project_root is not None:
        template_root = project_root / ".xpapi" / "templates"
        loaders.append(FileSystemLoader([str(template_root / group), str(template_root)]))

    loaders.append(PackageLoader("xpapi", f"templates/{group}"))
    return Environment(
        loader=ChoiceLoader(loaders),
        autoescape=select_autoescape(["html", "htm", "html.j2"]),
        keep_trailing_newline=True,
    )
