"""Handler loaders — where raw handler definitions come from.

The registry only talks to the :class:`HandlerLoader` protocol.  Two
strategies ship with xpapi:

- :class:`DirectoryLoader` imports ``*.py`` files from a handler directory
  (or an explicit file list).  With multi-path routing every sub-directory
  becomes a namespace: ``handlers/a/b/util.py`` contributes ``/a/b/<name>``.
- :class:`StaticLoader` serves definitions registered in code, for
  applications that assemble handlers themselves.

A unit is one source file; it exports ``HANDLERS`` as a single definition
or a list of them.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from xpapi.infrastructure.modules import import_path, module_name_for

logger = logging.getLogger(__name__)

EXPORT_NAME = "HANDLERS"
MODULE_PREFIX = "xpapi_handlers"


class HandlerSourceError(Exception):
    """A handler source tree or unit could not be read."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(message)
        self.source = source


@dataclass(frozen=True)
class HandlerUnit:
    """Raw definitions exported by one source, plus their namespace."""

    source: str
    namespace: str = ""
    handlers: list[Any] = field(default_factory=list)


class HandlerLoader(Protocol):
    """Strategy the registry uses to obtain handler units."""

    def load_all(self) -> list[HandlerUnit]: ...

    def load_unit(self, source: str | Path) -> HandlerUnit: ...


def _as_list(exported: Any) -> list[Any]:
    if isinstance(exported, (list, tuple)):
        return list(exported)
    return [exported]


class DirectoryLoader:
    """Load handler units from Python files on disk.

    Parameters:
        root: Handler directory; namespaces are derived relative to it.
        multi: Recurse into sub-directories and namespace their handlers.
        files: Explicit unit list used instead of scanning *root*.
    """

    def __init__(
        self,
        root: Path,
        *,
        multi: bool = False,
        files: Sequence[Path] | None = None,
    ) -> None:
        self.root = root.resolve()
        self.multi = multi
        self.files = [Path(f).resolve() for f in files] if files else None

    def discover(self) -> list[Path]:
        """List unit files in load order.

        Raises:
            HandlerSourceError: The handler directory does not exist.
        """
        if self.files is not None:
            return list(dict.fromkeys(self.files))
        if not self.root.is_dir():
            raise HandlerSourceError(
                str(self.root), f'Unable to open handler directory "{self.root}".'
            )
        found = self._scan(self.root)
        logger.debug("Found %d handler files in %s", len(found), self.root)
        return found

    def _scan(self, directory: Path) -> list[Path]:
        found: list[Path] = []
        for item in sorted(directory.iterdir()):
            if item.name.startswith(("_", ".")):
                continue
            if item.is_file() and item.suffix == ".py":
                found.append(item)
            elif item.is_dir() and self.multi:
                found.extend(self._scan(item))
        return found

    def namespace_for(self, path: Path) -> str:
        """``/a/b`` for a unit in ``<root>/a/b/``; empty at the root or without multi."""
        if not self.multi:
            return ""
        try:
            relative = path.parent.relative_to(self.root)
        except ValueError:
            return ""
        if relative == Path("."):
            return ""
        return f"/{relative.as_posix()}"

    def load_all(self) -> list[HandlerUnit]:
        return [self.load_unit(path) for path in self.discover()]

    def load_unit(self, source: str | Path) -> HandlerUnit:
        """Import one file and collect its ``HANDLERS`` export.

        Raises:
            HandlerSourceError: The file is missing, fails to import, or
                exports nothing.
        """
        path = Path(source).resolve()
        if not path.is_file():
            raise HandlerSourceError(str(path), f'Unable to open handler file "{path}".')
        module_name = module_name_for(MODULE_PREFIX, path, self.root)
        try:
            module = import_path(path, module_name)
        except Exception as exc:
            raise HandlerSourceError(
                str(path), f'Unable to import "{path}": {exc}'
            ) from exc

        exported = getattr(module, EXPORT_NAME, None)
        if exported is None:
            raise HandlerSourceError(str(path), f'"{path}" does not export {EXPORT_NAME}.')
        logger.debug("Loaded %s", path)
        return HandlerUnit(
            source=str(path),
            namespace=self.namespace_for(path),
            handlers=_as_list(exported),
        )


class StaticLoader:
    """Serve handler units assembled in code."""

    def __init__(self, units: Iterable[HandlerUnit] = ()) -> None:
        self._units: dict[str, HandlerUnit] = {u.source: u for u in units}

    def add(self, unit: HandlerUnit) -> None:
        self._units[unit.source] = unit

    def load_all(self) -> list[HandlerUnit]:
        return list(self._units.values())

    def load_unit(self, source: str | Path) -> HandlerUnit:
        try:
            return self._units[str(source)]
        except KeyError:
            raise HandlerSourceError(str(source), f'Unknown handler unit "{source}".') from None
