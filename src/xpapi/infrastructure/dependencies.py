"""Dependency map loading.

A dependency module is a Python file exposing ``DEPENDENCIES``: a mapping
from qualified command name to the object injected as the handler's third
argument.  Applications typically build connection pools there::

    DEPENDENCIES = {"sumOfNumbers": {"foo": "bar"}}

The map is frozen after loading and shared read-only by every request.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

from xpapi.infrastructure.modules import import_path, module_name_for

logger = logging.getLogger(__name__)

EXPORT_NAME = "DEPENDENCIES"

EMPTY_DEPENDENCIES: Mapping[str, Any] = MappingProxyType({})


class DependencyLoadError(Exception):
    """The dependency module could not be loaded."""


def load_dependencies(path: Path | None) -> Mapping[str, Any]:
    """Load the dependency map from *path*; no path means an empty map.

    Raises:
        DependencyLoadError: Missing file, import failure, or a missing or
            non-mapping ``DEPENDENCIES`` export.
    """
    if path is None:
        return EMPTY_DEPENDENCIES
    if not path.is_file():
        msg = f'Unable to open dependency module "{path}".'
        raise DependencyLoadError(msg)
    try:
        module = import_path(path, module_name_for("xpapi_dependencies", path))
    except Exception as exc:
        msg = f'Unable to import dependency module "{path}": {exc}'
        raise DependencyLoadError(msg) from exc

    exported = getattr(module, EXPORT_NAME, None)
    if not isinstance(exported, Mapping):
        msg = f'Dependency module "{path}" must export a {EXPORT_NAME} mapping.'
        raise DependencyLoadError(msg)
    logger.debug("Loaded %d dependency sets from %s", len(exported), path)
    return MappingProxyType(dict(exported))
