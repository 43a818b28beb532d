"""Import a Python source file as a fresh module.

Handler units, dependency modules and local plugins are all plain ``.py``
files outside any package.  Each import executes the file again, which is
what hot reload relies on.
"""

from __future__ import annotations

import importlib.util
import re
import sys
from pathlib import Path
from types import ModuleType


def module_name_for(prefix: str, path: Path, root: Path | None = None) -> str:
    """Derive a stable, import-safe module name for *path*."""
    label = path.with_suffix("")
    if root is not None:
        try:
            label = label.relative_to(root)
        except ValueError:
            pass
    slug = re.sub(r"\W", "_", label.as_posix().strip("/"))
    return f"{prefix}_{slug}"


def import_path(path: Path, module_name: str) -> ModuleType:
    """Execute *path* as module *module_name*, replacing any previous copy.

    The module is visible in ``sys.modules`` while it executes (dataclasses
    and pickling need that) and removed again if execution fails.

    Raises:
        ImportError: No loader could be created for *path*.
        Exception: Whatever the module body raises.
    """
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        msg = f"Could not create module spec for {path}"
        raise ImportError(msg)
    module = importlib.util.module_from_spec(spec)
    sys.modules.pop(module_name, None)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        sys.modules.pop(module_name, None)
        raise
    return module
