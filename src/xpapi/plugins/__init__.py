"""Extension layer — plugin system via pluggy.

Plugin authors import :data:`hookimpl` and implement any of the hooks in
:class:`~xpapi.plugins.hookspecs.XpapiHookSpec`.
INVARIANT: Plugin failures at startup are fatal.
"""

import pluggy

from xpapi.plugins.manager import PluginLoadError, PluginManager

hookimpl = pluggy.HookimplMarker("xpapi")

__all__ = ["PluginLoadError", "PluginManager", "hookimpl"]
