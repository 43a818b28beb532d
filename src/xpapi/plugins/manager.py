"""Plugin discovery, loading and setup-time composition.

Discovery order: entry points (pip-installed, group ``xpapi.plugins``),
then single-file plugins from the local plugin directory, then explicitly
listed plugin files.  A plugin that fails to import, instantiate or run a
setup hook raises :class:`PluginLoadError`; the server does not start with
half its plugins.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Sequence
from pathlib import Path
from types import ModuleType
from typing import TYPE_CHECKING, Any

import pluggy

from xpapi.infrastructure.modules import import_path, module_name_for
from xpapi.plugins.hookspecs import XpapiHookSpec

if TYPE_CHECKING:
    from starlette.middleware import Middleware

    from xpapi.config.settings import XpSettings
    from xpapi.domain.batch import RequestContext
    from xpapi.domain.handlers import HandlerDefinition
    from xpapi.domain.rules import RuleEngine
    from xpapi.services.registry import HandlerMutator, HandlerRegistry

PROJECT_NAME = "xpapi"
ENTRY_POINT_GROUP = "xpapi.plugins"

logger = logging.getLogger(__name__)


class PluginLoadError(Exception):
    """A plugin could not be loaded or its setup hook failed."""

    def __init__(self, plugin: str, message: str) -> None:
        super().__init__(f"Plugin {plugin}: {message}")
        self.plugin = plugin


class PluginManager:
    """Manages plugin discovery, loading, and hook dispatch."""

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(XpapiHookSpec)
        self._order: list[object] = []
        self._loaded: bool = False

    def discover_and_load(
        self,
        *,
        entry_points: bool = True,
        local_dir: Path | None = None,
        files: Sequence[Path] = (),
    ) -> list[str]:
        """Discover plugins and return their names in discovery order.

        Raises:
            PluginLoadError: Any plugin failed to import or instantiate.
        """
        if entry_points:
            try:
                self._pm.load_setuptools_entrypoints(ENTRY_POINT_GROUP)
            except Exception as exc:
                raise PluginLoadError(ENTRY_POINT_GROUP, str(exc)) from exc
            self._normalize_plugin_instances()
        if local_dir is not None:
            self._discover_local(local_dir)
        for path in files:
            self._load_file(path)
        self._loaded = True
        return self.list_plugin_names()

    def register_plugin(self, plugin: object, name: str | None = None) -> None:
        """Register a plugin instance or module directly."""
        resolved_name = name or getattr(plugin, "__name__", None) or plugin.__class__.__name__
        self._pm.register(plugin, name=resolved_name)
        self._order.append(plugin)
        logger.debug("Registered plugin: %s", resolved_name)

    def unregister(self, plugin: object) -> None:
        self._pm.unregister(plugin)
        self._order = [p for p in self._order if p is not plugin]

    @property
    def is_loaded(self) -> bool:
        """Whether discover_and_load() has been called."""
        return self._loaded

    @property
    def hook(self) -> pluggy.HookRelay:
        """Access the hook relay for dispatching events."""
        return self._pm.hook

    def get_plugins(self) -> list[object]:
        """Return all registered plugins in discovery order."""
        return list(self._order)

    def list_plugin_names(self) -> list[str]:
        return [self._name(p) for p in self._order]

    def _name(self, plugin: object) -> str:
        return self._pm.get_name(plugin) or plugin.__class__.__name__

    # ------------------------------------------------------------------
    # Setup-time composition
    # ------------------------------------------------------------------

    def register_rules(self, engine: RuleEngine) -> list[str]:
        """Add every plugin-provided rule to *engine*; return the rule names.

        Raises:
            PluginLoadError: A hook failed or returned an unusable rule.
        """
        added: list[str] = []
        for plugin in self._order:
            hook = getattr(plugin, "xpapi_register_rules", None)
            if hook is None:
                continue
            name = self._name(plugin)
            try:
                rule_map = hook()
                if rule_map is None:
                    continue
                if not isinstance(rule_map, dict):
                    msg = "xpapi_register_rules must return a dict"
                    raise TypeError(msg)
                for rule_name, rule in rule_map.items():
                    engine.register(rule_name, rule)
                    added.append(rule_name)
            except Exception as exc:
                raise PluginLoadError(name, str(exc)) from exc
        return added

    def install_handler_hooks(self, registry: HandlerRegistry, config: XpSettings) -> None:
        """Offer every handler to every plugin's mutation hook.

        Each plugin gets its own mutator, installed in discovery order, so the
        handlers loaded now are mutated plugin by plugin.  Handlers the
        registry loads later pass through every plugin in the same order.

        Raises:
            PluginLoadError: A mutation hook failed on a current handler.
        """
        installed = 0
        for plugin in self._order:
            hook = getattr(plugin, "xpapi_mutate_handler", None)
            if hook is None:
                continue
            registry.install_mutator(self._mutator(self._name(plugin), hook, config))
            installed += 1
        if installed:
            logger.debug("Installed %d handler mutation hooks", installed)

    @staticmethod
    def _mutator(name: str, hook: Any, config: XpSettings) -> HandlerMutator:
        def mutate(handler: HandlerDefinition) -> None:
            try:
                hook(config=config, handler=handler)
            except Exception as exc:
                raise PluginLoadError(name, f'mutating "{handler.name}": {exc}') from exc

        return mutate

    def middleware(self) -> list[Middleware]:
        """Collect middleware from every plugin, flattened."""
        collected: list[Middleware] = []
        for result in self._pm.hook.xpapi_middleware():
            if result:
                collected.extend(result)
        return collected

    def pre_request(self, context: RequestContext) -> None:
        self._pm.hook.xpapi_pre_request(context=context)

    # ------------------------------------------------------------------
    # Local discovery
    # ------------------------------------------------------------------

    def _discover_local(self, local_dir: Path) -> None:
        """Load every ``*.py`` in *local_dir*, skipping ``_``-prefixed names."""
        if not local_dir.is_dir():
            logger.debug("No local plugin directory at %s", local_dir)
            return
        for py_file in sorted(local_dir.glob("*.py")):
            if py_file.name.startswith("_"):
                continue
            self._load_file(py_file)

    def _load_file(self, py_file: Path) -> None:
        module_name = module_name_for("xpapi_local_plugin", py_file, py_file.parent)
        try:
            module = import_path(py_file, module_name)
        except Exception as exc:
            raise PluginLoadError(str(py_file), f"failed to import: {exc}") from exc

        if self._module_has_hook_impls(module):
            self.register_plugin(module, name=module_name)
            logger.debug("Loaded local plugin module %s", py_file)
            return

        found = False
        for attr_name, obj in inspect.getmembers(module, inspect.isclass):
            if obj.__module__ != module_name:
                continue  # skip imported classes
            if not self._has_hook_impls(obj):
                continue
            try:
                instance = obj()
            except Exception as exc:
                raise PluginLoadError(
                    str(py_file), f"failed to instantiate {attr_name}: {exc}"
                ) from exc
            self.register_plugin(instance, name=f"{module_name}.{attr_name}")
            logger.debug("Loaded local plugin %s from %s", attr_name, py_file)
            found = True
        if not found:
            logger.warning("Plugin file %s defines no hook implementations", py_file)

    def _normalize_plugin_instances(self) -> None:
        """Replace entry-point plugin classes with instances.

        Hook dispatch against a class leaves ``self`` unbound.
        """
        for plugin in list(self._pm.get_plugins()):
            plugin_name = self._pm.get_name(plugin) or getattr(plugin, "__name__", "?")
            if inspect.isclass(plugin) and self._has_hook_impls(plugin):
                self._pm.unregister(plugin)
                try:
                    instance = plugin()
                except Exception as exc:
                    raise PluginLoadError(plugin_name, f"failed to instantiate: {exc}") from exc
                self._pm.register(instance, name=plugin_name)
                plugin = instance
                logger.debug("Instantiated entry-point plugin: %s", plugin_name)
            if all(plugin is not p for p in self._order):
                self._order.append(plugin)

    @staticmethod
    def _module_has_hook_impls(module: ModuleType) -> bool:
        return any(
            callable(obj) and getattr(obj, f"{PROJECT_NAME}_impl", None)
            for obj in vars(module).values()
        )

    @staticmethod
    def _has_hook_impls(cls: type) -> bool:
        """Check whether *cls* has any ``@hookimpl`` methods.

        Pluggy's ``HookimplMarker("xpapi")`` sets an ``xpapi_impl`` attribute
        on decorated functions.
        """
        for name in dir(cls):
            if name.startswith("_"):
                continue
            method = getattr(cls, name, None)
            if callable(method) and getattr(method, f"{PROJECT_NAME}_impl", None):
                return True
        return False
