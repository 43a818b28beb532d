"""Runtime — wires settings, rules, registry, plugins and the dispatcher.

Startup order: dependency map, handler load, plugins (rules, handler
mutation), dispatcher.  :meth:`Runtime.bootstrap` reports problems as a
failed :class:`ServiceResult` and never exits; the CLI decides.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from xpapi import __version__
from xpapi.domain.rules import RuleEngine
from xpapi.infrastructure.dependencies import (
    EMPTY_DEPENDENCIES,
    DependencyLoadError,
    load_dependencies,
)
from xpapi.infrastructure.loader import DirectoryLoader
from xpapi.infrastructure.watcher import PollingWatcher
from xpapi.plugins.manager import PluginLoadError, PluginManager
from xpapi.services.dispatch import BatchDispatcher, DispatchOutcome
from xpapi.services.registry import HandlerRegistry
from xpapi.services.result import ServiceError, ServiceResult
from xpapi.services.telemetry import trace_span, traced
from xpapi.services.uploads import bind

if TYPE_CHECKING:
    from xpapi.config.settings import XpSettings
    from xpapi.domain.batch import RequestContext
    from xpapi.infrastructure.loader import HandlerLoader

logger = logging.getLogger(__name__)


class NotBootstrappedError(RuntimeError):
    """A request arrived before :meth:`Runtime.bootstrap` succeeded."""


class Runtime:
    """Everything a running xpapi instance owns.

    Parameters:
        settings: Resolved settings.
        loader: Handler source; defaults to a :class:`DirectoryLoader` over
            the configured handler directory (or file list).
        plugins: Plugin manager; a fresh one by default.
    """

    def __init__(
        self,
        settings: XpSettings,
        *,
        loader: HandlerLoader | None = None,
        plugins: PluginManager | None = None,
    ) -> None:
        self.settings = settings
        self.rules = RuleEngine()
        self.loader = loader or DirectoryLoader(
            settings.handler_dir,
            multi=settings.api.multi,
            files=settings.handler_files,
        )
        self.registry = HandlerRegistry(self.loader)
        self.plugins = plugins or PluginManager()
        self.dependencies: Mapping[str, Any] = EMPTY_DEPENDENCIES
        self.load_warnings: list[str] = []
        self._dispatcher: BatchDispatcher | None = None

    @property
    def ready(self) -> bool:
        return self._dispatcher is not None

    @property
    def dispatcher(self) -> BatchDispatcher:
        if self._dispatcher is None:
            msg = "Runtime.bootstrap() has not completed"
            raise NotBootstrappedError(msg)
        return self._dispatcher

    @traced
    def bootstrap(self) -> ServiceResult:
        """Load dependencies, handlers and plugins, then build the dispatcher."""
        op = "bootstrap"
        settings = self.settings

        with trace_span("dependencies"):
            try:
                self.dependencies = load_dependencies(settings.dependencies_path)
            except DependencyLoadError as exc:
                logger.critical("%s", exc)
                return ServiceResult(
                    ok=False,
                    op=op,
                    error=ServiceError(code="DEPENDENCY_LOAD", message=str(exc)),
                )

        loaded = self.registry.load()
        if not loaded.ok:
            return loaded
        self.load_warnings = list(loaded.warnings)

        with trace_span("plugins"):
            try:
                names = self.plugins.discover_and_load(
                    entry_points=settings.plugins.entry_points,
                    local_dir=settings.plugin_dir,
                    files=settings.plugin_files,
                )
                custom_rules = self.plugins.register_rules(self.rules)
                self.plugins.install_handler_hooks(self.registry, settings)
            except PluginLoadError as exc:
                logger.critical("%s", exc)
                return ServiceResult(
                    ok=False,
                    op=op,
                    error=ServiceError(
                        code="PLUGIN_LOAD", message=str(exc), detail={"plugin": exc.plugin}
                    ),
                )

        warnings = list(self.load_warnings)
        for problem in self.registry.undefined_rules(self.rules):
            logger.warning("%s", problem)
            warnings.append(problem)

        self._dispatcher = BatchDispatcher(
            self.registry,
            self.rules,
            self.dependencies,
            multi=settings.api.multi,
        )
        logger.info(
            "%s ready: %d handlers, %d plugins", settings.api.name, len(self.registry), len(names)
        )
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "name": settings.api.name,
                "version": __version__,
                "handlers": self.registry.all_names(),
                "plugins": names,
                "rules": custom_rules,
                "dependencies": sorted(self.dependencies),
            },
            warnings=warnings,
        )

    def process(self, params: Any, context: RequestContext) -> DispatchOutcome:
        """Run one decoded request: pre-request hooks, upload binding, dispatch."""
        dispatcher = self.dispatcher
        self.plugins.pre_request(context)
        bound = bind(params, context.files)
        context.params = bound
        return dispatcher.dispatch(bound, context)

    def watcher(self) -> PollingWatcher | None:
        """A change notifier for the handler files, when hot reload applies."""
        if not self.settings.handlers.autoreload or not isinstance(self.loader, DirectoryLoader):
            return None
        return PollingWatcher(
            self.loader,
            self.registry.reload,
            interval=self.settings.handlers.poll_interval,
        )
