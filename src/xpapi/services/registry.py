"""HandlerRegistry — the owned, hot-reloadable table of command handlers.

Readers (every dispatch) see an immutable snapshot; writers (load, reload,
explicit registration, plugin installation) build a new table under a lock
and swap it in with a single attribute assignment.  A lookup therefore sees
either the old or the new definition of a handler, never a half-built one,
and never waits on a reload.

Loads report through :class:`ServiceResult` instead of exiting: a failed
startup load lists every shape violation so the entry point can decide to
abort.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from xpapi.domain.handlers import HandlerDefinition, check_shape
from xpapi.infrastructure.loader import HandlerSourceError, HandlerUnit
from xpapi.services.result import ServiceError, ServiceResult
from xpapi.services.telemetry import trace_span, traced

if TYPE_CHECKING:
    from xpapi.domain.rules import RuleEngine
    from xpapi.infrastructure.loader import HandlerLoader

logger = logging.getLogger(__name__)

HandlerMutator = Callable[[HandlerDefinition], None]


@dataclass
class _Staged:
    handlers: dict[str, HandlerDefinition] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


class HandlerRegistry:
    """Owns the qualified-name → :class:`HandlerDefinition` table.

    Parameters:
        loader: Strategy that produces handler units (directory or static).
    """

    def __init__(self, loader: HandlerLoader) -> None:
        self._loader = loader
        self._table: Mapping[str, HandlerDefinition] = MappingProxyType({})
        self._write_lock = threading.Lock()
        self._mutators: list[HandlerMutator] = []

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def lookup(self, name: str) -> HandlerDefinition | None:
        return self._table.get(name)

    def all_names(self) -> list[str]:
        return sorted(self._table)

    def snapshot(self) -> Mapping[str, HandlerDefinition]:
        """The current table; later reloads never change the returned mapping."""
        return self._table

    def __len__(self) -> int:
        return len(self._table)

    def __contains__(self, name: object) -> bool:
        return name in self._table

    def undefined_rules(self, rules: RuleEngine) -> list[str]:
        """Describe every rule tag used by a handler that *rules* cannot run."""
        problems: list[str] = []
        for name in self.all_names():
            args = self._table[name].args or {}
            for arg_name, spec in args.items():
                for step in spec.rules:
                    if step.tag not in rules:
                        problems.append(
                            f'Undefined rule "{step.tag}" for arg "{arg_name}" '
                            f'in handler "{name}".'
                        )
        return problems

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @traced
    def load(self) -> ServiceResult:
        """Load every unit from the loader and replace the whole table."""
        op = "load_handlers"
        try:
            with trace_span("discover") as span:
                units = self._loader.load_all()
                if span is not None:
                    span.annotate("units", len(units))
        except HandlerSourceError as exc:
            logger.critical("%s", exc)
            return ServiceResult(
                ok=False,
                op=op,
                error=ServiceError(
                    code="HANDLER_SOURCE", message=str(exc), detail={"source": exc.source}
                ),
            )

        with trace_span("shape_check"):
            staged = self._stage(units)
        for error in staged.errors:
            logger.critical("%s", error)
        if staged.errors:
            return self._invalid(op, staged)
        if not staged.handlers:
            message = "No handlers were exported by handler files."
            logger.critical(message)
            return ServiceResult(
                ok=False,
                op=op,
                warnings=staged.warnings,
                error=ServiceError(code="NO_HANDLERS", message=message),
            )

        errors = self._publish(staged.handlers, replace=True)
        if errors:
            staged.errors.extend(errors)
            return self._invalid(op, staged)
        names = self.all_names()
        logger.info("Loaded %d handlers from %d units", len(names), len(units))
        return ServiceResult(
            ok=True,
            op=op,
            data={"count": len(names), "units": len(units), "names": names},
            warnings=staged.warnings,
        )

    @traced
    def reload(self, source: str | Path) -> ServiceResult:
        """Re-load one unit after a change notification.

        Entries from the unit overwrite same-named entries; every other entry
        is untouched.  Invalid handlers in the unit are reported and skipped,
        and whatever was registered under their names before stays in place.
        """
        op = "reload_handlers"
        try:
            unit = self._loader.load_unit(source)
        except HandlerSourceError as exc:
            logger.error("%s", exc)
            return ServiceResult(
                ok=False,
                op=op,
                error=ServiceError(
                    code="HANDLER_SOURCE", message=str(exc), detail={"source": exc.source}
                ),
            )
        return self._merge(op, [unit])

    def register(
        self,
        definitions: Iterable[Any] | Mapping[str, Any],
        *,
        namespace: str = "",
        source: str = "<explicit>",
    ) -> ServiceResult:
        """Register definitions from code, merging them into the table."""
        if isinstance(definitions, Mapping):
            definitions = [definitions]
        unit = HandlerUnit(source=source, namespace=namespace, handlers=list(definitions))
        return self._merge("register_handlers", [unit])

    def install_mutator(self, mutator: HandlerMutator) -> None:
        """Apply *mutator* to every current handler and to all future (re)loads.

        Exceptions from *mutator* propagate; at startup they are fatal.
        """
        with self._write_lock:
            for name in sorted(self._table):
                mutator(self._table[name])
            self._mutators.append(mutator)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _stage(self, units: Iterable[HandlerUnit]) -> _Staged:
        staged = _Staged()
        for unit in units:
            for raw in unit.handlers:
                report = check_shape(raw)
                for warning in report.warnings:
                    logger.warning("%s", warning)
                staged.warnings.extend(report.warnings)
                if not report.valid:
                    staged.errors.extend(f"{unit.source}: {e}" for e in report.errors)
                    continue
                definition = HandlerDefinition.from_raw(
                    raw, namespace=unit.namespace, source=unit.source
                )
                previous = staged.handlers.get(definition.name) or self._table.get(
                    definition.name
                )
                if previous is None:
                    logger.debug("Loaded handler %s from %s", definition.name, unit.source)
                else:
                    logger.debug("Reloaded handler %s from %s", definition.name, unit.source)
                staged.handlers[definition.name] = definition
        return staged

    def _initialize(self, definition: HandlerDefinition) -> None:
        for mutator in self._mutators:
            mutator(definition)
        definition.initialized = True

    def _publish(self, handlers: Mapping[str, HandlerDefinition], *, replace: bool) -> list[str]:
        """Initialize uninitialized *handlers* and swap in the new table."""
        errors: list[str] = []
        with self._write_lock:
            table = {} if replace else dict(self._table)
            for name, definition in handlers.items():
                if not definition.initialized:
                    try:
                        self._initialize(definition)
                    except Exception as exc:
                        logger.error("Handler %s rejected by plugin: %s", name, exc, exc_info=True)
                        errors.append(f'Handler "{name}" rejected by plugin: {exc}')
                        continue
                table[name] = definition
            self._table = MappingProxyType(table)
        return errors

    def _merge(self, op: str, units: list[HandlerUnit]) -> ServiceResult:
        staged = self._stage(units)
        staged.errors.extend(self._publish(staged.handlers, replace=False))
        sources = ", ".join(u.source for u in units)
        if staged.errors:
            for error in staged.errors:
                logger.error("%s", error)
            return self._invalid(op, staged)
        logger.info("Reloaded handler file %s", sources)
        return ServiceResult(
            ok=True,
            op=op,
            data={"count": len(staged.handlers), "names": sorted(staged.handlers)},
            warnings=staged.warnings,
        )

    @staticmethod
    def _invalid(op: str, staged: _Staged) -> ServiceResult:
        return ServiceResult(
            ok=False,
            op=op,
            data={"names": sorted(staged.handlers)},
            warnings=staged.warnings,
            error=ServiceError(
                code="INVALID_HANDLER",
                message=f"{len(staged.errors)} handler shape error(s)",
                detail={"errors": staged.errors},
            ),
        )
