"""BatchDispatcher — validate every command, then execute them in order.

Phase 1 resolves and validates the whole batch; a single problem rejects
the request before any handler runs.  Phase 2 executes the validated plan,
stopping at the first failed result unless ``ignoreErrors`` is set.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from pydantic import ValidationError

from xpapi.domain.batch import (
    BatchParams,
    BatchResponse,
    CommandResult,
    Rejection,
    RequestContext,
    is_failure,
)
from xpapi.domain.handlers import HandlerDefinition, qualify
from xpapi.domain.rules import RuleEngine, ValidationFailure
from xpapi.infrastructure.dependencies import EMPTY_DEPENDENCIES

logger = logging.getLogger(__name__)

HANDLER_EXCEPTION = "HANDLER_EXCEPTION"


class HandlerLookup(Protocol):
    def lookup(self, name: str) -> HandlerDefinition | None: ...


@dataclass(frozen=True)
class BatchRejection:
    """The whole batch was refused; nothing executed."""

    reason: str
    status: int = 406
    command: str | None = None


@dataclass
class BatchCompleted:
    """The batch was processed; individual commands may still have failed."""

    response: BatchResponse
    cookies: list[str] = field(default_factory=list)


DispatchOutcome = BatchRejection | BatchCompleted


@dataclass(frozen=True)
class _Step:
    handler: HandlerDefinition
    args: dict[str, Any]
    command_id: Any = None
    has_id: bool = False


class _Rejected(Exception):
    def __init__(self, reason: str, command: str | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.command = command


def normalize_namespace(namespace: str | None) -> str:
    """``a/b/`` → ``/a/b``; empty stays empty."""
    cleaned = (namespace or "").strip("/")
    return f"/{cleaned}" if cleaned else ""


def _cookie_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


class BatchDispatcher:
    """Runs batches against a handler table.

    Parameters:
        handlers: Anything with ``lookup(name)``; normally the registry.
        rules: Rule engine used for argument chains.
        dependencies: Qualified command name → object injected as the
            handler's third argument.
        multi: Qualify command names with the request namespace.
    """

    def __init__(
        self,
        handlers: HandlerLookup,
        rules: RuleEngine,
        dependencies: Mapping[str, Any] = EMPTY_DEPENDENCIES,
        *,
        multi: bool = False,
    ) -> None:
        self._handlers = handlers
        self._rules = rules
        self._dependencies = dependencies
        self._multi = multi

    def dispatch(self, params: Any, context: RequestContext | None = None) -> DispatchOutcome:
        context = context if context is not None else RequestContext(params=params)
        try:
            options, plan = self._plan(params, context)
        except _Rejected as exc:
            logger.info("Rejected batch: %s (cmd=%s)", exc.reason, exc.command)
            return BatchRejection(reason=exc.reason, command=exc.command)
        return self._execute(plan, options, context)

    # ------------------------------------------------------------------
    # Phase 1
    # ------------------------------------------------------------------

    def _plan(self, params: Any, context: RequestContext) -> tuple[BatchParams, list[_Step]]:
        if params is None:
            raise _Rejected(Rejection.MISSING_PARAMS)
        if not isinstance(params, Mapping) or not isinstance(params.get("cmds"), list):
            raise _Rejected(Rejection.MALFORMED)

        raw_options = params.get("params")
        if raw_options is None:
            options = BatchParams()
        elif isinstance(raw_options, Mapping):
            try:
                options = BatchParams.model_validate(raw_options)
            except ValidationError:
                raise _Rejected(Rejection.MALFORMED) from None
        else:
            raise _Rejected(Rejection.MALFORMED)

        namespace = normalize_namespace(context.namespace)
        plan = [self._resolve(command, namespace) for command in params["cmds"]]
        logger.debug("Validated %d commands", len(plan))
        return options, plan

    def _resolve(self, command: Any, namespace: str) -> _Step:
        if not isinstance(command, Mapping):
            raise _Rejected(Rejection.MALFORMED)
        name = command.get("cmd")
        if not isinstance(name, str) or not name:
            raise _Rejected(Rejection.MISSING_CMD)
        if self._multi:
            name = qualify(namespace, name)

        handler = self._handlers.lookup(name)
        if handler is None:
            raise _Rejected(Rejection.UNDEFINED_CMD, name)

        supplied = command.get("args")
        if supplied is None:
            if handler.takes_args:
                raise _Rejected(Rejection.MISSING_ARGS, name)
            supplied = {}
        elif not isinstance(supplied, Mapping):
            raise _Rejected(Rejection.MALFORMED, name)

        return _Step(
            handler=handler,
            args=self._validate_args(handler, supplied, name),
            command_id=command.get("id"),
            has_id="id" in command,
        )

    def _validate_args(
        self, handler: HandlerDefinition, supplied: Mapping[str, Any], name: str
    ) -> dict[str, Any]:
        for arg_name in supplied:
            if handler.spec_for(arg_name) is None:
                raise _Rejected(Rejection.UNRECOGNIZED_ARG, name)

        validated: dict[str, Any] = {}
        for declared, spec in (handler.args or {}).items():
            key = handler.supplied_name(declared, supplied)
            if key is None:
                if spec.required:
                    raise _Rejected(Rejection.MISSING_REQUIRED_ARG, name)
                continue
            try:
                validated[key] = self._rules.apply(supplied[key], spec.rules)
            except ValidationFailure as exc:
                logger.debug("Arg %s of %s failed %s", key, name, exc.rule)
                raise _Rejected(f"{Rejection.INVALID_ARG}: {spec.errmsg}", name) from None
        return validated

    # ------------------------------------------------------------------
    # Phase 2
    # ------------------------------------------------------------------

    def _execute(
        self, plan: list[_Step], options: BatchParams, context: RequestContext
    ) -> BatchCompleted:
        """Run *plan* in order and tally the outcome.

        Without ``ignoreErrors`` the batch stops at the first failed result.
        That result is still recorded so the caller sees why the batch stopped;
        ``results`` therefore always holds ``worked + failed`` entries.
        """
        response = BatchResponse.start(len(plan))
        cookies: list[str] = []
        for step in plan:
            started = time.perf_counter()
            result = self._run(step, context)
            if options.benchmark:
                result["execTime"] = int((time.perf_counter() - started) * 1000)
            if step.has_id:
                result["id"] = step.command_id

            failed = is_failure(result)
            if not failed:
                cookies.extend(_cookie_list(result.pop("cookies", None)))
            response.record(dict(result), failed=failed)
            if failed and not options.ignore_errors:
                logger.debug("Stopping batch after failed %s", step.handler.name)
                break
        return BatchCompleted(response=response, cookies=cookies)

    def _run(self, step: _Step, context: RequestContext) -> CommandResult:
        handler = step.handler
        try:
            if handler.name in self._dependencies:
                value = handler.func(context, step.args, self._dependencies[handler.name])
            else:
                value = handler.func(context, step.args)
        except Exception as exc:
            logger.error("Handler %s raised: %s", handler.name, exc, exc_info=True)
            return {"errmsg": str(exc) or type(exc).__name__, "errcode": HANDLER_EXCEPTION}
        if isinstance(value, Mapping):
            return dict(value)  # type: ignore[return-value]
        return {"output": value}
