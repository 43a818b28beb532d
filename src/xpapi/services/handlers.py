"""HandlerService — inspect and check the handler registry."""

from __future__ import annotations

from xpapi.services.base import BaseService
from xpapi.services.contracts import (
    CheckResultData,
    HandlerListData,
    dump_validated,
    handler_item,
)
from xpapi.services.result import ServiceError, ServiceResult
from xpapi.services.telemetry import traced


class HandlerService(BaseService):
    """Read-only operations over the loaded registry."""

    @traced
    def list_handlers(self) -> ServiceResult:
        registry = self._runtime.registry
        items = [handler_item(registry.lookup(name)) for name in registry.all_names()]
        return ServiceResult(
            ok=True,
            op="list_handlers",
            data=dump_validated(HandlerListData, {"count": len(items), "items": items}),
        )

    @traced
    def show_handler(self, name: str) -> ServiceResult:
        definition = self._runtime.registry.lookup(name)
        if definition is None:
            return ServiceResult(
                ok=False,
                op="show_handler",
                error=ServiceError(
                    code="NOT_FOUND",
                    message=f"No handler named {name!r}",
                    detail={"available": self._runtime.registry.all_names()},
                ),
            )
        return ServiceResult(ok=True, op="show_handler", data=handler_item(definition))

    @traced
    def check(self) -> ServiceResult:
        """Report load warnings and rule tags no registered rule can run.

        Undefined rules only fail at request time, so they are errors here.
        """
        runtime = self._runtime
        issues = [{"severity": "warning", "message": w} for w in runtime.load_warnings]
        issues.extend(
            {"severity": "error", "message": m}
            for m in runtime.registry.undefined_rules(runtime.rules)
        )
        data = dump_validated(
            CheckResultData,
            {"handlers": len(runtime.registry), "issues": issues, "count": len(issues)},
        )
        errors = [i for i in issues if i["severity"] == "error"]
        if errors:
            return ServiceResult(
                ok=False,
                op="check",
                data=data,
                error=ServiceError(
                    code="UNDEFINED_RULES",
                    message=f"{len(errors)} undefined rule reference(s)",
                ),
            )
        return ServiceResult(ok=True, op="check", data=data)
