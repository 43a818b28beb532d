"""BatchRunner — dispatch a batch in-process, without HTTP."""

from __future__ import annotations

from typing import Any

from xpapi.domain.batch import RequestContext
from xpapi.services.base import BaseService
from xpapi.services.dispatch import BatchRejection, normalize_namespace
from xpapi.services.result import ServiceError, ServiceResult
from xpapi.services.telemetry import traced


class BatchRunner(BaseService):
    """Run batches through the same pipeline the HTTP endpoint uses."""

    @traced
    def run(self, params: Any, *, namespace: str = "") -> ServiceResult:
        context = RequestContext(params=params, namespace=normalize_namespace(namespace))
        outcome = self._runtime.process(params, context)
        if isinstance(outcome, BatchRejection):
            return ServiceResult(
                ok=False,
                op="run_batch",
                error=ServiceError(
                    code="BATCH_REJECTED",
                    message=str(outcome.reason),
                    detail={"status": outcome.status, "command": outcome.command},
                ),
            )
        return ServiceResult(
            ok=True,
            op="run_batch",
            data={"response": outcome.response.to_wire(), "cookies": outcome.cookies},
        )
