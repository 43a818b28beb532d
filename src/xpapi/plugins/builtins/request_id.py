"""Built-in request-id plugin.

Tags every request with an id handlers can read as
``context.state.request_id``.  A client-supplied ``X-Request-ID`` header is
reused so ids can be correlated across services.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

import pluggy

if TYPE_CHECKING:
    from xpapi.domain.batch import RequestContext

hookimpl = pluggy.HookimplMarker("xpapi")

logger = logging.getLogger(__name__)

HEADER = "x-request-id"
MAX_LENGTH = 128


class RequestIdPlugin:
    """Assign ``context.state.request_id`` before dispatch."""

    @hookimpl
    def xpapi_pre_request(self, context: RequestContext) -> None:
        supplied = context.headers.get(HEADER, "").strip()
        if supplied and len(supplied) <= MAX_LENGTH:
            request_id = supplied
        else:
            request_id = uuid.uuid4().hex
        context.state.request_id = request_id
        logger.debug("Request %s from %s", request_id, context.client)
