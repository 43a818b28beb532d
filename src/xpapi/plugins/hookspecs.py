"""Pluggy hook specifications for xpapi.

Setup-time hooks run once while the server starts: rules are registered,
middleware collected and every handler offered to the mutation hook.
``xpapi_pre_request`` is the only hook called per request.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pluggy

if TYPE_CHECKING:
    from collections.abc import Callable

    from starlette.middleware import Middleware

    from xpapi.config.settings import XpSettings
    from xpapi.domain.batch import RequestContext
    from xpapi.domain.handlers import HandlerDefinition

hookspec = pluggy.HookspecMarker("xpapi")


class XpapiHookSpec:
    """Hook specifications for the xpapi plugin system."""

    @hookspec
    def xpapi_pre_request(self, context: RequestContext) -> None:
        """Called for every inbound request before uploads are bound.

        Plugins typically enrich ``context.state``.
        """

    @hookspec
    def xpapi_middleware(self) -> list[Middleware] | None:
        """Return Starlette middleware to wrap the API application."""

    @hookspec
    def xpapi_mutate_handler(self, config: XpSettings, handler: HandlerDefinition) -> None:
        """Inspect a handler before publication; may replace ``handler.func``."""

    @hookspec
    def xpapi_register_rules(self) -> dict[str, Callable[..., Any]] | None:
        """Return custom validation rules keyed by rule name."""
