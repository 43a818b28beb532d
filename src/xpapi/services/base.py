"""BaseService — foundation for services that operate on a bootstrapped runtime."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from xpapi.runtime import Runtime


class BaseService:
    """Base for service-layer classes.

    Every service receives the :class:`~xpapi.runtime.Runtime` at
    construction time and reads the registry, rules and settings from it.
    """

    def __init__(self, runtime: Runtime) -> None:
        self._runtime = runtime
