"""HTML documentation for the registered handlers."""

from __future__ import annotations

import logging

from xpapi.infrastructure.templates import build_template_environment
from xpapi.services.base import BaseService
from xpapi.services.contracts import handler_item
from xpapi.services.result import ServiceResult
from xpapi.services.telemetry import traced

logger = logging.getLogger(__name__)

DOCS_TEMPLATE = "index.html.j2"


class DocsService(BaseService):
    """Render the handler reference page."""

    def render_html(self) -> str:
        settings = self._runtime.settings
        registry = self._runtime.registry
        env = build_template_environment("docs", project_root=settings.project_root)
        template = env.get_template(DOCS_TEMPLATE)
        handlers = [handler_item(registry.lookup(name)) for name in registry.all_names()]
        return template.render(
            name=settings.api.name,
            css_url=settings.docs.css_url,
            api_path=settings.api.path,
            multi=settings.api.multi,
            handlers=handlers,
        )

    @traced
    def render(self) -> ServiceResult:
        """Render the page into a ServiceResult for the CLI."""
        html = self.render_html()
        logger.debug("Rendered documentation for %d handlers", len(self._runtime.registry))
        return ServiceResult(
            ok=True,
            op="docs",
            data={"html": html, "count": len(self._runtime.registry)},
        )
