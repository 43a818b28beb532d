"""Typed payload contracts for service and adapter boundaries.

These models validate operation payload shapes before they leave the
service layer, so the CLI renderers, the docs page and JSON output all
see the same keys.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from xpapi.domain.handlers import HandlerDefinition

T = TypeVar("T", bound=BaseModel)


def dump_validated(model_cls: type[T], data: dict[str, Any]) -> dict[str, Any]:
    """Validate *data* against *model_cls* and return a normalized payload dict."""
    model = model_cls.model_validate(data)
    return model.model_dump(mode="python")


class HandlerArgItem(BaseModel):
    """One declared argument of a handler."""

    name: str
    required: bool
    rules: list[list[Any]]
    errmsg: str | None = None
    description: str | None = None


class HandlerItem(BaseModel):
    """One registered handler."""

    model_config = ConfigDict(extra="allow")

    name: str
    description: str
    source: str
    args: list[HandlerArgItem]


class HandlerListData(BaseModel):
    """Payload contract for ``HandlerService.list_handlers``."""

    count: int
    items: list[HandlerItem]


class CheckIssue(BaseModel):
    """One finding returned by ``HandlerService.check``."""

    severity: Literal["warning", "error"]
    message: str


class CheckResultData(BaseModel):
    """Payload contract for ``HandlerService.check``."""

    handlers: int
    issues: list[CheckIssue]
    count: int


def handler_item(definition: HandlerDefinition) -> dict[str, Any]:
    """Flatten a definition into the :class:`HandlerItem` shape, args sorted by name."""
    args = [
        {
            "name": arg_name,
            "required": spec.required,
            "rules": [[step.tag, *step.params] for step in spec.rules],
            "errmsg": spec.errmsg,
            "description": spec.description,
        }
        for arg_name, spec in sorted((definition.args or {}).items())
    ]
    return dump_validated(
        HandlerItem,
        {
            "name": definition.name,
            "description": definition.description,
            "source": definition.source,
            "args": args,
        },
    )
