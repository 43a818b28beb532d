"""Batch wire models — request options, per-command results, the response.

Wire shape::

    Request:  {cmds: [{cmd, args?, id?}, ...], params?: {benchmark?, ignoreErrors?}}
    Response: {cmdCnt, worked, failed, aborted, results: [...]}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from types import SimpleNamespace
from typing import Any, TypedDict

from pydantic import BaseModel, ConfigDict, Field


class Rejection(StrEnum):
    """Reasons a whole batch is refused before any command runs."""

    MISSING_PARAMS = "Missing req.params object"
    MALFORMED = "Malformed xpapi object"
    MISSING_CMD = "Missing cmd array"
    UNDEFINED_CMD = "Undefined cmd"
    MISSING_ARGS = "Missing args"
    UNRECOGNIZED_ARG = "Unrecognized arg"
    MISSING_REQUIRED_ARG = "Missing required cmd arg"
    INVALID_ARG = "Invalid arg"


class BatchParams(BaseModel):
    """Optional ``params`` block of a batch request."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    benchmark: bool = False
    ignore_errors: bool = Field(default=False, alias="ignoreErrors")


class CommandResult(TypedDict, total=False):
    """What a handler returns and what the response carries per command."""

    output: Any
    cookies: list[str]
    errmsg: str
    errcode: str
    id: Any
    execTime: int


def is_failure(result: CommandResult) -> bool:
    return "errmsg" in result or "errcode" in result


class BatchResponse(BaseModel):
    """Aggregated outcome of one batch.

    Starts with every command counted in ``aborted``; each executed command
    moves one count into ``worked`` or ``failed``, so the counters always add
    up to ``cmdCnt``.
    """

    model_config = ConfigDict(populate_by_name=True)

    cmd_cnt: int = Field(alias="cmdCnt")
    worked: int = 0
    failed: int = 0
    aborted: int = 0
    results: list[dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def start(cls, count: int) -> BatchResponse:
        return cls(cmd_cnt=count, aborted=count)

    def record(self, result: dict[str, Any], *, failed: bool) -> None:
        self.aborted -= 1
        if failed:
            self.failed += 1
        else:
            self.worked += 1
        self.results.append(result)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


@dataclass(frozen=True)
class UploadedFile:
    """Metadata for a file staged by the HTTP layer."""

    size: int
    path: str
    name: str
    type: str | None = None

    def as_arg(self) -> dict[str, Any]:
        return {"size": self.size, "path": self.path, "name": self.name, "type": self.type}


@dataclass
class RequestContext:
    """Request-scoped object handed to handlers and pre-request hooks.

    ``state`` is free for plugins to enrich (``context.state.user = ...``).
    """

    params: Any = None
    files: dict[str, UploadedFile] = field(default_factory=dict)
    namespace: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    cookies: dict[str, str] = field(default_factory=dict)
    client: str | None = None
    state: SimpleNamespace = field(default_factory=SimpleNamespace)
