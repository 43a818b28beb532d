"""Handler definitions and the load-time shape check.

Handler modules export plain mappings::

    HANDLERS = [
        {
            "name": "sumOfNumbers",
            "description": "Adds numbers together.",
            "args": {
                "addends": {
                    "rules": [["isArrayOfFloats"]],
                    "required": True,
                    "errmsg": "addends must be an array of floats.",
                    "description": "Numbers to add.",
                },
            },
            "func": sum_of_numbers,
        },
    ]

:func:`check_shape` reports every problem with such a mapping and
:meth:`HandlerDefinition.from_raw` turns a mapping that passed into the typed
definition the registry stores.
"""

from __future__ import annotations

from collections.abc import Callable, Collection, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from xpapi.domain.rules import ValidationRule, is_non_empty_string, parse_chain

UPLOAD_MARKER = "@"

HandlerFunc = Callable[..., Any]


def qualify(namespace: str, name: str) -> str:
    """Join a namespace prefix and a bare command name.

    ``qualify("/a/b", "echo") == "/a/b/echo"``; an empty namespace leaves the
    name untouched.
    """
    if not namespace:
        return name
    return f"{namespace.rstrip('/')}/{name}"


@dataclass(frozen=True)
class ArgSpec:
    """Declared argument: rule chain, requiredness and its error message."""

    rules: tuple[ValidationRule, ...] = ()
    required: bool = False
    errmsg: str | None = None
    description: str | None = None

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> ArgSpec:
        return cls(
            rules=parse_chain(raw.get("rules")),
            required=bool(raw["required"]),
            errmsg=raw["errmsg"],
            description=raw.get("description"),
        )


@dataclass(eq=False)
class HandlerDefinition:
    """A registered command handler.

    ``func`` is the only field that changes after construction, and only
    through the plugin handler-mutation hook.  ``initialized`` is False until
    the registry has run its load-time pass over the definition.
    """

    name: str
    args: Mapping[str, ArgSpec] | None
    description: str
    func: HandlerFunc
    source: str = "<explicit>"
    initialized: bool = False

    @classmethod
    def from_raw(
        cls,
        raw: Mapping[str, Any],
        *,
        namespace: str = "",
        source: str = "<explicit>",
    ) -> HandlerDefinition:
        """Build a definition from a mapping that already passed :func:`check_shape`."""
        raw_args = raw.get("args")
        args: Mapping[str, ArgSpec] | None = None
        if raw_args:
            args = MappingProxyType(
                {name: ArgSpec.from_raw(spec) for name, spec in raw_args.items()}
            )
        return cls(
            name=qualify(namespace, raw["name"]),
            args=args,
            description=raw.get("description") or "",
            func=raw["func"],
            source=source,
        )

    @property
    def takes_args(self) -> bool:
        return self.args is not None

    def spec_for(self, supplied: str) -> tuple[str, ArgSpec] | None:
        """Find the declaration for a supplied argument name.

        A bound upload arrives under its bare field name while the handler
        declares it with the upload marker, so ``file`` resolves to a
        declared ``@file``.
        """
        if self.args is None:
            return None
        if supplied in self.args:
            return supplied, self.args[supplied]
        marked = f"{UPLOAD_MARKER}{supplied}"
        if marked in self.args:
            return marked, self.args[marked]
        return None

    def supplied_name(self, declared: str, supplied: Mapping[str, Any]) -> str | None:
        """Return the key under which *declared* was supplied, if any."""
        if declared in supplied:
            return declared
        if declared.startswith(UPLOAD_MARKER):
            bare = declared[len(UPLOAD_MARKER) :]
            if bare in supplied:
                return bare
        return None


# ---------------------------------------------------------------------------
# Shape check
# ---------------------------------------------------------------------------


@dataclass
class ShapeReport:
    """Problems found in one raw handler mapping."""

    name: str
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


def _label(raw: Any) -> str:
    if isinstance(raw, Mapping):
        name = raw.get("name")
        if isinstance(name, str) and name:
            return name
    return "<unnamed>"


def check_shape(
    raw: Any,
    *,
    known_rules: Collection[str] | None = None,
) -> ShapeReport:
    """Check a raw handler mapping.

    Errors make the handler unusable: missing name, args that are neither
    null nor a mapping, an ArgSpec without ``required`` or ``errmsg``, an
    unparseable rule chain, or a missing/non-callable ``func``.  Warnings
    cover a missing description and rule tags not present in *known_rules*.
    An explicitly empty args mapping is normalized to ``None`` in place.
    """
    report = ShapeReport(name=_label(raw))
    if not isinstance(raw, Mapping):
        report.errors.append(f"Handler must be a mapping, got {type(raw).__name__}.")
        return report

    try:
        is_non_empty_string(raw.get("name"))
    except ValueError:
        report.errors.append("Missing or invalid name in handler.")

    if "args" not in raw:
        report.errors.append(f'Missing args in handler "{report.name}".')
    else:
        _check_args(raw, report, known_rules)

    if not callable(raw.get("func")):
        report.errors.append(f'Missing or invalid function in handler "{report.name}".')

    description = raw.get("description")
    if not isinstance(description, str) or not description:
        report.warnings.append(f'Missing or invalid description in handler "{report.name}".')

    return report


def _check_args(
    raw: Mapping[str, Any],
    report: ShapeReport,
    known_rules: Collection[str] | None,
) -> None:
    args = raw["args"]
    if args is None:
        return
    if not isinstance(args, Mapping):
        report.errors.append(f'Args in handler "{report.name}" must be null or a mapping.')
        return
    if not args:
        report.warnings.append(f'Empty args in handler "{report.name}", converted to null.')
        if isinstance(raw, dict):
            raw["args"] = None
        return

    for arg_name, spec in args.items():
        where = f'arg "{arg_name}" in handler "{report.name}"'
        if not isinstance(spec, Mapping):
            report.errors.append(f"Spec for {where} must be a mapping.")
            continue
        if "required" not in spec:
            report.errors.append(f"Missing required attribute for {where}.")
        if "errmsg" not in spec:
            report.errors.append(f"Missing errmsg attribute for {where}.")
        if "description" not in spec:
            report.warnings.append(f"Missing description attribute for {where}.")
        try:
            chain = parse_chain(spec.get("rules"))
        except ValueError as exc:
            report.errors.append(f"Invalid rules for {where}: {exc}")
            continue
        if known_rules is not None:
            for step in chain:
                if step.tag not in known_rules:
                    report.warnings.append(f'Undefined rule "{step.tag}" for {where}.')
