"""Validation engine — named assert-or-transform rules applied in order.

A rule is any callable ``rule(value, *params) -> value``.  Assertions return
the value unchanged, transforms return a new one, and both reject input by
raising ``ValueError`` or ``TypeError``.  The :class:`RuleEngine` runs a
chain of :class:`ValidationRule` entries against a deep copy of the caller's
value, so a chain that fails halfway never leaks a partially transformed
value.

Chains are declared the same way in every handler module::

    [["trim"], ["isNonEmptyString"]]
    [["isInteger"], ["isWithin", 5, 10]]
"""

from __future__ import annotations

import copy
import logging
import math
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

logger = logging.getLogger(__name__)

Rule = Callable[..., Any]


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ValidationFailure(Exception):
    """A rule chain rejected a value."""

    def __init__(self, rule: str, message: str) -> None:
        super().__init__(f"{rule}: {message}")
        self.rule = rule
        self.message = message


class UnknownRuleError(ValidationFailure):
    """A chain referenced a rule tag nobody registered (a configuration bug)."""

    def __init__(self, rule: str) -> None:
        super().__init__(rule, f"Undefined rule {rule!r}")


# ---------------------------------------------------------------------------
# Rule declarations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ValidationRule:
    """One step of a rule chain: a tag plus positional parameters."""

    tag: str
    params: tuple[Any, ...] = ()

    @classmethod
    def parse(cls, raw: Any) -> ValidationRule:
        """Build a rule from ``["tag", *params]`` or a bare ``"tag"``.

        Raises:
            ValueError: If *raw* has no leading string tag.
        """
        if isinstance(raw, ValidationRule):
            return raw
        if isinstance(raw, str) and raw:
            return cls(tag=raw)
        if isinstance(raw, (list, tuple)) and raw and isinstance(raw[0], str) and raw[0]:
            return cls(tag=raw[0], params=tuple(raw[1:]))
        msg = f"Rule must be a non-empty list starting with a rule name, got {raw!r}"
        raise ValueError(msg)


def parse_chain(raw: Iterable[Any] | None) -> tuple[ValidationRule, ...]:
    """Parse a declarative chain. ``None`` and ``[]`` both mean "no rules"."""
    if raw is None:
        return ()
    if isinstance(raw, (str, bytes)) or not isinstance(raw, Iterable):
        msg = f"Rule chain must be a list of rules, got {raw!r}"
        raise ValueError(msg)
    return tuple(ValidationRule.parse(item) for item in raw)


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def _check_length(value: Any, minimum: int | None, maximum: int | None) -> None:
    if minimum is not None and len(value) < minimum:
        msg = f"expected at least {minimum} items, got {len(value)}"
        raise ValueError(msg)
    if maximum is not None and len(value) > maximum:
        msg = f"expected at most {maximum} items, got {len(value)}"
        raise ValueError(msg)


def _to_float(value: Any) -> float:
    """Coerce to a finite float. Booleans are not numbers here."""
    if isinstance(value, bool):
        msg = "booleans are not numbers"
        raise TypeError(msg)
    if not isinstance(value, (int, float, str)):
        msg = f"cannot convert {type(value).__name__} to a number"
        raise TypeError(msg)
    try:
        result = float(value.strip() if isinstance(value, str) else value)
    except OverflowError:
        msg = "number too large"
        raise ValueError(msg) from None
    if not math.isfinite(result):
        msg = "not a finite number"
        raise ValueError(msg)
    return result


def _to_int(value: Any) -> int:
    """Coerce to int. Integral floats and numeric strings are accepted."""
    if isinstance(value, bool):
        msg = "booleans are not integers"
        raise TypeError(msg)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    number = _to_float(value)
    if not number.is_integer():
        msg = f"{value!r} is not an integer"
        raise ValueError(msg)
    return int(number)


def _require_number(value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        msg = f"expected a number, got {type(value).__name__}"
        raise TypeError(msg)


# ---------------------------------------------------------------------------
# Builtin rules
# ---------------------------------------------------------------------------


def is_array(value: Any, minimum: int | None = None, maximum: int | None = None) -> Any:
    # Bounds are accepted for symmetry with the other array rules but not enforced.
    if not _is_sequence(value):
        msg = "expected an array"
        raise TypeError(msg)
    return value


def is_array_of_ints(
    value: Any, minimum: int | None = None, maximum: int | None = None
) -> list[int]:
    if not _is_sequence(value):
        msg = "expected an array"
        raise TypeError(msg)
    _check_length(value, minimum, maximum)
    return [_to_int(item) for item in value]


def is_array_of_floats(
    value: Any, minimum: int | None = None, maximum: int | None = None
) -> list[float]:
    if not _is_sequence(value):
        msg = "expected an array"
        raise TypeError(msg)
    _check_length(value, minimum, maximum)
    return [_to_float(item) for item in value]


def is_array_of_strings(
    value: Any, minimum: int | None = None, maximum: int | None = None
) -> Any:
    if not _is_sequence(value):
        msg = "expected an array"
        raise TypeError(msg)
    _check_length(value, minimum, maximum)
    if not all(isinstance(item, str) for item in value):
        msg = "expected every item to be a string"
        raise TypeError(msg)
    return value


def is_array_of_non_empty_strings(
    value: Any, minimum: int | None = None, maximum: int | None = None
) -> Any:
    is_array_of_strings(value, minimum, maximum)
    if not all(value):
        msg = "expected every item to be a non-empty string"
        raise ValueError(msg)
    return value


def is_between(value: Any, minimum: Any, maximum: Any) -> Any:
    if not minimum < value < maximum:
        msg = f"{value!r} is not strictly between {minimum!r} and {maximum!r}"
        raise ValueError(msg)
    return value


def is_within(value: Any, minimum: Any, maximum: Any) -> Any:
    if not minimum <= value <= maximum:
        msg = f"{value!r} is not within {minimum!r} and {maximum!r}"
        raise ValueError(msg)
    return value


def is_boolean(value: Any) -> Any:
    if not isinstance(value, bool):
        msg = "expected a boolean"
        raise TypeError(msg)
    return value


def is_char(value: Any) -> Any:
    if not isinstance(value, str) or len(value) != 1:
        msg = "expected a single character"
        raise ValueError(msg)
    return value


def is_integer(value: Any) -> int:
    return _to_int(value)


def is_float(value: Any) -> float:
    return _to_float(value)


def is_in_array(value: Any, choices: Any) -> Any:
    if value not in choices:
        msg = f"{value!r} is not one of {choices!r}"
        raise ValueError(msg)
    return value


def is_non_empty_string(value: Any) -> Any:
    if not isinstance(value, str) or not value:
        msg = "expected a non-empty string"
        raise ValueError(msg)
    return value


def is_null(value: Any) -> Any:
    if value is not None:
        msg = "expected null"
        raise ValueError(msg)
    return value


def is_string(value: Any, minimum: int | None = None, maximum: int | None = None) -> Any:
    if not isinstance(value, str):
        msg = "expected a string"
        raise TypeError(msg)
    if minimum is not None and len(value) < minimum:
        msg = f"expected at least {minimum} characters"
        raise ValueError(msg)
    if maximum is not None and len(value) > maximum:
        msg = f"expected at most {maximum} characters"
        raise ValueError(msg)
    return value


def clamp(value: Any, minimum: Any, maximum: Any) -> Any:
    _require_number(value)
    if value < minimum:
        return minimum
    if value > maximum:
        return maximum
    return value


def to_number(value: Any) -> float:
    return _to_float(value)


def trim(value: Any) -> str:
    if not isinstance(value, str):
        msg = f"cannot trim {type(value).__name__}"
        raise TypeError(msg)
    return value.strip()


BUILTIN_RULES: Mapping[str, Rule] = MappingProxyType(
    {
        "isArray": is_array,
        "isArrayOfInts": is_array_of_ints,
        "isArrayOfIntegers": is_array_of_ints,
        "isArrayOfFloats": is_array_of_floats,
        "isArrayOfNonEmptyStrings": is_array_of_non_empty_strings,
        "isArrayOfStrings": is_array_of_strings,
        "isBetween": is_between,
        "isBoolean": is_boolean,
        "isChar": is_char,
        "isInteger": is_integer,
        "isInt": is_integer,
        "isFloat": is_float,
        "isInArray": is_in_array,
        "isNonEmptyString": is_non_empty_string,
        "isNull": is_null,
        "isString": is_string,
        "isWithin": is_within,
        "clamp": clamp,
        "toNumber": to_number,
        "trim": trim,
    }
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class RuleEngine:
    """Registry of named rules plus the chain interpreter.

    Starts with :data:`BUILTIN_RULES`; plugins add their own through
    :meth:`register`.  Builtin names are reserved.
    """

    def __init__(self, extra_rules: Mapping[str, Rule] | None = None) -> None:
        self._rules: dict[str, Rule] = dict(BUILTIN_RULES)
        for name, rule in (extra_rules or {}).items():
            self.register(name, rule)

    def register(self, name: str, rule: Rule) -> None:
        """Register a custom rule under *name*.

        Raises:
            ValueError: Empty name, or a name owned by a builtin or another rule.
            TypeError: *rule* is not callable.
        """
        normalized = name.strip()
        if not normalized:
            msg = "Rule name must not be empty"
            raise ValueError(msg)
        if not callable(rule):
            msg = f"Rule {normalized!r} must be callable"
            raise TypeError(msg)
        if normalized in BUILTIN_RULES:
            msg = f"Rule {normalized!r} conflicts with a builtin rule"
            raise ValueError(msg)
        existing = self._rules.get(normalized)
        if existing is not None and existing is not rule:
            msg = f"Rule {normalized!r} is already registered"
            raise ValueError(msg)
        self._rules[normalized] = rule
        logger.debug("Registered validation rule: %s", normalized)

    def __contains__(self, tag: object) -> bool:
        return tag in self._rules

    def names(self) -> list[str]:
        return sorted(self._rules)

    def apply(self, value: Any, chain: Iterable[ValidationRule | Any]) -> Any:
        """Run *chain* against a copy of *value* and return the result.

        Raises:
            UnknownRuleError: A tag in the chain is not registered.
            ValidationFailure: A rule rejected the value.
        """
        working = copy.deepcopy(value)
        for raw in chain:
            step = ValidationRule.parse(raw)
            rule = self._rules.get(step.tag)
            if rule is None:
                logger.warning("Undefined validation rule %r", step.tag)
                raise UnknownRuleError(step.tag)
            try:
                working = rule(working, *step.params)
            except (TypeError, ValueError, ArithmeticError) as exc:
                logger.debug("Failed %s rule: %s", step.tag, exc)
                raise ValidationFailure(step.tag, str(exc)) from exc
        return working
