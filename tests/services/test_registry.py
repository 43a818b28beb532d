"""Tests for HandlerRegistry: load, reload, explicit registration, mutators."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from xpapi.domain.handlers import HandlerDefinition
from xpapi.domain.rules import RuleEngine
from xpapi.infrastructure.loader import DirectoryLoader, HandlerUnit, StaticLoader
from xpapi.services.registry import HandlerRegistry


def _handler(name: str, value: Any = None, **overrides: Any) -> dict[str, Any]:
    raw: dict[str, Any] = {
        "name": name,
        "description": f"{name} handler",
        "args": None,
        "func": lambda request, args: {"output": value},
    }
    raw.update(overrides)
    return raw


def _static(*handlers: dict[str, Any], source: str = "mem") -> StaticLoader:
    return StaticLoader([HandlerUnit(source=source, handlers=list(handlers))])


class TestLoad:
    def test_load_directory(self, handler_dir: Path) -> None:
        registry = HandlerRegistry(DirectoryLoader(handler_dir, multi=True))
        result = registry.load()
        assert result.ok
        assert result.op == "load_handlers"
        assert result.data["units"] == 2
        assert "/admin/echo" in result.data["names"]
        assert "sumOfNumbers" in registry
        assert len(registry) == result.data["count"]

    def test_flat_load_ignores_subdirectories(self, handler_dir: Path) -> None:
        registry = HandlerRegistry(DirectoryLoader(handler_dir))
        assert registry.load().ok
        assert "/admin/echo" not in registry
        assert "echo" not in registry

    def test_all_names_sorted(self) -> None:
        registry = HandlerRegistry(_static(_handler("b"), _handler("a")))
        registry.load()
        assert registry.all_names() == ["a", "b"]

    def test_definitions_initialized(self) -> None:
        registry = HandlerRegistry(_static(_handler("a")))
        registry.load()
        assert registry.lookup("a").initialized

    def test_shape_errors_fail_load(self) -> None:
        registry = HandlerRegistry(_static(_handler("ok"), _handler("bad", func=None)))
        result = registry.load()
        assert not result.ok
        assert result.error.code == "INVALID_HANDLER"
        assert result.error.detail["errors"] == [
            'mem: Missing or invalid function in handler "bad".'
        ]
        assert len(registry) == 0

    def test_no_handlers(self) -> None:
        result = HandlerRegistry(_static()).load()
        assert not result.ok
        assert result.error.code == "NO_HANDLERS"

    def test_missing_directory(self, tmp_path: Path) -> None:
        result = HandlerRegistry(DirectoryLoader(tmp_path / "nope")).load()
        assert not result.ok
        assert result.error.code == "HANDLER_SOURCE"
        assert result.error.detail["source"].endswith("nope")

    def test_warnings_reported(self) -> None:
        registry = HandlerRegistry(_static(_handler("a", description="")))
        result = registry.load()
        assert result.ok
        assert result.warnings == ['Missing or invalid description in handler "a".']

    def test_duplicate_names_last_wins(self) -> None:
        registry = HandlerRegistry(_static(_handler("a", 1), _handler("a", 2)))
        registry.load()
        assert registry.lookup("a").func(None, {}) == {"output": 2}

    def test_load_replaces_table(self) -> None:
        loader = _static(_handler("a"))
        registry = HandlerRegistry(loader)
        registry.load()
        loader.add(HandlerUnit(source="mem", handlers=[_handler("b")]))
        registry.load()
        assert registry.all_names() == ["b"]


class TestReload:
    def test_reload_merges_unit(self) -> None:
        loader = StaticLoader(
            [
                HandlerUnit(source="one", handlers=[_handler("a", 1)]),
                HandlerUnit(source="two", handlers=[_handler("b", 1)]),
            ]
        )
        registry = HandlerRegistry(loader)
        registry.load()
        loader.add(HandlerUnit(source="one", handlers=[_handler("a", 2), _handler("c")]))
        result = registry.reload("one")
        assert result.ok
        assert result.op == "reload_handlers"
        assert result.data["names"] == ["a", "c"]
        assert registry.all_names() == ["a", "b", "c"]
        assert registry.lookup("a").func(None, {}) == {"output": 2}

    def test_snapshot_unaffected_by_reload(self) -> None:
        loader = _static(_handler("a", 1))
        registry = HandlerRegistry(loader)
        registry.load()
        before = registry.snapshot()
        loader.add(HandlerUnit(source="mem", handlers=[_handler("a", 2)]))
        registry.reload("mem")
        assert before["a"].func(None, {}) == {"output": 1}
        assert registry.lookup("a").func(None, {}) == {"output": 2}

    def test_invalid_handler_keeps_previous(self) -> None:
        loader = _static(_handler("a", 1))
        registry = HandlerRegistry(loader)
        registry.load()
        loader.add(HandlerUnit(source="mem", handlers=[_handler("a", func="broken"), _handler("d")]))
        result = registry.reload("mem")
        assert not result.ok
        assert result.error.code == "INVALID_HANDLER"
        assert registry.lookup("a").func(None, {}) == {"output": 1}
        assert "d" in registry

    def test_reload_source_error(self) -> None:
        registry = HandlerRegistry(_static(_handler("a")))
        registry.load()
        result = registry.reload("unknown")
        assert not result.ok
        assert result.error.code == "HANDLER_SOURCE"
        assert registry.all_names() == ["a"]

    def test_reload_file_from_disk(self, handler_dir: Path, write_py: Any) -> None:
        registry = HandlerRegistry(DirectoryLoader(handler_dir, multi=True))
        registry.load()
        path = write_py(
            handler_dir / "admin" / "tools.py",
            """\
            HANDLERS = [
                {
                    "name": "echo",
                    "description": "Shouts text back.",
                    "args": None,
                    "func": lambda request, args: {"output": "ECHO"},
                },
            ]
            """,
        )
        assert registry.reload(path).ok
        assert registry.lookup("/admin/echo").func(None, {}) == {"output": "ECHO"}
        assert "/admin/stash" in registry


class TestRegister:
    def test_register_single_mapping(self) -> None:
        registry = HandlerRegistry(StaticLoader())
        result = registry.register(_handler("solo"), namespace="/tools")
        assert result.ok
        assert result.op == "register_handlers"
        assert registry.lookup("/tools/solo").source == "<explicit>"

    def test_register_many(self) -> None:
        registry = HandlerRegistry(StaticLoader())
        registry.register([_handler("a"), _handler("b")], source="app")
        assert registry.lookup("b").source == "app"


class TestMutators:
    def test_mutator_applies_to_current_and_future(self) -> None:
        seen: list[str] = []

        def mutate(handler: HandlerDefinition) -> None:
            seen.append(handler.name)
            original = handler.func
            handler.func = lambda request, args: {"output": ("wrapped", original(request, args))}

        registry = HandlerRegistry(_static(_handler("a", 1)))
        registry.load()
        registry.install_mutator(mutate)
        registry.register(_handler("b", 2))
        assert seen == ["a", "b"]
        assert registry.lookup("b").func(None, {}) == {"output": ("wrapped", {"output": 2})}

    def test_mutator_reapplied_on_reload(self) -> None:
        calls: list[str] = []
        loader = _static(_handler("a"))
        registry = HandlerRegistry(loader)
        registry.load()
        registry.install_mutator(lambda handler: calls.append(handler.name))
        registry.reload("mem")
        assert calls == ["a", "a"]

    def test_mutator_error_at_install_propagates(self) -> None:
        registry = HandlerRegistry(_static(_handler("a")))
        registry.load()

        def reject(handler: HandlerDefinition) -> None:
            raise ValueError("not allowed")

        with pytest.raises(ValueError, match="not allowed"):
            registry.install_mutator(reject)

    def test_mutator_error_on_reload_skips_handler(self) -> None:
        loader = _static(_handler("a", 1))
        registry = HandlerRegistry(loader)
        registry.load()

        def reject_new(handler: HandlerDefinition) -> None:
            if handler.func(None, {}) == {"output": 2}:
                raise ValueError("no twos")

        registry.install_mutator(reject_new)
        loader.add(HandlerUnit(source="mem", handlers=[_handler("a", 2)]))
        result = registry.reload("mem")
        assert not result.ok
        assert "rejected by plugin" in result.error.detail["errors"][0]
        assert registry.lookup("a").func(None, {}) == {"output": 1}


class TestUndefinedRules:
    def test_reports_unknown_tags(self) -> None:
        spec = {"rules": [["isInteger"], ["isPrime"]], "required": True, "errmsg": "e"}
        registry = HandlerRegistry(_static(_handler("n", args={"x": spec})))
        registry.load()
        assert registry.undefined_rules(RuleEngine()) == [
            'Undefined rule "isPrime" for arg "x" in handler "n".'
        ]
        assert registry.undefined_rules(RuleEngine({"isPrime": lambda v: v})) == []
