"""Shared pytest fixtures and test helpers for xpapi tests."""

from __future__ import annotations

import logging
import textwrap
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from xpapi.config.settings import XpSettings
from xpapi.runtime import Runtime
from xpapi.services.telemetry import _current_span, disable_telemetry

# ---------------------------------------------------------------------------
# Handler sources written into temporary handler directories
# ---------------------------------------------------------------------------

EXAMPLE_HANDLERS = '''\
def sum_of_numbers(request, args, deps=None):
    return {
        "output": {
            "sum": sum(args["addends"]),
            "depTest": (deps or {}).get("foo"),
            "pluginTest": getattr(request.state, "dummy", None),
        }
    }


def multi_arg_test(request, args):
    who = args.get("name", "anonymous")
    return {
        "output": f"{who}: {args['someInt']} godzilla={args['godzilla']}",
        "cookies": ["godzilla=king_of_the_monsters;"],
    }


def yo_mama(request, args):
    if args["echo"] == "Your mother":
        return {"output": "Tell your mom I said hi!"}
    return {"errmsg": "That's not who I'm looking for.", "errcode": "NOTMOM"}


def trimmed(request, args):
    return {"output": args["name"]}


def ping(request, args):
    return "pong"


def explode(request, args):
    raise RuntimeError("boom")


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
    {
        "name": "multiArgTest",
        "description": "Integer in range, optional name, and Godzilla.",
        "args": {
            "someInt": {
                "rules": [["isInteger"], ["isWithin", 5, 10]],
                "required": True,
                "errmsg": "someInt must be an integer between 5 and 10, inclusive.",
                "description": "An integer from 5 to 10.",
            },
            "name": {
                "rules": [["isString"], ["isNonEmptyString"]],
                "required": False,
                "errmsg": "name must be a non-empty string.",
                "description": "Optional name.",
            },
            "godzilla": {
                "rules": [["isBoolean"]],
                "required": True,
                "errmsg": "godzilla must be a boolean.",
                "description": "Release Godzilla?",
            },
        },
        "func": multi_arg_test,
    },
    {
        "name": "yoMama",
        "description": "Echo test that fails for everyone but your mother.",
        "args": {
            "echo": {
                "rules": [["isNonEmptyString"]],
                "required": True,
                "errmsg": "echo must be a non-empty string.",
                "description": "Who is calling.",
            },
        },
        "func": yo_mama,
    },
    {
        "name": "trimmed",
        "description": "Returns the trimmed name.",
        "args": {
            "name": {
                "rules": [["trim"], ["isNonEmptyString"]],
                "required": True,
                "errmsg": "name must not be blank.",
                "description": "A name.",
            },
        },
        "func": trimmed,
    },
    {"name": "ping", "description": "Returns pong.", "args": None, "func": ping},
    {"name": "explode", "description": "Always raises.", "args": None, "func": explode},
]
'''

ADMIN_HANDLERS = '''\
def echo(request, args):
    return {"output": {"namespace": request.namespace, "text": args["text"]}}


def stash(request, args):
    return {"output": args.get("upload")}


HANDLERS = [
    {
        "name": "echo",
        "description": "Echoes text.",
        "args": {
            "text": {
                "rules": [["isString"]],
                "required": True,
                "errmsg": "text must be a string.",
                "description": "Text to echo.",
            },
        },
        "func": echo,
    },
    {
        "name": "stash",
        "description": "Returns the bound upload.",
        "args": {
            "@upload": {
                "rules": None,
                "required": False,
                "errmsg": "upload must be a file.",
                "description": "A file upload.",
            },
        },
        "func": stash,
    },
]
'''

DEPENDENCIES_SRC = """\
DEPENDENCIES = {"sumOfNumbers": {"foo": "bar", "baz": "quux"}}
"""


def write_source(path: Path, source: str) -> Path:
    """Write a Python source file, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(source), encoding="utf-8")
    return path


def write_config(root: Path, body: str) -> Path:
    return write_source(root / "xpapi.toml", body)


def make_settings(root: Path, **cli_flags: Any) -> XpSettings:
    return XpSettings.from_cli(project_root=root, **cli_flags)


def bootstrapped(settings: XpSettings) -> Runtime:
    """Build and bootstrap a runtime, asserting success."""
    runtime = Runtime(settings)
    result = runtime.bootstrap()
    assert result.ok, result.error
    return runtime


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None]:
    """Keep host XPAPI_* variables, logging and telemetry state out of every test.

    ``configure_logging`` replaces the root handlers with one bound to the
    CliRunner's stderr, which is closed once the invocation returns.
    """
    import os

    for key in list(os.environ):
        if key.startswith("XPAPI_"):
            monkeypatch.delenv(key)
    root = logging.getLogger()
    saved_handlers = root.handlers[:]
    saved_level = root.level
    xpapi_level = logging.getLogger("xpapi").level
    yield
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)
    logging.getLogger("xpapi").setLevel(xpapi_level)
    disable_telemetry()
    _current_span.set(None)


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def handler_dir(tmp_path: Path) -> Path:
    """Handler tree with root-level handlers and an ``admin`` sub-directory."""
    root = tmp_path / "handlers"
    write_source(root / "example.py", EXAMPLE_HANDLERS)
    write_source(root / "admin" / "tools.py", ADMIN_HANDLERS)
    return root


@pytest.fixture
def project(tmp_path: Path, handler_dir: Path) -> Path:
    """Project root with an ``xpapi.toml``, handlers and a dependency module.

    Entry-point plugins are off so installed plugins never leak into tests.
    """
    write_source(tmp_path / "deps.py", DEPENDENCIES_SRC)
    write_config(
        tmp_path,
        """\
        [api]
        name = "Example"
        multi = true
        upload_dir = "uploads"

        [handlers]
        dir = "handlers"
        autoreload = false

        [plugins]
        entry_points = false

        [dependencies]
        path = "deps.py"

        [docs]
        path = "/docs"
        """,
    )
    return tmp_path


@pytest.fixture
def settings(project: Path) -> XpSettings:
    return make_settings(project)


@pytest.fixture
def runtime(settings: XpSettings) -> Runtime:
    """Bootstrapped runtime over the example project."""
    return bootstrapped(settings)


@pytest.fixture
def _in_project(project: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Change CWD to the example project so the CLI discovers its config."""
    monkeypatch.chdir(project)


@pytest.fixture
def write_py() -> Any:
    """The :func:`write_source` helper, for tests that build their own trees."""
    return write_source


@pytest.fixture
def make_runtime() -> Any:
    """Factory: ``make_runtime(root, **cli_flags)`` returns a bootstrapped runtime."""

    def factory(root: Path, **cli_flags: Any) -> Runtime:
        return bootstrapped(make_settings(root, **cli_flags))

    return factory
