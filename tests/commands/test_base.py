"""Tests for the shared Click building blocks."""

from __future__ import annotations

import click
import pytest
from click.testing import CliRunner

from xpapi.commands._base import HANDLER_NAME, NAMESPACE, XpCommand, XpGroup


class TestExamples:
    def test_command_examples(self, cli_runner: CliRunner) -> None:
        @click.command(cls=XpCommand, examples="  demo --flag")
        def demo() -> None:
            click.echo("ran")

        result = cli_runner.invoke(demo, ["--examples"])
        assert result.exit_code == 0
        assert "demo --flag" in result.stdout
        assert "ran" not in result.stdout

    def test_no_examples_no_flag(self, cli_runner: CliRunner) -> None:
        @click.command(cls=XpCommand)
        def plain() -> None:
            pass

        assert cli_runner.invoke(plain, ["--examples"]).exit_code == 2

    def test_group_subcommands_accept_examples(self, cli_runner: CliRunner) -> None:
        @click.group(cls=XpGroup)
        def grp() -> None:
            pass

        @grp.command(examples="  grp sub")
        def sub() -> None:
            pass

        assert isinstance(sub, XpCommand)
        assert "grp sub" in cli_runner.invoke(grp, ["sub", "--examples"]).stdout


class TestParamTypes:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("ping", "ping"),
            ("/ping", "ping"),
            ("admin/echo", "/admin/echo"),
            ("/admin/echo", "/admin/echo"),
            ("a/b/echo/", "/a/b/echo"),
        ],
    )
    def test_handler_name(self, raw: str, expected: str) -> None:
        assert HANDLER_NAME.convert(raw, None, None) == expected

    def test_handler_name_rejects_empty(self) -> None:
        with pytest.raises(click.BadParameter):
            HANDLER_NAME.convert("/", None, None)

    @pytest.mark.parametrize(("raw", "expected"), [("", ""), ("admin/", "/admin"), ("/a/b", "/a/b")])
    def test_namespace(self, raw: str, expected: str) -> None:
        assert NAMESPACE.convert(raw, None, None) == expected
