"""Tests for the CLI entry point: logging setup and version."""

from __future__ import annotations

import logging

import pytest
from rich.logging import RichHandler
from typer.testing import CliRunner

from vectorbase.cli.main import app, configure_logging

runner = CliRunner()


@pytest.fixture(autouse=True)
def _restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def test_default_logging_is_warning():
    configure_logging()
    root = logging.getLogger()
    assert root.level == logging.WARNING
    assert any(isinstance(h, RichHandler) for h in root.handlers)
    assert logging.getLogger("litellm").level == logging.WARNING


def test_verbose_logging_is_debug():
    configure_logging(verbose=True)
    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("notion_client").level == logging.INFO


def test_version_flag():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert result.output.startswith("vectorbase ")
