"""
Smoke tests for the CLI.
"""

from __future__ import annotations

import asyncio
from unittest.mock import patch

from typer.testing import CliRunner

from conftest import FakeCallClient
from vantage import __version__
from vantage.cli.main import app
from vantage.config import Settings
from vantage.desk import build_session_store
from vantage.llm.base import QuotaExceededError
from vantage.types import AnalysisSession, OwnerScope

runner = CliRunner()

REPORT = "# Memo\nFINAL DECISION: [BUY]\nThe \"One-Line\" Thesis: Good.\n"


def local_sessions(settings: Settings) -> list[AnalysisSession]:
    return asyncio.run(build_session_store(settings, None).list(OwnerScope.local()))


def test_version() -> None:
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_config_redacts_key(mock_env_vars: dict[str, str]) -> None:
    result = runner.invoke(app, ["config"])

    assert result.exit_code == 0
    assert "MODEL_PRIMARY" in result.stdout
    assert "test-gemini-key-1234567890" not in result.stdout


def test_analyze_history_show_delete(mock_settings: Settings) -> None:
    with patch("vantage.desk.GeminiCallClient", return_value=FakeCallClient([REPORT])):
        result = runner.invoke(app, ["analyze", "tcs"])

    assert result.exit_code == 0, result.output
    assert "BUY" in result.stdout

    [session] = local_sessions(mock_settings)
    assert session.subject_label == "TCS"

    result = runner.invoke(app, ["history"])
    assert result.exit_code == 0
    assert "TCS" in result.stdout

    result = runner.invoke(app, ["show", session.id])
    assert result.exit_code == 0
    assert "Memo" in result.stdout

    result = runner.invoke(app, ["show", session.id, "--engine", "nonsense"])
    assert result.exit_code == 1

    result = runner.invoke(app, ["delete", session.id])
    assert result.exit_code == 0
    assert local_sessions(mock_settings) == []


def test_analyze_failure_exits_nonzero(mock_settings: Settings) -> None:
    client = FakeCallClient([QuotaExceededError("quota exceeded")] * 2)
    with patch("vantage.desk.GeminiCallClient", return_value=client):
        result = runner.invoke(app, ["analyze", "TCS"])

    assert result.exit_code == 1
    assert local_sessions(mock_settings) == []


def test_show_unknown_session(mock_settings: Settings) -> None:
    result = runner.invoke(app, ["show", "ses_missing"])
    assert result.exit_code == 1


def test_update_requires_user(mock_settings: Settings) -> None:
    with patch("vantage.desk.GeminiCallClient", return_value=FakeCallClient([REPORT])):
        runner.invoke(app, ["analyze", "TCS"])
    [session] = local_sessions(mock_settings)

    result = runner.invoke(app, ["update", session.id])

    assert result.exit_code == 1
