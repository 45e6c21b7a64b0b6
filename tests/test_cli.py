# SPDX-License-Identifier: MIT
# SPDX-FileCopyrightText: The chart-automation contributors
"""Tests for the command-line interface."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from chart_automation._version import __version__
from chart_automation.chart import ChartSet
from chart_automation.cli import main


@pytest.fixture(autouse=True)
def no_log_handlers():
    with patch("chart_automation.cli.setup_logging"):
        yield


@pytest.fixture
def repo(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    chart_dir = tmp_path / "application" / "foo"
    chart_dir.mkdir(parents=True)
    (chart_dir / "Chart.yaml").write_text("apiVersion: v2\nname: foo\nversion: 1.0.0\n")
    return tmp_path


def test_version() -> None:
    result = CliRunner().invoke(main, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_invalid_config(repo: Path) -> None:
    (repo / "bad.toml").write_text("[unknown]\n")

    result = CliRunner().invoke(main, ["--config", "bad.toml", "chart", "README.md"])

    assert result.exit_code == 1
    assert "Configuration error" in result.output


def test_chart_without_chart_changes(repo: Path) -> None:
    result = CliRunner().invoke(main, ["chart", "README.md", "application/README.md"])

    assert result.exit_code == 0
    assert "No chart updates found" in result.output


@patch("chart_automation.cli.lint_charts", return_value=True)
@patch("chart_automation.cli.check_helm_available", return_value=True)
@patch("chart_automation.cli._make_updater")
def test_chart_runs_every_update(
    mock_make_updater: MagicMock, mock_helm: MagicMock, mock_lint: MagicMock, repo: Path
) -> None:
    updater = mock_make_updater.return_value
    updater.application.return_value = True
    updater.lock.return_value = True
    updater.metadata.return_value = True

    result = CliRunner().invoke(main, ["chart", "application/foo/values.yaml"])

    assert result.exit_code == 0, result.output
    charts = [Path("application/foo")]
    updater.application.assert_called_once_with(charts)
    updater.lock.assert_called_once_with(charts)
    updater.metadata.assert_called_once_with(charts)
    mock_lint.assert_called_once_with(charts, repo)


@patch("chart_automation.cli.lint_charts", return_value=True)
@patch("chart_automation.cli.check_helm_available", return_value=True)
@patch("chart_automation.cli._make_updater")
def test_chart_fails_when_an_update_fails(
    mock_make_updater: MagicMock, mock_helm: MagicMock, mock_lint: MagicMock, repo: Path
) -> None:
    updater = mock_make_updater.return_value
    updater.application.return_value = True
    updater.lock.return_value = True
    updater.metadata.return_value = False

    result = CliRunner().invoke(main, ["chart", "application/foo/Chart.yaml"])

    assert result.exit_code == 1
    mock_lint.assert_called_once()


@patch("chart_automation.cli.check_helm_available", return_value=False)
def test_chart_requires_helm(mock_helm: MagicMock, repo: Path) -> None:
    result = CliRunner().invoke(main, ["chart", "application/foo/Chart.yaml"])

    assert result.exit_code == 1
    assert "helm is not installed" in result.output


@patch("chart_automation.cli.check_helm_available", return_value=True)
def test_update_metadata_outside_actions(
    mock_helm: MagicMock, repo: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("GITHUB_REPOSITORY", raising=False)

    result = CliRunner().invoke(main, ["update-metadata", "application/foo"])

    assert result.exit_code == 1
    assert "GITHUB_REPOSITORY" in result.output


@patch("chart_automation.cli.check_helm_available", return_value=True)
@patch("chart_automation.cli._make_updater")
def test_update_metadata_commit_failure(
    mock_make_updater: MagicMock, mock_helm: MagicMock, repo: Path
) -> None:
    mock_make_updater.return_value.metadata.side_effect = RuntimeError(
        "Failed to create signed commit on main"
    )

    result = CliRunner().invoke(main, ["update-metadata", "application/foo"])

    assert result.exit_code == 1
    assert "Runtime error: Failed to create signed commit on main" in result.output


def test_update_metadata_requires_charts(repo: Path) -> None:
    result = CliRunner().invoke(main, ["update-metadata"])

    assert result.exit_code == 2


def test_release_without_charts(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)

    result = CliRunner().invoke(main, ["release"])

    assert result.exit_code == 0
    assert "No charts found" in result.output


@patch("chart_automation.cli.publish_oci", return_value=["oci://ghcr.io/acme/charts/application/foo:1.0.0"])
@patch("chart_automation.cli.generate_indexes", return_value=1)
@patch("chart_automation.cli.publish_releases", return_value=["foo-1.0.0"])
@patch("chart_automation.cli.package_charts")
@patch("chart_automation.cli.check_helm_available", return_value=True)
def test_release(
    mock_helm: MagicMock,
    mock_package: MagicMock,
    mock_publish: MagicMock,
    mock_indexes: MagicMock,
    mock_oci: MagicMock,
    repo: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("GITHUB_REPOSITORY", "acme/charts")
    mock_package.return_value = [MagicMock()]

    result = CliRunner().invoke(main, ["release", "--output-dir", "site"])

    assert result.exit_code == 0, result.output
    assert "Packaged 1 chart(s), published 1 release(s) and 1 OCI package(s)" in result.output
    charts = mock_package.call_args[0][0]
    assert charts == ChartSet(application=[Path("application/foo")])
    assert mock_indexes.call_args[0][1] == repo / "site"


@patch("chart_automation.cli.package_charts", return_value=[])
@patch("chart_automation.cli.check_helm_available", return_value=True)
def test_release_nothing_packaged(
    mock_helm: MagicMock, mock_package: MagicMock, repo: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("GITHUB_REPOSITORY", "acme/charts")

    result = CliRunner().invoke(main, ["release"])

    assert result.exit_code == 1
    assert "No chart packages available for publishing" in result.output
