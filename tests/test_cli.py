"""Tests for the mailfiler command-line interface."""

import json
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest
import yaml
from click.testing import CliRunner

from mailfiler.cli import cli

ARCHIVE = {"path": "/Archive", "accountId": "account1", "name": "Archive"}


def _record(sender: str) -> dict[str, Any]:
    return {
        "from": sender,
        "to": "",
        "subject": "",
        "activeFrom": True,
        "activeTo": False,
        "activeSubject": False,
        "folder": ARCHIVE,
    }


def _write_json(path: Path, data: Any) -> Path:
    path.write_text(json.dumps(data))
    return path


@pytest.fixture
def runner(set_config_env: None) -> CliRunner:
    """CliRunner with MAILFILER_CONFIG_PATH pointing at a temp config."""
    return CliRunner()


@pytest.fixture
def rules_file(tmp_path: Path) -> Path:
    records = [_record("*@vendor.example.com"), _record("boss@example.com")]
    return _write_json(tmp_path / "rules.json", records)


# ---------------------------------------------------------------------------
# Tests: validate-config
# ---------------------------------------------------------------------------


def test_validate_config_valid(config_file: Path):
    result = CliRunner().invoke(cli, ["validate-config", "-c", str(config_file)])

    assert result.exit_code == 0
    assert "Configuration valid" in result.output


def test_validate_config_missing(tmp_path: Path):
    result = CliRunner().invoke(cli, ["validate-config", "-c", str(tmp_path / "nope.yaml")])

    assert result.exit_code == 1
    assert "Load error" in result.output


# ---------------------------------------------------------------------------
# Tests: rules
# ---------------------------------------------------------------------------


def test_rules_list_empty(runner: CliRunner):
    result = runner.invoke(cli, ["rules", "list"])

    assert result.exit_code == 0
    assert "No rules defined" in result.output


def test_rules_import_then_export(runner: CliRunner, rules_file: Path, tmp_path: Path):
    result = runner.invoke(cli, ["rules", "import", str(rules_file)])
    assert result.exit_code == 0
    assert "Imported 2 rule(s)" in result.output

    out = tmp_path / "export.json"
    result = runner.invoke(cli, ["rules", "export", str(out)])
    assert result.exit_code == 0
    assert json.loads(out.read_text()) == json.loads(rules_file.read_text())


def test_rules_export_to_stdout(runner: CliRunner, rules_file: Path):
    runner.invoke(cli, ["rules", "import", str(rules_file)])

    result = runner.invoke(cli, ["rules", "export"])

    assert result.exit_code == 0
    assert json.loads(result.output) == json.loads(rules_file.read_text())


def test_rules_import_invalid_keeps_rules(runner: CliRunner, rules_file: Path, tmp_path: Path):
    runner.invoke(cli, ["rules", "import", str(rules_file)])
    bad = _write_json(tmp_path / "bad.json", [{"from": "x"}])

    result = runner.invoke(cli, ["rules", "import", str(bad)])

    assert result.exit_code == 1
    assert "Import failed" in result.output
    exported = runner.invoke(cli, ["rules", "export"])
    assert len(json.loads(exported.output)) == 2


def test_rules_import_not_json(runner: CliRunner, tmp_path: Path):
    path = tmp_path / "rules.json"
    path.write_text("{broken")

    result = runner.invoke(cli, ["rules", "import", str(path)])

    assert result.exit_code == 1
    assert "Invalid JSON" in result.output


def test_rules_list_shows_table(runner: CliRunner, rules_file: Path):
    runner.invoke(cli, ["rules", "import", str(rules_file)])

    result = runner.invoke(cli, ["rules", "list"])

    assert result.exit_code == 0
    assert "Filing rules" in result.output


def test_rules_show(runner: CliRunner, rules_file: Path):
    runner.invoke(cli, ["rules", "import", str(rules_file)])

    result = runner.invoke(cli, ["rules", "show", "1"])

    assert result.exit_code == 0
    assert json.loads(result.output)["from"] == "boss@example.com"


def test_rules_show_out_of_range(runner: CliRunner):
    result = runner.invoke(cli, ["rules", "show", "7"])

    assert result.exit_code == 1
    assert "No rule at index 7" in result.output


def test_rules_delete(runner: CliRunner, rules_file: Path):
    runner.invoke(cli, ["rules", "import", str(rules_file)])

    result = runner.invoke(cli, ["rules", "delete", "0", "--yes"])

    assert result.exit_code == 0
    assert "1 rule(s) left" in result.output
    exported = json.loads(runner.invoke(cli, ["rules", "export"]).output)
    assert [r["from"] for r in exported] == ["boss@example.com"]


def test_rules_delete_requires_confirmation(runner: CliRunner, rules_file: Path):
    runner.invoke(cli, ["rules", "import", str(rules_file)])

    result = runner.invoke(cli, ["rules", "delete", "0"], input="n\n")

    assert result.exit_code == 1
    exported = json.loads(runner.invoke(cli, ["rules", "export"]).output)
    assert len(exported) == 2


# ---------------------------------------------------------------------------
# Tests: match / learn
# ---------------------------------------------------------------------------


def test_match(runner: CliRunner, rules_file: Path, tmp_path: Path):
    runner.invoke(cli, ["rules", "import", str(rules_file)])
    message = _write_json(
        tmp_path / "message.json",
        {"subject": "Invoice", "author": "Billing <billing@vendor.example.com>"},
    )

    result = runner.invoke(cli, ["match", str(message)])

    assert result.exit_code == 0
    assert "#0" in result.output
    assert "/Archive" in result.output


def test_match_no_rule(runner: CliRunner, tmp_path: Path):
    message = _write_json(tmp_path / "message.json", {"author": "someone@example.com"})

    result = runner.invoke(cli, ["match", str(message)])

    assert result.exit_code == 0
    assert "No rule applies" in result.output


def test_learn(runner: CliRunner, tmp_path: Path):
    message = _write_json(
        tmp_path / "message.json",
        {"author": "news@list.example.com", "subject": "Weekly", "folder": ARCHIVE},
    )

    result = runner.invoke(cli, ["learn", str(message)])
    assert result.exit_code == 0
    assert "Created rule #0" in result.output

    result = runner.invoke(cli, ["learn", str(message)])
    assert "No rule created" in result.output


# ---------------------------------------------------------------------------
# Tests: logging settings
# ---------------------------------------------------------------------------


@pytest.fixture
def json_logging_config(
    config_file: Path, sample_config_dict: dict[str, Any], set_config_env: None
) -> Path:
    data = {**sample_config_dict, "logging": {"level": "ERROR", "json_output": True}}
    config_file.write_text(yaml.dump(data, default_flow_style=False))
    return config_file


def test_logging_follows_config(json_logging_config: Path):
    with patch("mailfiler.cli.configure_logging") as mock_configure:
        result = CliRunner().invoke(cli, ["rules", "list"])

    assert result.exit_code == 0
    mock_configure.assert_called_with(log_level="ERROR", json_output=True)


def test_debug_flag_overrides_config(json_logging_config: Path):
    with patch("mailfiler.cli.configure_logging") as mock_configure:
        result = CliRunner().invoke(cli, ["--debug", "rules", "list"])

    assert result.exit_code == 0
    mock_configure.assert_called_once_with(log_level="DEBUG", json_output=False)
