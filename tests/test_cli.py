"""命令行测试"""
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import json
import pytest
from click.testing import CliRunner

from cli import cli
from data_manager.excel_handler import ExcelPlanStore
from conftest import POLICY

CALC_ARGS = ["--total-debt", "14000", "--mode", "desired_amount", "--amount", "206.19",
             "--first-date", "2030-01-07"]


@pytest.fixture
def workbook(tmp_path):
    data_file = tmp_path / "plans.xlsx"
    seed = tmp_path / "policy.json"
    seed.write_text(json.dumps(POLICY), encoding="utf-8")
    result = CliRunner().invoke(cli, ["--data-file", str(data_file), "init-store", "--seed", str(seed)])
    assert result.exit_code == 0, result.output
    return data_file


def run(workbook, *args):
    return CliRunner().invoke(cli, ["--data-file", str(workbook), *args])


class TestCalculation:
    def test_calculate(self, workbook):
        result = run(workbook, "calculate", *CALC_ARGS)
        assert result.exit_code == 0, result.output
        assert "Total program cost: $13,300.00" in result.output
        assert "Net per period: $171.19" in result.output
        assert "78 weeks" in result.output

    def test_duration(self, workbook):
        result = run(workbook, "duration", *CALC_ARGS, "--payment", "206.19")
        assert "Number of payments: 78" in result.output

    def test_amount(self, workbook):
        result = run(workbook, "amount", *CALC_ARGS, "--periods", "78")
        assert "Payment per period: $205.51" in result.output

    def test_validation_error_reported(self, workbook):
        result = run(workbook, "calculate", "--total-debt", "14000", "--mode", "desired_amount",
                     "--amount", "20")
        assert result.exit_code != 0
        assert "ValidationError: Desired payment must be at least $50.00" in result.output

    def test_missing_policy(self, tmp_path):
        result = CliRunner().invoke(cli, ["--data-file", str(tmp_path / "empty.xlsx"), "calculate", *CALC_ARGS])
        assert result.exit_code != 0
        assert "ConfigurationUnavailable" in result.output


class TestVersions:
    def test_create_activate_suspend(self, workbook):
        result = run(workbook, "create", "--case-id", "CASE-001", *CALC_ARGS)
        assert result.exit_code == 0, result.output
        assert "primary=True" in result.output
        version_id = ExcelPlanStore(workbook).load_versions("CASE-001")[0].version_id

        assert "is now Active" in run(workbook, "activate", "--version-id", version_id).output
        result = run(workbook, "suspend", "--version-id", version_id)
        assert "Suspended into" in result.output
        listing = run(workbook, "list-versions", "--case-id", "CASE-001").output
        assert "Archived" in listing
        assert "Suspended" in listing

    def test_invalid_transition_reported(self, workbook):
        run(workbook, "create", "--case-id", "CASE-001", *CALC_ARGS)
        version_id = ExcelPlanStore(workbook).load_versions("CASE-001")[0].version_id
        result = run(workbook, "suspend", "--version-id", version_id)
        assert result.exit_code != 0
        assert "InvalidTransitionError" in result.output

    def test_set_config_validates(self, workbook):
        result = run(workbook, "set-config", "--key", "program_split_ratio", "--value", "1.5")
        assert result.exit_code != 0
        result = run(workbook, "set-config", "--key", "banking_fee", "--value", "40")
        assert result.exit_code == 0
        assert run(workbook, "get-config", "--key", "banking_fee").output.strip() == "40"
