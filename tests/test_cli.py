import json
import tomllib

import pytest
from typer.testing import CliRunner

from crossflow.cli import app, collect_sources
from crossflow.config.schema import IgnoreConfig

runner = CliRunner()

VAULT = """
// SPDX-License-Identifier: MIT
pragma solidity ^0.8.0;

contract Vault {
    IERC20 public token;
    mapping(address => uint256) public balances;
    uint256 amount;

    function withdraw() public {
        token.transfer(msg.sender, amount);
        balances[msg.sender] -= amount;
    }
}
"""
IERC20 = "interface IERC20 { function transfer(address to, uint256 amount) external returns (bool); }"


@pytest.fixture
def project(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    contracts = tmp_path / "contracts"
    contracts.mkdir()
    (contracts / "Vault.sol").write_text(VAULT)
    (contracts / "IERC20.sol").write_text(IERC20)
    return contracts


def flat(output):
    return " ".join(output.split())


def test_list_detectors():
    result = runner.invoke(app, ["list-detectors"])
    assert result.exit_code == 0
    assert "Available Structural Detectors" in result.output


def test_analyze_missing_target(tmp_path):
    result = runner.invoke(app, ["analyze", str(tmp_path / "missing")])
    assert result.exit_code == 1
    assert "does not exist" in flat(result.output)


def test_analyze_json_output(project, tmp_path):
    report_path = tmp_path / "report.json"
    result = runner.invoke(app, ["analyze", str(project), "--json", str(report_path)])
    assert result.exit_code == 0
    assert report_path.exists()

    data = json.loads(report_path.read_text())
    meta = data["meta"]
    for key in ("version", "config_hash", "total_findings", "score", "gating"):
        assert key in meta
    assert meta["gating"]["triggered"] is False

    kinds = [f["kind"] for f in data["state_flow"]["findings"]]
    assert kinds.count("Reentrancy") == 1
    assert [n["name"] for n in data["graph"]["nodes"]] == ["IERC20", "Vault"]


def test_fail_on_findings(project):
    result = runner.invoke(app, ["analyze", str(project), "--fail-on-findings"])
    assert result.exit_code == 1


def test_min_severity_filters_before_gating(project, tmp_path):
    report_path = tmp_path / "report.json"
    result = runner.invoke(
        app,
        ["analyze", str(project), "--min-severity", "critical", "--fail-on-findings", "--json", str(report_path)],
    )
    assert result.exit_code == 0
    assert json.loads(report_path.read_text())["meta"]["total_findings"] == 0


def test_config_file_option(project, tmp_path):
    config_path = tmp_path / "strict.toml"
    config_path.write_text('[reporting]\nfail_on_severity = "HIGH"\n')
    result = runner.invoke(app, ["analyze", str(project), "--config", str(config_path)])
    assert result.exit_code == 1


def test_graph_command(project):
    result = runner.invoke(app, ["graph", str(project)])
    assert result.exit_code == 0
    assert "Dependencies" in result.output


def test_init_config(tmp_path):
    path = tmp_path / "crossflow.toml"
    result = runner.invoke(app, ["init-config", str(path)])
    assert result.exit_code == 0
    with open(path, "rb") as f:
        assert tomllib.load(f)["analysis"]["grammar"] == "solidity"

    again = runner.invoke(app, ["init-config", str(path)])
    assert again.exit_code == 1
    assert runner.invoke(app, ["init-config", str(path), "--force"]).exit_code == 0


def test_collect_sources_honours_ignore_rules(tmp_path):
    (tmp_path / "src").mkdir()
    (tmp_path / "node_modules" / "dep").mkdir(parents=True)
    (tmp_path / "src" / "A.sol").write_text("contract A {}")
    (tmp_path / "src" / "AMock.sol").write_text("contract AMock {}")
    (tmp_path / "src" / "notes.md").write_text("# notes")
    (tmp_path / "node_modules" / "dep" / "B.sol").write_text("contract B {}")

    sources = collect_sources(tmp_path, IgnoreConfig(patterns=["*Mock.sol"]))
    assert [s.path for s in sources] == ["src/A.sol"]

    single = collect_sources(tmp_path / "src" / "AMock.sol")
    assert [s.name for s in single] == ["AMock.sol"]
