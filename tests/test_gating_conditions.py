"""
Tests for CI gating conditions and reporting.
"""
import json

from crossflow.config.schema import RunConfig
from crossflow.core.engine import AnalysisEngine
from crossflow.core.models import Finding, Severity, SourceFile
from crossflow.core.reporting import (
    build_report,
    evaluate_gating,
    filter_by_severity,
    format_exit_summary,
    save_json_report,
)


def create_sample_finding(severity: Severity) -> Finding:
    """Helper to create sample findings for testing."""
    return Finding(
        kind="Test Finding",
        severity=severity,
        location="Vault::withdraw",
        detector="test_detector",
        file="contracts/Vault.sol",
        line=10,
    )


def test_gating_fail_on_findings():
    """Test basic fail_on_findings gating."""
    config = RunConfig()
    config.reporting.fail_on_findings = True

    exit_code, reasons = evaluate_gating([], [], config)
    assert exit_code == 0
    assert reasons == []

    findings = [create_sample_finding(Severity.LOW)]
    exit_code, reasons = evaluate_gating(findings, findings, config)
    assert exit_code == 1
    assert len(reasons) == 1
    assert "1 findings (fail_on_findings=true)" in reasons[0]


def test_gating_uses_displayed_findings():
    config = RunConfig()
    config.reporting.fail_on_findings = True
    findings = [create_sample_finding(Severity.LOW)]

    exit_code, _reasons = evaluate_gating(findings, filter_by_severity(findings, "HIGH"), config)
    assert exit_code == 0


def test_gating_severity_threshold():
    """Test severity-based gating."""
    config = RunConfig()
    config.reporting.fail_on_severity = "HIGH"

    findings = [create_sample_finding(Severity.LOW), create_sample_finding(Severity.MEDIUM)]
    exit_code, reasons = evaluate_gating(findings, findings, config)
    assert exit_code == 0
    assert reasons == []

    findings.append(create_sample_finding(Severity.CRITICAL))
    exit_code, reasons = evaluate_gating(findings, findings, config)
    assert exit_code == 1
    assert "fail_on_severity=HIGH" in reasons[0]


def test_gating_invalid_threshold():
    config = RunConfig()
    config.reporting.fail_on_severity = "SEVERE"
    exit_code, reasons = evaluate_gating([], [], config)
    assert exit_code == 1
    assert "Invalid fail_on_severity" in reasons[0]


def test_exit_summary():
    assert format_exit_summary(0, []) == "All gating conditions passed"
    summary = format_exit_summary(1, ["first", "second"])
    assert summary.splitlines() == ["CI gating triggered:", "  1. first", "  2. second"]


def test_filter_by_severity():
    findings = [create_sample_finding(s) for s in (Severity.CRITICAL, Severity.MEDIUM, Severity.LOW)]
    assert [f.severity for f in filter_by_severity(findings, "medium")] == [Severity.CRITICAL, Severity.MEDIUM]
    assert filter_by_severity(findings, "LOW") == findings


def test_report_metadata(tmp_path):
    source = """
contract Vault {
    IERC20 token;
    mapping(address => uint256) balances;
    function withdraw(uint256 amount) public {
        token.transfer(msg.sender, amount);
        balances[msg.sender] -= amount;
    }
}
"""
    config = RunConfig()
    config.reporting.fail_on_severity = "HIGH"
    result = AnalysisEngine(config).analyze([SourceFile("Vault.sol", "Vault.sol", source)])

    report = build_report(result, config, target="Vault.sol", detector_names=["reentrancy"])
    meta = report["meta"]
    assert meta["version"] == "0.1.0"
    assert len(meta["config_hash"]) == 64
    assert meta["total_findings"] == len(result.state_flow.findings)
    assert meta["score"] == result.state_flow.score
    assert meta["gating"]["triggered"] is True
    assert meta["gating"]["exit_code"] == 1

    path = tmp_path / "out" / "report.json"
    save_json_report(report, path)
    data = json.loads(path.read_text())
    assert data["meta"]["detector_names"] == ["reentrancy"]
    assert data["graph"]["metrics"]["total_contracts"] == 1
    assert data["state_flow"]["findings"]
