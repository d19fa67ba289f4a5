"""
Tests for finding aggregation, deduplication, ranking and scoring.
"""
import pytest

from crossflow.core.aggregator import (
    DEDUP_GLOBAL,
    VulnerabilityAggregator,
    contracts_from_location,
    count_by_severity,
    recommendations,
    score_findings,
)
from crossflow.core.models import CriticalPath, Finding, Severity, StateInvariant


def create_sample_finding(severity=Severity.HIGH, location="Vault::withdraw", detector="reentrancy", kind="Reentrancy"):
    """Helper to create sample findings for testing."""
    return Finding(
        kind=kind,
        severity=severity,
        involved_contracts=["Vault"],
        location=location,
        description="sample",
        detector=detector,
    )


def test_duplicates_within_a_detector_collapse():
    finding = create_sample_finding()
    result = VulnerabilityAggregator().aggregate([finding, finding])
    assert len(result.findings) == 1


def test_per_detector_policy_keeps_cross_detector_duplicates():
    findings = [create_sample_finding(detector="a"), create_sample_finding(detector="b")]
    result = VulnerabilityAggregator().aggregate(findings)
    assert [f.detector for f in result.findings] == ["a", "b"]


def test_global_policy_merges_cross_detector_duplicates():
    findings = [create_sample_finding(detector="b"), create_sample_finding(detector="a")]
    result = VulnerabilityAggregator(DEDUP_GLOBAL).aggregate(findings)
    assert [f.detector for f in result.findings] == ["a"]


def test_unknown_policy_rejected():
    with pytest.raises(ValueError):
        VulnerabilityAggregator("sometimes")


def test_ranking_severity_then_location():
    findings = [
        create_sample_finding(Severity.LOW, "B::f"),
        create_sample_finding(Severity.CRITICAL, "Z::f"),
        create_sample_finding(Severity.HIGH, "B::g"),
        create_sample_finding(Severity.HIGH, "A::g"),
    ]
    result = VulnerabilityAggregator().aggregate(findings)
    assert [(f.severity, f.location) for f in result.findings] == [
        (Severity.CRITICAL, "Z::f"),
        (Severity.HIGH, "A::g"),
        (Severity.HIGH, "B::g"),
        (Severity.LOW, "B::f"),
    ]


def test_score_and_counts():
    findings = [create_sample_finding(Severity.CRITICAL), create_sample_finding(Severity.HIGH, "Other::f")]
    result = VulnerabilityAggregator().aggregate(findings)
    assert result.score == 15
    assert score_findings(findings) == 15
    assert result.severity_counts == {"Critical": 1, "High": 1, "Medium": 0, "Low": 0}
    assert count_by_severity([]) == {"Critical": 0, "High": 0, "Medium": 0, "Low": 0}


def test_external_findings_are_normalized():
    external = {
        "slither": [Finding(kind="Arbitrary Send", severity="medium", location="Vault::sweep")],
        "manual": [Finding(kind="Note", severity="low", involved_contracts=["Vault"], function_name="f")],
    }
    result = VulnerabilityAggregator().aggregate([], external)
    by_detector = {f.detector: f for f in result.findings}
    assert by_detector["slither"].severity == Severity.MEDIUM
    assert by_detector["slither"].involved_contracts == ["Vault"]
    assert by_detector["manual"].location == "Vault::f"


def test_string_severity_normalization():
    assert Finding(kind="X", severity="CRITICAL").severity == Severity.CRITICAL
    assert Finding(kind="X", severity="bogus").severity == Severity.MEDIUM


def test_contracts_from_location():
    assert contracts_from_location("Vault::withdraw") == ["Vault"]
    assert contracts_from_location("Proxy -> Impl") == ["Proxy", "Impl"]
    assert contracts_from_location("") == []


def test_recommendations():
    paths = [CriticalPath(path=["Vault", "withdraw"], description="d")]
    lines = recommendations([create_sample_finding()], paths)
    assert lines[0].startswith("Found 1 potential reentrancy issues")
    assert lines[-1].startswith("Identified 1 critical execution paths")
    assert recommendations([]) == []


def test_recommendations_count_violated_invariants():
    invariants = [
        StateInvariant(description="a", violated=True),
        StateInvariant(description="b", violated=False),
        StateInvariant(description="c", violated=True),
    ]
    arithmetic = create_sample_finding(Severity.MEDIUM, kind="Potential Integer Overflow/Underflow")
    lines = recommendations([arithmetic], invariants=invariants)
    assert lines[0].startswith("Found 1 functions with unchecked arithmetic")
    assert lines[-1].startswith("2 protocol invariants may be violated")
    assert recommendations([], invariants=invariants[1:2]) == []
