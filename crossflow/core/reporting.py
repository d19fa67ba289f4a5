"""
Report packaging and CI gating for finished analyses.
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .. import __version__
from ..config.schema import RunConfig
from .models import AnalysisResult, Finding, Severity
from .util.hash import compute_config_hash

logger = logging.getLogger(__name__)


def filter_by_severity(findings: Sequence[Finding], min_severity: str) -> List[Finding]:
    """Findings at or above ``min_severity``; ordering is preserved."""
    threshold = Severity.from_string(min_severity)
    return [f for f in findings if f.severity >= threshold]


def evaluate_gating(
    gating_findings: Sequence[Finding],
    display_findings: Sequence[Finding],
    config: RunConfig,
) -> Tuple[int, List[str]]:
    """
    Evaluate CI gating conditions.

    Args:
        gating_findings: All ranked findings of the run
        display_findings: Findings left after the severity filter
        config: Run configuration carrying the reporting thresholds

    Returns:
        Tuple of (exit_code, reasons)
    """
    reasons = []

    if config.reporting.fail_on_findings and display_findings:
        reasons.append(f"Found {len(display_findings)} findings (fail_on_findings=true)")

    if config.reporting.fail_on_severity:
        try:
            threshold = Severity.from_string(config.reporting.fail_on_severity)
        except ValueError:
            reasons.append(f"Invalid fail_on_severity value: {config.reporting.fail_on_severity}")
        else:
            over = [f for f in gating_findings if f.severity >= threshold]
            if over:
                reasons.append(
                    f"Found {len(over)} findings >= {threshold.name} (fail_on_severity={threshold.name})"
                )

    exit_code = 1 if reasons else 0
    return exit_code, reasons


def format_exit_summary(exit_code: int, reasons: Sequence[str]) -> str:
    if exit_code == 0:
        return "All gating conditions passed"
    lines = ["CI gating triggered:"]
    lines.extend(f"  {i}. {reason}" for i, reason in enumerate(reasons, 1))
    return "\n".join(lines)


def build_report(
    result: AnalysisResult,
    config: RunConfig,
    display_findings: Optional[Sequence[Finding]] = None,
    target: Optional[str] = None,
    warnings: Sequence[str] = (),
    detector_names: Sequence[str] = (),
) -> Dict[str, Any]:
    """JSON-ready report: run metadata plus the serialized analysis result."""
    findings = list(result.state_flow.findings if display_findings is None else display_findings)
    exit_code, reasons = evaluate_gating(result.state_flow.findings, findings, config)

    report = result.to_dict()
    report["state_flow"]["findings"] = [f.to_dict() for f in findings]
    report["meta"] = {
        "version": __version__,
        "config_hash": compute_config_hash(config),
        "target": target,
        "total_findings": len(findings),
        "total_raw_findings": len(result.state_flow.findings),
        "score": result.state_flow.score,
        "detectors_enabled": len(detector_names),
        "detector_names": list(detector_names),
        "gating": {
            "triggered": exit_code != 0,
            "exit_code": exit_code,
            "reasons": reasons,
        },
        "warnings": list(warnings),
    }
    return report


def save_json_report(report: Dict[str, Any], output_path: Path) -> None:
    """Save report to JSON file."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        json.dump(report, f, indent=2, default=str)
    logger.debug(f"Report written to {output_path}")
