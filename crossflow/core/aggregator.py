"""
Finding aggregation: normalization, deduplication, ranking and scoring.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .models import CriticalPath, Finding, Severity, StateInvariant

logger = logging.getLogger(__name__)

DEDUP_PER_DETECTOR = "per-detector"
DEDUP_GLOBAL = "global"
DEDUP_POLICIES = (DEDUP_PER_DETECTOR, DEDUP_GLOBAL)

_IDENTIFIER = re.compile(r"[A-Za-z_]\w*")


@dataclass
class AggregateResult:
    findings: List[Finding] = field(default_factory=list)
    score: int = 0
    severity_counts: Dict[str, int] = field(default_factory=dict)


def contracts_from_location(location: str) -> List[str]:
    """``Vault::withdraw`` -> ``[Vault]``; ``A -> B`` -> ``[A, B]``."""
    contracts = []
    for part in re.split(r"\s*->\s*", location or ""):
        match = _IDENTIFIER.match(part.split("::", 1)[0].strip())
        if match and match.group(0) not in contracts:
            contracts.append(match.group(0))
    return contracts


def location_from_parts(finding: Finding) -> str:
    if finding.involved_contracts and finding.function_name:
        return f"{finding.involved_contracts[0]}::{finding.function_name}"
    if finding.involved_contracts:
        return " -> ".join(finding.involved_contracts)
    if finding.file:
        return f"{finding.file}:{finding.line}" if finding.line else finding.file
    return ""


def rank_key(finding: Finding):
    return (-int(finding.severity), finding.location, finding.kind, finding.detector)


def score_findings(findings: Iterable[Finding]) -> int:
    return sum(f.severity.weight for f in findings)


def count_by_severity(findings: Iterable[Finding]) -> Dict[str, int]:
    counts = {severity.label: 0 for severity in sorted(Severity, reverse=True)}
    for finding in findings:
        counts[finding.severity.label] += 1
    return counts


class VulnerabilityAggregator:
    """Merges structural and externally supplied findings into one ranked list.

    Deduplication always runs within each detector's own output. With the
    ``global`` policy, structurally identical findings reported by different
    detectors are also collapsed, keeping the first one in ranked order.
    """

    def __init__(self, dedup_policy: str = DEDUP_PER_DETECTOR):
        if dedup_policy not in DEDUP_POLICIES:
            raise ValueError(f"Unknown dedup policy: {dedup_policy}")
        self.dedup_policy = dedup_policy

    def aggregate(
        self,
        structural: Iterable[Finding],
        external: Optional[Mapping[str, Iterable[Finding]]] = None,
    ) -> AggregateResult:
        collected = [self.normalize(f) for f in structural]
        for detector_name in sorted(external or {}):
            for finding in external[detector_name]:
                collected.append(self.normalize(replace(finding, detector=detector_name)))

        findings = sorted(self._dedup_per_detector(collected), key=rank_key)
        if self.dedup_policy == DEDUP_GLOBAL:
            findings = self._dedup_global(findings)

        result = AggregateResult(
            findings=findings,
            score=score_findings(findings),
            severity_counts=count_by_severity(findings),
        )
        logger.info(f"Aggregated {len(collected)} findings into {len(findings)} (score {result.score})")
        return result

    @staticmethod
    def normalize(finding: Finding) -> Finding:
        """Fill ``involved_contracts`` from the location, or the location from its parts."""
        if not finding.involved_contracts and finding.location:
            finding = replace(finding, involved_contracts=contracts_from_location(finding.location))
        if not finding.location:
            finding = replace(finding, location=location_from_parts(finding))
        return finding

    @staticmethod
    def _dedup_per_detector(findings: Sequence[Finding]) -> List[Finding]:
        seen = set()
        unique = []
        for finding in findings:
            key = (finding.detector,) + finding.dedup_key
            if key in seen:
                continue
            seen.add(key)
            unique.append(finding)
        return unique

    @staticmethod
    def _dedup_global(findings: Sequence[Finding]) -> List[Finding]:
        seen = set()
        unique = []
        for finding in findings:
            if finding.dedup_key in seen:
                logger.debug(f"Merged duplicate {finding.kind} at {finding.location} from {finding.detector}")
                continue
            seen.add(finding.dedup_key)
            unique.append(finding)
        return unique


def recommendations(
    findings: Sequence[Finding],
    critical_paths: Sequence[CriticalPath] = (),
    invariants: Sequence[StateInvariant] = (),
) -> List[str]:
    """Summary advice lines for a finished analysis."""
    by_kind: Dict[str, int] = {}
    for finding in findings:
        by_kind[finding.kind] = by_kind.get(finding.kind, 0) + 1

    lines = []
    reentrancy = by_kind.get("Reentrancy", 0)
    if reentrancy:
        lines.append(
            f"Found {reentrancy} potential reentrancy issues. Consider using ReentrancyGuard "
            "and following checks-effects-interactions pattern."
        )
    access = by_kind.get("Missing Access Control on External Call", 0)
    if access:
        lines.append(
            f"Found {access} functions without access control. Add appropriate modifiers to restrict access."
        )
    delegate = by_kind.get("Delegatecall to Non-Constant Target", 0) + by_kind.get("Delegatecall Storage Collision", 0)
    if delegate:
        lines.append(
            f"Found {delegate} delegatecall issues. Pin delegatecall targets and keep proxy and "
            "implementation storage layouts identical."
        )
    unchecked = by_kind.get("Unchecked External Call Return Value", 0)
    if unchecked:
        lines.append(f"Found {unchecked} unchecked low-level calls. Check every returned success flag.")
    arithmetic = by_kind.get("Potential Integer Overflow/Underflow", 0)
    if arithmetic:
        lines.append(
            f"Found {arithmetic} functions with unchecked arithmetic on state. "
            "Use Solidity 0.8+ checked arithmetic or SafeMath."
        )
    if critical_paths:
        lines.append(
            f"Identified {len(critical_paths)} critical execution paths. "
            "Review these carefully for security implications."
        )
    violated = [i for i in invariants if i.violated]
    if violated:
        lines.append(
            f"{len(violated)} protocol invariants may be violated. "
            "Ensure state consistency across all operations."
        )
    return lines
