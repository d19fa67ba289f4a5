"""
Base detector interface and helpers shared by the structural detectors.
"""
from __future__ import annotations

import fnmatch
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Iterator, List, Optional

from ..core.bodies import Body, extract_body
from ..core.models import (
    AnalysisContext,
    ContractUnit,
    CrossContractFlow,
    Finding,
    FunctionInfo,
    Severity,
    StateTransition,
)
from ..core.parser import blank_comments


class BaseDetector(ABC):
    """
    Abstract base class for structural detectors.

    Detectors read the already-built graph, transitions and flows of an
    ``AnalysisContext``; they never re-parse files on their own.
    """

    # Subclasses should define these
    name: str = "base_detector"
    description: str = "Base detector class"
    kind: str = ""
    severity: Severity = Severity.MEDIUM
    category: str = "unknown"
    cwe_id: Optional[str] = None
    confidence: float = 0.5
    recommendation: str = ""
    stability: str = "experimental"
    enabled_by_default: bool = True

    @abstractmethod
    def analyze(self, context: AnalysisContext) -> Iterator[Finding]:
        """
        Analyze the context and yield findings.

        Args:
            context: Units, graph, transitions and flows of one batch

        Yields:
            Finding objects for detected vulnerabilities
        """

    @classmethod
    def matches_selector(cls, selector: str) -> bool:
        """
        Check if this detector matches the given selector.

        Supports:
        - Exact name match: "reentrancy"
        - Glob patterns: "access_*", "*_call"
        - Category patterns: "category:delegatecall", "category:*"
        """
        if selector.startswith("category:"):
            category_pattern = selector[len("category:"):]
            if category_pattern == "*":
                return True
            return fnmatch.fnmatch(cls.category, category_pattern)

        if selector == cls.name:
            return True

        return fnmatch.fnmatch(cls.name, selector)

    @classmethod
    def get_metadata(cls) -> Dict[str, Any]:
        """Get detector metadata for introspection."""
        return {
            "name": cls.name,
            "description": cls.description,
            "kind": cls.kind,
            "category": cls.category,
            "severity": cls.severity.label,
            "confidence": cls.confidence,
            "stability": cls.stability,
            "enabled_by_default": cls.enabled_by_default,
            "cwe_id": cls.cwe_id,
        }

    def create_finding(
        self,
        location: str,
        contracts: Iterable[str],
        description: str,
        severity: Optional[Severity] = None,
        unit: Optional[ContractUnit] = None,
        line: Optional[int] = None,
        function_name: Optional[str] = None,
        evidence_flow: Optional[CrossContractFlow] = None,
        recommendation: Optional[str] = None,
    ) -> Finding:
        """Create a Finding carrying this detector's defaults."""
        return Finding(
            kind=self.kind,
            severity=severity or self.severity,
            involved_contracts=list(contracts),
            location=location,
            description=description,
            recommendation=recommendation or self.recommendation,
            evidence_flow=evidence_flow,
            detector=self.name,
            file=unit.id if unit is not None else None,
            line=line,
            function_name=function_name,
            confidence=self.confidence,
        )


def has_marker(modifiers: Iterable[str], markers: Iterable[str]) -> bool:
    """True when any modifier name contains one of the (lower-case) markers."""
    markers = tuple(markers)
    return any(marker in modifier.lower() for modifier in modifiers for marker in markers)


def function_of(unit: ContractUnit, transition: StateTransition) -> Optional[FunctionInfo]:
    """The function a transition was extracted from; overloads are told apart by line."""
    candidates = [f for f in unit.functions if f.name == transition.function_name and f.has_body]
    for func in candidates:
        if func.line == transition.line:
            return func
    return candidates[0] if candidates else None


def body_of(unit: ContractUnit, func: FunctionInfo) -> Optional[Body]:
    """Comment-blanked body span of a function, offsets matching the transition's calls."""
    if not func.has_body:
        return None
    return extract_body(blank_comments(unit.source), func.body_offset)


def worst_flow(flows: List[CrossContractFlow]) -> Optional[CrossContractFlow]:
    """Highest-risk flow; the first one wins ties."""
    worst = None
    for flow in flows:
        if worst is None or flow.reentrancy_risk.rank > worst.reentrancy_risk.rank:
            worst = flow
    return worst
