"""
Reentrancy: an external call that hands control away before the function has
finished updating its own state.
"""
from __future__ import annotations

import re
from typing import Iterator

from ..core.models import AnalysisContext, CallPosition, Finding, RiskLevel, Severity
from ..core.registry import register
from .base import BaseDetector, has_marker, worst_flow

_MANUAL_GUARD = re.compile(r"!\s*_?(?:locked|reentrancyGuard)\b|_status\s*!=\s*_ENTERED", re.IGNORECASE)


@register
class ReentrancyDetector(BaseDetector):
    """Flags external calls positioned before the calling function's state changes."""

    name = "reentrancy"
    description = "External call made before the function updates its own state"
    kind = "Reentrancy"
    severity = Severity.HIGH
    category = "reentrancy"
    cwe_id = "CWE-841"
    confidence = 0.7
    stability = "stable"
    recommendation = (
        "Follow the checks-effects-interactions pattern: update state before external calls, "
        "or protect the function with a reentrancy guard."
    )

    def analyze(self, context: AnalysisContext) -> Iterator[Finding]:
        guards = context.profile.reentrancy_guards
        for transition in context.transitions:
            early_calls = [c for c in transition.external_calls if c.position == CallPosition.BEFORE]
            if not early_calls or not transition.state_changes:
                continue
            if has_marker(transition.modifiers, guards):
                continue
            if any(_MANUAL_GUARD.search(g) for g in transition.guard_conditions):
                continue

            flow = worst_flow(context.flows_from(transition))
            severity = Severity.CRITICAL if flow and flow.reentrancy_risk == RiskLevel.CRITICAL else self.severity
            contracts = [transition.owning_contract]
            if flow and flow.target_contract not in contracts:
                contracts.append(flow.target_contract)

            targets = ", ".join(dict.fromkeys(c.target_identifier for c in early_calls))
            variables = ", ".join(dict.fromkeys(c.variable for c in transition.state_changes))
            yield self.create_finding(
                location=transition.location,
                contracts=contracts,
                description=(
                    f"{transition.location} calls {targets} before updating {variables}; "
                    f"the callee can re-enter and observe stale state."
                ),
                severity=severity,
                unit=context.unit(transition.contract_id),
                line=transition.line,
                function_name=transition.function_name,
                evidence_flow=flow,
            )
