"""
Public entry points that make state-changing external calls with no access control.
"""
from __future__ import annotations

from typing import Iterator

from ..core.models import AnalysisContext, CallKind, Finding, Severity
from ..core.registry import register
from .base import BaseDetector, function_of, has_marker

_ENTRY_VISIBILITY = ("public", "external")
_READ_ONLY = ("view", "pure")
_NOT_CALLABLE = ("constructor",)


@register
class AccessControlDetector(BaseDetector):
    """Flags unrestricted public or external functions that call out."""

    name = "access_control"
    description = "Public function makes external calls without access control"
    kind = "Missing Access Control on External Call"
    severity = Severity.HIGH
    category = "access_control"
    cwe_id = "CWE-284"
    confidence = 0.5
    recommendation = (
        "Add access control modifiers (e.g. onlyOwner) or require checks on msg.sender "
        "to functions making external calls."
    )

    def analyze(self, context: AnalysisContext) -> Iterator[Finding]:
        profile = context.profile
        for transition in context.transitions:
            if transition.visibility not in _ENTRY_VISIBILITY or transition.function_name in _NOT_CALLABLE:
                continue
            unit = context.unit(transition.contract_id)
            func = function_of(unit, transition) if unit is not None else None
            if func is not None and func.state_mutability in _READ_ONLY:
                continue

            calls = [
                c for c in transition.external_calls
                if c.call_kind != CallKind.STATICCALL and not profile.is_sender(c.target_identifier)
            ]
            if not calls:
                continue
            if has_marker(transition.modifiers, profile.access_control_markers):
                continue
            if any(self._checks_sender(g, profile.sender_expressions) for g in transition.guard_conditions):
                continue

            targets = ", ".join(dict.fromkeys(c.target_identifier for c in calls))
            yield self.create_finding(
                location=transition.location,
                contracts=[transition.owning_contract],
                description=(
                    f"Anyone can call {transition.location}, which calls {targets} "
                    f"without an access-control modifier or sender check."
                ),
                unit=unit,
                line=transition.line,
                function_name=transition.function_name,
            )

    @staticmethod
    def _checks_sender(condition: str, sender_expressions) -> bool:
        compact = condition.replace(" ", "")
        return any(expr in compact for expr in sender_expressions)
