"""
Delegatecall to a target that is not pinned by a constant or immutable.
"""
from __future__ import annotations

import re
from typing import Iterator

from ..core.models import AnalysisContext, CallKind, Finding, Severity
from ..core.registry import register
from .base import BaseDetector

_ROOT = re.compile(r"[A-Za-z_]\w*")


@register
class DelegatecallTargetDetector(BaseDetector):
    """Delegatecalls whose target can change after deployment, or is caller-supplied."""

    name = "delegatecall_target"
    description = "Delegatecall target is not a constant or immutable state variable"
    kind = "Delegatecall to Non-Constant Target"
    severity = Severity.HIGH
    category = "delegatecall"
    cwe_id = "CWE-829"
    confidence = 0.6
    recommendation = (
        "Delegatecall only into trusted, fixed implementations; never let callers choose the target."
    )

    def analyze(self, context: AnalysisContext) -> Iterator[Finding]:
        for transition in context.transitions:
            unit = context.unit(transition.contract_id)
            for call in transition.external_calls:
                if call.call_kind != CallKind.DELEGATECALL:
                    continue
                root = _ROOT.match(call.target_identifier or "")
                root_name = root.group(0) if root else ""
                if root_name == "this":
                    continue
                variable = unit.state_variable(root_name) if unit is not None and root_name else None
                if variable is not None and (variable.is_constant or variable.is_immutable):
                    continue

                if call.is_untrusted:
                    severity = Severity.CRITICAL
                    origin = "a caller-supplied address"
                else:
                    severity = self.severity
                    origin = "a mutable address"
                yield self.create_finding(
                    location=transition.location,
                    contracts=[transition.owning_contract],
                    description=(
                        f"{transition.location} delegatecalls into {call.target_identifier}, {origin}; "
                        f"the callee runs with this contract's storage."
                    ),
                    severity=severity,
                    unit=unit,
                    line=transition.line,
                    function_name=transition.function_name,
                )
