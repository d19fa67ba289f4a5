"""
State arithmetic that can wrap around.

Before Solidity 0.8 every ``+=`` and ``--`` silently overflows; from 0.8 on
only code inside ``unchecked { ... }`` does.
"""
from __future__ import annotations

import re
from typing import Iterator, List, Optional, Tuple

from ..core.bodies import extract_body
from ..core.models import AnalysisContext, Finding, Severity, StateOperation
from ..core.parser import blank_comments
from ..core.registry import register
from .base import BaseDetector, body_of, function_of

_PRAGMA = re.compile(r"\bpragma\s+solidity\s+([^;]+);")
_CONSTRAINT = re.compile(r"(\^|~|>=|<=|>|<|=)?\s*(\d+)\.(\d+)")
_UNCHECKED = re.compile(r"\bunchecked\s*\{")
_ARITHMETIC = (StateOperation.INCREMENT, StateOperation.DECREMENT)

CHECKED_SINCE = (0, 8)


def lowest_compiler_version(source: str) -> Optional[Tuple[int, int]]:
    """Lowest (major, minor) admitted by the file's pragmas, or None when unknown."""
    lower_bounds = []
    for pragma in _PRAGMA.finditer(blank_comments(source)):
        for op, major, minor in _CONSTRAINT.findall(pragma.group(1)):
            if op in ("<", "<="):
                continue
            lower_bounds.append((int(major), int(minor)))
    return min(lower_bounds) if lower_bounds else None


def unchecked_spans(body: str) -> List[Tuple[int, int]]:
    spans = []
    for match in _UNCHECKED.finditer(body):
        block = extract_body(body, match.end() - 1)
        if block is not None:
            spans.append((block.open_offset, block.close_offset))
    return spans


@register
class UncheckedArithmeticDetector(BaseDetector):
    """Flags increments and decrements of state that the compiler does not check."""

    name = "unchecked_arithmetic"
    description = "State variable incremented or decremented without overflow protection"
    kind = "Potential Integer Overflow/Underflow"
    severity = Severity.MEDIUM
    category = "arithmetic"
    cwe_id = "CWE-190"
    confidence = 0.5
    recommendation = "Use Solidity 0.8+ with built-in overflow checks or SafeMath library."

    def analyze(self, context: AnalysisContext) -> Iterator[Finding]:
        for transition in context.transitions:
            changes = [c for c in transition.state_changes if c.operation in _ARITHMETIC]
            if not changes or "safe" in transition.function_name.lower():
                continue
            unit = context.unit(transition.contract_id)
            if unit is None:
                continue

            version = lowest_compiler_version(unit.source)
            if version is not None and version >= CHECKED_SINCE:
                func = function_of(unit, transition)
                body = body_of(unit, func) if func is not None else None
                if body is None:
                    continue
                spans = unchecked_spans(body.text)
                changes = [
                    c for c in changes
                    if any(start < offset < end for offset in c.offsets for start, end in spans)
                ]
                if not changes:
                    continue

            variables = ", ".join(dict.fromkeys(c.variable for c in changes))
            yield self.create_finding(
                location=transition.location,
                contracts=[transition.owning_contract],
                description=(
                    f"{transition.location} increments or decrements {variables} "
                    f"without overflow protection."
                ),
                unit=unit,
                line=transition.line,
                function_name=transition.function_name,
            )
