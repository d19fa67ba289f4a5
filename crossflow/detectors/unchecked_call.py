"""
Low-level calls whose success flag is thrown away.
"""
from __future__ import annotations

import re
from typing import Iterator

from ..core.bodies import line_of
from ..core.models import AnalysisContext, CallKind, Finding, Severity
from ..core.registry import register
from .base import BaseDetector, body_of, function_of

_LOW_LEVEL = (CallKind.CALL, CallKind.DELEGATECALL, CallKind.STATICCALL, CallKind.SEND)
# Result bound to a variable (``=``, ``:=``) or returned.
_USED = re.compile(r"(?::?=|\breturn)\s*$")
_CHECKED = re.compile(r"\b(?:require|assert|if|while)\s*\(")


def _statement_prefix(body: str, offset: int) -> str:
    """Text between the previous statement boundary and ``offset``."""
    start = offset
    while start > 0 and body[start - 1] not in ";{}":
        start -= 1
    return body[start:offset]


def is_checked(body: str, offset: int) -> bool:
    prefix = _statement_prefix(body, offset)
    return bool(_USED.search(prefix) or _CHECKED.search(prefix))


@register
class UncheckedCallDetector(BaseDetector):
    """Flags low-level call, delegatecall, staticcall and send results that are never used."""

    name = "unchecked_call"
    description = "Return value of a low-level call is not checked"
    kind = "Unchecked External Call Return Value"
    severity = Severity.MEDIUM
    category = "unchecked_calls"
    cwe_id = "CWE-252"
    confidence = 0.8
    recommendation = 'Always check return values of low-level calls, e.g. require(success, "Call failed").'

    def analyze(self, context: AnalysisContext) -> Iterator[Finding]:
        for transition in context.transitions:
            unit = context.unit(transition.contract_id)
            if unit is None:
                continue
            func = function_of(unit, transition)
            body = body_of(unit, func) if func is not None else None
            if body is None:
                continue

            for call in transition.external_calls:
                # A typed high-level call also has kind CALL but reverts on failure.
                if call.call_kind not in _LOW_LEVEL or call.callee_function_name:
                    continue
                if is_checked(body.text, call.offset):
                    continue
                yield self.create_finding(
                    location=transition.location,
                    contracts=[transition.owning_contract],
                    description=(
                        f"Low-level {call.call_kind.value} to {call.target_identifier} in "
                        f"{transition.location} does not check its return value and may fail silently."
                    ),
                    unit=unit,
                    line=line_of(unit.source, body.start + call.offset),
                    function_name=transition.function_name,
                )
