"""
State transition extraction.

For every function with a body, the extractor records which state variables
are mutated (and how), which external calls are made and where they sit
relative to those mutations, which events are emitted and which guard
conditions are checked.

Call position is an offset heuristic over the body text: a call that precedes
every state-change occurrence is ``before``, one that follows all of them is
``after``. Branches and loops are not modelled.
"""
from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Optional, Pattern, Tuple

from .bodies import extract_body, match_parens, split_top_level
from .calls import classify, is_untrusted_target, scan_call_sites
from .grammar import GrammarProfile, SOLIDITY
from .models import (
    CallPosition,
    ContractUnit,
    CriticalPath,
    ExternalCall,
    FunctionInfo,
    RiskLevel,
    StateChange,
    StateOperation,
    StateTransition,
)
from .parser import blank_comments
from .type_resolver import TypeResolver

logger = logging.getLogger(__name__)

# One level of nested brackets is enough for ``balances[ids[i]]``.
_INDEX = r"(?:\s*\[(?:[^\[\]]|\[[^\[\]]*\])*\])*"
_MEMBER = r"(?:\s*\.\s*[A-Za-z_]\w*" + _INDEX + r")*"
_REVERT_AFTER_IF = re.compile(r"\s*\{?\s*revert\b")


def _mutation_patterns(name: str) -> List[Tuple[StateOperation, Pattern[str]]]:
    """Compiled shape tests for one state variable, in reporting order."""
    target = r"(?<![\w.])" + re.escape(name) + r"(?![\w])" + _INDEX + _MEMBER
    return [
        (StateOperation.SET, re.compile(target + r"\s*(?:[*/%|&^]|<<|>>)?=(?!=)")),
        (StateOperation.INCREMENT, re.compile(target + r"\s*(?:\+\+|\+=)|\+\+\s*" + target)),
        (StateOperation.DECREMENT, re.compile(target + r"\s*(?:--|-=)|--\s*" + target)),
        (StateOperation.DELETE, re.compile(r"\bdelete\s+" + target)),
        (StateOperation.PUSH, re.compile(target + r"\s*\.\s*push\s*\(")),
        (StateOperation.POP, re.compile(target + r"\s*\.\s*pop\s*\(")),
    ]


def _normalize(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


class StateTransitionExtractor:
    """Builds one ``StateTransition`` per function body of a unit."""

    def __init__(self, profile: GrammarProfile = SOLIDITY) -> None:
        self.profile = profile
        self._type_resolver = TypeResolver(profile)

    def extract(self, unit: ContractUnit, bindings: Optional[Dict[str, str]] = None) -> List[StateTransition]:
        if bindings is None:
            bindings = self._type_resolver.resolve(unit)
        value_types = self._type_resolver.value_types(unit)
        patterns = [
            (var.name, _mutation_patterns(var.name))
            for var in unit.state_variables
            if not var.is_constant
        ]
        text = blank_comments(unit.source)

        transitions = []
        for func in unit.functions:
            if not func.has_body:
                continue
            body = extract_body(text, func.body_offset)
            if body is None:
                continue
            transitions.append(self._transition(unit, func, body.text, patterns, bindings, value_types))

        logger.debug(f"Extracted {len(transitions)} state transitions from {unit.name}")
        return transitions

    def _transition(
        self,
        unit: ContractUnit,
        func: FunctionInfo,
        body: str,
        patterns: List[Tuple[str, List[Tuple[StateOperation, Pattern[str]]]]],
        bindings: Dict[str, str],
        value_types: Iterable[str],
    ) -> StateTransition:
        changes = self.state_changes(body, patterns)
        return StateTransition(
            owning_contract=unit.name,
            function_name=func.name,
            contract_id=unit.id,
            visibility=func.visibility,
            modifiers=list(func.modifiers),
            state_changes=changes,
            external_calls=self.external_calls(body, changes, func, bindings, value_types),
            emitted_events=[m.group(1) for m in self.profile.event_emit.finditer(body)],
            guard_conditions=self.guard_conditions(body),
            line=func.line,
        )

    @staticmethod
    def state_changes(
        body: str, patterns: List[Tuple[str, List[Tuple[StateOperation, Pattern[str]]]]]
    ) -> List[StateChange]:
        """One change per (variable, shape) carrying every occurrence offset."""
        changes = []
        for name, shapes in patterns:
            for operation, pattern in shapes:
                offsets = [m.start() for m in pattern.finditer(body)]
                if offsets:
                    changes.append(StateChange(name, operation, offsets))
        return changes

    def external_calls(
        self,
        body: str,
        changes: List[StateChange],
        func: FunctionInfo,
        bindings: Dict[str, str],
        value_types: Iterable[str] = (),
    ) -> List[ExternalCall]:
        value_types = frozenset(value_types)
        calls = []
        for site in scan_call_sites(body, self.profile):
            shape = classify(site, bindings, self.profile, value_types)
            if shape is None:
                continue
            calls.append(
                ExternalCall(
                    target_identifier=site.target,
                    call_kind=shape.kind,
                    position=call_position(site.offset, changes),
                    resolved_target_type=shape.resolved_type,
                    callee_function_name=shape.callee_function,
                    offset=site.offset,
                    is_untrusted=is_untrusted_target(site, func.parameter_names, self.profile),
                )
            )
        return calls

    def guard_conditions(self, body: str) -> List[str]:
        """``require``/``assert`` conditions, then ``if (...) revert`` conditions negated."""
        guards = []
        for match in self.profile.guard_call.finditer(body):
            inner, _close = match_parens(body, match.end() - 1)
            arguments = split_top_level(inner)
            if arguments:
                guards.append(_normalize(arguments[0]))
        for match in self.profile.revert_guard.finditer(body):
            inner, close = match_parens(body, match.end() - 1)
            if _REVERT_AFTER_IF.match(body, close + 1):
                guards.append(f"!({_normalize(inner)})")
        return guards


def call_position(offset: int, changes: List[StateChange]) -> CallPosition:
    """Position of a call relative to its own function's state-change occurrences."""
    offsets = [o for change in changes for o in change.offsets]
    if not offsets:
        return CallPosition.DURING
    if offset < min(offsets):
        return CallPosition.BEFORE
    if offset > max(offsets):
        return CallPosition.AFTER
    return CallPosition.DURING


def critical_paths(transitions: Iterable[StateTransition]) -> List[CriticalPath]:
    """Functions that both mutate state and call out."""
    paths = []
    for transition in transitions:
        if not (transition.state_changes and transition.external_calls):
            continue
        paths.append(
            CriticalPath(
                path=[transition.owning_contract, transition.function_name]
                + [call.target_identifier for call in transition.external_calls],
                description=f"Function {transition.function_name} modifies state and makes external calls",
                risk=RiskLevel.HIGH,
                impact="State can be manipulated through reentrancy or unexpected external behavior",
            )
        )
    return paths
