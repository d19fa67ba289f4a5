"""
Cross-contract flow analysis.

Each external call of each transition is resolved to a callee unit and paired
with the caller's state changes around the call and the callee function's own
state changes. The pairing drives the reentrancy-risk classification.
"""
from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .models import (
    CallKind,
    ContractUnit,
    CrossContractFlow,
    ExternalCall,
    RiskLevel,
    StateChange,
    StateTransition,
)
from .parser import base_name

logger = logging.getLogger(__name__)

_ROOT = re.compile(r"[A-Za-z_]\w*")


def classify_risk(
    before_call: List[StateChange],
    in_target: List[StateChange],
    after_call: List[StateChange],
    call_kind: CallKind,
) -> RiskLevel:
    """Reentrancy risk of one flow; the first matching rule wins."""
    if after_call and in_target:
        return RiskLevel.CRITICAL
    if after_call:
        return RiskLevel.HIGH
    if call_kind == CallKind.DELEGATECALL:
        return RiskLevel.HIGH
    if before_call and not after_call:
        return RiskLevel.LOW
    return RiskLevel.MEDIUM


def partition_changes(changes: Iterable[StateChange], offset: int) -> Tuple[List[StateChange], List[StateChange]]:
    """Split a caller's changes into those occurring before and after a call offset.

    A change with occurrences on both sides lands in both lists.
    """
    before, after = [], []
    for change in changes:
        if any(o < offset for o in change.offsets):
            before.append(change)
        if any(o > offset for o in change.offsets):
            after.append(change)
    return before, after


class CrossContractFlowAnalyzer:
    """Derives ``CrossContractFlow`` records from transitions of a whole batch."""

    def analyze(
        self,
        units: Sequence[ContractUnit],
        transitions: Sequence[StateTransition],
        bindings: Optional[Dict[str, Dict[str, str]]] = None,
    ) -> List[CrossContractFlow]:
        bindings = bindings or {}
        by_function: Dict[Tuple[str, str], StateTransition] = {}
        for transition in transitions:
            by_function.setdefault((transition.contract_id, transition.function_name), transition)

        flows = []
        for transition in transitions:
            for call in transition.external_calls:
                callee = self.resolve_callee(call, transition, units, bindings.get(transition.contract_id, {}))
                if callee is None:
                    continue
                flows.append(self._flow(transition, call, callee, by_function))

        logger.debug(f"Derived {len(flows)} cross-contract flows")
        return flows

    def resolve_callee(
        self,
        call: ExternalCall,
        caller: StateTransition,
        units: Sequence[ContractUnit],
        caller_bindings: Dict[str, str],
    ) -> Optional[ContractUnit]:
        """Callee unit via the call's resolved type, then the caller's bindings for the target root."""
        candidates = []
        if call.resolved_target_type:
            candidates.append(call.resolved_target_type)
        root = _ROOT.match(call.target_identifier or "")
        if root and root.group(0) in caller_bindings:
            candidates.append(caller_bindings[root.group(0)])

        for type_name in candidates:
            for unit in units:
                if unit.id == caller.contract_id:
                    continue
                if unit.name == type_name or base_name(unit.id) == type_name:
                    return unit
        return None

    def _flow(
        self,
        caller: StateTransition,
        call: ExternalCall,
        callee: ContractUnit,
        by_function: Dict[Tuple[str, str], StateTransition],
    ) -> CrossContractFlow:
        before, after = partition_changes(caller.state_changes, call.offset)
        in_target: List[StateChange] = []
        if call.callee_function_name:
            target = by_function.get((callee.id, call.callee_function_name))
            if target is not None:
                in_target = list(target.state_changes)

        return CrossContractFlow(
            source_contract=caller.owning_contract,
            source_function=caller.function_name,
            target_contract=callee.name,
            target_function=call.callee_function_name or "",
            before_call=before,
            in_target=in_target,
            after_call=after,
            reentrancy_risk=classify_risk(before, in_target, after, call.call_kind),
            call_kind=call.call_kind,
        )
