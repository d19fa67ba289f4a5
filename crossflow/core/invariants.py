"""
Protocol invariant checks over extracted state transitions.

Each check looks at naming conventions (``balances``, ``totalSupply``,
``shares``, ``reserve0``) and at the guards and modifiers recorded on each
transition. The checks are heuristics: an invariant reported with
``violated=False`` is one that exists and should be kept in mind, not one
that was proven to hold.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Sequence

from .grammar import GrammarProfile, SOLIDITY
from .models import ContractUnit, StateInvariant, StateTransition

logger = logging.getLogger(__name__)

# More distinct access-control modifiers than this across a batch is reported.
ACCESS_PATTERN_LIMIT = 3


def _mentions(transition: StateTransition, needle: str) -> bool:
    return any(needle in change.variable.lower() for change in transition.state_changes)


def _name_has(transition: StateTransition, *needles: str) -> bool:
    name = transition.function_name.lower()
    return any(needle in name for needle in needles)


class InvariantChecker:
    """Per-contract accounting invariants plus protocol-wide consistency checks."""

    def __init__(self, profile: GrammarProfile = SOLIDITY) -> None:
        self.profile = profile

    def check(self, units: Sequence[ContractUnit], transitions: Sequence[StateTransition]) -> List[StateInvariant]:
        by_unit: Dict[str, List[StateTransition]] = {}
        for transition in transitions:
            by_unit.setdefault(transition.contract_id, []).append(transition)

        invariants: List[StateInvariant] = []
        for unit in units:
            own = by_unit.get(unit.id, [])
            invariants.extend(self.balance_checks(unit, own))
            invariants.extend(self.supply_invariant(unit, own))
            invariants.extend(self.share_price(unit, own))
            invariants.extend(self.liquidity(unit, own))
        if len(units) > 1:
            invariants.extend(self.protocol_wide(units, by_unit))

        violated = sum(1 for i in invariants if i.violated)
        logger.debug(f"Checked {len(invariants)} invariants, {violated} possibly violated")
        return invariants

    def balance_checks(self, unit: ContractUnit, transitions: List[StateTransition]) -> List[StateInvariant]:
        names = [v.name.lower() for v in unit.state_variables]
        if not any("balance" in n or "total" in n for n in names):
            return []
        modifying = [t for t in transitions if _mentions(t, "balance")]
        unchecked = [t for t in modifying if not (t.guard_conditions or t.modifiers)]
        return [
            StateInvariant(
                description="Balance modifications should have checks",
                violated=bool(unchecked),
                contracts=[unit.name],
                impact="Incorrect balance tracking can lead to fund loss or protocol insolvency",
            )
        ]

    def supply_invariant(self, unit: ContractUnit, transitions: List[StateTransition]) -> List[StateInvariant]:
        """Mint and burn must move ``totalSupply`` and balances together."""
        names = [v.name.lower() for v in unit.state_variables]
        if not (any("totalsupply" in n for n in names) and any("balance" in n for n in names)):
            return []
        invariants = []
        for transition in transitions:
            if not _name_has(transition, "mint", "burn"):
                continue
            if _mentions(transition, "totalsupply") and _mentions(transition, "balance"):
                continue
            invariants.append(
                StateInvariant(
                    description=(
                        f"Function {transition.function_name} may break supply invariant "
                        f"(totalSupply = sum(balances))"
                    ),
                    violated=True,
                    contracts=[unit.name],
                    impact="Supply mismatch can lead to accounting errors and potential fund loss",
                )
            )
        return invariants

    def share_price(self, unit: ContractUnit, transitions: List[StateTransition]) -> List[StateInvariant]:
        is_vault = "vault" in unit.name.lower() or any("shares" in v.name.lower() for v in unit.state_variables)
        if not is_vault or not any(_name_has(t, "deposit", "withdraw") for t in transitions):
            return []
        protected = any(
            "shares" in guard.lower() and (">" in guard or "min" in guard.lower())
            for t in transitions
            for guard in t.guard_conditions
        )
        return [
            StateInvariant(
                description="Vault should protect against share price manipulation",
                violated=not protected,
                contracts=[unit.name],
                impact="Share price manipulation can enable inflation attacks or donation attacks",
            )
        ]

    def liquidity(self, unit: ContractUnit, transitions: List[StateTransition]) -> List[StateInvariant]:
        """Swap slippage protection and the constant-product reserve invariant."""
        lowered = unit.name.lower()
        is_pool = "pool" in lowered or "pair" in lowered or any(
            "reserve" in v.name.lower() for v in unit.state_variables
        )
        if not is_pool:
            return []

        invariants = []
        for transition in transitions:
            if not _name_has(transition, "swap"):
                continue
            guarded = any(
                "min" in g.lower() and ("amount" in g.lower() or "out" in g.lower())
                for g in transition.guard_conditions
            )
            if not guarded:
                invariants.append(
                    StateInvariant(
                        description=f"Swap function {transition.function_name} lacks slippage protection",
                        violated=True,
                        contracts=[unit.name],
                        impact="Users vulnerable to sandwich attacks and MEV exploitation",
                    )
                )

        updates_reserves = any(
            len([c for c in t.state_changes if "reserve" in c.variable.lower()]) >= 2 for t in transitions
        )
        if updates_reserves:
            # Not decidable from text; reported so the reserve math gets reviewed.
            invariants.append(
                StateInvariant(
                    description="AMM should maintain constant product invariant (k = reserve0 * reserve1)",
                    violated=False,
                    contracts=[unit.name],
                    impact="Breaking invariant can lead to value extraction and pool imbalance",
                )
            )
        return invariants

    def protocol_wide(
        self, units: Sequence[ContractUnit], by_unit: Dict[str, List[StateTransition]]
    ) -> List[StateInvariant]:
        invariants = []
        transferring = [
            unit.name
            for unit in units
            if any(t.external_calls and _name_has(t, "transfer", "send") for t in by_unit.get(unit.id, []))
        ]
        if len(transferring) >= 2:
            invariants.append(
                StateInvariant(
                    description="Multiple contracts perform external transfers - verify no circular dependencies",
                    violated=False,
                    contracts=transferring,
                    impact="Circular dependencies in transfers can lead to reentrancy or fund locking",
                )
            )

        markers = self.profile.access_control_markers
        patterns = {
            modifier
            for unit in units
            for t in by_unit.get(unit.id, [])
            for modifier in t.modifiers
            if any(marker in modifier.lower() for marker in markers)
        }
        if len(patterns) > ACCESS_PATTERN_LIMIT:
            invariants.append(
                StateInvariant(
                    description="Inconsistent access control patterns across contracts",
                    violated=True,
                    contracts=[unit.name for unit in units],
                    impact="Inconsistent access controls may create privilege escalation vectors",
                )
            )
        return invariants
