"""
Identifier to declared-type resolution for one contract unit.

Three independent passes are unioned in order: typed state variables, locally
initialised typed variables, typed function parameters. A later pass silently
overwrites an earlier binding for the same identifier; conflicting candidates
are not reported.
"""
from __future__ import annotations

import logging
import re
from typing import Dict, FrozenSet, Iterator, Tuple

from .bodies import extract_body
from .grammar import GrammarProfile, SOLIDITY
from .models import ContractUnit
from .parser import blank_comments

logger = logging.getLogger(__name__)

_VALUE_TYPE_DECL = re.compile(r"\b(?:struct|enum)\s+([A-Za-z_]\w*)\s*\{")


class TypeResolver:
    """Maps identifiers used in a unit to user-defined type names."""

    def __init__(self, profile: GrammarProfile = SOLIDITY) -> None:
        self.profile = profile

    def resolve(self, unit: ContractUnit) -> Dict[str, str]:
        bindings: Dict[str, str] = {}
        for pass_ in (self._state_variable_types, self._local_variable_types, self._parameter_types):
            for identifier, type_name in pass_(unit):
                bound = self._bindable(type_name)
                if bound:
                    bindings[identifier] = bound
        logger.debug(f"Resolved {len(bindings)} typed identifiers in {unit.name}")
        return bindings

    def _bindable(self, type_name: str) -> str:
        """Element type name for non-primitive types, else empty string."""
        element = re.sub(r"\s*\[[^\]]*\]", "", type_name or "").strip()
        if not element or self.profile.is_primitive(element) or element in self.profile.reserved_words:
            return ""
        if not re.match(r"^[A-Za-z_][\w.]*$", element):
            return ""
        return element

    def _state_variable_types(self, unit: ContractUnit) -> Iterator[Tuple[str, str]]:
        for var in unit.state_variables:
            yield var.name, var.declared_type

    def _local_variable_types(self, unit: ContractUnit) -> Iterator[Tuple[str, str]]:
        text = blank_comments(unit.source)
        for func in unit.functions:
            if not func.has_body:
                continue
            body = extract_body(text, func.body_offset)
            if body is None:
                continue
            for match in self.profile.typed_local_init.finditer(body.text):
                type_name, identifier = match.group(1), match.group(2)
                if type_name in self.profile.reserved_words or identifier in self.profile.reserved_words:
                    continue
                yield identifier, type_name

    def _parameter_types(self, unit: ContractUnit) -> Iterator[Tuple[str, str]]:
        for func in unit.functions:
            for type_name, identifier in func.parameters:
                if identifier:
                    yield identifier, type_name

    def value_types(self, unit: ContractUnit) -> FrozenSet[str]:
        """Struct and enum names declared in the unit's source."""
        return frozenset(m.group(1) for m in _VALUE_TYPE_DECL.finditer(blank_comments(unit.source)))
