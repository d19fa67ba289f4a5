"""
Dependency graph construction.

Each unit is scanned with seven independent patterns (import, call and
staticcall sites, delegatecall sites, instantiation, typed local declaration,
inheritance, library use). Every referenced identifier is resolved to another
unit of the batch; identifiers that resolve nowhere are kept as
``UnresolvedReference`` metadata and never become edges.
"""
from __future__ import annotations

import logging
import re
from bisect import bisect_right
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterator, List, Optional, Sequence

from .bodies import extract_body
from .calls import classify, is_untrusted_target, scan_call_sites
from .grammar import GrammarProfile, SOLIDITY
from .graph_analysis import DEFAULT_DEGREE_THRESHOLD, compute_metrics
from .models import (
    CallKind,
    ContractUnit,
    DependencyEdge,
    DependencyGraph,
    EdgeKind,
    RiskLevel,
    UnresolvedReference,
)
from .parser import base_name, blank_comments
from .type_resolver import TypeResolver

logger = logging.getLogger(__name__)

RISK_BY_KIND: Dict[EdgeKind, RiskLevel] = {
    EdgeKind.DELEGATECALL: RiskLevel.CRITICAL,
    EdgeKind.CALL: RiskLevel.MEDIUM,
    EdgeKind.STATICCALL: RiskLevel.MEDIUM,
    EdgeKind.IMPORT: RiskLevel.LOW,
    EdgeKind.INHERIT: RiskLevel.LOW,
    EdgeKind.LIBRARY: RiskLevel.LOW,
    EdgeKind.CREATE: RiskLevel.LOW,
}

_DESCRIPTIONS: Dict[EdgeKind, str] = {
    EdgeKind.IMPORT: "Import dependency",
    EdgeKind.CALL: "External call - potential reentrancy risk",
    EdgeKind.STATICCALL: "Static call - read-only dependency",
    EdgeKind.DELEGATECALL: "Delegatecall - storage collision risk",
    EdgeKind.CREATE: "Creates instance of contract",
    EdgeKind.INHERIT: "Inherits from contract",
    EdgeKind.LIBRARY: "Uses library",
}

_EDGE_BY_CALL_KIND: Dict[CallKind, EdgeKind] = {
    CallKind.CALL: EdgeKind.CALL,
    CallKind.TRANSFER: EdgeKind.CALL,
    CallKind.SEND: EdgeKind.CALL,
    CallKind.STATICCALL: EdgeKind.STATICCALL,
    CallKind.DELEGATECALL: EdgeKind.DELEGATECALL,
}


@dataclass(frozen=True)
class Reference:
    """A raw cross-unit reference found by one scan, before resolution."""
    kind: EdgeKind
    identifier: str
    type_name: Optional[str] = None
    is_untrusted: bool = False
    description: str = ""


class DependencyGraphBuilder:
    """Builds nodes, typed edges and unresolved-reference metadata for one batch."""

    def __init__(self, profile: GrammarProfile = SOLIDITY) -> None:
        self.profile = profile
        self._type_resolver = TypeResolver(profile)

    def build(
        self,
        units: Sequence[ContractUnit],
        bindings: Optional[Dict[str, Dict[str, str]]] = None,
        degree_threshold: int = DEFAULT_DEGREE_THRESHOLD,
    ) -> DependencyGraph:
        units = list(units)
        if bindings is None:
            bindings = {unit.id: self._type_resolver.resolve(unit) for unit in units}

        graph = DependencyGraph(nodes=units)
        for unit in units:
            for reference in self.references(unit, bindings.get(unit.id, {})):
                target = self.resolve(reference, unit, units)
                if target is None:
                    graph.unresolved.append(UnresolvedReference(unit.id, reference.identifier, reference.kind))
                    continue
                graph.edges.append(
                    DependencyEdge(
                        source=unit.id,
                        target=target.id,
                        kind=reference.kind,
                        risk_level=RISK_BY_KIND[reference.kind],
                        is_untrusted=reference.is_untrusted,
                        description=reference.description or _DESCRIPTIONS[reference.kind],
                    )
                )

        graph.metrics = compute_metrics(graph, degree_threshold)
        logger.info(
            f"Dependency graph: {len(graph.nodes)} contracts, {len(graph.edges)} edges, "
            f"{len(graph.unresolved)} unresolved references"
        )
        return graph

    # Scans

    def references(self, unit: ContractUnit, bindings: Dict[str, str]) -> Iterator[Reference]:
        """All raw references of one unit, scan by scan."""
        text = blank_comments(unit.source)
        yield from self._imports(text)
        yield from self._call_sites(unit, text, bindings)
        yield from self._instantiations(text)
        yield from self._typed_locals(text, self._type_resolver.value_types(unit))
        yield from self._inheritance(unit)
        yield from self._library_uses(text)

    def _imports(self, text: str) -> Iterator[Reference]:
        for match in self.profile.import_stmt.finditer(text):
            yield Reference(EdgeKind.IMPORT, match.group(1))

    def _call_sites(self, unit: ContractUnit, text: str, bindings: Dict[str, str]) -> Iterator[Reference]:
        """Call, staticcall, transfer, send and delegatecall sites (member and assembly forms)."""
        spans = self._function_spans(unit, text)
        starts = [span[0] for span in spans]
        value_types = self._type_resolver.value_types(unit)

        for site in scan_call_sites(text, self.profile):
            shape = classify(site, bindings, self.profile, value_types)
            if shape is None:
                continue
            parameters: List[str] = []
            index = bisect_right(starts, site.offset) - 1
            if index >= 0 and site.offset <= spans[index][1]:
                parameters = spans[index][2]
            kind = _EDGE_BY_CALL_KIND[shape.kind]
            yield Reference(
                kind=kind,
                identifier=site.root or site.target.split("(")[0],
                type_name=shape.resolved_type,
                is_untrusted=is_untrusted_target(site, parameters, self.profile),
                description=f"Calls {shape.callee_function}" if shape.callee_function else "",
            )

    def _function_spans(self, unit: ContractUnit, text: str) -> List[tuple]:
        spans = []
        for func in unit.functions:
            if not func.has_body:
                continue
            body = extract_body(text, func.body_offset)
            if body is not None:
                spans.append((body.open_offset, body.close_offset, func.parameter_names))
        return sorted(spans, key=lambda span: span[0])

    def _instantiations(self, text: str) -> Iterator[Reference]:
        for match in self.profile.new_expr.finditer(text):
            name = match.group(1)
            if not self.profile.is_primitive(name):
                yield Reference(EdgeKind.CREATE, name)

    def _typed_locals(self, text: str, value_types: FrozenSet[str]) -> Iterator[Reference]:
        for match in self.profile.typed_local_cast.finditer(text):
            type_name = match.group(1)
            if self.profile.is_primitive(type_name) or type_name in self.profile.reserved_words:
                continue
            if type_name in self.profile.variable_qualifiers:
                continue
            if type_name in value_types:
                continue
            yield Reference(EdgeKind.CALL, type_name, description="Uses contract interface")

    def _inheritance(self, unit: ContractUnit) -> Iterator[Reference]:
        for parent in unit.inherits:
            yield Reference(EdgeKind.INHERIT, parent)

    def _library_uses(self, text: str) -> Iterator[Reference]:
        for match in self.profile.using_stmt.finditer(text):
            yield Reference(EdgeKind.LIBRARY, match.group(1))

    # Resolution

    def resolve(
        self, reference: Reference, source: ContractUnit, units: Sequence[ContractUnit]
    ) -> Optional[ContractUnit]:
        """
        First hit wins, never the source unit:

        1. the type binding by exact name;
        2. the raw identifier by exact name (unit name or file stem);
        3. the identifier as a path substring, on identifier boundaries;
        4. a ``contract|interface|library Name`` declaration in another unit's text.
        """
        others = [unit for unit in units if unit.id != source.id]
        identifier = reference.identifier.strip()
        if not identifier and not reference.type_name:
            return None
        name = base_name(identifier) if reference.kind == EdgeKind.IMPORT else identifier

        if reference.type_name:
            hit = self._by_exact_name(reference.type_name, others)
            if hit is not None:
                return hit
        hit = self._by_exact_name(name, others) or self._by_path(identifier, others)
        if hit is not None:
            return hit
        for candidate in (reference.type_name, name):
            if candidate:
                hit = self._by_declaration(candidate, others)
                if hit is not None:
                    return hit
        return None

    @staticmethod
    def _by_exact_name(name: str, units: Sequence[ContractUnit]) -> Optional[ContractUnit]:
        for unit in units:
            if unit.name == name or base_name(unit.id) == name:
                return unit
        return None

    @staticmethod
    def _by_path(identifier: str, units: Sequence[ContractUnit]) -> Optional[ContractUnit]:
        needle = re.sub(r"^(?:\.{1,2}/)+", "", identifier)
        if not needle:
            return None
        pattern = re.compile(r"(?<![\w])" + re.escape(needle) + r"(?![\w])")
        for unit in units:
            if pattern.search(unit.id):
                return unit
        return None

    @staticmethod
    def _by_declaration(name: str, units: Sequence[ContractUnit]) -> Optional[ContractUnit]:
        if not re.match(r"^[A-Za-z_]\w*$", name):
            return None
        pattern = re.compile(r"\b(?:contract|interface|library)\s+" + re.escape(name) + r"\b")
        for unit in units:
            if pattern.search(unit.source):
                return unit
        return None
