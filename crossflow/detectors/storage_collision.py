"""
Storage layout mismatch across a delegatecall edge.
"""
from __future__ import annotations

from typing import Iterator, List, Tuple

from ..core.models import AnalysisContext, ContractUnit, EdgeKind, Finding, Severity
from ..core.registry import register
from .base import BaseDetector

COMPARED_SLOTS = 3


def storage_signature(unit: ContractUnit) -> List[Tuple[str, str]]:
    return [(v.declared_type, v.name) for v in unit.storage_layout]


def layouts_differ(proxy: List[Tuple[str, str]], implementation: List[Tuple[str, str]]) -> bool:
    """Length mismatch, or a mismatch within the first slots."""
    if len(proxy) != len(implementation):
        return True
    return proxy[:COMPARED_SLOTS] != implementation[:COMPARED_SLOTS]


@register
class StorageCollisionDetector(BaseDetector):
    """Compares the storage layouts of both ends of every delegatecall edge."""

    name = "storage_collision"
    description = "Proxy and implementation storage layouts differ across a delegatecall"
    kind = "Delegatecall Storage Collision"
    severity = Severity.CRITICAL
    category = "delegatecall"
    cwe_id = "CWE-1321"
    confidence = 0.6
    recommendation = (
        "Ensure storage layouts match exactly. Use storage gaps in upgradeable contracts "
        "or unstructured storage slots for proxy variables."
    )

    def analyze(self, context: AnalysisContext) -> Iterator[Finding]:
        seen = set()
        for edge in context.graph.edges_of_kind(EdgeKind.DELEGATECALL):
            if (edge.source, edge.target) in seen:
                continue
            seen.add((edge.source, edge.target))

            proxy = context.graph.node(edge.source)
            implementation = context.graph.node(edge.target)
            if proxy is None or implementation is None:
                continue
            proxy_layout = storage_signature(proxy)
            implementation_layout = storage_signature(implementation)
            # Nothing to compare against an empty layout.
            if not proxy_layout or not implementation_layout:
                continue
            if not layouts_differ(proxy_layout, implementation_layout):
                continue

            yield self.create_finding(
                location=f"{proxy.name} -> {implementation.name}",
                contracts=[proxy.name, implementation.name],
                description=(
                    f"Storage layout mismatch between proxy ({proxy.name}, {len(proxy_layout)} slots) "
                    f"and implementation ({implementation.name}, {len(implementation_layout)} slots); "
                    f"implementation writes can overwrite proxy storage."
                ),
                unit=proxy,
            )
