"""
Analysis engine wiring every stage for one batch of source files.

The engine is an explicit value owned by the caller. It holds configuration
and the selected detectors, never analysis state, so one instance can run any
number of independent batches.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from ..config.schema import RunConfig
from ..detectors import load_detectors
from .aggregator import VulnerabilityAggregator, recommendations
from .cross_contract import CrossContractFlowAnalyzer
from .grammar import get_profile
from .graph import DependencyGraphBuilder
from .invariants import InvariantChecker
from .models import AnalysisContext, AnalysisResult, ContractUnit, Finding, SourceFile, StateFlowResult
from .parser import StructuralExtractor
from .registry import DetectorOrchestrator
from .state_flow import StateTransitionExtractor, critical_paths
from .type_resolver import TypeResolver

logger = logging.getLogger(__name__)

SourceInput = Union[SourceFile, Tuple[str, str, str]]


def as_source_file(item: SourceInput) -> SourceFile:
    if isinstance(item, SourceFile):
        return item
    name, path, content = item
    return SourceFile(name=name, path=path, content=content)


class AnalysisEngine:
    """Runs extraction, graph building, state flow, detectors and aggregation."""

    def __init__(self, config: Optional[RunConfig] = None, detectors: Optional[Sequence[Any]] = None) -> None:
        self.config = config or RunConfig()
        self.profile = get_profile(self.config.analysis.grammar)
        self.warnings: List[str] = []
        if detectors is None:
            detectors, self.warnings, _explanation = load_detectors(self.config)
        self.detectors = list(detectors)

        self.extractor = StructuralExtractor(self.profile)
        self.type_resolver = TypeResolver(self.profile)
        self.graph_builder = DependencyGraphBuilder(self.profile)
        self.transition_extractor = StateTransitionExtractor(self.profile)
        self.flow_analyzer = CrossContractFlowAnalyzer()
        self.invariant_checker = InvariantChecker(self.profile)
        self.aggregator = VulnerabilityAggregator(self.config.analysis.dedup_policy)

    def extract_units(self, files: Iterable[SourceInput]) -> List[ContractUnit]:
        return [self.extractor.extract(as_source_file(f)) for f in files]

    def analyze(
        self,
        files: Iterable[SourceInput],
        external_findings: Optional[Mapping[str, Iterable[Finding]]] = None,
    ) -> AnalysisResult:
        """
        Analyze one batch of source files.

        Args:
            files: Ordered ``SourceFile`` records or ``(name, path, text)`` tuples
            external_findings: Findings from other collaborators, keyed by detector name

        Returns:
            Graph, transitions, flows and ranked findings for the batch
        """
        units = self.extract_units(files)
        logger.info(f"Extracted {len(units)} contract units")

        bindings: Dict[str, Dict[str, str]] = {unit.id: self.type_resolver.resolve(unit) for unit in units}
        graph = self.graph_builder.build(units, bindings, self.config.analysis.critical_degree_threshold)

        transitions = []
        for unit in units:
            transitions.extend(self.transition_extractor.extract(unit, bindings[unit.id]))
        flows = self.flow_analyzer.analyze(units, transitions, bindings)
        logger.info(f"Found {len(transitions)} state transitions and {len(flows)} cross-contract flows")

        context = AnalysisContext(
            units=units,
            bindings=bindings,
            graph=graph,
            transitions=transitions,
            flows=flows,
            config=self.config.to_dict(),
            profile=self.profile,
        )
        structural = DetectorOrchestrator(self.detectors).run_detectors(context)
        aggregate = self.aggregator.aggregate(structural, external_findings)

        paths = critical_paths(transitions) if self.config.analysis.include_critical_paths else []
        invariants = []
        if self.config.analysis.include_invariants:
            invariants = self.invariant_checker.check(units, transitions)
        state_flow = StateFlowResult(
            transitions=transitions,
            flows=flows,
            findings=aggregate.findings,
            score=aggregate.score,
            severity_counts=aggregate.severity_counts,
            critical_paths=paths,
            invariants=invariants,
            recommendations=recommendations(aggregate.findings, paths, invariants),
        )
        return AnalysisResult(graph=graph, state_flow=state_flow)
