"""Core data models for cross-contract dependency and state-flow analysis."""

from dataclasses import dataclass, field, asdict
from enum import Enum, IntEnum
from typing import Dict, List, Optional, Any, Tuple

from .grammar import GrammarProfile, SOLIDITY


class Severity(IntEnum):
    """Severity levels for findings with deterministic ordering and weights."""
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    @property
    def weight(self) -> int:
        """Weight used for the aggregate score."""
        return _SEVERITY_WEIGHTS[self]

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @classmethod
    def from_string(cls, value: str) -> "Severity":
        name = (value or "").upper()
        if name in cls.__members__:
            return cls[name]
        raise ValueError(f"Unknown severity: {value}")

    def __str__(self) -> str:
        return self.label


_SEVERITY_WEIGHTS = {
    Severity.CRITICAL: 10,
    Severity.HIGH: 5,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
}


class ContractKind(Enum):
    CONTRACT = "contract"
    LIBRARY = "library"
    INTERFACE = "interface"


class EdgeKind(Enum):
    """How one unit references another."""
    IMPORT = "import"
    CALL = "call"
    DELEGATECALL = "delegatecall"
    STATICCALL = "staticcall"
    CREATE = "create"
    INHERIT = "inherit"
    LIBRARY = "library"


class RiskLevel(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RISK_RANKS[self]


_RISK_RANKS = {
    RiskLevel.LOW: 1,
    RiskLevel.MEDIUM: 2,
    RiskLevel.HIGH: 3,
    RiskLevel.CRITICAL: 4,
}


class StateOperation(Enum):
    SET = "set"
    INCREMENT = "increment"
    DECREMENT = "decrement"
    DELETE = "delete"
    PUSH = "push"
    POP = "pop"


class CallKind(Enum):
    """Kind of an external call site, determined once per site."""
    CALL = "call"
    DELEGATECALL = "delegatecall"
    STATICCALL = "staticcall"
    TRANSFER = "transfer"
    SEND = "send"


class CallPosition(Enum):
    """Position of an external call relative to the same function's state changes."""
    BEFORE = "before"
    AFTER = "after"
    DURING = "during"


def _plain(value: Any) -> Any:
    """Render enums and containers into JSON-ready values."""
    if isinstance(value, Severity):
        return value.label
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


@dataclass(frozen=True)
class SourceFile:
    """One input record: file name, file path and source text."""
    name: str
    path: str
    content: str


@dataclass(frozen=True)
class StateVariable:
    """Contract state variable."""
    name: str
    declared_type: str
    visibility: str = "internal"
    is_constant: bool = False
    is_immutable: bool = False
    slot_index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class FunctionInfo:
    """Function head facts; bodies are re-scanned by the state transition extractor."""
    name: str
    visibility: str = "public"
    state_mutability: str = "nonpayable"
    modifiers: List[str] = field(default_factory=list)
    parameters: List[Tuple[str, str]] = field(default_factory=list)
    offset: int = 0
    body_offset: int = -1
    line: int = 1

    @property
    def has_body(self) -> bool:
        return self.body_offset >= 0

    @property
    def parameter_names(self) -> List[str]:
        return [name for _type, name in self.parameters if name]

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["parameters"] = [{"type": t, "name": n} for t, n in self.parameters]
        return d


@dataclass(frozen=True)
class ContractUnit:
    """Structural record of one parsed file's top-level declaration."""
    id: str
    name: str
    kind: ContractKind = ContractKind.CONTRACT
    functions: List[FunctionInfo] = field(default_factory=list)
    state_variables: List[StateVariable] = field(default_factory=list)
    modifiers: List[str] = field(default_factory=list)
    inherits: List[str] = field(default_factory=list)
    is_proxy: bool = False
    is_upgradeable: bool = False
    file_name: str = ""
    source: str = field(default="", repr=False)

    @property
    def function_names(self) -> List[str]:
        return [f.name for f in self.functions]

    def function(self, name: str) -> Optional[FunctionInfo]:
        for func in self.functions:
            if func.name == name:
                return func
        return None

    def state_variable(self, name: str) -> Optional[StateVariable]:
        for var in self.state_variables:
            if var.name == name:
                return var
        return None

    @property
    def storage_layout(self) -> List[StateVariable]:
        """Slot-assigned variables in slot order."""
        return [v for v in self.state_variables if v.slot_index is not None]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind.value,
            "file_name": self.file_name,
            "functions": [f.to_dict() for f in self.functions],
            "state_variables": [v.to_dict() for v in self.state_variables],
            "modifiers": list(self.modifiers),
            "inherits": list(self.inherits),
            "is_proxy": self.is_proxy,
            "is_upgradeable": self.is_upgradeable,
        }


@dataclass(frozen=True)
class DependencyEdge:
    """Typed, risk-classified reference from one unit to another."""
    source: str
    target: str
    kind: EdgeKind
    risk_level: RiskLevel
    is_untrusted: bool = False
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return _plain(asdict(self))


@dataclass(frozen=True)
class UnresolvedReference:
    """A referenced identifier that matched no unit of the batch."""
    source: str
    identifier: str
    kind: EdgeKind

    def to_dict(self) -> Dict[str, Any]:
        return _plain(asdict(self))


@dataclass
class GraphMetrics:
    total_contracts: int = 0
    total_dependencies: int = 0
    cyclic_dependencies: List[List[str]] = field(default_factory=list)
    critical_contracts: List[str] = field(default_factory=list)
    unresolved_references: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DependencyGraph:
    """Nodes, edges and metrics for one batch."""
    nodes: List[ContractUnit] = field(default_factory=list)
    edges: List[DependencyEdge] = field(default_factory=list)
    metrics: GraphMetrics = field(default_factory=GraphMetrics)
    unresolved: List[UnresolvedReference] = field(default_factory=list)

    def node(self, node_id: str) -> Optional[ContractUnit]:
        for unit in self.nodes:
            if unit.id == node_id:
                return unit
        return None

    def outgoing(self, node_id: str) -> List[DependencyEdge]:
        return [e for e in self.edges if e.source == node_id]

    def incoming(self, node_id: str) -> List[DependencyEdge]:
        return [e for e in self.edges if e.target == node_id]

    def edges_of_kind(self, kind: EdgeKind) -> List[DependencyEdge]:
        return [e for e in self.edges if e.kind == kind]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
            "metrics": self.metrics.to_dict(),
            "unresolved": [u.to_dict() for u in self.unresolved],
        }


@dataclass(frozen=True)
class StateChange:
    """One mutation shape of one state variable inside one function body."""
    variable: str
    operation: StateOperation
    offsets: List[int] = field(default_factory=list)

    @property
    def first_offset(self) -> int:
        return min(self.offsets) if self.offsets else 0

    @property
    def last_offset(self) -> int:
        return max(self.offsets) if self.offsets else 0

    def to_dict(self) -> Dict[str, Any]:
        return {"variable": self.variable, "operation": self.operation.value}


@dataclass(frozen=True)
class ExternalCall:
    """External call site; position is relative to its own function's state changes."""
    target_identifier: str
    call_kind: CallKind
    position: CallPosition = CallPosition.DURING
    resolved_target_type: Optional[str] = None
    callee_function_name: Optional[str] = None
    offset: int = 0
    is_untrusted: bool = False

    def to_dict(self) -> Dict[str, Any]:
        d = _plain(asdict(self))
        d.pop("offset", None)
        return d


@dataclass(frozen=True)
class StateTransition:
    """Structured record of one function's effect on its contract's state."""
    owning_contract: str
    function_name: str
    contract_id: str = ""
    visibility: str = "public"
    modifiers: List[str] = field(default_factory=list)
    state_changes: List[StateChange] = field(default_factory=list)
    external_calls: List[ExternalCall] = field(default_factory=list)
    emitted_events: List[str] = field(default_factory=list)
    guard_conditions: List[str] = field(default_factory=list)
    line: int = 1

    @property
    def location(self) -> str:
        return f"{self.owning_contract}::{self.function_name}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owning_contract": self.owning_contract,
            "contract_id": self.contract_id,
            "function_name": self.function_name,
            "visibility": self.visibility,
            "modifiers": list(self.modifiers),
            "state_changes": [c.to_dict() for c in self.state_changes],
            "external_calls": [c.to_dict() for c in self.external_calls],
            "emitted_events": list(self.emitted_events),
            "guard_conditions": list(self.guard_conditions),
            "line": self.line,
        }


@dataclass(frozen=True)
class CrossContractFlow:
    """One external call paired with the state changes around it on both sides."""
    source_contract: str
    source_function: str
    target_contract: str
    target_function: str
    before_call: List[StateChange] = field(default_factory=list)
    in_target: List[StateChange] = field(default_factory=list)
    after_call: List[StateChange] = field(default_factory=list)
    reentrancy_risk: RiskLevel = RiskLevel.MEDIUM
    call_kind: CallKind = CallKind.CALL

    def describe(self) -> str:
        target = f"{self.target_contract}.{self.target_function}" if self.target_function else self.target_contract
        return f"{self.source_contract}.{self.source_function} -> {target}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_contract": self.source_contract,
            "source_function": self.source_function,
            "target_contract": self.target_contract,
            "target_function": self.target_function,
            "before_call": [c.to_dict() for c in self.before_call],
            "in_target": [c.to_dict() for c in self.in_target],
            "after_call": [c.to_dict() for c in self.after_call],
            "reentrancy_risk": self.reentrancy_risk.value,
            "call_kind": self.call_kind.value,
        }


@dataclass(frozen=True)
class CriticalPath:
    path: List[str]
    description: str
    risk: RiskLevel = RiskLevel.HIGH
    impact: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return _plain(asdict(self))


@dataclass(frozen=True)
class StateInvariant:
    """A protocol-level property checked over the batch's transitions."""
    description: str
    violated: bool
    contracts: List[str] = field(default_factory=list)
    impact: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return _plain(asdict(self))


@dataclass(frozen=True)
class Finding:
    """Security finding; immutable aggregator output."""
    kind: str
    severity: Severity
    involved_contracts: List[str] = field(default_factory=list)
    location: str = ""
    description: str = ""
    recommendation: str = ""
    evidence_flow: Optional[CrossContractFlow] = None
    detector: str = "external"
    file: Optional[str] = None
    line: Optional[int] = None
    function_name: Optional[str] = None
    confidence: float = 1.0

    def __post_init__(self):
        """Normalize severity to enum if provided as string."""
        if isinstance(self.severity, str):
            try:
                severity = Severity.from_string(self.severity)
            except ValueError:
                severity = Severity.MEDIUM
            object.__setattr__(self, "severity", severity)

    @property
    def dedup_key(self) -> Tuple[Any, ...]:
        return (self.kind, self.severity, self.location, tuple(self.involved_contracts), self.description)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "severity": self.severity.label,
            "involved_contracts": list(self.involved_contracts),
            "location": self.location,
            "description": self.description,
            "recommendation": self.recommendation,
            "evidence_flow": self.evidence_flow.to_dict() if self.evidence_flow else None,
            "detector": self.detector,
            "file": self.file,
            "line": self.line,
            "function_name": self.function_name,
            "confidence": self.confidence,
        }


@dataclass
class StateFlowResult:
    """Transitions, cross-contract flows and ranked findings for one batch."""
    transitions: List[StateTransition] = field(default_factory=list)
    flows: List[CrossContractFlow] = field(default_factory=list)
    findings: List[Finding] = field(default_factory=list)
    score: int = 0
    severity_counts: Dict[str, int] = field(default_factory=dict)
    critical_paths: List[CriticalPath] = field(default_factory=list)
    invariants: List[StateInvariant] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transitions": [t.to_dict() for t in self.transitions],
            "flows": [f.to_dict() for f in self.flows],
            "findings": [f.to_dict() for f in self.findings],
            "score": self.score,
            "severity_counts": dict(self.severity_counts),
            "critical_paths": [p.to_dict() for p in self.critical_paths],
            "invariants": [i.to_dict() for i in self.invariants],
            "recommendations": list(self.recommendations),
        }


@dataclass
class AnalysisResult:
    graph: DependencyGraph
    state_flow: StateFlowResult

    def to_dict(self) -> Dict[str, Any]:
        return {"graph": self.graph.to_dict(), "state_flow": self.state_flow.to_dict()}


@dataclass
class AnalysisContext:
    """Context handed to structural detectors."""
    units: List[ContractUnit] = field(default_factory=list)
    bindings: Dict[str, Dict[str, str]] = field(default_factory=dict)
    graph: DependencyGraph = field(default_factory=DependencyGraph)
    transitions: List[StateTransition] = field(default_factory=list)
    flows: List[CrossContractFlow] = field(default_factory=list)
    config: Dict[str, Any] = field(default_factory=dict)
    profile: GrammarProfile = SOLIDITY

    def unit(self, unit_id: str) -> Optional[ContractUnit]:
        for unit in self.units:
            if unit.id == unit_id:
                return unit
        return None

    def flows_from(self, transition: StateTransition) -> List[CrossContractFlow]:
        return [
            f for f in self.flows
            if f.source_contract == transition.owning_contract and f.source_function == transition.function_name
        ]
