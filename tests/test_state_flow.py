"""
Tests for state transition extraction.
"""
import pytest

from crossflow.core.models import CallKind, CallPosition, SourceFile, StateChange, StateOperation
from crossflow.core.parser import StructuralExtractor
from crossflow.core.state_flow import StateTransitionExtractor, call_position, critical_paths


def transitions_of(source, name="C.sol"):
    unit = StructuralExtractor().extract(SourceFile(name, name, source))
    return {t.function_name: t for t in StateTransitionExtractor().extract(unit)}


def changes_of(transition):
    return [(c.variable, c.operation) for c in transition.state_changes]


def test_nested_braces_stay_in_function_body():
    source = "contract C { uint y; uint z; function f() public { if (x) { y = 1; } z = 2; } }"
    f = transitions_of(source)["f"]
    assert changes_of(f) == [("y", StateOperation.SET), ("z", StateOperation.SET)]


@pytest.mark.parametrize(
    "statement, operation",
    [
        ("total = 1;", StateOperation.SET),
        ("total *= 2;", StateOperation.SET),
        ("total += 1;", StateOperation.INCREMENT),
        ("total++;", StateOperation.INCREMENT),
        ("++total;", StateOperation.INCREMENT),
        ("total -= 1;", StateOperation.DECREMENT),
        ("total--;", StateOperation.DECREMENT),
        ("delete total;", StateOperation.DELETE),
    ],
)
def test_mutation_shapes(statement, operation):
    source = f"contract C {{ uint total; function f() public {{ {statement} }} }}"
    assert changes_of(transitions_of(source)["f"]) == [("total", operation)]


def test_indexed_member_and_array_mutations():
    source = """
contract C {
    mapping(address => Info) infos;
    uint[] queue;
    function f(address who) public {
        infos[who].amount += 5;
        queue.push(1);
        queue.pop();
    }
}
"""
    assert changes_of(transitions_of(source)["f"]) == [
        ("infos", StateOperation.INCREMENT),
        ("queue", StateOperation.PUSH),
        ("queue", StateOperation.POP),
    ]


def test_reads_and_comparisons_are_not_mutations():
    source = """
contract C {
    uint total;
    uint constant MAX = 10;
    function f(uint v) public {
        require(total == v);
        uint local = total + MAX;
        // total = 0;
    }
}
"""
    assert transitions_of(source)["f"].state_changes == []


def test_call_positions_and_metadata():
    source = """
contract Vault {
    IERC20 public token;
    mapping(address => uint256) public balances;
    uint256 amount;
    event Withdrawn(address who);

    function withdraw() public nonReentrant {
        require(balances[msg.sender] >= amount, "low");
        token.transfer(msg.sender, amount);
        balances[msg.sender] -= amount;
        emit Withdrawn(msg.sender);
    }

    function deposit(uint256 v) public {
        balances[msg.sender] += v;
        token.transferFrom(msg.sender, address(this), v);
    }
}
"""
    transitions = transitions_of(source, "Vault.sol")
    withdraw = transitions["withdraw"]
    assert withdraw.owning_contract == "Vault"
    assert withdraw.location == "Vault::withdraw"
    assert withdraw.modifiers == ["nonReentrant"]
    assert withdraw.emitted_events == ["Withdrawn"]
    assert withdraw.guard_conditions == ["balances[msg.sender] >= amount"]
    assert changes_of(withdraw) == [("balances", StateOperation.DECREMENT)]

    [call] = withdraw.external_calls
    assert call.target_identifier == "token"
    assert call.call_kind == CallKind.CALL
    assert call.resolved_target_type == "IERC20"
    assert call.callee_function_name == "transfer"
    assert call.position == CallPosition.BEFORE

    deposit = transitions["deposit"]
    assert deposit.external_calls[0].position == CallPosition.AFTER


def test_revert_guard_is_negated():
    source = "contract C { address owner; function f() public { if (msg.sender != owner) revert(); } }"
    assert transitions_of(source)["f"].guard_conditions == ["!(msg.sender != owner)"]


def test_untrusted_parameter_target():
    source = "contract C { function f(address impl) public { impl.delegatecall(\"\"); } }"
    [call] = transitions_of(source)["f"].external_calls
    assert call.call_kind == CallKind.DELEGATECALL
    assert call.is_untrusted
    assert call.position == CallPosition.DURING


def test_interfaces_yield_no_transitions():
    source = "interface IERC20 { function transfer(address to, uint256 amount) external returns (bool); }"
    assert transitions_of(source, "IERC20.sol") == {}


def test_call_position():
    changes = [StateChange("x", StateOperation.SET, [10, 30])]
    assert call_position(5, changes) == CallPosition.BEFORE
    assert call_position(20, changes) == CallPosition.DURING
    assert call_position(40, changes) == CallPosition.AFTER
    assert call_position(40, []) == CallPosition.DURING


def test_critical_paths():
    source = """
contract Vault {
    IERC20 token;
    uint256 total;
    function sweep() public { token.transfer(msg.sender, total); total = 0; }
    function peek() public view returns (uint256) { return total; }
}
"""
    paths = critical_paths(transitions_of(source, "Vault.sol").values())
    assert len(paths) == 1
    assert paths[0].path == ["Vault", "sweep", "token"]
    assert paths[0].description == "Function sweep modifies state and makes external calls"
