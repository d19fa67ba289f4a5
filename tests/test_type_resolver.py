"""
Tests for identifier to type resolution.
"""
from crossflow.core.models import SourceFile
from crossflow.core.parser import StructuralExtractor
from crossflow.core.type_resolver import TypeResolver

ROUTER = """
contract Router {
    IPool public pool;
    IERC20[] tokens;
    uint256 public fee;

    struct Position { uint256 size; }
    enum Side { Long, Short }

    function swap(IOracle oracle, uint256 amt) external {
        IVault vault = IVault(registry.vault());
        uint256 x = 1;
    }
}
"""


def _unit(source, name="Router.sol"):
    return StructuralExtractor().extract(SourceFile(name, name, source))


def test_bindings_union_all_passes():
    bindings = TypeResolver().resolve(_unit(ROUTER))
    assert bindings == {
        "pool": "IPool",
        "tokens": "IERC20",
        "vault": "IVault",
        "oracle": "IOracle",
    }


def test_primitive_types_are_not_bound():
    bindings = TypeResolver().resolve(_unit(ROUTER))
    assert "fee" not in bindings
    assert "amt" not in bindings
    assert "x" not in bindings


def test_later_pass_overwrites_earlier_binding():
    source = """
contract Shadow {
    IOld target;
    function f(INew target) public { target.go(); }
}
"""
    bindings = TypeResolver().resolve(_unit(source, "Shadow.sol"))
    assert bindings["target"] == "INew"


def test_value_types():
    assert TypeResolver().value_types(_unit(ROUTER)) == frozenset({"Position", "Side"})
