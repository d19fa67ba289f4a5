"""
Tests for protocol invariant checks.
"""
from crossflow.core.invariants import InvariantChecker
from crossflow.core.models import SourceFile
from crossflow.core.parser import StructuralExtractor
from crossflow.core.state_flow import StateTransitionExtractor


def check(*sources):
    extractor = StructuralExtractor()
    units = [extractor.extract(SourceFile(f"{name}.sol", f"{name}.sol", text)) for name, text in sources]
    transitions = [t for unit in units for t in StateTransitionExtractor().extract(unit)]
    return InvariantChecker().check(units, transitions)


def summary(invariants):
    return [(i.description, i.violated) for i in invariants]


TOKEN = """
contract Token {
    uint256 public totalSupply;
    mapping(address => uint256) public balances;

    function mint(address to, uint256 amount) public onlyOwner {
        totalSupply += amount;
        balances[to] += amount;
    }

    function burn(uint256 amount) public {
        require(balances[msg.sender] >= amount);
        balances[msg.sender] -= amount;
    }
}
"""


def test_supply_invariant_needs_both_updates():
    assert summary(check(("Token", TOKEN))) == [
        ("Balance modifications should have checks", False),
        ("Function burn may break supply invariant (totalSupply = sum(balances))", True),
    ]


def test_unguarded_balance_change_is_violated():
    source = """
contract Ledger {
    mapping(address => uint256) balances;
    function credit(address to, uint256 amount) public {
        balances[to] += amount;
    }
}
"""
    assert summary(check(("Ledger", source))) == [("Balance modifications should have checks", True)]


def test_vault_share_price_protection():
    vault = """
contract Vault {
    mapping(address => uint256) public shares;
    function deposit(uint256 amount, uint256 minShares) public {
        uint256 minted = amount;
        require(minted >= minShares);
        shares[msg.sender] += minted;
    }
}
"""
    assert summary(check(("Vault", vault))) == [("Vault should protect against share price manipulation", False)]
    unprotected = vault.replace("require(minted >= minShares);", "")
    assert summary(check(("Vault", unprotected))) == [
        ("Vault should protect against share price manipulation", True)
    ]


def test_swap_slippage_and_reserve_invariant():
    pair = """
contract Pair {
    uint112 reserve0;
    uint112 reserve1;

    function swap(uint256 amountIn) public {
        reserve0 += amountIn;
        reserve1 -= amountIn;
    }

    function swapExact(uint256 amountIn, uint256 amountOutMin) public {
        uint256 out = amountIn;
        require(out >= amountOutMin);
        reserve0 += amountIn;
    }
}
"""
    assert summary(check(("Pair", pair))) == [
        ("Swap function swap lacks slippage protection", True),
        ("AMM should maintain constant product invariant (k = reserve0 * reserve1)", False),
    ]


class TestProtocolWide:
    A = "contract A { IERC20 token; function transferOut(address to) public onlyOwner onlyAdmin { token.transfer(to, 1); } }"
    B = "contract B { IERC20 token; function sendOut(address to) public onlyRole authGuard { token.transfer(to, 1); } }"

    def test_transfers_and_access_patterns(self):
        invariants = check(("A", self.A), ("B", self.B))
        assert [(i.description, i.violated, i.contracts) for i in invariants] == [
            ("Multiple contracts perform external transfers - verify no circular dependencies", False, ["A", "B"]),
            ("Inconsistent access control patterns across contracts", True, ["A", "B"]),
        ]

    def test_single_contract_has_no_protocol_invariants(self):
        assert check(("A", self.A)) == []
