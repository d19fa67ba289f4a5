"""
Tests for body scanning and structural extraction.
"""

import pytest

from crossflow.core.bodies import extract_body, line_of, mask_nested, match_parens, split_top_level
from crossflow.core.models import ContractKind, SourceFile
from crossflow.core.parser import StructuralExtractor, blank_comments, parse_parameters

# Sample contract for testing
SAMPLE_CONTRACT = """
// SPDX-License-Identifier: MIT
pragma solidity ^0.8.0;

contract TestContract is Ownable, Pausable {
    address public owner;
    uint256 public constant FEE = 3;
    address immutable factory;
    mapping(address => uint256) balances;

    constructor() {
        owner = msg.sender;
    }

    modifier onlyOwner() {
        require(msg.sender == owner, "Not owner");
        _;
    }

    function transferOwnership(address newOwner) public onlyOwner {
        require(newOwner != address(0), "Zero address");
        owner = newOwner;
    }

    function balanceOf(address who) external view returns (uint256) {
        return balances[who];
    }

    function withdraw() public onlyOwner {
        uint256 balance = address(this).balance;
        (bool success, ) = msg.sender.call{value: balance}("");
        require(success, "Transfer failed");
    }
}
"""


@pytest.fixture
def extractor():
    return StructuralExtractor()


@pytest.fixture
def unit(extractor):
    return extractor.extract(SourceFile("TestContract.sol", "contracts/TestContract.sol", SAMPLE_CONTRACT))


def test_extract_body_keeps_nested_blocks():
    text = "function f() public { if (x) { y = 1; } z = 2; }"
    body = extract_body(text, text.index("{"))
    assert body.text.strip() == "if (x) { y = 1; } z = 2;"
    assert body.balanced
    assert text[body.close_offset] == "}"
    assert body.close_offset == len(text) - 1


def test_extract_body_without_body():
    assert extract_body("function f() external;") is None


def test_extract_body_unbalanced_runs_to_end():
    text = "contract A { function f() public { x = 1;"
    body = extract_body(text)
    assert not body.balanced
    assert body.text.endswith("x = 1;")


def test_mask_nested():
    assert mask_nested("a{b{c}d}e") == "a{ { } }e"
    assert mask_nested("a{b{c}d}e", keep_depth=1) == "a{b{ }d}e"


def test_paren_helpers():
    assert match_parens("f(a, (b))", 1) == ("a, (b)", 8)
    assert split_top_level("uint a, mapping(x => y) b") == ["uint a", "mapping(x => y) b"]
    assert line_of("a\nb\nc", 4) == 3


def test_blank_comments_keeps_offsets():
    text = "a // note\nb /* x\ny */ c"
    blanked = blank_comments(text)
    assert len(blanked) == len(text)
    assert blanked.count("\n") == text.count("\n")
    assert "note" not in blanked and blanked.rstrip().endswith("c")


def test_parse_parameters():
    assert parse_parameters("address to, uint256 amount") == [("address", "to"), ("uint256", "amount")]
    assert parse_parameters("address payable to") == [("address payable", "to")]
    assert parse_parameters("string memory name") == [("string", "name")]
    assert parse_parameters("uint256") == [("uint256", "")]


def test_declaration_and_inheritance(unit):
    assert unit.id == "contracts/TestContract.sol"
    assert unit.name == "TestContract"
    assert unit.kind == ContractKind.CONTRACT
    assert unit.inherits == ["Ownable", "Pausable"]
    assert unit.modifiers == ["onlyOwner"]


def test_functions(unit):
    assert unit.function_names == ["constructor", "transferOwnership", "balanceOf", "withdraw"]

    transfer = unit.function("transferOwnership")
    assert transfer.visibility == "public"
    assert transfer.modifiers == ["onlyOwner"]
    assert transfer.parameters == [("address", "newOwner")]
    assert transfer.has_body

    balance_of = unit.function("balanceOf")
    assert balance_of.visibility == "external"
    assert balance_of.state_mutability == "view"
    assert balance_of.modifiers == []


def test_state_variables_and_slots(unit):
    by_name = {v.name: v for v in unit.state_variables}
    assert list(by_name) == ["owner", "FEE", "factory", "balances"]
    assert by_name["FEE"].is_constant and by_name["FEE"].slot_index is None
    assert by_name["factory"].is_immutable and by_name["factory"].slot_index is None
    assert by_name["balances"].declared_type == "mapping(address => uint256)"
    assert [v.name for v in unit.storage_layout] == ["owner", "balances"]


def test_interface_functions_have_no_body(extractor):
    source = "interface IERC20 { function transfer(address to, uint256 amount) external returns (bool); }"
    unit = extractor.extract(SourceFile("IERC20.sol", "IERC20.sol", source))
    assert unit.kind == ContractKind.INTERFACE
    assert unit.function("transfer").has_body is False


def test_declaration_named_like_file_wins(extractor):
    source = "interface IToken { function f() external; }\ncontract Bank { }"
    unit = extractor.extract(SourceFile("Bank.sol", "Bank.sol", source))
    assert unit.name == "Bank"


def test_malformed_input_yields_minimal_unit(extractor):
    unit = extractor.extract(SourceFile("Broken.sol", "Broken.sol", "this is { not solidity"))
    assert unit.name == "Broken"
    assert unit.state_variables == []

    truncated = extractor.extract(SourceFile("A.sol", "A.sol", "contract A { function f() public { x = 1;"))
    assert truncated.name == "A"


def test_extraction_is_idempotent(extractor):
    source = SourceFile("TestContract.sol", "TestContract.sol", SAMPLE_CONTRACT)
    assert extractor.extract(source) == extractor.extract(source)


def test_proxy_vocabulary(extractor):
    source = "contract UUPSProxy { function f(address i) public { i.delegatecall(\"\"); } }"
    unit = extractor.extract(SourceFile("UUPSProxy.sol", "UUPSProxy.sol", source))
    assert unit.is_proxy
    assert unit.is_upgradeable


def test_custom_grammar_profile_plugs_in():
    from dataclasses import replace
    import re

    from crossflow.core.grammar import SOLIDITY, get_profile, register_profile

    profile = register_profile(replace(SOLIDITY, name="Solidity-Legacy", declaration=re.compile(
        r"(?<![\w.])(contract|library|interface)\s+(\w+)(?:\s+is\s+([\w\s,.()]+?))?\s*\{"
    )))
    assert get_profile("solidity-legacy") is profile
    unit = StructuralExtractor(profile).extract(SourceFile("A.sol", "A.sol", "contract A { uint x; }"))
    assert unit.name == "A"

    with pytest.raises(KeyError):
        get_profile("cobol")


def test_empty_body_has_empty_text():
    body = extract_body("function g() {}")
    assert body.text == ""
    assert body.balanced


def test_brace_in_string_literal_closes_body_early_known_limitation():
    body = extract_body('{ s = "}"; x = 1; }')
    assert body.text == ' s = "'
    assert "x = 1" not in body.text


def test_inheritance_with_constructor_arguments(extractor):
    source = """
contract MyToken is ERC20("MyToken", "MTK"), Ownable {
    mapping(address => uint256) balances;
    function withdraw(uint256 amount) public {
        (bool ok, ) = msg.sender.call{value: amount}("");
        require(ok);
        balances[msg.sender] -= amount;
    }
}
"""
    unit = extractor.extract(SourceFile("Token.sol", "Token.sol", source))
    assert unit.name == "MyToken"
    assert unit.inherits == ["ERC20", "Ownable"]
    assert unit.function_names == ["withdraw"]
    assert [v.name for v in unit.state_variables] == ["balances"]


def test_commented_declaration_is_ignored(extractor):
    source = "// contract Old is Legacy, see notes {\ncontract Current { uint256 x; }"
    unit = extractor.extract(SourceFile("Lib.sol", "Lib.sol", source))
    assert unit.name == "Current"
    assert unit.inherits == []


def test_unrecognised_head_scans_first_block(extractor):
    source = "pragma solidity ^0.8.0;\nMyToken is Base { uint256 supply; function mint() public { supply += 1; } }"
    unit = extractor.extract(SourceFile("Snippet.sol", "Snippet.sol", source))
    assert unit.name == "Snippet"
    assert unit.function_names == ["mint"]
    assert [v.name for v in unit.state_variables] == ["supply"]
