"""
Grammar profiles.

A profile bundles the vocabulary and textual patterns one source dialect needs
for structural extraction, type resolution and call-site scanning. The engine
only ever talks to a profile, so another brace-delimited dialect can plug in by
registering its own instance in ``PROFILES``.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Pattern, Tuple


@dataclass(frozen=True)
class GrammarProfile:
    """Dialect vocabulary and compiled patterns."""

    name: str
    declaration: Pattern[str]
    function_head: Pattern[str]
    modifier_decl: Pattern[str]
    import_stmt: Pattern[str]
    using_stmt: Pattern[str]
    new_expr: Pattern[str]
    typed_local_init: Pattern[str]
    typed_local_cast: Pattern[str]
    event_emit: Pattern[str]
    guard_call: Pattern[str]
    revert_guard: Pattern[str]
    primitive_type: Pattern[str]
    proxy_vocabulary: Pattern[str]
    upgrade_vocabulary: Pattern[str]
    visibility_keywords: FrozenSet[str]
    mutability_keywords: FrozenSet[str]
    head_keywords: FrozenSet[str]
    variable_qualifiers: FrozenSet[str]
    data_locations: FrozenSet[str]
    non_declaration_keywords: FrozenSet[str]
    reserved_words: FrozenSet[str]
    access_control_markers: Tuple[str, ...]
    reentrancy_guards: Tuple[str, ...]
    sender_expressions: FrozenSet[str]
    low_level_members: FrozenSet[str] = field(
        default_factory=lambda: frozenset({"call", "delegatecall", "staticcall", "transfer", "send"})
    )

    def is_primitive(self, type_name: str) -> bool:
        return bool(self.primitive_type.match(type_name.strip()))

    def is_sender(self, expression: str) -> bool:
        return expression.replace(" ", "") in self.sender_expressions


SOLIDITY = GrammarProfile(
    name="solidity",
    declaration=re.compile(
        r"(?<![\w.])(?:abstract\s+)?(contract|library|interface)\s+(\w+)"
        r"(?:\s+is\s+([^{;]+?))?\s*\{",
    ),
    function_head=re.compile(r"\b(?:function\s+(\w+)|(constructor|fallback|receive))\s*\("),
    modifier_decl=re.compile(r"\bmodifier\s+(\w+)\s*[({]"),
    import_stmt=re.compile(r"\bimport\s+(?:[^;\"']*?\s+from\s+)?[\"']([^\"']+)[\"']"),
    using_stmt=re.compile(r"\busing\s+(\w+)\s+for\b"),
    new_expr=re.compile(r"\bnew\s+(\w+)\s*\("),
    typed_local_init=re.compile(
        r"\b([A-Za-z_]\w*)(?:\s*\[\s*\])?(?:\s+(?:memory|storage|calldata))?\s+([A-Za-z_]\w*)\s*=\s*(?!=)"
    ),
    typed_local_cast=re.compile(
        r"\b([A-Za-z_]\w*)\s+"
        r"(?:(?:memory|storage|calldata|public|private|internal|constant|immutable|override|transient)\s+)*"
        r"[A-Za-z_]\w*\s*=\s*([A-Za-z_]\w*)\s*\("
    ),
    event_emit=re.compile(r"\bemit\s+(\w+)\s*\("),
    guard_call=re.compile(r"\b(require|assert)\s*\("),
    revert_guard=re.compile(r"\bif\s*\("),
    primitive_type=re.compile(
        r"^(?:address(?:\s+payable)?|bool|string|bytes\d*|byte|u?int\d*|u?fixed[\dx]*|mapping\b.*|var|payable)$"
    ),
    proxy_vocabulary=re.compile(r"delegatecall|Proxy|UUPS|Transparent"),
    upgrade_vocabulary=re.compile(r"Upgradeable|initializ|UUPS"),
    visibility_keywords=frozenset({"public", "external", "internal", "private"}),
    mutability_keywords=frozenset({"view", "pure", "payable", "nonpayable", "constant"}),
    head_keywords=frozenset({"returns", "virtual", "override"}),
    variable_qualifiers=frozenset(
        {"public", "private", "internal", "constant", "immutable", "override", "transient"}
    ),
    data_locations=frozenset({"memory", "storage", "calldata"}),
    non_declaration_keywords=frozenset(
        {
            "function", "modifier", "event", "error", "struct", "enum", "using",
            "constructor", "fallback", "receive", "import", "pragma", "contract",
            "interface", "library", "abstract", "type", "return",
        }
    ),
    reserved_words=frozenset(
        {
            "return", "emit", "delete", "else", "new", "if", "while", "for", "do",
            "require", "assert", "revert", "returns", "memory", "storage", "calldata",
            "unchecked", "assembly", "let", "is", "using", "this", "super",
        }
    ),
    access_control_markers=("only", "auth", "owner", "role", "admin", "restricted"),
    reentrancy_guards=("nonreentrant", "reentrancyguard", "noreentrancy"),
    sender_expressions=frozenset({"msg.sender", "tx.origin", "_msgSender()", "msgSender()"}),
)


PROFILES: Dict[str, GrammarProfile] = {SOLIDITY.name: SOLIDITY}


def get_profile(name: str) -> GrammarProfile:
    """Look up a registered grammar profile by name."""
    try:
        return PROFILES[name.lower()]
    except KeyError:
        raise KeyError(f"Unknown grammar profile: {name}") from None


def register_profile(profile: GrammarProfile) -> GrammarProfile:
    PROFILES[profile.name.lower()] = profile
    return profile
