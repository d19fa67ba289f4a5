"""
Structural extraction of contract sources.

Each file is turned into one best-effort ``ContractUnit`` by independent
regular-expression passes over the text: declaration head, function heads,
top-level state variables, modifiers and inheritance. Missing constructs leave
fields empty; nothing here raises on malformed input.
"""
from __future__ import annotations

import logging
import re
from pathlib import PurePath
from typing import List, Optional, Tuple

from .bodies import extract_body, line_of, mask_nested, match_parens, split_top_level
from .grammar import GrammarProfile, SOLIDITY
from .models import ContractKind, ContractUnit, FunctionInfo, SourceFile, StateVariable

logger = logging.getLogger(__name__)

_COMMENT = re.compile(r"//[^\n]*|/\*.*?\*/", re.DOTALL)
_IDENTIFIER = re.compile(r"^[A-Za-z_]\w*$")
_HEAD_TOKEN = re.compile(r"([A-Za-z_]\w*)(\s*\((?:[^()]|\([^()]*\))*\))?")
_TYPE_HEAD = re.compile(r"[A-Za-z_][\w.]*(?:\s*\[[^\]]*\])*(?:\s+payable\b)?")
_ASSIGNMENT = re.compile(r"(?<![=!<>])=(?![=>])")


def blank_comments(text: str) -> str:
    """Replace comments with spaces, keeping offsets and newlines."""
    return _COMMENT.sub(lambda m: re.sub(r"[^\n]", " ", m.group(0)), text)


def base_name(name: str) -> str:
    """File base name without extension, used when no declaration is found."""
    return PurePath(name).stem if name else ""


def parse_parameters(params: str, profile: GrammarProfile = SOLIDITY) -> List[Tuple[str, str]]:
    """Parse ``type [location] name`` parameter lists into (type, name) pairs."""
    parsed = []
    for raw in split_top_level(params):
        tokens = [t for t in raw.split() if t not in profile.data_locations and t != "indexed"]
        if not tokens:
            continue
        if len(tokens) >= 2 and _IDENTIFIER.match(tokens[-1]) and tokens[-1] != "payable":
            parsed.append((" ".join(tokens[:-1]), tokens[-1]))
        else:
            parsed.append((" ".join(tokens), ""))
    return parsed


class StructuralExtractor:
    """Builds a ``ContractUnit`` from one source file."""

    def __init__(self, profile: GrammarProfile = SOLIDITY) -> None:
        self.profile = profile

    def extract(self, source: SourceFile) -> ContractUnit:
        content = source.content or ""
        fallback_name = base_name(source.name or source.path)

        scan = blank_comments(content)
        declaration = self._select_declaration(list(self.profile.declaration.finditer(scan)), fallback_name)
        if declaration is None:
            logger.debug(f"No declaration head in {source.path or source.name}; using '{fallback_name}'")
            name, kind, inherits = fallback_name, ContractKind.CONTRACT, []
            block_start, block = 0, content
            # An unrecognised head still usually opens one balanced block.
            brace = scan.find("{")
            first = extract_body(scan, brace) if brace >= 0 else None
            if first is not None and first.balanced:
                block_start, block = first.start, content[first.start:first.close_offset]
        else:
            name = declaration.group(2)
            kind = ContractKind(declaration.group(1))
            inherits = self._parse_inherits(declaration.group(3))
            body = extract_body(content, declaration.end() - 1)
            block_start, block = body.start, body.text

        top_level = mask_nested(blank_comments(block))

        unit = ContractUnit(
            id=source.path or source.name,
            name=name,
            kind=kind,
            functions=self._extract_functions(content, block, top_level, block_start),
            state_variables=self._extract_state_variables(top_level),
            modifiers=[m.group(1) for m in self.profile.modifier_decl.finditer(top_level)],
            inherits=inherits,
            is_proxy=bool(self.profile.proxy_vocabulary.search(content)),
            is_upgradeable=bool(self.profile.upgrade_vocabulary.search(content)),
            file_name=source.name,
            source=content,
        )
        logger.debug(
            f"Extracted {unit.kind.value} {unit.name}: {len(unit.functions)} functions, "
            f"{len(unit.state_variables)} state variables"
        )
        return unit

    def _select_declaration(self, matches: List[re.Match], stem: str) -> Optional[re.Match]:
        """Prefer the declaration named like the file, then the first contract."""
        if not matches:
            return None
        for match in matches:
            if match.group(2) == stem:
                return match
        for match in matches:
            if match.group(1) == ContractKind.CONTRACT.value:
                return match
        return matches[0]

    def _parse_inherits(self, clause: Optional[str]) -> List[str]:
        if not clause:
            return []
        parents = []
        for part in split_top_level(clause):
            match = re.match(r"[\w.]+", part)
            if match:
                parents.append(match.group(0))
        return parents

    def _extract_functions(self, content: str, block: str, top_level: str, block_start: int) -> List[FunctionInfo]:
        functions = []
        for match in self.profile.function_head.finditer(top_level):
            name = match.group(1) or match.group(2)
            params, close = match_parens(block, match.end() - 1)

            # Head runs from the parameter list to the body brace or the terminating ';'.
            head_end = close + 1
            while head_end < len(top_level) and top_level[head_end] not in "{;":
                head_end += 1
            has_body = head_end < len(top_level) and top_level[head_end] == "{"

            visibility, mutability, modifiers = self._parse_head(block[close + 1:head_end])
            offset = block_start + match.start()
            functions.append(
                FunctionInfo(
                    name=name,
                    visibility=visibility,
                    state_mutability=mutability,
                    modifiers=modifiers,
                    parameters=parse_parameters(params, self.profile),
                    offset=offset,
                    body_offset=block_start + head_end if has_body else -1,
                    line=line_of(content, offset),
                )
            )
        return functions

    def _parse_head(self, head: str) -> Tuple[str, str, List[str]]:
        """Split a function head into visibility, mutability and modifier names."""
        head = blank_comments(head)
        returns = re.search(r"\breturns\s*\(", head)
        if returns:
            _inner, close = match_parens(head, returns.end() - 1)
            head = head[:returns.start()] + head[close + 1:]

        visibility = "public"
        mutability = "nonpayable"
        modifiers = []
        for token in _HEAD_TOKEN.finditer(head):
            word = token.group(1)
            if word in self.profile.visibility_keywords:
                visibility = word
            elif word in self.profile.mutability_keywords:
                mutability = word
            elif word in self.profile.head_keywords:
                continue
            else:
                modifiers.append(word)
        return visibility, mutability, modifiers

    def _extract_state_variables(self, top_level: str) -> List[StateVariable]:
        variables = []
        slot = 0
        for chunk in re.split(r"[;{}]", top_level):
            parsed = self._parse_variable(chunk.strip())
            if parsed is None:
                continue
            name, declared_type, qualifiers = parsed
            is_constant = "constant" in qualifiers
            is_immutable = "immutable" in qualifiers
            visibility = next((q for q in qualifiers if q in self.profile.visibility_keywords), "internal")
            slot_index = None
            if not (is_constant or is_immutable):
                slot_index = slot
                slot += 1
            variables.append(
                StateVariable(
                    name=name,
                    declared_type=declared_type,
                    visibility=visibility,
                    is_constant=is_constant,
                    is_immutable=is_immutable,
                    slot_index=slot_index,
                )
            )
        return variables

    def _parse_variable(self, chunk: str) -> Optional[Tuple[str, str, List[str]]]:
        """Parse one top-level statement as ``type qualifiers* name [= value]``."""
        first = re.match(r"[A-Za-z_]\w*", chunk)
        if not first or first.group(0) in self.profile.non_declaration_keywords:
            return None

        assignment = _ASSIGNMENT.search(chunk)
        left = (chunk[:assignment.start()] if assignment else chunk).strip()

        if left.startswith("mapping"):
            open_index = left.find("(")
            if open_index < 0:
                return None
            _inner, close = match_parens(left, open_index)
            declared_type, rest = left[:close + 1], left[close + 1:]
        else:
            type_match = _TYPE_HEAD.match(left)
            if not type_match:
                return None
            declared_type, rest = type_match.group(0), left[type_match.end():]

        # override(A, B) carries a parenthesised list we do not need
        rest = re.sub(r"\(.*?\)", " ", rest)
        tokens = rest.split()
        if not tokens:
            return None
        name, qualifiers = tokens[-1], tokens[:-1]
        if not _IDENTIFIER.match(name) or name in self.profile.reserved_words:
            return None
        if any(q not in self.profile.variable_qualifiers for q in qualifiers):
            return None

        declared_type = re.sub(r"\s+", " ", declared_type).replace(" [", "[").strip()
        return name, declared_type, qualifiers
