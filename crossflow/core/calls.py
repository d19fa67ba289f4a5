"""
Call-site scanning.

Every member call (``target.member(...)``, including casts such as
``IERC20(a).transfer(...)`` and ``payable(x).call{value: v}(...)``) and every
inline-assembly ``call``/``delegatecall``/``staticcall`` is located once.
``classify`` then decides, with the unit's type bindings, whether the site is
an external call and which ``CallKind`` it carries.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .grammar import GrammarProfile, SOLIDITY
from .models import CallKind
from .parser import blank_comments

_MEMBER_CALL = re.compile(
    r"(?<![\w.\])])"
    r"(?P<target>"
    r"(?P<cast>[A-Za-z_]\w*)\s*\(\s*(?P<inner>[^()]*(?:\([^()]*\)[^()]*)?)\)"
    r"|[A-Za-z_]\w*(?:\s*\[[^\]]*\])*(?:\.[A-Za-z_]\w*(?:\s*\[[^\]]*\])*)*?"
    r")"
    r"\s*\.\s*(?P<member>[A-Za-z_]\w*)\s*(?:\{[^{}]*\}\s*)?\("
)
_ASSEMBLY_CALL = re.compile(
    r"(?<![\w.])(?P<member>call|delegatecall|staticcall)\s*\(\s*"
    r"[^,()]*(?:\([^()]*\))?\s*,\s*(?P<target>[A-Za-z_]\w*)"
)
_ROOT = re.compile(r"[A-Za-z_]\w*")
_ADDRESS_CASTS = frozenset({"address", "payable"})


@dataclass(frozen=True)
class CallSite:
    """One syntactic call site in a scanned text."""
    offset: int
    target: str
    root: str
    member: str
    cast_type: Optional[str] = None
    address_cast: bool = False
    is_assembly: bool = False


@dataclass(frozen=True)
class CallShape:
    """Classification of an external call site."""
    kind: CallKind
    resolved_type: Optional[str] = None
    callee_function: Optional[str] = None


def _root_of(expression: str) -> str:
    match = _ROOT.match(expression)
    return match.group(0) if match else ""


def scan_call_sites(text: str, profile: GrammarProfile = SOLIDITY) -> List[CallSite]:
    """Locate member and inline-assembly call sites, ordered by offset."""
    text = blank_comments(text)
    sites = []
    for match in _MEMBER_CALL.finditer(text):
        cast = match.group("cast")
        member = match.group("member")
        if cast is None:
            target = re.sub(r"\s+", "", match.group("target"))
            sites.append(CallSite(match.start(), target, _root_of(target), member))
            continue

        inner = re.sub(r"\s+", "", match.group("inner"))
        if cast in _ADDRESS_CASTS:
            sites.append(CallSite(match.start(), inner, _root_of(inner), member, address_cast=True))
        elif profile.is_primitive(cast) or cast in profile.reserved_words:
            continue
        elif cast[0].isupper():
            sites.append(CallSite(match.start(), f"{cast}({inner})", _root_of(inner), member, cast_type=cast))
        else:
            # Plain function call result, e.g. ``_msgSender().call`` or ``pool().swap``.
            sites.append(CallSite(match.start(), f"{cast}({inner})", "", member))

    for match in _ASSEMBLY_CALL.finditer(text):
        target = match.group("target")
        sites.append(CallSite(match.start(), target, target, match.group("member"), is_assembly=True))

    return sorted(sites, key=lambda s: s.offset)


def classify(
    site: CallSite,
    bindings: Dict[str, str],
    profile: GrammarProfile = SOLIDITY,
    value_types: Iterable[str] = (),
) -> Optional[CallShape]:
    """Return the call shape for external call sites, or None for anything else.

    Member calls on struct or enum values (``value_types``) are library-attached
    internal calls, not external ones.
    """
    resolved = site.cast_type or (bindings.get(site.root) if site.root else None)
    low_level = site.member in profile.low_level_members

    if site.is_assembly:
        return CallShape(CallKind(site.member), resolved)
    if low_level and (site.address_cast or not resolved or site.member in ("delegatecall", "staticcall")):
        return CallShape(CallKind(site.member), resolved)
    if resolved and resolved not in set(value_types):
        return CallShape(CallKind.CALL, resolved, site.member)
    return None


def is_untrusted_target(site: CallSite, parameter_names: Iterable[str], profile: GrammarProfile = SOLIDITY) -> bool:
    """True when the callee is caller-supplied: a parameter or a sender-equivalent."""
    if profile.is_sender(site.target):
        return True
    return bool(site.root) and site.root in set(parameter_names)
