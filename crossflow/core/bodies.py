"""
Brace-delimited body extraction.

Bodies are located with a small push-down automaton (a running depth counter)
instead of searching for the first closing brace, so nested blocks stay inside
the body they belong to. Braces inside string or comment literals are counted
like any other brace; inputs that rely on them can miscount depth.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class Body:
    """A brace-delimited span. ``text`` excludes the delimiting braces."""
    open_offset: int
    close_offset: int
    text: str
    balanced: bool = True

    @property
    def start(self) -> int:
        """Offset of the first body character in the scanned text."""
        return self.open_offset + 1


class BraceScanner:
    """Explicit state machine over ``{`` / ``}``.

    States: SEEKING (looking for the opening brace; a ``;`` first means the
    declaration has no body) and INSIDE (counting depth until it returns to
    zero).
    """

    SEEKING = "seeking"
    INSIDE = "inside"

    def __init__(self, text: str) -> None:
        self.text = text

    def scan(self, start: int = 0) -> Optional[Body]:
        text = self.text
        state = self.SEEKING
        depth = 0
        open_at = -1

        for index in range(max(start, 0), len(text)):
            ch = text[index]
            if state == self.SEEKING:
                if ch == "{":
                    state = self.INSIDE
                    depth = 1
                    open_at = index
                elif ch == ";":
                    return None
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return Body(open_at, index, text[open_at + 1:index])

        if state == self.INSIDE:
            # Unbalanced input: the body runs to the end of the text.
            return Body(open_at, len(text), text[open_at + 1:], balanced=False)
        return None


def extract_body(text: str, start: int = 0) -> Optional[Body]:
    """Return the first brace body at or after ``start``, or None if there is none."""
    return BraceScanner(text).scan(start)


def mask_nested(text: str, keep_depth: int = 0) -> str:
    """Blank out characters nested deeper than ``keep_depth``.

    Braces and newlines are kept so offsets and statement boundaries survive.
    """
    out = []
    depth = 0
    for ch in text:
        if ch == "{":
            out.append(ch)
            depth += 1
        elif ch == "}":
            depth = max(depth - 1, 0)
            out.append(ch)
        elif depth > keep_depth and ch != "\n":
            out.append(" ")
        else:
            out.append(ch)
    return "".join(out)


def match_parens(text: str, open_index: int) -> Tuple[str, int]:
    """Return (inner text, index of closing paren) for the paren at ``open_index``.

    Unbalanced input returns the remainder of the text and ``len(text)``.
    """
    depth = 0
    for index in range(open_index, len(text)):
        ch = text[index]
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return text[open_index + 1:index], index
    return text[open_index + 1:], len(text)


def split_top_level(text: str, separator: str = ",") -> list:
    """Split on ``separator`` outside of parentheses and brackets."""
    parts = []
    depth = 0
    current = []
    for ch in text:
        if ch in "([":
            depth += 1
        elif ch in ")]":
            depth -= 1
        if ch == separator and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
    parts.append("".join(current))
    return [p.strip() for p in parts if p.strip()]


def line_of(text: str, offset: int) -> int:
    """1-based line number of ``offset``."""
    return text.count("\n", 0, max(offset, 0)) + 1
