"""Strict extraction of replacement code from raw model output.

Only fenced code blocks are accepted. A response with no fence is rejected
outright; raw text is never treated as code.

Pipeline: empty check -> fenced regions -> largest block -> monologue
ratio -> trim blank edges -> size-collapse guard -> accept.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Pattern, Sequence, Tuple, Union

from . import config
from .utils import split_lines

REJECT_EMPTY = "empty"
REJECT_NO_FENCE = "no_fence"
REJECT_MONOLOGUE = "monologue"
REJECT_SUSPICIOUS_SHRINK = "suspicious_shrink"


@dataclass(frozen=True)
class Accepted:
    code: str

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Rejected:
    reason: str

    @property
    def ok(self) -> bool:
        return False

    def describe(self) -> str:
        return _REJECT_MESSAGES.get(self.reason, self.reason)


ExtractResult = Union[Accepted, Rejected]

_REJECT_MESSAGES = {
    REJECT_EMPTY: "response was empty",
    REJECT_NO_FENCE: "no fenced code block in response",
    REJECT_MONOLOGUE: "code block looks like prose/monologue",
    REJECT_SUSPICIOUS_SHRINK: "code block is far smaller than the selection",
}

# Prose openers. A line matching any of these counts as monologue.
MONOLOGUE_PATTERNS: Tuple[Pattern[str], ...] = tuple(
    re.compile(p)
    for p in (
        r"^I['’]ll ",
        r"^I['’]m ",
        r"^I will ",
        r"^I['’]ve ",
        r"^I have ",
        r"^I need to",
        r"^Let me ",
        r"^Now let",
        r"^Now,",
        r"^So,",
        r"^Here is",
        r"^Here['’]s",
        r"^This code",
        r"^This is",
        r"^The code",
        r"^The changes",
        r"^The main",
        r"^The issue",
        r"^Key changes",
        r"^In this",
        r"^First,",
        r"^Note:",
        r"^Note that",
        r"^Looking at",
        r"^Based on",
        r"^To implement",
        r"^To fix",
        r"^Summary",
        r"^Explanation",
        r"^\d+\.\s+[A-Z]",  # numbered prose: "1. First we..."
    )
)

# Opening fence: optional indent, >=3 backticks or tildes, optional info string.
_OPEN_FENCE_RE = re.compile(r"^\s*(`{3,}|~{3,})([^`\n]*)$")
_CLOSE_FENCE_RE = re.compile(r"^\s*(`{3,}|~{3,})\s*$")
# Looser close: fence glued to the end of the last content line ("return x```").
_TRAILING_FENCE_RE = re.compile(r"^(.*?)(`{3,}|~{3,})\s*$")


def _closes(line: str, fence_char: str) -> bool:
    m = _CLOSE_FENCE_RE.match(line)
    return bool(m) and m.group(1)[0] == fence_char


def find_fenced_blocks(text: str, loose: bool = False) -> List[str]:
    """Return the inner text of every fenced region, in order of appearance.

    A region opens on a line that starts with a fence marker and closes on
    the next line that is solely a fence of the same character. With
    loose=True a fence at the end of a content line also closes the region.
    Unclosed regions are dropped.
    """
    lines = (text or "").replace("\r\n", "\n").replace("\r", "\n").split("\n")
    blocks: List[str] = []
    i = 0
    while i < len(lines):
        m = _OPEN_FENCE_RE.match(lines[i])
        if not m:
            i += 1
            continue
        fence_char = m.group(1)[0]
        body: List[str] = []
        j = i + 1
        closed = False
        while j < len(lines):
            line = lines[j]
            if _closes(line, fence_char):
                closed = True
                break
            if loose:
                tm = _TRAILING_FENCE_RE.match(line)
                if tm and tm.group(2)[0] == fence_char and tm.group(1).strip():
                    body.append(tm.group(1))
                    closed = True
                    break
            body.append(line)
            j += 1
        if closed:
            blocks.append("\n".join(body))
            i = j + 1
        else:
            i += 1
    return blocks


def select_largest(blocks: Sequence[str]) -> Optional[str]:
    """Longest block by character count; the first one wins ties."""
    best: Optional[str] = None
    for block in blocks:
        if best is None or len(block) > len(best):
            best = block
    return best


def count_monologue_lines(
    text: str, patterns: Sequence[Pattern[str]] = MONOLOGUE_PATTERNS
) -> Tuple[int, int]:
    """Return (prose_lines, non_empty_lines) for a block."""
    prose = 0
    total = 0
    for line in (text or "").split("\n"):
        t = line.strip()
        if not t:
            continue
        total += 1
        if any(p.search(t) for p in patterns):
            prose += 1
    return prose, total


def looks_like_monologue(
    text: str,
    patterns: Sequence[Pattern[str]] = MONOLOGUE_PATTERNS,
    ratio: float = config.MONOLOGUE_RATIO,
) -> bool:
    prose, total = count_monologue_lines(text, patterns)
    if total == 0:
        return True
    return (prose / total) > ratio


def trim_blank_edges(text: str) -> str:
    lines = text.split("\n")
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop()
    return "\n".join(lines)


def normalize_whitespace(text: str) -> str:
    """Collapse every whitespace run to one space and trim."""
    return " ".join((text or "").split())


def is_no_change(original_text: str, code: str) -> bool:
    return normalize_whitespace(original_text) == normalize_whitespace(code)


def extract(
    raw_response: str,
    original_text: str,
    patterns: Sequence[Pattern[str]] = MONOLOGUE_PATTERNS,
    monologue_ratio: float = config.MONOLOGUE_RATIO,
    shrink_ratio: float = config.SHRINK_RATIO,
    shrink_min_lines: int = config.SHRINK_MIN_LINES,
) -> ExtractResult:
    """Turn a raw model response into accepted replacement code or a rejection.

    Pure: identical inputs always give identical results.
    """
    if not (raw_response or "").strip():
        return Rejected(REJECT_EMPTY)

    blocks = find_fenced_blocks(raw_response)
    if not blocks:
        blocks = find_fenced_blocks(raw_response, loose=True)
    if not blocks:
        return Rejected(REJECT_NO_FENCE)

    block = select_largest(blocks) or ""

    # An empty fenced block counts as monologue: there is no code in it.
    if looks_like_monologue(block, patterns, monologue_ratio):
        return Rejected(REJECT_MONOLOGUE)

    code = trim_blank_edges(block)

    orig_lines = len(split_lines(original_text))
    new_lines = len(code.split("\n"))
    if orig_lines > shrink_min_lines and new_lines < orig_lines * shrink_ratio:
        return Rejected(REJECT_SUSPICIOUS_SHRINK)

    return Accepted(code)
