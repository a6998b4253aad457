"""Resolve `#name` references to definitions elsewhere in the workspace.

Definitions are located with per-language regexes; the body is cut out with
tree-sitter when `tree_sitter_languages` is installed, otherwise with a
brace / `end` / indentation heuristic capped at a fixed number of lines.
"""

import os
import re
from dataclasses import dataclass
from typing import Iterator, List, Optional, Pattern, Sequence, Tuple

from . import config
from .utils import dbg

SOURCE_EXTENSIONS = {
    "py", "js", "jsx", "mjs", "cjs", "ts", "tsx", "go", "rs", "rb", "java",
    "c", "cc", "cpp", "h", "hpp", "cs", "php", "swift", "kt", "scala", "lua",
    "sh", "bash", "ex", "exs", "dart", "zig",
}

TREESITTER_LANGS = {
    "py": "python",
    "js": "javascript",
    "jsx": "javascript",
    "mjs": "javascript",
    "ts": "typescript",
    "tsx": "tsx",
    "go": "go",
    "rs": "rust",
    "rb": "ruby",
    "java": "java",
    "c": "c",
    "cpp": "cpp",
    "cc": "cpp",
    "h": "c",
    "hpp": "cpp",
    "cs": "c_sharp",
    "php": "php",
    "kt": "kotlin",
    "scala": "scala",
    "lua": "lua",
    "sh": "bash",
}

INDENT_BLOCK_EXTENSIONS = {"py"}
MAX_FILE_BYTES = 1_000_000

# (kind, template); {name} is replaced with the escaped symbol name.
_DEFINITION_TEMPLATES: Tuple[Tuple[str, str], ...] = (
    (
        "function",
        r"^\s*(?:export\s+)?(?:default\s+)?(?:local\s+)?(?:pub(?:\([^)]*\))?\s+)?(?:static\s+)?"
        r"(?:async\s+)?(?:def|function|func|fn|fun|sub|proc)\s+(?:\([^)]*\)\s*)?{name}\b",
    ),
    (
        "function",
        r"^\s*(?:local\s+)?function\s+[\w.:]+[.:]{name}\s*\(",
    ),
    (
        "class",
        r"^\s*(?:export\s+)?(?:default\s+)?(?:pub(?:\([^)]*\))?\s+)?"
        r"(?:(?:abstract|final|sealed|data|public|private|internal)\s+)*"
        r"(?:class|struct|interface|trait|enum|type|module|protocol|record)\s+{name}\b",
    ),
    (
        "variable",
        r"^\s*(?:export\s+)?(?:const|let|var|local)\s+{name}\s*[:=]",
    ),
)

_END_LINE_RE = re.compile(r"^\s*end(?:\s*$|\)|,)")


@dataclass(frozen=True)
class ResolvedSymbol:
    name: str
    kind: str
    filepath: str
    line: int
    source_excerpt: str = ""


def definition_patterns(name: str, ignore_case: bool = False) -> List[Tuple[str, Pattern[str]]]:
    flags = re.IGNORECASE if ignore_case else 0
    escaped = re.escape(name)
    return [
        (kind, re.compile(template.replace("{name}", escaped), flags))
        for kind, template in _DEFINITION_TEMPLATES
    ]


def heuristic_block_end(lines: Sequence[str], start_line: int, max_lines: int, ext: str = "") -> int:
    """1-based inclusive end line of the block starting at start_line."""
    last = min(start_line + max_lines - 1, len(lines))
    if start_line > last:
        return start_line

    if ext in INDENT_BLOCK_EXTENSIONS:
        head = lines[start_line - 1]
        base = len(head) - len(head.lstrip())
        end = start_line
        for i in range(start_line + 1, last + 1):
            line = lines[i - 1]
            if not line.strip():
                continue
            if len(line) - len(line.lstrip()) <= base:
                break
            end = i
        return end

    depth = 0
    found_open = False
    for i in range(start_line, last + 1):
        line = lines[i - 1]
        for ch in line:
            if ch == "{":
                depth += 1
                found_open = True
            elif ch == "}":
                depth -= 1
        if _END_LINE_RE.match(line) and (found_open or i > start_line + 1):
            return i
        if found_open and depth <= 0:
            return i
    return last


def treesitter_block_end(content: str, ext: str, start_line: int) -> Optional[int]:
    """End line of the outermost node starting on start_line, or None if unavailable."""
    lang_name = TREESITTER_LANGS.get(ext)
    if not lang_name:
        return None
    try:
        from tree_sitter_languages import get_parser
    except ImportError:
        return None
    try:
        parser = get_parser(lang_name)
        tree = parser.parse(content.encode("utf-8"))
    except Exception as e:
        dbg(f"symbols: tree-sitter parse failed ({lang_name}): {e}")
        return None

    row = start_line - 1
    node = tree.root_node
    best = None
    while True:
        nxt = None
        for child in node.children:
            if child.start_point[0] <= row <= child.end_point[0]:
                nxt = child
                break
        if nxt is None:
            break
        if nxt.start_point[0] == row and nxt.end_point[0] > row:
            best = nxt
            break
        node = nxt
    if best is None:
        return None
    return best.end_point[0] + 1


class SymbolResolver:
    def __init__(
        self,
        root: str,
        max_excerpt_lines: int = config.SYMBOL_EXCERPT_MAX_LINES,
        max_files: int = config.SYMBOL_SCAN_MAX_FILES,
        use_treesitter: bool = True,
    ):
        self.root = os.path.abspath(root)
        self.max_excerpt_lines = max(1, int(max_excerpt_lines))
        self.max_files = max(1, int(max_files))
        self.use_treesitter = use_treesitter

    def iter_files(self) -> Iterator[str]:
        seen = 0
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(
                d for d in dirnames if d not in config.IGNORE_DIRS and not d.startswith(".")
            )
            for fname in sorted(filenames):
                ext = os.path.splitext(fname)[1].lstrip(".").lower()
                if ext not in SOURCE_EXTENSIONS:
                    continue
                path = os.path.join(dirpath, fname)
                try:
                    if os.path.getsize(path) > MAX_FILE_BYTES:
                        continue
                except OSError:
                    continue
                yield path
                seen += 1
                if seen >= self.max_files:
                    return

    def _find(self, name: str, ignore_case: bool) -> Optional[Tuple[str, int, str, List[str]]]:
        patterns = definition_patterns(name, ignore_case)
        for path in self.iter_files():
            try:
                with open(path, "r", encoding="utf-8", errors="replace") as f:
                    lines = f.read().split("\n")
            except OSError:
                continue
            for idx, line in enumerate(lines):
                for kind, pattern in patterns:
                    if pattern.search(line):
                        return path, idx + 1, kind, lines
        return None

    def excerpt(self, path: str, lines: List[str], start_line: int) -> str:
        ext = os.path.splitext(path)[1].lstrip(".").lower()
        end = None
        if self.use_treesitter:
            end = treesitter_block_end("\n".join(lines), ext, start_line)
        if end is None:
            end = heuristic_block_end(lines, start_line, self.max_excerpt_lines, ext)
        end = min(end, start_line + self.max_excerpt_lines - 1, len(lines))
        return "\n".join(lines[start_line - 1: end]).rstrip("\n")

    def resolve(self, name: str) -> Optional[ResolvedSymbol]:
        name = (name or "").strip()
        if not name:
            return None
        hit = self._find(name, ignore_case=False) or self._find(name, ignore_case=True)
        if hit is None:
            dbg(f"symbols: {name!r} not found under {self.root}")
            return None
        path, line, kind, lines = hit
        return ResolvedSymbol(
            name=name,
            kind=kind,
            filepath=path,
            line=line,
            source_excerpt=self.excerpt(path, lines, line),
        )

    def resolve_many(self, names: Sequence[str]) -> Tuple[List[ResolvedSymbol], List[str]]:
        """Returns (resolved, unresolved_names)."""
        resolved: List[ResolvedSymbol] = []
        missing: List[str] = []
        for name in names:
            sym = self.resolve(name)
            if sym is None:
                missing.append(name)
            else:
                resolved.append(sym)
        return resolved, missing
