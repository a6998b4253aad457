"""Prompt assembly.

Layers, always in this order, each omitted with its heading when empty:
  1 task  2 user instructions  3 project scope  4 skills  5 symbols
  6 last run output  7 editor context  8 source  9 output rules
"""

import os
import re
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

from . import config
from .modes import Mode
from .registry import Selection
from .symbols import ResolvedSymbol

DEFAULT_COMMENT_PREFIX = "// "

COMMENT_PREFIXES: Dict[str, str] = {
    # C family
    "javascript": "// ", "typescript": "// ", "typescriptreact": "// ",
    "javascriptreact": "// ", "go": "// ", "rust": "// ", "c": "// ",
    "cpp": "// ", "java": "// ", "kotlin": "// ", "swift": "// ",
    "scala": "// ", "dart": "// ", "php": "// ", "zig": "// ", "v": "// ",
    "odin": "// ", "proto": "// ", "groovy": "// ", "scss": "// ",
    "sass": "// ", "csharp": "// ", "cs": "// ", "objc": "// ",
    "vue": "// ", "svelte": "// ", "fsharp": "// ",
    # hash
    "python": "# ", "ruby": "# ", "sh": "# ", "bash": "# ", "zsh": "# ",
    "fish": "# ", "yaml": "# ", "toml": "# ", "elixir": "# ", "perl": "# ",
    "r": "# ", "julia": "# ", "dockerfile": "# ", "make": "# ",
    "cmake": "# ", "conf": "# ", "terraform": "# ", "hcl": "# ",
    "nix": "# ", "powershell": "# ", "ps1": "# ", "nim": "# ",
    "crystal": "# ",
    # double dash
    "lua": "-- ", "haskell": "-- ", "sql": "-- ", "ada": "-- ",
    "vhdl": "-- ", "elm": "-- ",
    # markup and the rest
    "html": "<!-- ", "xml": "<!-- ", "svg": "<!-- ", "markdown": "<!-- ",
    "css": "/* ", "ocaml": "(* ", "vim": '" ',
    "clojure": ";; ", "lisp": ";; ", "scheme": ";; ", "racket": ";; ",
    "asm": "; ", "nasm": "; ", "ini": "; ",
    "erlang": "% ", "latex": "% ", "tex": "% ", "matlab": "% ",
}


def comment_prefix(language: str, overrides: Optional[Mapping[str, str]] = None) -> str:
    """Override map first, then the static table, then `// `."""
    lang = (language or "").strip().lower()
    merged = dict(config.COMMENT_STYLES)
    merged.update(overrides or {})
    if lang in merged and merged[lang]:
        return str(merged[lang])
    return COMMENT_PREFIXES.get(lang, DEFAULT_COMMENT_PREFIX)


# ---- editor context -------------------------------------------------------

@dataclass(frozen=True)
class Diagnostic:
    line: int
    severity: str
    message: str
    source: str = ""


@dataclass(frozen=True)
class Hover:
    line: int
    info: str


@dataclass(frozen=True)
class Location:
    path: str
    line: int
    text: str


@dataclass(frozen=True)
class OutlineSymbol:
    kind: str
    name: str
    line: Optional[int] = None
    depth: int = 0


@dataclass
class ContextBundle:
    language: str = ""
    filepath: str = ""
    diagnostics: List[Diagnostic] = field(default_factory=list)
    hover_info: List[Hover] = field(default_factory=list)
    type_defs: List[Location] = field(default_factory=list)
    symbols: List[OutlineSymbol] = field(default_factory=list)
    references: List[Location] = field(default_factory=list)
    surrounding: str = ""


def display_path(path: str) -> str:
    if not path or not os.path.isabs(path):
        return path or ""
    try:
        rel = os.path.relpath(path)
    except ValueError:
        return path
    return path if rel.startswith("..") else rel


def format_context(bundle: Optional[ContextBundle]) -> str:
    if bundle is None:
        return ""
    parts: List[str] = []
    if bundle.language:
        parts.append(f"LANGUAGE: {bundle.language}")
    if bundle.filepath:
        parts.append(f"FILE: {display_path(bundle.filepath)}")

    if bundle.diagnostics:
        parts.append("\n── DIAGNOSTICS ──")
        for d in bundle.diagnostics:
            src = f" ({d.source})" if d.source else ""
            parts.append(f"  Line {d.line} [{d.severity}]{src}: {d.message}")
    if bundle.hover_info:
        parts.append("\n── TYPE INFORMATION ──")
        for h in bundle.hover_info:
            parts.append(f"  Line {h.line}:\n  {h.info}")
    if bundle.type_defs:
        parts.append("\n── TYPE DEFINITIONS ──")
        for loc in bundle.type_defs:
            parts.append(f"  {display_path(loc.path)} (line {loc.line}):\n  {loc.text}")
    if bundle.symbols:
        parts.append("\n── FILE STRUCTURE ──")
        for s in bundle.symbols:
            where = f" (line {s.line})" if s.line else ""
            parts.append(f"  {'  ' * s.depth}{s.kind}: {s.name}{where}")
    if bundle.references:
        parts.append("\n── REFERENCES (callers / usages) ──")
        for loc in bundle.references:
            parts.append(f"  {display_path(loc.path)} (line {loc.line}):\n    {loc.text}")
    if bundle.surrounding and bundle.surrounding.strip():
        parts.append("\n── SURROUNDING CODE ──")
        parts.append(bundle.surrounding)
    return "\n".join(parts)


# ---- request tokens -------------------------------------------------------

_SKILL_RE = re.compile(r"(?<!\S)@([\w.-]+)")
_SYMBOL_RE = re.compile(r"(?<!\S)#([\w.-]+)")
_MODE_RE = re.compile(r"(?<!\S)/([A-Za-z]\w*)(?!\S)")


@dataclass(frozen=True)
class ParsedRequest:
    skills: Tuple[str, ...]
    symbols: Tuple[str, ...]
    mode: Optional[str]
    clean_text: str


def parse_request(text: str) -> ParsedRequest:
    """Pull `@skill`, `#symbol` and `/mode` tokens out of a free-form request."""
    text = text or ""
    skills = tuple(dict.fromkeys(_SKILL_RE.findall(text)))
    symbols = tuple(dict.fromkeys(_SYMBOL_RE.findall(text)))
    m = _MODE_RE.search(text)
    mode = m.group(1) if m else None
    clean = _SKILL_RE.sub("", text)
    clean = _SYMBOL_RE.sub("", clean)
    if m:
        clean = _MODE_RE.sub("", clean, count=1)
    return ParsedRequest(skills, symbols, mode, " ".join(clean.split()))


def wants_run_output(mode: Optional[Mode], user_instructions: Optional[str]) -> bool:
    if mode is not None and mode.inject_run_output:
        return True
    return bool(user_instructions) and "fix" in user_instructions.lower()


# ---- assembly -------------------------------------------------------------

SkillText = Tuple[str, str]


def _output_rules(language: str, prefix: str) -> str:
    lang = language or "source"
    return f"""\
IMPORTANT output rules:
- Reply with ONLY the complete modified code inside a single fenced code block (```{language} ... ```).
- No explanation, preamble, or notes outside the code block.
- The block replaces exactly the lines shown above: return the full span, not a fragment.
- Do not add new imports, functions, or helpers beyond what was asked.
- Use "{prefix}" as the comment prefix (this is a {lang} file).
- If no changes are needed, return the original code unchanged in a code block.
- The code must be valid {lang}."""


def build(
    task_instruction: str,
    selection: Selection,
    editor_context: Union[str, ContextBundle, None] = None,
    user_instructions: Optional[str] = None,
    skill_texts: Sequence[SkillText] = (),
    resolved_symbols: Sequence[ResolvedSymbol] = (),
    last_run_output: Optional[str] = None,
    include_run_output: bool = False,
    project_scope: Optional[str] = None,
    comment_styles: Optional[Mapping[str, str]] = None,
) -> str:
    language = selection.language or ""
    parts: List[str] = [task_instruction.rstrip("\n")]

    if user_instructions and user_instructions.strip():
        parts += ["\nDeveloper's additional instructions:", user_instructions.strip()]

    if project_scope and project_scope.strip():
        parts += ["\nProject context:", project_scope.strip()]

    skills = [(name, text) for name, text in skill_texts if text and text.strip()]
    if skills:
        parts.append("\nFollow these coding guidelines:")
        for name, text in skills:
            parts += [f"\n--- {name} ---", text.strip()]

    if resolved_symbols:
        parts.append(
            "\nHere are referenced symbols from other files (use these, do NOT redefine them):"
        )
        for sym in resolved_symbols:
            parts.append(f"\n── {sym.name} ({sym.kind}, {display_path(sym.filepath)} line {sym.line}) ──")
            if sym.source_excerpt:
                parts += [f"```{language}", sym.source_excerpt, "```"]

    if include_run_output and last_run_output and last_run_output.strip():
        parts += [
            "\nHere is the output from the last build/test run:",
            last_run_output.rstrip(),
            "\nFix the code to resolve these errors.",
        ]

    ctx_text = editor_context if isinstance(editor_context, str) else format_context(editor_context)
    if ctx_text and ctx_text.strip():
        parts += ["\nEditor context:", ctx_text]

    where = display_path(selection.document_id)
    parts.append(
        f"\nHere is the {language or 'source'} code (lines {selection.start_line}-"
        f"{selection.end_line} of {where}):"
    )
    parts += [f"```{language}", selection.original_text, "```"]

    parts.append("\n" + _output_rules(language, comment_prefix(language, comment_styles)))
    return "\n".join(parts) + "\n"


def build_freeform(user_text: str, selection: Selection, **layers) -> str:
    """Wrap a free-form request as the task instruction and build the prompt."""
    task = f"Modify the code below as requested:\n\n{user_text.strip()}\n\nDo exactly what was asked."
    layers.pop("user_instructions", None)
    return build(task, selection, **layers)
