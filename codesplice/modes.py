"""Built-in task modes. `fix` pulls the last build/test output into the prompt."""

from dataclasses import dataclass
from typing import Dict, List

from .errors import UnknownMode


@dataclass(frozen=True)
class Mode:
    name: str
    label: str
    task: str
    description: str = ""
    inject_run_output: bool = False


MODES: Dict[str, Mode] = {}


def register(mode: Mode) -> Mode:
    if not (mode.task or "").strip():
        raise ValueError(f"mode {mode.name!r} has no task text")
    MODES[mode.name] = mode
    return mode


def get(name: str) -> Mode:
    key = (name or "").strip().lstrip("/")
    try:
        return MODES[key]
    except KeyError:
        raise UnknownMode(key) from None


def names() -> List[str]:
    return sorted(MODES)


register(Mode(
    name="document",
    label="Document",
    description="Add documentation and inline comments",
    task="""\
Add documentation to the code below:
- Doc-comments above functions, methods, classes, and modules.
- Short inline comments for non-obvious logic. Don't comment trivial lines.
- Keep the original code exactly as-is; only add comments.
- Use the idiomatic doc style for this language.
""",
))

register(Mode(
    name="refactor",
    label="Refactor",
    description="Improve structure and readability",
    task="""\
Refactor the code below for better structure, readability, and maintainability:
- Improve naming, reduce nesting, extract helpers where beneficial.
- Preserve external behavior: same inputs and outputs.
- Don't add features or change the public API.
- Respect the existing code style.
""",
))

register(Mode(
    name="optimize",
    label="Optimize",
    description="Performance optimization",
    task="""\
Optimize the code below for better performance:
- Fix performance bottlenecks. Prefer algorithmic improvements.
- Preserve correctness; results must be identical.
- If no meaningful optimization exists, return it unchanged.
""",
))

register(Mode(
    name="fix_bugs",
    label="Fix Bugs",
    description="Find and fix bugs",
    task="""\
Find and fix bugs in the code below:
- Fix every bug, edge case, and potential runtime error.
- Pay attention to diagnostics in the context.
- Don't refactor or change style; only fix bugs.
- If no bugs are found, return it unchanged.
""",
))

register(Mode(
    name="security",
    label="Security",
    description="Security audit and fixes",
    task="""\
Audit and fix security vulnerabilities in the code below:
- Check for injection, XSS, CSRF, path traversal, hardcoded secrets, race conditions.
- Fix every vulnerability found.
- Don't change functionality; only fix security issues.
- If none are found, return it unchanged.
""",
))

register(Mode(
    name="explain",
    label="Explain",
    description="Add explanatory comments",
    task="""\
Add detailed explanatory comments to the code below:
- Explain the logic, patterns, and design decisions.
- Do NOT modify any code; only add comments.
- Reference design patterns and language idioms where relevant.
""",
))

register(Mode(
    name="brainstorm",
    label="Brainstorm",
    description="Brainstorm ideas as comments",
    task="""\
Analyze the code and brainstorm improvements as comments. Do NOT change code.
Add comments like:
  [idea] Could use a strategy pattern here
  [tradeoff] Recursion is cleaner but iterative handles deep trees better

Be specific and reference the actual code. Return the original code with comments added.
""",
))

register(Mode(
    name="code",
    label="Code",
    description="Implement stubs and TODOs",
    task="""\
Implement the code below. If it is a stub, signature, TODO, or incomplete, write the full working code.
- Follow existing signatures and types exactly.
- Match code style and conventions from the surrounding context.
- Handle edge cases and errors properly.
""",
))

register(Mode(
    name="fix",
    label="Fix from Output",
    description="Fix based on build/test output",
    inject_run_output=True,
    task="""\
The code below has errors from a build or test run. The output is included in the context.
- Read the error output carefully.
- Fix the code to resolve ALL errors shown in the output.
- Don't change unrelated code.
- If the errors are in tests, fix the source code, not the tests (unless the tests are selected).
""",
))
