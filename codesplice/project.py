"""Project scope and skill documents under `<root>/.codesplice/`.

    .codesplice/project.md       free-form scope, injected into every prompt
    .codesplice/skills/<name>.md guideline documents referenced as @name
"""

import os
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from . import config
from .utils import dbg

SCOPE_TEMPLATE = """\
# Project Scope

<!-- Describe the project here. Everything outside HTML comments is sent
     with every request. -->

## What This Project Does

## Tech Stack

## Conventions

## Important Constraints
"""

_HTML_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
_BLANK_RUN_RE = re.compile(r"\n[ \t]*\n(?:[ \t]*\n)+")
_SKILL_NAME_RE = re.compile(r"^[\w.-]+$")


@dataclass(frozen=True)
class Skill:
    name: str
    path: str


def clean_scope(content: str) -> Optional[str]:
    """Strip HTML comments and blank runs; None when nothing real is left."""
    content = _HTML_COMMENT_RE.sub("", content or "")
    content = _BLANK_RUN_RE.sub("\n\n", content)
    trimmed = content.strip()
    if not trimmed:
        return None
    # Headings with nothing under them (the untouched template).
    if all(ln.lstrip().startswith("#") for ln in trimmed.split("\n") if ln.strip()):
        return None
    return trimmed


class ProjectStore:
    def __init__(
        self,
        root: str,
        project_dir: str = config.PROJECT_DIR,
        default_skills: Sequence[str] = tuple(config.DEFAULT_SKILLS),
    ):
        self.root = os.path.abspath(root)
        self.dir = os.path.join(self.root, project_dir)
        self.skills_dir = os.path.join(self.dir, "skills")
        self.project_file = os.path.join(self.dir, "project.md")
        self.default_skills = list(default_skills)

    def is_initialized(self) -> bool:
        return os.path.isfile(self.project_file)

    def init(self, description: str = "") -> str:
        """Create the directory layout and a scope file; existing scope is kept."""
        os.makedirs(self.skills_dir, exist_ok=True)
        if not os.path.exists(self.project_file):
            body = SCOPE_TEMPLATE
            if description.strip():
                body = f"# Project Scope\n\n{description.strip()}\n"
            with open(self.project_file, "w", encoding="utf-8") as f:
                f.write(body)
            dbg(f"project: initialized {self.project_file}")
        return self.project_file

    def read_scope(self) -> Optional[str]:
        try:
            with open(self.project_file, "r", encoding="utf-8") as f:
                return clean_scope(f.read())
        except FileNotFoundError:
            return None
        except OSError as e:
            dbg(f"project: cannot read {self.project_file}: {e}")
            return None

    def list_skills(self) -> List[Skill]:
        try:
            names = os.listdir(self.skills_dir)
        except OSError:
            return []
        skills = [
            Skill(name=fname[: -len(".md")], path=os.path.join(self.skills_dir, fname))
            for fname in names
            if fname.endswith(".md") and os.path.isfile(os.path.join(self.skills_dir, fname))
        ]
        return sorted(skills, key=lambda s: s.name)

    def skill_names(self) -> List[str]:
        return [s.name for s in self.list_skills()]

    def skill_path(self, name: str) -> Optional[str]:
        if not _SKILL_NAME_RE.match(name or "") or name.startswith("."):
            return None
        path = os.path.join(self.skills_dir, f"{name}.md")
        return path if os.path.isfile(path) else None

    def read_skill(self, name: str) -> Optional[str]:
        path = self.skill_path(name)
        if path is None:
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return f.read()
        except OSError as e:
            dbg(f"project: cannot read skill {path}: {e}")
            return None

    def resolve_many(self, names: Sequence[str]) -> Tuple[List[Tuple[str, str]], List[str]]:
        """Returns ([(name, text), ...], missing_names). Default skills are appended, once."""
        texts: List[Tuple[str, str]] = []
        missing: List[str] = []
        seen = set()
        for name in names:
            if name in seen:
                continue
            seen.add(name)
            text = self.read_skill(name)
            if text is None:
                missing.append(name)
            else:
                texts.append((name, text))
        for name in self.default_skills:
            if name in seen:
                continue
            seen.add(name)
            text = self.read_skill(name)
            if text is not None:
                texts.append((name, text))
        return texts, missing
