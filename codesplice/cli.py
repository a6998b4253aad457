import argparse
import asyncio
import os
import sys
from typing import Optional, Sequence, Tuple

from . import config, modes
from .backends import make_backend
from .editor import FileEditor
from .job_log import JobLog
from .project import ProjectStore
from .registry import JobStatus
from .runs import detect_runner
from .session import Session

EXTENSION_LANGUAGES = {
    "py": "python", "js": "javascript", "jsx": "javascriptreact",
    "ts": "typescript", "tsx": "typescriptreact", "go": "go", "rs": "rust",
    "rb": "ruby", "java": "java", "c": "c", "h": "c", "cc": "cpp",
    "cpp": "cpp", "hpp": "cpp", "cs": "csharp", "php": "php",
    "swift": "swift", "kt": "kotlin", "scala": "scala", "lua": "lua",
    "sh": "sh", "bash": "bash", "zsh": "zsh", "sql": "sql", "hs": "haskell",
    "ex": "elixir", "exs": "elixir", "html": "html", "xml": "xml",
    "css": "css", "scss": "scss", "yaml": "yaml", "yml": "yaml",
    "toml": "toml", "vim": "vim", "zig": "zig", "dart": "dart",
}


def language_for_path(path: str) -> str:
    ext = os.path.splitext(path)[1].lstrip(".").lower()
    if os.path.basename(path) == "Makefile":
        return "make"
    if os.path.basename(path) == "Dockerfile":
        return "dockerfile"
    return EXTENSION_LANGUAGES.get(ext, ext)


def parse_line_range(value: str) -> Tuple[int, int]:
    """Parse "A-B" (or a single "A") into a 1-based inclusive range."""
    try:
        if "-" in value:
            a, b = value.split("-", 1)
            start, end = int(a), int(b)
        else:
            start = end = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid line range {value!r} (expected A-B)") from None
    if start < 1 or end < start:
        raise argparse.ArgumentTypeError(f"invalid line range {value!r}")
    return start, end


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="codesplice",
        description="Rewrite a line range of a file with a code model and splice the result back.",
    )
    ap.add_argument("file", nargs="?")
    ap.add_argument("request", nargs="*", help="free-form request; /mode @skill #symbol tokens allowed")
    ap.add_argument("--lines", type=parse_line_range, help="inclusive line range, e.g. 10-20")
    ap.add_argument("--mode", help=f"one of: {', '.join(modes.names())}")
    ap.add_argument("--language", help="language tag (default: from the file extension)")
    ap.add_argument("--run", metavar="CMD", help="run a build/test command first ('auto' to detect)")
    ap.add_argument("--backend", choices=("agent", "http"), default=config.BACKEND)
    ap.add_argument("--timeout", type=float, default=config.JOB_TIMEOUT)
    ap.add_argument("--root", help="workspace root (default: current directory)")
    ap.add_argument("--log", action="store_true", help="print the job log when done")
    ap.add_argument("--list-modes", action="store_true")
    ap.add_argument(
        "--init",
        nargs="?",
        const="",
        metavar="DESCRIPTION",
        help="create .codesplice/project.md and .codesplice/skills/ under the root",
    )
    ap.add_argument("--list-skills", action="store_true")
    return ap


async def run(args: argparse.Namespace) -> int:
    root = os.path.abspath(args.root or os.getcwd())
    path = os.path.abspath(args.file)
    job_log = JobLog()
    session = Session(
        FileEditor(),
        backend=make_backend(args.backend),
        root=root,
        job_log=job_log,
        timeout=args.timeout,
    )

    if args.run:
        cmd = detect_runner(root) if args.run == "auto" else args.run
        if not cmd:
            print("codesplice: no build/test runner detected", file=sys.stderr)
            return 2
        await session.runs.run(cmd, cwd=root)

    start, end = args.lines
    language = args.language or language_for_path(path)
    request = " ".join(args.request)
    if args.mode:
        job = session.invoke_mode(args.mode, path, start, end, language, request)
    else:
        job = session.invoke(path, start, end, language, request)
    if job is None:
        return 1

    status = await session.runner.wait(job.id)
    await session.wait_idle()

    if args.log:
        for entry in job_log.entries():
            print(JobLog.format_detail(entry))
            print()
    return 0 if status in (JobStatus.SUCCEEDED, JobStatus.NO_CHANGE) else 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    ap = build_parser()
    args = ap.parse_intermixed_args(argv)
    if args.list_modes:
        for name in modes.names():
            m = modes.get(name)
            print(f"{name:12s} {m.description}")
        return 0
    if args.init is not None or args.list_skills:
        store = ProjectStore(args.root or os.getcwd())
        if args.init is not None:
            print(store.init(args.init))
        for skill in store.list_skills():
            print(f"@{skill.name:20s} {skill.path}")
        return 0
    if not args.file or not args.lines:
        ap.error("FILE and --lines are required")
    if not os.path.isfile(args.file):
        ap.error(f"no such file: {args.file}")
    if not args.request and not args.mode:
        ap.error("give a REQUEST or --mode")
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
