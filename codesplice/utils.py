import os
import sys
import time

from . import config


def _write_debug_line(line: str) -> None:
    print(line, file=sys.stderr)
    try:
        with open(config.DEBUG_LOG_PATH, "a") as f:
            f.write(line + "\n")
    except OSError:
        pass


def dbg(message: str):
    if not config.DEBUG:
        return
    ts = time.strftime("%Y-%m-%d %H:%M:%S")
    _write_debug_line(f"[debug] [{ts} pid={os.getpid()}] {message}")


def dbg_dump(label: str, text: str):
    """Dump a multi-line payload (prompt, raw response) to the debug log.

    Truncated by default; full dump when CODESPLICE_DEBUG_DUMP_VERBOSE=true.
    """
    if not config.DEBUG:
        return
    content = text or ""
    try:
        with open(config.DEBUG_LOG_PATH, "a") as f:
            if config.DEBUG_DUMP_VERBOSE:
                f.write(f"\n[debug_dump] {label}\n")
                f.write(content + "\n")
                return
            max_lines = config.DEBUG_DUMP_MAX_LINES
            max_chars = config.DEBUG_DUMP_MAX_CHARS
            lines = [ln for ln in content.splitlines() if ln.strip()]
            preview = "\n".join(lines[:max_lines])
            if len(preview) > max_chars:
                preview = preview[:max_chars]
            truncated = len(lines) > max_lines or len(content) > max_chars
            f.write(
                f"\n[debug_dump] {label} (len={len(content)})"
                f"{' …(truncated)' if truncated else ''}\n"
            )
            f.write(preview + "\n")
    except OSError:
        pass


def split_lines(text: str):
    """Split on newlines the way a buffer does: "" is one empty line, a trailing "\\n" adds none."""
    text = (text or "").replace("\r\n", "\n").replace("\r", "\n")
    if text.endswith("\n"):
        text = text[:-1]
    return text.split("\n")


def shorten(text: str, limit: int = 120) -> str:
    s = " ".join((text or "").split())
    return (s[: limit - 1] + "…") if len(s) > limit else s
