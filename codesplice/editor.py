"""Document access used by the applier and the context provider.

Line numbers are 1-based and inclusive everywhere. `replace_lines` with
start == line_count() + 1 and end == start - 1 is an insertion at the end.
"""

import os
import tempfile
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional, Protocol, Sequence, Tuple

from .registry import Selection
from .utils import split_lines


class DocumentEditor(Protocol):
    def read_lines(self, document_id: str, start: int, end: int) -> str:
        ...

    def replace_lines(
        self, document_id: str, start: int, end: int, new_lines: Sequence[str]
    ) -> int:
        ...

    def line_count(self, document_id: str) -> int:
        ...

    def suppress_events(self, document_id: str):
        ...


def _check_range(count: int, start: int, end: int) -> None:
    if start < 1 or start > count + 1:
        raise IndexError(f"start line {start} outside document (1..{count + 1})")
    if end < start - 1 or end > count:
        raise IndexError(f"end line {end} outside document (start={start}, lines={count})")


ChangeListener = Callable[[str, int, int, int], None]


class InMemoryEditor:
    """Documents held as line lists.

    Each `replace_lines` call is one undo step. Change listeners stand in for
    on-change hooks (formatters, linters) and are skipped while events are
    suppressed.
    """

    def __init__(self, documents: Optional[Dict[str, str]] = None):
        self._docs: Dict[str, List[str]] = {}
        self._undo: Dict[str, List[List[str]]] = {}
        self._suppressed: Dict[str, int] = {}
        self.listeners: List[ChangeListener] = []
        self.edits = 0
        for doc_id, text in (documents or {}).items():
            self.open(doc_id, text)

    def open(self, document_id: str, text: str) -> None:
        self._docs[document_id] = split_lines(text)
        self._undo[document_id] = []

    def text(self, document_id: str) -> str:
        return "\n".join(self._docs[document_id])

    def lines(self, document_id: str) -> List[str]:
        return list(self._docs[document_id])

    def line_count(self, document_id: str) -> int:
        return len(self._docs[document_id])

    def read_lines(self, document_id: str, start: int, end: int) -> str:
        lines = self._docs[document_id]
        return "\n".join(lines[max(0, start - 1): end])

    def replace_lines(
        self, document_id: str, start: int, end: int, new_lines: Sequence[str]
    ) -> int:
        lines = self._docs[document_id]
        _check_range(len(lines), start, end)
        self._undo[document_id].append(list(lines))
        lines[start - 1: end] = list(new_lines)
        self.edits += 1
        if not self.events_suppressed(document_id):
            for listener in list(self.listeners):
                listener(document_id, start, end, len(new_lines))
        return len(new_lines)

    def undo(self, document_id: str) -> bool:
        stack = self._undo.get(document_id) or []
        if not stack:
            return False
        self._docs[document_id] = stack.pop()
        return True

    def events_suppressed(self, document_id: str) -> bool:
        return self._suppressed.get(document_id, 0) > 0

    @contextmanager
    def suppress_events(self, document_id: str) -> Iterator[None]:
        self._suppressed[document_id] = self._suppressed.get(document_id, 0) + 1
        try:
            yield
        finally:
            self._suppressed[document_id] -= 1
            if self._suppressed[document_id] <= 0:
                del self._suppressed[document_id]


class FileEditor:
    """Treats file paths as documents. Every replace is an atomic file rewrite.

    The file's line ending ("\\r\\n" or "\\n") and its trailing newline are kept.
    """

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding

    def _load(self, path: str) -> Tuple[List[str], bool, str]:
        with open(path, "r", encoding=self.encoding, newline="") as f:
            raw = f.read()
        newline = "\r\n" if "\r\n" in raw else "\n"
        trailing_newline = raw.endswith("\n")
        lines = split_lines(raw) if raw else []
        return lines, trailing_newline, newline

    def line_count(self, document_id: str) -> int:
        lines, _, _ = self._load(document_id)
        return len(lines)

    def read_lines(self, document_id: str, start: int, end: int) -> str:
        lines, _, _ = self._load(document_id)
        return "\n".join(lines[max(0, start - 1): end])

    def replace_lines(
        self, document_id: str, start: int, end: int, new_lines: Sequence[str]
    ) -> int:
        lines, trailing_newline, newline = self._load(document_id)
        _check_range(len(lines), start, end)
        lines[start - 1: end] = list(new_lines)
        text = newline.join(lines)
        if trailing_newline and lines:
            text += newline
        _atomic_write(document_id, text, self.encoding)
        return len(new_lines)

    @contextmanager
    def suppress_events(self, document_id: str) -> Iterator[None]:
        # No on-change hooks for plain files.
        yield


def _atomic_write(path: str, text: str, encoding: str) -> None:
    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp_path = tempfile.mkstemp(prefix=".codesplice.", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding=encoding, newline="") as f:
            f.write(text)
        try:
            os.chmod(tmp_path, os.stat(path).st_mode & 0o7777)
        except OSError:
            pass
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def capture_selection(
    editor: DocumentEditor,
    document_id: str,
    start_line: int,
    end_line: int,
    language: str = "",
) -> Selection:
    count = editor.line_count(document_id)
    end_line = min(end_line, count)
    return Selection(
        document_id=document_id,
        start_line=start_line,
        end_line=end_line,
        original_text=editor.read_lines(document_id, start_line, end_line),
        language=language or "",
    )
