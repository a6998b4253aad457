from typing import Optional, Protocol

from . import config
from .editor import DocumentEditor
from .prompts import ContextBundle
from .registry import Selection


class ContextProvider(Protocol):
    def gather(self, selection: Selection) -> ContextBundle:
        ...


class SurroundingContextProvider:
    """Context without a language server: file label plus the code around the selection.

    The window is split in half; half goes before the selection and half after.
    """

    def __init__(self, editor: DocumentEditor, context_lines: int = config.CONTEXT_LINES):
        self.editor = editor
        self.context_lines = max(0, int(context_lines))

    def surrounding(self, selection: Selection) -> str:
        half = self.context_lines // 2
        if half <= 0:
            return ""
        total = self.editor.line_count(selection.document_id)
        before_start = max(1, selection.start_line - half)
        after_end = min(total, selection.end_line + half)

        parts = []
        if before_start < selection.start_line:
            parts.append(
                self.editor.read_lines(selection.document_id, before_start, selection.start_line - 1)
            )
        parts.append(f"<<< selected lines {selection.start_line}-{selection.end_line} >>>")
        if selection.end_line < after_end:
            parts.append(
                self.editor.read_lines(selection.document_id, selection.end_line + 1, after_end)
            )
        if len(parts) == 1:
            return ""
        return "\n".join(parts)

    def gather(self, selection: Selection, language: Optional[str] = None) -> ContextBundle:
        return ContextBundle(
            language=language or selection.language,
            filepath=selection.document_id,
            surrounding=self.surrounding(selection),
        )
