from typing import Optional

from .editor import DocumentEditor
from .notify import NullIndicator, ProgressIndicator
from .registry import SelectionRegistry
from .utils import dbg, split_lines


class EditApplier:
    """Replaces a line range and keeps sibling job ranges in step with the document.

    The replace and the sibling shift happen in one synchronous call, so no
    overlap check can run between them and observe stale ranges.
    """

    def __init__(
        self,
        editor: DocumentEditor,
        registry: SelectionRegistry,
        indicator: Optional[ProgressIndicator] = None,
    ):
        self.editor = editor
        self.registry = registry
        self.indicator = indicator if indicator is not None else NullIndicator()

    def apply(
        self,
        document_id: str,
        start_line: int,
        end_line: int,
        new_text: str,
        job_id: Optional[int] = None,
    ) -> int:
        new_lines = split_lines(new_text)
        count = self.editor.line_count(document_id)

        # The document may have shrunk since the range was computed.
        end_line = min(end_line, count)
        start_line = max(1, min(start_line, count + 1))
        if end_line < start_line - 1:
            end_line = start_line - 1
        old_count = end_line - start_line + 1

        with self.editor.suppress_events(document_id):
            self.editor.replace_lines(document_id, start_line, end_line, new_lines)

        delta = len(new_lines) - old_count
        shifted = self.registry.shift_after(job_id, document_id, end_line, delta)
        for job in shifted:
            self.indicator.update(job.id, job.current_start_line, job.current_end_line)
        dbg(
            f"applier: {document_id}:{start_line}-{end_line} -> {len(new_lines)} lines "
            f"(delta={delta:+d}, shifted={[j.id for j in shifted]})"
        )
        return len(new_lines)
