import os
import tempfile
import unittest

from codesplice.applier import EditApplier
from codesplice.editor import FileEditor, InMemoryEditor, capture_selection
from codesplice.registry import Job, SelectionRegistry

from support import RecordingIndicator, numbered_doc


def _job(job_id: int, start: int, end: int, doc: str = "doc") -> Job:
    return Job(id=job_id, document_id=doc, current_start_line=start, current_end_line=end)


class ApplyTests(unittest.TestCase):
    def setUp(self) -> None:
        self.editor = InMemoryEditor({"doc": numbered_doc(50)})
        self.registry = SelectionRegistry()
        self.indicator = RecordingIndicator()
        self.applier = EditApplier(self.editor, self.registry, self.indicator)

    def test_shrinking_edit_shifts_later_sibling_only(self) -> None:
        edited, later, earlier = _job(1, 10, 20), _job(2, 30, 40), _job(3, 5, 9)
        for job in (edited, later, earlier):
            self.registry.register(job)

        applied = self.applier.apply("doc", 10, 20, "a\nb\nc\nd\ne", job_id=1)

        self.assertEqual(applied, 5)
        self.assertEqual(self.editor.line_count("doc"), 44)
        self.assertEqual(self.editor.read_lines("doc", 10, 14), "a\nb\nc\nd\ne")
        self.assertEqual(self.editor.read_lines("doc", 15, 15), "line 21")
        self.assertEqual((later.current_start_line, later.current_end_line), (24, 34))
        self.assertEqual((earlier.current_start_line, earlier.current_end_line), (5, 9))
        self.assertEqual(self.editor.read_lines("doc", 24, 24), "line 30")
        self.assertEqual(self.indicator.updates, [(2, 24, 34)])

    def test_growing_edit_shifts_forward(self) -> None:
        later = _job(2, 30, 31)
        self.registry.register(later)
        self.applier.apply("doc", 3, 3, "x\ny\nz", job_id=None)
        self.assertEqual((later.current_start_line, later.current_end_line), (32, 33))
        self.assertEqual(self.editor.read_lines("doc", 32, 32), "line 30")

    def test_single_undo_step(self) -> None:
        before = self.editor.text("doc")
        self.applier.apply("doc", 1, 50, "only")
        self.assertEqual(self.editor.edits, 1)
        self.assertTrue(self.editor.undo("doc"))
        self.assertEqual(self.editor.text("doc"), before)
        self.assertFalse(self.editor.undo("doc"))

    def test_change_listeners_suppressed_during_apply(self) -> None:
        fired = []
        self.editor.listeners.append(lambda *args: fired.append(args))
        self.applier.apply("doc", 1, 1, "changed")
        self.assertEqual(fired, [])
        self.assertFalse(self.editor.events_suppressed("doc"))
        self.editor.replace_lines("doc", 2, 2, ["typed"])
        self.assertEqual(fired, [("doc", 2, 2, 1)])

    def test_suppression_restored_when_replace_fails(self) -> None:
        class BrokenEditor(InMemoryEditor):
            def replace_lines(self, document_id, start, end, new_lines):
                raise RuntimeError("buffer is read-only")

        editor = BrokenEditor({"doc": "a\nb"})
        applier = EditApplier(editor, self.registry)
        with self.assertRaises(RuntimeError):
            applier.apply("doc", 1, 1, "z")
        self.assertFalse(editor.events_suppressed("doc"))

    def test_end_clamped_when_document_shrank(self) -> None:
        editor = InMemoryEditor({"doc": numbered_doc(8)})
        applier = EditApplier(editor, self.registry)
        applied = applier.apply("doc", 5, 12, "tail")
        self.assertEqual(applied, 1)
        self.assertEqual(editor.lines("doc"), ["line 1", "line 2", "line 3", "line 4", "tail"])

    def test_vanished_range_becomes_append(self) -> None:
        editor = InMemoryEditor({"doc": "a\nb\nc"})
        applier = EditApplier(editor, self.registry)
        applier.apply("doc", 10, 12, "x")
        self.assertEqual(editor.lines("doc"), ["a", "b", "c", "x"])


class FileEditorTests(unittest.TestCase):
    def test_atomic_replace_keeps_trailing_newline(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "m.py")
            with open(path, "w", encoding="utf-8") as f:
                f.write("a = 1\nb = 2\nc = 3\n")
            editor = FileEditor()
            self.assertEqual(editor.line_count(path), 3)
            self.assertEqual(editor.read_lines(path, 2, 3), "b = 2\nc = 3")

            editor.replace_lines(path, 2, 2, ["b = 20", "b += 1"])

            with open(path, encoding="utf-8") as f:
                self.assertEqual(f.read(), "a = 1\nb = 20\nb += 1\nc = 3\n")
            self.assertEqual(sorted(os.listdir(tmp)), ["m.py"])

    def test_crlf_line_endings_preserved(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "w.py")
            with open(path, "wb") as f:
                f.write(b"a = 1\r\nb = 2\r\nc = 3\r\n")
            editor = FileEditor()
            self.assertEqual(editor.read_lines(path, 1, 2), "a = 1\nb = 2")

            editor.replace_lines(path, 2, 2, ["b = 20", "b += 1"])

            with open(path, "rb") as f:
                self.assertEqual(f.read(), b"a = 1\r\nb = 20\r\nb += 1\r\nc = 3\r\n")

    def test_capture_selection_reads_text(self) -> None:
        editor = InMemoryEditor({"doc": "a\nb\nc"})
        sel = capture_selection(editor, "doc", 2, 9, "text")
        self.assertEqual((sel.start_line, sel.end_line), (2, 3))
        self.assertEqual(sel.original_text, "b\nc")
