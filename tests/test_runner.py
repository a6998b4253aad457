import asyncio
import unittest

from codesplice.applier import EditApplier
from codesplice.editor import InMemoryEditor, capture_selection
from codesplice.errors import SubmissionRejected
from codesplice.job_log import JobLog
from codesplice.notify import NoticeLevel, RecordingNotifier
from codesplice.registry import JobStatus, SelectionRegistry
from codesplice.runner import JobRunner

from support import FakeBackend, RecordingIndicator, StubbornBackend, fenced, numbered_doc


class RunnerHarness:
    def __init__(self, backend, docs, timeout: float = 1.0):
        self.backend = backend
        self.editor = InMemoryEditor(docs)
        self.registry = SelectionRegistry()
        self.log = JobLog(transcripts=False)
        self.notifier = RecordingNotifier()
        self.indicator = RecordingIndicator()
        self.runner = JobRunner(
            backend,
            self.registry,
            EditApplier(self.editor, self.registry, self.indicator),
            job_log=self.log,
            notifier=self.notifier,
            indicator=self.indicator,
            timeout=timeout,
        )

    def selection(self, doc, start, end, language="python"):
        return capture_selection(self.editor, doc, start, end, language)


def _run(coro):
    return asyncio.run(coro)


class TerminalStatusTests(unittest.TestCase):
    def _one_job(self, backend, doc_text="a = 1\nb = 2\nc = 3", start=2, end=2, timeout=1.0):
        h = RunnerHarness(backend, {"m.py": doc_text}, timeout=timeout)

        async def go():
            job = h.runner.submit(h.selection("m.py", start, end), "PROMPT", "refactor")
            status = await h.runner.wait(job.id)
            await h.runner.wait_idle()
            return job, status

        job, status = _run(go())
        return h, job, status

    def test_succeeded_applies_code(self) -> None:
        h, job, status = self._one_job(FakeBackend(stdout=fenced("b = 20")))
        self.assertEqual(status, JobStatus.SUCCEEDED)
        self.assertEqual(h.editor.lines("m.py"), ["a = 1", "b = 20", "c = 3"])
        entry = h.log.get(job.id)
        self.assertEqual(entry.status, JobStatus.SUCCEEDED)
        self.assertEqual(entry.parsed_code, "b = 20")
        self.assertEqual(entry.mode_label, "refactor")
        self.assertEqual(entry.prompt_text, "PROMPT")
        self.assertEqual(len(h.registry), 0)
        self.assertEqual(h.notifier.levels(), [NoticeLevel.INFO])
        self.assertEqual(h.indicator.cleared, [job.id])

    def test_no_change_leaves_document_alone(self) -> None:
        h, job, status = self._one_job(FakeBackend(stdout=fenced("b  =  2")))
        self.assertEqual(status, JobStatus.NO_CHANGE)
        self.assertEqual(h.editor.edits, 0)
        self.assertEqual(h.log.get(job.id).parsed_code, "b  =  2")
        self.assertEqual(h.notifier.levels(), [NoticeLevel.INFO])

    def test_parse_failed_keeps_raw_response(self) -> None:
        raw = b"I would change b to 20."
        h, job, status = self._one_job(FakeBackend(stdout=raw))
        self.assertEqual(status, JobStatus.PARSE_FAILED)
        entry = h.log.get(job.id)
        self.assertEqual(entry.raw_response, raw.decode())
        self.assertIn("no_fence", entry.error_message)
        self.assertEqual(h.editor.edits, 0)
        self.assertEqual(h.notifier.levels(), [NoticeLevel.WARN])

    def test_empty_output(self) -> None:
        h, job, status = self._one_job(FakeBackend(stdout=b""))
        self.assertEqual(status, JobStatus.EMPTY_OUTPUT)
        self.assertEqual(h.notifier.levels(), [NoticeLevel.WARN])

    def test_whitespace_output_is_a_parse_failure(self) -> None:
        h, job, status = self._one_job(FakeBackend(stdout=b"\n  \n"))
        self.assertEqual(status, JobStatus.PARSE_FAILED)

    def test_nonzero_exit_is_backend_error_with_raw_kept(self) -> None:
        backend = FakeBackend(stdout=b"partial", exit_code=2, stderr=b"boom")
        h, job, status = self._one_job(backend)
        self.assertEqual(status, JobStatus.BACKEND_ERROR)
        entry = h.log.get(job.id)
        self.assertEqual(entry.raw_response, "partial")
        self.assertIn("nonzero_exit", entry.error_message)
        self.assertIn("boom", entry.error_message)
        self.assertEqual(h.notifier.levels(), [NoticeLevel.ERROR])

    def test_spawn_failure(self) -> None:
        h, job, status = self._one_job(FakeBackend(spawn_error=True))
        self.assertEqual(status, JobStatus.BACKEND_ERROR)
        self.assertIn("spawn_failed", h.log.get(job.id).error_message)
        self.assertEqual(len(h.registry), 0)
        self.assertEqual(h.notifier.levels(), [NoticeLevel.ERROR])

    def test_transport_error(self) -> None:
        h, job, status = self._one_job(FakeBackend(stdout=fenced("b = 3"), transport_error=True))
        self.assertEqual(status, JobStatus.BACKEND_ERROR)
        self.assertIn("transport_error", h.log.get(job.id).error_message)
        self.assertEqual(h.editor.edits, 0)

    def test_timeout(self) -> None:
        backend = FakeBackend(stdout=fenced("b = 3"), delay=0.5)
        h, job, status = self._one_job(backend, timeout=0.01)
        self.assertEqual(status, JobStatus.TIMED_OUT)
        self.assertEqual(len(backend.terminated), 1)
        self.assertEqual(h.notifier.levels(), [NoticeLevel.ERROR])


class RaceTests(unittest.TestCase):
    def test_late_completion_after_timeout_is_ignored(self) -> None:
        backend = StubbornBackend(stdout=fenced("b = 999"), delay=0.05)
        h = RunnerHarness(backend, {"m.py": "a = 1\nb = 2"}, timeout=0.01)

        async def go():
            job = h.runner.submit(h.selection("m.py", 2, 2), "P")
            status = await h.runner.wait(job.id)
            await asyncio.sleep(0.1)
            await h.runner.wait_idle()
            return job, status

        job, status = _run(go())
        self.assertEqual(status, JobStatus.TIMED_OUT)
        self.assertTrue(backend.handles[0].done())
        self.assertEqual(h.editor.edits, 0)
        self.assertEqual(h.editor.lines("m.py"), ["a = 1", "b = 2"])
        self.assertEqual(h.log.get(job.id).status, JobStatus.TIMED_OUT)
        self.assertEqual(len(h.notifier.messages), 1)

    def test_cancel_finalizes_immediately_and_ignores_output(self) -> None:
        backend = StubbornBackend(stdout=fenced("b = 999"), delay=0.05)
        h = RunnerHarness(backend, {"m.py": "a = 1\nb = 2"}, timeout=1.0)

        async def go():
            job = h.runner.submit(h.selection("m.py", 2, 2), "P")
            await asyncio.sleep(0.01)
            self.assertEqual(job.status, JobStatus.RUNNING)
            self.assertTrue(h.runner.cancel(job.id))
            self.assertEqual(h.log.get(job.id).status, JobStatus.CANCELLED)
            self.assertEqual(len(h.registry), 0)
            self.assertFalse(h.runner.cancel(job.id))
            await asyncio.sleep(0.1)
            await h.runner.wait_idle()
            return job

        job = _run(go())
        self.assertEqual(len(backend.terminated), 1)
        self.assertEqual(h.editor.edits, 0)
        self.assertEqual(h.notifier.levels(), [NoticeLevel.INFO])

    def test_cancel_before_spawn(self) -> None:
        h = RunnerHarness(FakeBackend(stdout=fenced("b = 3"), delay=0.05), {"m.py": "a\nb"})

        async def go():
            job = h.runner.submit(h.selection("m.py", 1, 1), "P")
            h.runner.cancel(job.id)
            await h.runner.wait_idle()
            return job

        job = _run(go())
        self.assertEqual(h.log.get(job.id).status, JobStatus.CANCELLED)
        self.assertEqual(h.editor.edits, 0)


class ConcurrencyTests(unittest.TestCase):
    def test_overlap_rejected_without_side_effects(self) -> None:
        h = RunnerHarness(FakeBackend(stdout=fenced("x"), delay=0.05), {"d": numbered_doc(30)})

        async def go():
            first = h.runner.submit(h.selection("d", 10, 20), "A")
            with self.assertRaises(SubmissionRejected):
                h.runner.submit(h.selection("d", 15, 25), "B")
            self.assertEqual(len(h.registry), 1)
            self.assertEqual(len(h.log), 1)
            second = h.runner.submit(h.selection("d", 21, 30), "C")
            self.assertEqual(len(h.registry), 2)
            h.runner.cancel_all()
            await h.runner.wait_idle()
            return first, second

        first, second = _run(go())
        self.assertGreater(second.id, first.id)

    def test_sibling_shift_then_sibling_apply(self) -> None:
        new_a = "\n".join(f"A{i}" for i in range(5))
        new_b = "\n".join(f"B{i}" for i in range(11))

        def respond(prompt):
            if prompt == "A":
                return fenced(new_a), 0.01
            return fenced(new_b), 0.05

        h = RunnerHarness(FakeBackend(respond=respond), {"d": numbered_doc(50)})

        async def go():
            a = h.runner.submit(h.selection("d", 10, 20), "A")
            b = h.runner.submit(h.selection("d", 30, 40), "B")
            await h.runner.wait(a.id)
            self.assertEqual((b.current_start_line, b.current_end_line), (24, 34))
            self.assertFalse(h.registry.overlaps("d", 35, 40))
            self.assertTrue(h.registry.overlaps("d", 24, 24))
            await h.runner.wait_idle()
            return a, b

        a, b = _run(go())
        lines = h.editor.lines("d")
        self.assertEqual(len(lines), 44)
        self.assertEqual(lines[9:14], new_a.split("\n"))
        self.assertEqual(lines[23:34], new_b.split("\n"))
        self.assertEqual(lines[22], "line 29")
        self.assertEqual(lines[34], "line 41")
        self.assertIn("1 job still running", h.notifier.messages[0][1])

    def test_cancel_nearest_and_status_lines(self) -> None:
        h = RunnerHarness(FakeBackend(stdout=fenced("x"), delay=0.5), {"d": numbered_doc(30)})

        async def go():
            a = h.runner.submit(h.selection("d", 1, 2), "A", "document")
            b = h.runner.submit(h.selection("d", 10, 12), "B", "fix")
            lines = h.runner.status_lines()
            self.assertEqual(len(lines), 2)
            self.assertIn("[document]", lines[0])
            self.assertEqual(h.runner.cancel_nearest("d", 11), b.id)
            self.assertIsNone(h.runner.cancel_nearest("other", 1))
            self.assertEqual(h.runner.cancel_all(), 1)
            await h.runner.wait_idle()
            return a, b

        a, b = _run(go())
        self.assertEqual(h.log.get(a.id).status, JobStatus.CANCELLED)
        self.assertEqual(h.log.get(b.id).status, JobStatus.CANCELLED)
        self.assertEqual(h.runner.status_lines(), [])

    def test_ids_never_reused(self) -> None:
        h = RunnerHarness(FakeBackend(stdout=fenced("x = 5")), {"d": "x = 1"})

        async def go():
            ids = []
            for _ in range(3):
                job = h.runner.submit(h.selection("d", 1, 1), "P")
                ids.append(job.id)
                await h.runner.wait(job.id)
            return ids

        ids = _run(go())
        self.assertEqual(ids, sorted(set(ids)))
        self.assertEqual(len(ids), 3)


class JobLogTests(unittest.TestCase):
    def test_injected_empty_log_receives_entries(self) -> None:
        h = RunnerHarness(FakeBackend(stdout=fenced("b = 3"), delay=0.02), {"m.py": "a = 1\nb = 2"})
        self.assertIs(h.runner.job_log, h.log)

        async def go():
            job = h.runner.submit(h.selection("m.py", 2, 2), "PROMPT", "refactor")
            self.assertEqual(h.log.get(job.id).status, JobStatus.PENDING)
            await asyncio.sleep(0.005)
            self.assertEqual(h.log.get(job.id).status, JobStatus.RUNNING)
            await h.runner.wait(job.id)
            return job

        job = _run(go())
        self.assertEqual(len(h.log), 1)
        self.assertEqual(h.log.get(job.id).status, JobStatus.SUCCEEDED)
