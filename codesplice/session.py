"""The coordinating component: owns the registry, the runner and the collaborators.

An editor integration creates one Session per process and calls `invoke`
from the event-loop thread.
"""

import os
from typing import List, Mapping, Optional, Sequence

from . import config, modes
from .applier import EditApplier
from .backends import BackendTransport, make_backend
from .context import ContextProvider, SurroundingContextProvider
from .editor import DocumentEditor, capture_selection
from .errors import SubmissionRejected, UnknownMode
from .job_log import JobLog, get_job_log
from .modes import Mode
from .notify import NoticeLevel, Notifier, ProgressIndicator, StderrNotifier
from .project import ProjectStore
from .prompts import build, build_freeform, parse_request, wants_run_output
from .registry import Job, SelectionRegistry
from .runner import JobRunner
from .runs import RunStore
from .symbols import SymbolResolver
from .utils import dbg


class Session:
    def __init__(
        self,
        editor: DocumentEditor,
        backend: Optional[BackendTransport] = None,
        root: str = ".",
        notifier: Optional[Notifier] = None,
        indicator: Optional[ProgressIndicator] = None,
        job_log: Optional[JobLog] = None,
        timeout: float = config.JOB_TIMEOUT,
        context_provider: Optional[ContextProvider] = None,
        project: Optional[ProjectStore] = None,
        symbols: Optional[SymbolResolver] = None,
        runs: Optional[RunStore] = None,
        comment_styles: Optional[Mapping[str, str]] = None,
    ):
        self.root = os.path.abspath(root)
        self.editor = editor
        self.notifier = notifier if notifier is not None else StderrNotifier()
        self.job_log = job_log if job_log is not None else get_job_log()
        self.registry = SelectionRegistry()
        self.applier = EditApplier(editor, self.registry, indicator)
        self.runner = JobRunner(
            backend if backend is not None else make_backend(),
            self.registry,
            self.applier,
            job_log=self.job_log,
            notifier=self.notifier,
            indicator=indicator,
            timeout=timeout,
        )
        self.runs = runs if runs is not None else RunStore(self.job_log, self.notifier)
        self.project = project if project is not None else ProjectStore(self.root)
        self.symbols = symbols if symbols is not None else SymbolResolver(self.root)
        self.context = context_provider if context_provider is not None else SurroundingContextProvider(editor)
        self.comment_styles = dict(comment_styles or {})

    def invoke(
        self,
        document_id: str,
        start_line: int,
        end_line: int,
        language: str = "",
        request_text: str = "",
    ) -> Optional[Job]:
        """Free-form request; `/mode`, `@skill` and `#symbol` tokens are honored."""
        parsed = parse_request(request_text)
        mode = None
        if parsed.mode:
            try:
                mode = modes.get(parsed.mode)
            except UnknownMode as e:
                self.notifier.notify(f"{e}; known modes: {', '.join(modes.names())}", NoticeLevel.ERROR)
                return None
        elif not parsed.clean_text:
            self.notifier.notify("empty request", NoticeLevel.WARN)
            return None
        return self._submit(
            document_id,
            start_line,
            end_line,
            language,
            mode,
            parsed.clean_text,
            parsed.skills,
            parsed.symbols,
        )

    def invoke_mode(
        self,
        name: str,
        document_id: str,
        start_line: int,
        end_line: int,
        language: str = "",
        instructions: str = "",
    ) -> Optional[Job]:
        try:
            mode = modes.get(name)
        except UnknownMode as e:
            self.notifier.notify(f"{e}; known modes: {', '.join(modes.names())}", NoticeLevel.ERROR)
            return None
        parsed = parse_request(instructions)
        return self._submit(
            document_id,
            start_line,
            end_line,
            language,
            mode,
            parsed.clean_text,
            parsed.skills,
            parsed.symbols,
        )

    def _submit(
        self,
        document_id: str,
        start_line: int,
        end_line: int,
        language: str,
        mode: Optional[Mode],
        text: str,
        skill_names: Sequence[str],
        symbol_names: Sequence[str],
    ) -> Optional[Job]:
        count = self.editor.line_count(document_id)
        if start_line < 1 or end_line < start_line or start_line > count:
            dbg(f"session: bad range {document_id}:{start_line}-{end_line} (lines={count})")
            self.notifier.notify(
                f"lines {start_line}-{end_line} are outside the document ({count} lines)",
                NoticeLevel.WARN,
            )
            return None
        selection = capture_selection(self.editor, document_id, start_line, end_line, language)

        skill_texts, missing_skills = self.project.resolve_many(skill_names)
        for name in missing_skills:
            self.notifier.notify(f"skill '@{name}' not found", NoticeLevel.WARN)
        resolved, unresolved = self.symbols.resolve_many(symbol_names)
        for name in unresolved:
            self.notifier.notify(f"symbol '#{name}' not found in workspace", NoticeLevel.WARN)

        include_run = wants_run_output(mode, text)
        layers = dict(
            editor_context=self.context.gather(selection),
            skill_texts=skill_texts,
            resolved_symbols=resolved,
            last_run_output=self.runs.last_run_context() if include_run else None,
            include_run_output=include_run,
            project_scope=self.project.read_scope(),
            comment_styles=self.comment_styles,
        )
        if mode is not None:
            prompt = build(mode.task, selection, user_instructions=text or None, **layers)
            label = mode.name
        else:
            prompt = build_freeform(text, selection, **layers)
            label = "custom"

        try:
            return self.runner.submit(selection, prompt, label)
        except SubmissionRejected as e:
            dbg(f"session: rejected {document_id}:{start_line}-{end_line} ({e.reason})")
            self.notifier.notify(
                f"lines {selection.start_line}-{selection.end_line} overlap a running job; "
                "wait for it or cancel it first",
                NoticeLevel.WARN,
            )
            return None

    def cancel(self, document_id: str, cursor_line: int) -> Optional[int]:
        job_id = self.runner.cancel_nearest(document_id, cursor_line)
        if job_id is None:
            self.notifier.notify("no running jobs in this document", NoticeLevel.INFO)
        return job_id

    def cancel_all(self) -> int:
        count = self.runner.cancel_all()
        if count == 0:
            self.notifier.notify("no running jobs", NoticeLevel.INFO)
        return count

    def status(self) -> List[str]:
        return self.runner.status_lines() or ["no active jobs"]

    async def wait_idle(self) -> None:
        await self.runner.wait_idle()
