import json
import os
import shlex
import tempfile

# Backend selection: "agent" (external CLI agent) or "http" (hosted model endpoint)
BACKEND = os.getenv("CODESPLICE_BACKEND", "agent").strip().lower() or "agent"
# Per-job timeout in seconds (timer races backend completion)
JOB_TIMEOUT = float(os.getenv("CODESPLICE_TIMEOUT", "120"))

# CLI agent transport
AGENT_BIN = os.getenv("CODESPLICE_AGENT_BIN", "opencode")
AGENT_FLAGS = shlex.split(os.getenv("CODESPLICE_AGENT_FLAGS", ""))
AGENT_CWD = os.getenv("CODESPLICE_AGENT_CWD", "").strip() or None
MODEL = os.getenv("CODESPLICE_MODEL", "").strip() or None

# Hosted HTTP transport (OpenAI-compatible chat completions)
HTTP_URL = os.getenv("CODESPLICE_HTTP_URL", "https://api.openai.com/v1/chat/completions")
# Name of the env var holding the API key; the key itself is never stored here.
HTTP_API_KEY_ENV = os.getenv("CODESPLICE_HTTP_API_KEY_ENV", "OPENAI_API_KEY")
HTTP_MODEL = os.getenv("CODESPLICE_HTTP_MODEL", "gpt-4o-mini")
HTTP_MAX_TOKENS = int(os.getenv("CODESPLICE_HTTP_MAX_TOKENS", "4096"))
HTTP_TEMPERATURE = float(os.getenv("CODESPLICE_HTTP_TEMPERATURE", "0.1"))
HTTP_MAX_RESPONSE_BYTES = int(os.getenv("CODESPLICE_HTTP_MAX_RESPONSE_BYTES", "2000000"))

# Extraction heuristics. Tuned empirically; keep 0.4 / 0.15 unless a corpus says otherwise.
MONOLOGUE_RATIO = float(os.getenv("CODESPLICE_MONOLOGUE_RATIO", "0.4"))
SHRINK_RATIO = float(os.getenv("CODESPLICE_SHRINK_RATIO", "0.15"))
SHRINK_MIN_LINES = int(os.getenv("CODESPLICE_SHRINK_MIN_LINES", "5"))

# Job log ring buffer + per-job transcript files
JOB_LOG_MAX = int(os.getenv("CODESPLICE_JOB_LOG_MAX", "200"))
TRANSCRIPTS = os.getenv("CODESPLICE_TRANSCRIPTS", "true").lower() in ("1", "true", "yes")
TRANSCRIPT_DIR = os.getenv("CODESPLICE_TRANSCRIPT_DIR", "").strip() or tempfile.gettempdir()

# Build/test run capture
RUN_HISTORY_MAX = int(os.getenv("CODESPLICE_RUN_HISTORY_MAX", "20"))
RUN_OUTPUT_MAX_CHARS = int(os.getenv("CODESPLICE_RUN_OUTPUT_MAX_CHARS", "5000"))

# Context gathering
CONTEXT_LINES = int(os.getenv("CODESPLICE_CONTEXT_LINES", "80"))
SYMBOL_EXCERPT_MAX_LINES = int(os.getenv("CODESPLICE_SYMBOL_EXCERPT_MAX_LINES", "50"))
SYMBOL_SCAN_MAX_FILES = int(os.getenv("CODESPLICE_SYMBOL_SCAN_MAX_FILES", "2000"))

# Project scope + skills live under <root>/<PROJECT_DIR>
PROJECT_DIR = os.getenv("CODESPLICE_PROJECT_DIR", ".codesplice")
DEFAULT_SKILLS = [
    s.strip() for s in os.getenv("CODESPLICE_DEFAULT_SKILLS", "").split(",") if s.strip()
]
# Comment prefix overrides, e.g. CODESPLICE_COMMENT_STYLES='{"vue": "<!-- "}'
COMMENT_STYLES = json.loads(os.getenv("CODESPLICE_COMMENT_STYLES", "") or "{}")

DEBUG = os.getenv("CODESPLICE_DEBUG", "").lower() in ("1", "true", "yes")
DEBUG_LOG_PATH = os.getenv(
    "CODESPLICE_DEBUG_LOG", os.path.join(tempfile.gettempdir(), "codesplice-debug.log")
)
# CODESPLICE_DEBUG_DUMP_VERBOSE=1: write full prompts/responses to the debug log.
DEBUG_DUMP_VERBOSE = os.getenv("CODESPLICE_DEBUG_DUMP_VERBOSE", "false").lower() in ("1", "true", "yes")
DEBUG_DUMP_MAX_LINES = int(os.getenv("CODESPLICE_DEBUG_DUMP_MAX_LINES", "20"))
DEBUG_DUMP_MAX_CHARS = int(os.getenv("CODESPLICE_DEBUG_DUMP_MAX_CHARS", "2000"))

IGNORE_DIRS = {".git", "node_modules", "__pycache__", ".venv", "venv", "dist", "build", PROJECT_DIR}
