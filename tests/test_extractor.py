import re
import unittest

from codesplice.extractor import (
    REJECT_EMPTY,
    REJECT_MONOLOGUE,
    REJECT_NO_FENCE,
    REJECT_SUSPICIOUS_SHRINK,
    Accepted,
    Rejected,
    count_monologue_lines,
    extract,
    find_fenced_blocks,
    is_no_change,
    normalize_whitespace,
)


def _lines(n: int, prefix: str = "v") -> str:
    return "\n".join(f"{prefix}{i} = {i}" for i in range(n))


class ExtractRejectionTests(unittest.TestCase):
    def test_empty_and_whitespace_responses(self) -> None:
        self.assertEqual(extract("", "x = 1"), Rejected(REJECT_EMPTY))
        self.assertEqual(extract("  \n\t\n", "x = 1"), Rejected(REJECT_EMPTY))

    def test_unfenced_response_is_never_used_as_code(self) -> None:
        for raw in (
            "x = 2",
            "def f():\n    return 2\n",
            "Here is the fix: x = 2",
            "``x = 2``",
        ):
            result = extract(raw, "x = 1")
            self.assertEqual(result, Rejected(REJECT_NO_FENCE), msg=raw)
            self.assertFalse(result.ok)

    def test_unclosed_fence_is_no_fence(self) -> None:
        self.assertEqual(extract("```python\nx = 2\n", "x = 1"), Rejected(REJECT_NO_FENCE))

    def test_prose_block_rejected_as_monologue(self) -> None:
        block = "\n".join([
            "I'll refactor the loop first.",
            "Let me look at the helper.",
            "Here is the updated version.",
            "Note: nothing else changes.",
            "I need to keep the signature.",
        ])
        raw = f"```\n{block}\n```"
        self.assertEqual(extract(raw, "x = 1"), Rejected(REJECT_MONOLOGUE))

    def test_prose_line_inside_small_fence_is_monologue(self) -> None:
        raw = " ```\nI'll fix this:\nx = 1\n```  "
        self.assertEqual(extract(raw, "x=1"), Rejected(REJECT_MONOLOGUE))

    def test_empty_fenced_block_is_rejected(self) -> None:
        self.assertEqual(extract("```\n```", "x = 1"), Rejected(REJECT_MONOLOGUE))

    def test_size_collapse_guard(self) -> None:
        original = _lines(20)
        two = f"```python\n{_lines(2, 'a')}\n```"
        four = f"```python\n{_lines(4, 'a')}\n```"
        self.assertEqual(extract(two, original), Rejected(REJECT_SUSPICIOUS_SHRINK))
        self.assertEqual(extract(four, original), Accepted(_lines(4, "a")))

    def test_small_selection_never_trips_shrink_guard(self) -> None:
        original = _lines(5)
        raw = "```python\npass\n```"
        self.assertEqual(extract(raw, original), Accepted("pass"))

    def test_rejection_describe(self) -> None:
        self.assertIn("fenced", Rejected(REJECT_NO_FENCE).describe())


class ExtractAcceptTests(unittest.TestCase):
    def test_longest_block_wins_even_when_second(self) -> None:
        short = "y = 1 # ok"
        long_block = "\n".join(f"value_{i} = compute({i})" for i in range(8))
        self.assertEqual(len(short), 10)
        raw = f"Example:\n```\n{short}\n```\nFull answer:\n```python\n{long_block}\n```\n"
        self.assertEqual(extract(raw, "x = 1"), Accepted(long_block))

    def test_tie_keeps_first_block(self) -> None:
        raw = "```\nfirst = 1\n```\n```\nsecnd = 2\n```"
        self.assertEqual(extract(raw, "x"), Accepted("first = 1"))

    def test_blank_edges_trimmed(self) -> None:
        raw = "```js\n\n\nconst a = 1;\n\n```"
        self.assertEqual(extract(raw, "const a = 0;"), Accepted("const a = 1;"))

    def test_tilde_fence_and_longer_closing_fence(self) -> None:
        self.assertEqual(extract("~~~lua\nlocal x = 2\n~~~", "local x = 1"), Accepted("local x = 2"))
        self.assertEqual(extract("```go\nx := 2\n`````", "x := 1"), Accepted("x := 2"))

    def test_closing_fence_must_match_character(self) -> None:
        raw = "```\na = 1\n~~~\nb = 2\n```"
        self.assertEqual(find_fenced_blocks(raw), ["a = 1\n~~~\nb = 2"])

    def test_loose_pass_accepts_fence_glued_to_last_line(self) -> None:
        raw = "```python\nx = 2\nreturn x```"
        self.assertEqual(find_fenced_blocks(raw), [])
        self.assertEqual(extract(raw, "x = 1"), Accepted("x = 2\nreturn x"))

    def test_monologue_ratio_at_threshold_is_accepted(self) -> None:
        block = "I'll keep this.\nLet me be clear.\na = 1\nb = 2\nc = 3"
        self.assertEqual(extract(f"```\n{block}\n```", "a"), Accepted(block))

    def test_custom_pattern_table(self) -> None:
        patterns = (re.compile(r"^XXX"),)
        raw = "```\nXXX one\nXXX two\nok = 1\n```"
        self.assertEqual(extract(raw, "a", patterns=patterns), Rejected(REJECT_MONOLOGUE))
        raw = "```\nI'll stay\nok = 1\n```"
        self.assertEqual(extract(raw, "a", patterns=patterns), Accepted("I'll stay\nok = 1"))

    def test_extract_is_repeatable(self) -> None:
        raw = "Sure.\n```python\ndef f():\n    return 2\n```\n"
        first = extract(raw, "def f():\n    return 1")
        second = extract(raw, "def f():\n    return 1")
        self.assertEqual(first, second)
        self.assertEqual(first, Accepted("def f():\n    return 2"))


def test_count_monologue_lines_skips_blank_lines():
    prose, total = count_monologue_lines("Here is it\n\n   \nx = 1\n1. Then we go")
    assert (prose, total) == (2, 3)


def test_numbered_code_is_not_prose():
    prose, _ = count_monologue_lines("1. 5\nitems[1].Name = 2")
    assert prose == 0


def test_whitespace_only_difference_is_no_change():
    original = "func f() {\n  return 1\n}"
    accepted = "func f() {\n    return 1\n}"
    assert normalize_whitespace(original) == "func f() { return 1 }"
    assert is_no_change(original, accepted)
    assert not is_no_change("func f(){\n  return 1\n}", "func f() {\n  return 2\n}")
