"""
Output classifier for the external publishing tool.

The tool's exit code is not a reliable success signal: it prints
deprecation notices and permission warnings on stderr even when the
import worked, and its wording changes between versions. Classification
is therefore a pure function over the captured text, driven by a pattern
table that is configuration rather than code.

Rules, in order:

    1. empty stderr                          → success
    2. a success phrase in stdout or stderr  → success (stderr ignored)
    3. per stderr line:
         matches a benign pattern            → ignored
         contains an error keyword           → FAILURE
         anything else                       → informational
    4. nothing flagged                       → success

Examples:
    >>> is_real_failure("", "")
    False
    >>> is_real_failure("Error: workflow has no nodes", "")
    True
    >>> is_real_failure("Error: noisy", "Successfully imported 1 workflow.")
    False

Tags:
    classifier, heuristics, subprocess-output, flow-spine
"""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, Field

DEFAULT_SUCCESS_PHRASES = [
    "Successfully imported",
    "Successfully exported",
    "Importing",
]

DEFAULT_BENIGN_PATTERNS = [
    "deprecation",
    "Permissions",
    "N8N_RUNNERS_ENABLED",
    "N8N_ENFORCE_SETTINGS_FILE_PERMISSIONS",
    "There is a deprecation",
    "Learn more:",
]

DEFAULT_ERROR_KEYWORDS = ["error", "failed", "invalid"]


class ClassifierPatterns(BaseModel):
    """Pattern table for :func:`classify_output`.

    Success phrases and benign patterns are matched case-sensitively as
    substrings; error keywords are matched against the lowercased line.
    """

    success_phrases: list[str] = Field(default_factory=lambda: list(DEFAULT_SUCCESS_PHRASES))
    benign_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_BENIGN_PATTERNS))
    error_keywords: list[str] = Field(default_factory=lambda: list(DEFAULT_ERROR_KEYWORDS))

    def success_phrase_in(self, *texts: str) -> str | None:
        for phrase in self.success_phrases:
            if any(phrase in text for text in texts):
                return phrase
        return None

    def is_benign(self, line: str) -> bool:
        return any(pattern in line for pattern in self.benign_patterns)

    def error_keyword_in(self, line: str) -> str | None:
        lowered = line.lower()
        return next((k for k in self.error_keywords if k.lower() in lowered), None)


DEFAULT_PATTERNS = ClassifierPatterns()


@dataclass(frozen=True)
class Classification:
    """Decision plus the evidence it was based on."""

    failed: bool
    reason: str
    offending_line: str | None = None
    success_phrase: str | None = None
    benign_lines: tuple[str, ...] = ()


def classify_output(
    stderr: str,
    stdout: str = "",
    patterns: ClassifierPatterns | None = None,
) -> Classification:
    """Classify captured tool output into success or real failure."""
    patterns = patterns or DEFAULT_PATTERNS
    stderr = stderr or ""
    stdout = stdout or ""

    phrase = patterns.success_phrase_in(stdout, stderr)
    if not stderr.strip():
        return Classification(False, "empty stderr", success_phrase=phrase)
    if phrase is not None:
        return Classification(False, "success phrase present", success_phrase=phrase)

    benign: list[str] = []
    for raw_line in stderr.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        if patterns.is_benign(line):
            benign.append(line)
            continue
        keyword = patterns.error_keyword_in(line)
        if keyword is not None:
            return Classification(
                True,
                f"stderr line contains {keyword!r}",
                offending_line=line,
                benign_lines=tuple(benign),
            )

    return Classification(False, "no error lines in stderr", benign_lines=tuple(benign))


def is_real_failure(
    stderr: str,
    stdout: str = "",
    patterns: ClassifierPatterns | None = None,
) -> bool:
    return classify_output(stderr, stdout, patterns).failed
