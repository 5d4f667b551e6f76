"""Derive list-display metadata (verdict label, one-line summary) from a report."""

from __future__ import annotations

import re
from dataclasses import dataclass

DEFAULT_VERDICT = "ANALYZED"
SUMMARY_MIN_LINE_LENGTH = 20
SUMMARY_MAX_LENGTH = 100

_VERDICT_PATTERN = re.compile(r"FINAL DECISION:\s*\[?(.*?)\]?\s*$", re.MULTILINE)
_THESIS_PATTERN = re.compile(r'The "One-Line" Thesis:?\s*(.*)$', re.MULTILINE)


@dataclass(frozen=True)
class ReportMetadata:
    verdict: str = DEFAULT_VERDICT
    summary: str = ""


def _clean(value: str) -> str:
    return value.replace("*", "").strip().strip("[]").strip()


def extract_metadata(report: str | None) -> ReportMetadata:
    """Best-effort verdict and summary; never raises on malformed input.

    The verdict is the first ``FINAL DECISION:`` line. The summary is the
    first ``The "One-Line" Thesis`` line, else the first non-heading line
    longer than the minimum length, truncated.
    """
    if not report:
        return ReportMetadata()

    verdict = DEFAULT_VERDICT
    verdict_match = _VERDICT_PATTERN.search(report)
    if verdict_match:
        verdict = _clean(verdict_match.group(1)) or DEFAULT_VERDICT

    summary = ""
    thesis_match = _THESIS_PATTERN.search(report)
    if thesis_match:
        summary = _clean(thesis_match.group(1))

    if not summary:
        for line in report.splitlines():
            stripped = line.strip()
            if len(stripped) > SUMMARY_MIN_LINE_LENGTH and not stripped.startswith("#"):
                summary = stripped[:SUMMARY_MAX_LENGTH] + "..."
                break

    return ReportMetadata(verdict=verdict, summary=summary)
