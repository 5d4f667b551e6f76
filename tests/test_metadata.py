"""
Tests for report metadata extraction.
"""

from __future__ import annotations

from vantage.metadata import DEFAULT_VERDICT, extract_metadata

REPORT = """# RELIANCE Investment Memo

## Executive Summary
Reliance is pivoting from energy to consumer and telecom.

## FINAL VERDICT
- **FINAL DECISION: [BUY]**
- **The "One-Line" Thesis:** Retail and Jio carry the next leg of earnings growth.
- Conviction: High
"""


class TestExtractMetadata:
    """Verdict and summary extraction."""

    def test_verdict_and_thesis(self) -> None:
        metadata = extract_metadata(REPORT)

        assert metadata.verdict == "BUY"
        assert metadata.summary == "Retail and Jio carry the next leg of earnings growth."

    def test_first_decision_wins(self) -> None:
        report = "FINAL DECISION: WATCHLIST\nlater\nFINAL DECISION: SELL\n"
        assert extract_metadata(report).verdict == "WATCHLIST"

    def test_summary_falls_back_to_first_long_line(self) -> None:
        report = "# A heading that is long enough to count\nshort\n" + "x" * 150 + "\n"

        metadata = extract_metadata(report)

        assert metadata.verdict == DEFAULT_VERDICT
        assert metadata.summary == "x" * 100 + "..."

    def test_missing_markers(self) -> None:
        metadata = extract_metadata("# Title\nok")

        assert metadata.verdict == DEFAULT_VERDICT
        assert metadata.summary == ""

    def test_empty_or_none(self) -> None:
        assert extract_metadata(None).verdict == DEFAULT_VERDICT
        assert extract_metadata("").summary == ""

    def test_empty_decision_uses_default(self) -> None:
        assert extract_metadata("FINAL DECISION: []").verdict == DEFAULT_VERDICT
