"""Prompt assembly for engine calls."""

from __future__ import annotations

import re
from datetime import datetime
from zoneinfo import ZoneInfo

from vantage.engines import Engine

_COMPARISON_PATTERN = re.compile(r"^(.+?)\s+vs\.?\s+(.+)$", re.IGNORECASE)


def format_report_date(moment: datetime | None = None, timezone: str = "Asia/Kolkata") -> str:
    """Full date string in the report timezone, e.g. 'Friday, 16 October 2026'."""
    tz = ZoneInfo(timezone)
    moment = moment.astimezone(tz) if moment else datetime.now(tz)
    return f"{moment:%A}, {moment.day} {moment:%B %Y}"


def build_engine_prompt(
    engine: Engine,
    subject: str,
    *,
    hypothesis: str | None = None,
    context: str | None = None,
    today: str | None = None,
) -> str:
    """Assemble the full prompt for one engine call."""
    today = today or format_report_date()
    prompt = f"CURRENT DATE: {today}\n\n{engine.prompt_template}\n\nTarget Asset: {subject}"

    if hypothesis:
        prompt += f"\n\nUser Question/Hypothesis: {hypothesis}"

    if context:
        prompt += f"\n\nCONTEXT FROM PREVIOUS STEPS:\n{context}"

    return prompt


def parse_comparison(subject: str) -> tuple[str, str] | None:
    """Split 'X vs Y' (or 'X vs. Y') into normalized symbols, else None."""
    match = _COMPARISON_PATTERN.match(subject.strip())
    if not match:
        return None
    first = match.group(1).strip().upper()
    second = match.group(2).strip().upper()
    if not first or not second:
        return None
    return first, second


def normalize_subject_label(subject: str) -> str:
    """Upper-case each party; comparison labels keep a lower-case ' vs '."""
    pair = parse_comparison(subject)
    if pair:
        return f"{pair[0]} vs {pair[1]}"
    return subject.strip().upper()
