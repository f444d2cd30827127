"""
Date literal rewriting for query text.

Query templates are written by operators in local wall-clock time, e.g.
``{"updatedAt": {"$gte": {"$date": "2025-08-20 12:34:56"}}}``, while the
store expects UTC instants. ``rewrite_datetimes`` finds every literal of the
form ``YYYY[-/]M[-/]D H:M:S`` and replaces it with ``YYYY-MM-DDTHH:MM:SSZ``
in UTC.

A literal that matches the pattern but is not a real date (``2025-02-30``)
does not abort the query. It is rewritten by shape only (space to ``T``,
``Z`` appended, digits kept) and reported as a ``MalformedDate`` in the
result so the caller can log or count it.

Examples:
    >>> to_utc_iso("event at 2025-08-20 12:34:56 please")
    'event at 2025-08-20T04:34:56Z please'

    >>> result = rewrite_datetimes("2025/02/30 10:00:00")
    >>> result.text
    '2025-02-30T10:00:00Z'
    >>> result.malformed[0].literal
    '2025/02/30 10:00:00'

Tags:
    temporal, timezone, query-rewriting, mongo-spine
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone, tzinfo

DATE_TIME_PATTERN = re.compile(
    r"(\d{4})[-/](\d{1,2})[-/](\d{1,2}) (\d{1,2}):(\d{1,2}):(\d{1,2})",
    re.ASCII,
)

# Wall-clock zone of literals in query text
DEFAULT_SOURCE_TZ: tzinfo = timezone(timedelta(hours=8))


@dataclass(frozen=True)
class MalformedDate:
    """A date literal that matched the pattern but could not be parsed."""

    literal: str
    replacement: str
    reason: str


@dataclass(frozen=True)
class RewriteResult:
    """Rewritten text plus any literals that needed the fallback."""

    text: str | None
    malformed: tuple[MalformedDate, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return not self.malformed


def _fallback(literal: str) -> str:
    return literal.replace("/", "-").replace(" ", "T") + "Z"


def rewrite_datetimes(text: str | None, source_tz: tzinfo = DEFAULT_SOURCE_TZ) -> RewriteResult:
    """Rewrite every local date-time literal in ``text`` to a UTC instant.

    Args:
        text: Arbitrary text, typically a query document
        source_tz: Timezone the literals are written in

    Returns:
        RewriteResult with the new text and fallback diagnostics
    """
    if text is None:
        return RewriteResult(text=None)

    malformed: list[MalformedDate] = []

    def _replace(match: re.Match[str]) -> str:
        year, month, day, hour, minute, second = (int(g) for g in match.groups())
        try:
            local = datetime(year, month, day, hour, minute, second, tzinfo=source_tz)
            utc = local.astimezone(timezone.utc)
            return (
                f"{utc.year:04d}-{utc.month:02d}-{utc.day:02d}"
                f"T{utc.hour:02d}:{utc.minute:02d}:{utc.second:02d}Z"
            )
        except (ValueError, OverflowError) as exc:
            replacement = _fallback(match.group(0))
            malformed.append(MalformedDate(match.group(0), replacement, str(exc)))
            return replacement

    rewritten = DATE_TIME_PATTERN.sub(_replace, text)
    return RewriteResult(text=rewritten, malformed=tuple(malformed))


def to_utc_iso(text: str | None, source_tz: tzinfo = DEFAULT_SOURCE_TZ) -> str | None:
    """Return only the rewritten text of :func:`rewrite_datetimes`."""
    return rewrite_datetimes(text, source_tz).text


__all__ = [
    "DATE_TIME_PATTERN",
    "DEFAULT_SOURCE_TZ",
    "MalformedDate",
    "RewriteResult",
    "rewrite_datetimes",
    "to_utc_iso",
]
