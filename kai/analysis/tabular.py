"""Tabular metrics classifier: which platform exported this CSV, and what it measures."""

from __future__ import annotations

import csv
import re
from dataclasses import dataclass

from loguru import logger

from kai.actions.types import (
    Attachment,
    DateRange,
    PlatformType,
    TabularAnalysisResult,
    TabularPreview,
)
from kai.errors import EmptyInputError

FILENAME_CONFIDENCE = 0.9
UNKNOWN_CONFIDENCE = 0.3
MAX_HEADER_CONFIDENCE = 0.95
DEFAULT_SAMPLE_ROWS = 5

_DATE_HEADER_TOKENS = ("date", "data", "day", "dia")
_QUOTED = re.compile(r'"[^"]*"')


@dataclass(frozen=True, slots=True)
class PlatformKeywords:
    """Evidence for one platform.

    ``score_keywords`` vote for the platform; ``metric_keywords`` are what
    gets reported back as detected metrics.
    """

    platform: PlatformType
    filename_tokens: tuple[re.Pattern[str], ...]
    score_keywords: tuple[str, ...]
    metric_keywords: tuple[str, ...]

    def filename_matches(self, filename: str) -> bool:
        return any(t.search(filename) for t in self.filename_tokens)


def _tokens(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p) for p in patterns)


# Priority order: ties in header scoring resolve to the earliest entry.
DEFAULT_PLATFORMS: tuple[PlatformKeywords, ...] = (
    PlatformKeywords(
        platform=PlatformType.INSTAGRAM,
        filename_tokens=_tokens(r"instagram", r"(?<![a-z])insta(?![a-z])"),
        score_keywords=(
            "impressions", "reach", "engagement", "likes", "comments",
            "saves", "shares", "profile_visits", "follows",
            "impressões", "alcance", "curtidas", "comentários", "salvos",
        ),
        metric_keywords=(
            "impressions", "reach", "likes", "comments", "saves", "shares", "engagement", "followers",
        ),
    ),
    PlatformKeywords(
        platform=PlatformType.YOUTUBE,
        filename_tokens=_tokens(r"youtube", r"(?<![a-z])yt(?![a-z])"),
        score_keywords=(
            "views", "watch_time", "subscribers", "likes", "dislikes",
            "visualizações", "tempo_de_exibição", "inscritos",
            "average_view_duration", "ctr", "click_through_rate",
        ),
        metric_keywords=(
            "views", "watch_time", "subscribers", "likes", "comments", "ctr", "average_view_duration",
        ),
    ),
    PlatformKeywords(
        platform=PlatformType.NEWSLETTER,
        filename_tokens=_tokens(r"newsletter", r"beehiiv", r"mailchimp"),
        score_keywords=(
            "opens", "clicks", "subscribers", "unsubscribes", "bounce_rate",
            "open_rate", "click_rate", "delivered", "sent",
            "aberturas", "cliques", "assinantes",
        ),
        metric_keywords=(
            "opens", "clicks", "subscribers", "open_rate", "click_rate", "delivered",
        ),
    ),
    PlatformKeywords(
        platform=PlatformType.TWITTER,
        filename_tokens=_tokens(r"twitter", r"(?<![a-z0-9])x_"),
        score_keywords=(
            "retweets", "tweets", "impressions", "engagements",
            "replies", "quote_tweets", "followers",
        ),
        metric_keywords=(
            "impressions", "engagements", "retweets", "replies", "likes", "followers",
        ),
    ),
    PlatformKeywords(
        platform=PlatformType.LINKEDIN,
        filename_tokens=_tokens(r"linkedin"),
        score_keywords=(
            "impressions", "clicks", "reactions", "comments", "shares",
            "followers", "engagement_rate", "unique_impressions",
        ),
        metric_keywords=(
            "impressions", "clicks", "reactions", "comments", "shares", "followers",
        ),
    ),
)


# ---------------------------------------------------------------------------
# line parsing
# ---------------------------------------------------------------------------


def detect_delimiter(line: str) -> str:
    """``;`` when it outnumbers ``,`` outside quotes, else ``,``."""
    bare = _QUOTED.sub("", line)
    return ";" if bare.count(";") > bare.count(",") else ","


def parse_line(line: str, delimiter: str | None = None) -> list[str]:
    """Split one record; quoted fields may contain either delimiter."""
    delimiter = delimiter or detect_delimiter(line)
    try:
        row = next(csv.reader([line], delimiter=delimiter, skipinitialspace=True), [])
    except csv.Error as e:
        logger.debug(f"csv module rejected a line ({e}); splitting it by hand")
        row = split_quoted(line, delimiter)
    return [cell.strip() for cell in row]


def split_quoted(line: str, delimiter: str) -> list[str]:
    """Quote-aware split with no field size limit. ``""`` inside quotes is a literal quote."""
    cells: list[str] = []
    buf: list[str] = []
    quoted = False
    i = 0
    while i < len(line):
        ch = line[i]
        if ch == '"':
            if quoted and line[i + 1:i + 2] == '"':
                buf.append('"')
                i += 1
            else:
                quoted = not quoted
        elif ch == delimiter and not quoted:
            cells.append("".join(buf))
            buf = []
        else:
            buf.append(ch)
        i += 1
    cells.append("".join(buf))
    return cells


# ---------------------------------------------------------------------------
# scoring
# ---------------------------------------------------------------------------


def header_confidence(score: int) -> float:
    """Monotonic in ``score`` and saturating at 0.95."""
    return round(min(0.5 + 0.1 * score, MAX_HEADER_CONFIDENCE), 2)


def count_matches(headers: list[str], keywords: tuple[str, ...]) -> int:
    """Number of headers containing at least one keyword."""
    return sum(1 for h in headers if any(k in h for k in keywords))


class TabularClassifier:
    def __init__(
        self,
        platforms: tuple[PlatformKeywords, ...] = DEFAULT_PLATFORMS,
        sample_rows: int = DEFAULT_SAMPLE_ROWS,
    ) -> None:
        self._platforms = platforms
        self._sample_rows = sample_rows

    async def analyze_csv(self, file: Attachment | None) -> TabularAnalysisResult:
        if file is None:
            raise EmptyInputError("No file to analyze")
        content = await file.read_text()
        return self.analyze_text(content, file.name)

    def analyze_text(self, content: str | None, filename: str = "") -> TabularAnalysisResult:
        if content is None:
            raise EmptyInputError("CSV file is empty")
        lines = [ln for ln in content.lstrip("\ufeff").splitlines() if ln.strip()]
        if len(lines) < 2:
            raise EmptyInputError("CSV file is empty or has no data rows")

        # one delimiter per file, taken from the header
        delimiter = detect_delimiter(lines[0])
        headers = parse_line(lines[0], delimiter)
        rows = [parse_line(ln, delimiter) for ln in lines[1:1 + self._sample_rows]]
        sample = [
            {h: (row[i] if i < len(row) else "") for i, h in enumerate(headers)}
            for row in rows
        ]

        platform, confidence = self.detect_platform(headers, filename)
        preview = TabularPreview(
            total_rows=len(lines) - 1,
            columns=headers,
            sample_data=sample,
            metrics_detected=self.detect_metrics(headers, platform),
            date_range=_sample_date_range(headers, sample),
        )
        logger.debug(
            f"CSV {filename or '<memory>'}: {platform.value} ({confidence:.2f}), "
            f"{preview.total_rows} rows, metrics={preview.metrics_detected}"
        )
        return TabularAnalysisResult(platform=platform, confidence=confidence, preview=preview)

    def detect_platform(self, headers: list[str], filename: str = "") -> tuple[PlatformType, float]:
        name = filename.lower()
        for entry in self._platforms:
            if entry.filename_matches(name):
                return entry.platform, FILENAME_CONFIDENCE

        lowered = [h.lower() for h in headers]
        best: PlatformKeywords | None = None
        best_score = 0
        for entry in self._platforms:
            score = count_matches(lowered, entry.score_keywords)
            if score > best_score:
                best, best_score = entry, score

        if best is None:
            return PlatformType.UNKNOWN, UNKNOWN_CONFIDENCE
        return best.platform, header_confidence(best_score)

    def detect_metrics(self, headers: list[str], platform: PlatformType) -> list[str]:
        entry = next((p for p in self._platforms if p.platform is platform), None)
        if entry is None:
            return []
        lowered = [h.lower() for h in headers]
        return [k for k in entry.metric_keywords if any(k in h for h in lowered)]


def _sample_date_range(headers: list[str], sample: list[dict[str, str]]) -> DateRange | None:
    column = next((h for h in headers if any(t in h.lower() for t in _DATE_HEADER_TOKENS)), None)
    if column is None or not sample:
        return None
    values = [row[column] for row in sample if row.get(column)]
    if not values:
        return None
    return DateRange(start=values[0], end=values[-1])
