"""Value types flowing between the classifiers, the caller and the executor."""

from __future__ import annotations

import asyncio
import mimetypes
import uuid
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum as PyEnum
from pathlib import Path
from types import MappingProxyType
from typing import Any


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


# ---------------------------------------------------------------------------
# enums
# ---------------------------------------------------------------------------


class ActionType(str, PyEnum):
    """Closed set of things the assistant can do with a message.

    Declaration order is the pattern-matching order of the intent classifier.
    """

    GENERAL_CHAT = "general_chat"
    UPLOAD_METRICS = "upload_metrics"
    CREATE_PLANNING_CARD = "create_planning_card"
    UPLOAD_TO_LIBRARY = "upload_to_library"
    UPLOAD_TO_REFERENCES = "upload_to_references"
    ANALYZE_URL = "analyze_url"
    CREATE_CONTENT = "create_content"


class PlatformType(str, PyEnum):
    INSTAGRAM = "instagram"
    YOUTUBE = "youtube"
    NEWSLETTER = "newsletter"
    TWITTER = "twitter"
    LINKEDIN = "linkedin"
    UNKNOWN = "unknown"


class LinkCategory(str, PyEnum):
    YOUTUBE = "youtube"
    SOCIAL = "social"
    NEWSLETTER = "newsletter"
    ARTICLE = "article"


# Types that import data or write records. Must stay in step with the
# executor's handler table (checked when the executor is built).
CONFIRMATION_REQUIRED: frozenset[ActionType] = frozenset({
    ActionType.UPLOAD_METRICS,
    ActionType.CREATE_PLANNING_CARD,
    ActionType.UPLOAD_TO_LIBRARY,
    ActionType.UPLOAD_TO_REFERENCES,
})


def requires_confirmation(action_type: ActionType) -> bool:
    return action_type in CONFIRMATION_REQUIRED


# ---------------------------------------------------------------------------
# classification inputs
# ---------------------------------------------------------------------------

_TABLE_MIME_TYPES = frozenset({"text/csv", "application/csv"})


@dataclass(frozen=True, slots=True)
class Attachment:
    """A file attached to a chat message, backed by a path or in-memory bytes."""

    name: str
    content_type: str = ""
    path: Path | None = None
    data: bytes | None = None

    @classmethod
    def from_path(cls, path: str | Path, content_type: str = "") -> Attachment:
        p = Path(path)
        guessed, _ = mimetypes.guess_type(p.name)
        return cls(name=p.name, content_type=content_type or guessed or "", path=p)

    @property
    def is_delimited_table(self) -> bool:
        return (
            self.content_type.lower() in _TABLE_MIME_TYPES
            or self.name.lower().endswith(".csv")
        )

    async def read_bytes(self) -> bytes:
        if self.data is not None:
            return self.data
        if self.path is None:
            raise FileNotFoundError(f"Attachment {self.name!r} has no content")
        return await asyncio.to_thread(self.path.read_bytes)

    async def read_text(self, encoding: str = "utf-8") -> str:
        raw = await self.read_bytes()
        return raw.decode(encoding, errors="replace")

    def metadata(self) -> dict[str, str]:
        """Name and type only; file content never leaves the process."""
        return {"name": self.name, "type": self.content_type}


@dataclass(frozen=True, slots=True)
class IntentContext:
    tenant_id: str | None = None
    current_surface: str | None = None

    def to_dict(self) -> dict[str, str]:
        return {k: v for k, v in asdict(self).items() if v}


# ---------------------------------------------------------------------------
# classification outputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DetectedAction:
    """A typed, confidence-scored intent with its extracted parameters."""

    type: ActionType
    confidence: float
    params: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence out of range: {self.confidence}")
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))

    @property
    def requires_confirmation(self) -> bool:
        return requires_confirmation(self.type)


@dataclass(frozen=True, slots=True)
class DateRange:
    start: str
    end: str
    # First/last value of the sampled rows, not a min/max over the file.
    sampled: bool = True


@dataclass(frozen=True, slots=True)
class TabularPreview:
    total_rows: int
    columns: list[str]
    sample_data: list[dict[str, str]]
    metrics_detected: list[str]
    date_range: DateRange | None = None


@dataclass(frozen=True, slots=True)
class TabularAnalysisResult:
    platform: PlatformType
    confidence: float
    preview: TabularPreview

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["platform"] = self.platform.value
        return data


@dataclass(frozen=True, slots=True)
class LinkAnalysisResult:
    type: LinkCategory
    title: str
    description: str | None = None
    content: str | None = None
    thumbnail_url: str | None = None
    author: str | None = None
    published_at: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def degraded(self) -> bool:
        return bool(self.metadata.get("degraded"))

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        return data


# ---------------------------------------------------------------------------
# confirmation + execution
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class PendingAction:
    """A detected action held by the caller until the user confirms it.

    ``preview`` caches the analysis computed at detection time so the
    executor never has to classify again.
    """

    action: DetectedAction
    files: tuple[Attachment, ...] = ()
    preview: TabularAnalysisResult | LinkAnalysisResult | None = None
    message: str = ""
    id: str = field(default_factory=_uuid)
    created_at: datetime = field(default_factory=_utcnow)
    consumed: bool = False

    @property
    def type(self) -> ActionType:
        return self.action.type

    @property
    def params(self) -> Mapping[str, str]:
        return self.action.params


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    success: bool
    message: str
    data: dict[str, Any] | None = None
