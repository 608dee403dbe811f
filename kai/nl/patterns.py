"""Pattern tables for the local intent stage and parameter extraction.

Tables are plain immutable values: build a ``PatternTables`` (or
``dataclasses.replace`` the default one) and hand it to the classifier.
Nothing here is consulted through module globals at classification time.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

from kai.actions.types import ActionType

_FLAGS = re.IGNORECASE | re.DOTALL

_URL_TRAILING = ".,;:!?)]}>\"'"


def _compile(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, _FLAGS) for p in patterns)


@dataclass(frozen=True, slots=True)
class PatternTables:
    """Regex libraries for intent detection and per-field extraction.

    ``actions`` maps each action type to the expressions that select it.
    ``formats`` is ordered ``(normalised_name, pattern)`` pairs.
    """

    actions: Mapping[ActionType, tuple[re.Pattern[str], ...]]
    url: re.Pattern[str]
    client: tuple[re.Pattern[str], ...]
    formats: tuple[tuple[str, re.Pattern[str]], ...]
    dates: tuple[re.Pattern[str], ...]
    assignee: tuple[re.Pattern[str], ...]

    def __post_init__(self) -> None:
        frozen = {ActionType(k): tuple(v) for k, v in self.actions.items()}
        object.__setattr__(self, "actions", MappingProxyType(frozen))

    def patterns_for(self, action_type: ActionType) -> tuple[re.Pattern[str], ...]:
        return self.actions.get(action_type, ())

    def matches(self, action_type: ActionType, message: str) -> bool:
        return any(p.search(message) for p in self.patterns_for(action_type))

    # ── extraction ──────────────────────────────────────────────────────

    def find_url(self, message: str) -> str | None:
        m = self.url.search(message)
        if not m:
            return None
        return m.group(0).rstrip(_URL_TRAILING)

    def extract_params(self, message: str) -> dict[str, str]:
        """Best-effort field extraction; absent fields are simply omitted."""
        params: dict[str, str] = {}

        if client := _first_group(self.client, message):
            params["client_name"] = client.rstrip(".,;:!?'-").strip()

        if fmt := self._longest_format(message):
            params["format"] = fmt

        if date := _first_group(self.dates, message):
            params["date"] = date

        if assignee := _first_group(self.assignee, message):
            params["assignee"] = assignee.rstrip(".-")

        if url := self.find_url(message):
            params["url"] = url

        return {k: v for k, v in params.items() if v}

    def _longest_format(self, message: str) -> str | None:
        best: str | None = None
        best_len = 0
        for name, pattern in self.formats:
            m = pattern.search(message)
            # strict > keeps table order on ties
            if m and len(m.group(0)) > best_len:
                best, best_len = name, len(m.group(0))
        return best


def _first_group(patterns: tuple[re.Pattern[str], ...], message: str) -> str | None:
    for pattern in patterns:
        m = pattern.search(message)
        if m:
            return m.group(1).strip()
    return None


# ---------------------------------------------------------------------------
# Default tables (Portuguese first, English second).
# Verb stems accept infinitive / imperative / 3rd person: criar, crie, cria.
# ---------------------------------------------------------------------------

_ACTION_PATTERNS: dict[ActionType, tuple[re.Pattern[str], ...]] = {
    ActionType.UPLOAD_METRICS: _compile(
        r"\bimport(?:ar|e|a)\s+(?:as\s+|os\s+|minhas\s+|meus\s+)?(?:m[ée]tricas?|dados|csv|relat[óo]rios?)",
        r"\bupload\s+(?:de\s+|of\s+)?(?:m[ée]tricas?|metrics|csv)",
        r"\bcarreg(?:ar|ue|a)\s+(?:as\s+|o\s+)?(?:m[ée]tricas?|relat[óo]rio)",
        r"\bimport\s+(?:my\s+|the\s+)?(?:metrics|data|csv|report)",
    ),
    ActionType.CREATE_PLANNING_CARD: _compile(
        r"\bcri(?:ar|e|a)\s+(?:um\s+)?card\b",
        r"\badicion(?:ar|e|a)\s+(?:ao\s+|no\s+)?planejamento",
        r"\bagend(?:ar|e|a)\s+(?:um\s+|uma\s+|o\s+|a\s+)?(?:post|conte[úu]do|publica[çc][ãa]o)",
        r"\b(?:create|add)\s+(?:a\s+)?(?:planning\s+)?card\b",
        r"\bschedule\s+(?:a\s+|the\s+)?(?:post|content)",
    ),
    ActionType.UPLOAD_TO_LIBRARY: _compile(
        r"\badicion(?:ar|e|a)\b.*?\b(?:à|a|na)\s+biblioteca",
        r"\bsalv(?:ar|e|a)\b.*?\b(?:na|em|à|a)\s+biblioteca",
        r"\b(?:add|save)\b.*?\bto\s+(?:the\s+|my\s+)?(?:content\s+)?library",
    ),
    ActionType.UPLOAD_TO_REFERENCES: _compile(
        r"\badicion(?:ar|e|a)\b.*?\b(?:às?|as?|nas?)\s+refer[êe]ncias?",
        r"\bsalv(?:ar|e|a)\b.*?\b(?:como|nas?|em)\s+refer[êe]ncias?",
        r"\bguard(?:ar|e|a)\s+(?:ess[ea]\s+|est[ea]\s+)?(?:url|link|refer[êe]ncia)",
        r"\b(?:add|save)\b.*?\b(?:to|as)\s+(?:a\s+|the\s+|my\s+)?references?",
    ),
    ActionType.ANALYZE_URL: _compile(
        r"\banalis(?:ar|e|a)\s+(?:ess[ea]\s+|est[ea]\s+|a\s+|o\s+)?(?:url|link|p[áa]gina|v[íi]deo|artigo)",
        r"\bextra(?:ir|ia|i)\s+(?:o\s+)?(?:conte[úu]do|informa[çc](?:ões|ão))\s+d",
        r"\banaly[sz]e\s+(?:this\s+|the\s+)?(?:url|link|page|video|article)",
    ),
    ActionType.CREATE_CONTENT: _compile(
        r"\bcri(?:ar|e|a)\s+(?:um\s+|uma\s+)?(?:post|conte[úu]do|carrossel|reels?|stories|story|thread)",
        r"\bescrev(?:er|a|e)\s+(?:um\s+|uma\s+)?(?:post|texto|legenda|caption|thread)",
        r"\bger(?:ar|e|a)\s+(?:um\s+|uma\s+)?(?:conte[úu]do|post|carrossel|legenda)",
        r"\b(?:create|write|draft)\s+(?:a\s+|an\s+)?(?:post|carousel|caption|thread|story|reel)",
    ),
}

# Client names start with a capital letter; markers and articles are case-insensitive.
_CLIENT_PATTERNS = (
    re.compile(
        r"(?i:\b(?:para|pra|pro|do|da|for|of|cliente|client)\b)\s*:?\s*"
        r"(?:(?i:a|o|the)\s+)?"
        r"(?:(?i:empresa|cliente|marca|company|client|brand)\s+)?"
        r"([A-ZÀ-Ý][\w&.'-]*(?:\s+[A-ZÀ-Ý][\w&.'-]*)*)"
    ),
)

_FORMAT_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("post", re.compile(r"\b(?:posts?|publica[çc](?:ão|ões|ao|oes))\b", _FLAGS)),
    ("carousel", re.compile(r"\b(?:carross[ée]is|carrossel|carousels?)\b", _FLAGS)),
    ("short_video", re.compile(r"\b(?:reels?|shorts|v[íi]deos?\s+curtos?|short\s+videos?)\b", _FLAGS)),
    ("story", re.compile(r"\b(?:stories|story|storys)\b", _FLAGS)),
    ("thread", re.compile(r"\bthreads?\b", _FLAGS)),
)

_DATE_PATTERNS = _compile(
    r"\b(?:para|em|dia|at[ée]|on|by)\s+(\d{1,2}/\d{1,2}(?:/\d{2,4})?)\b",
    r"\b(?:para|em|na|no|at[ée]|on|by)\s+"
    r"(hoje|amanh[ãa]|segunda|ter[çc]a|quarta|quinta|sexta|s[áa]bado|domingo"
    r"|today|tomorrow|monday|tuesday|wednesday|thursday|friday|saturday|sunday)\b",
)

_ASSIGNEE_PATTERNS = _compile(
    r"(?<![\w.])@([A-Za-zÀ-ÿ][\w.-]*)",
    r"\b(?:respons[áa]vel(?:\s+(?:é|e|será))?|responsible(?:\s+is)?"
    r"|atribu(?:ir|a|i)\s+(?:a|para|ao)|assign(?:ed)?\s+to)\s*:?\s*@?([A-Za-zÀ-ÿ][\w.-]*)",
)

URL_PATTERN = re.compile(r"https?://[^\s<>\"']+", re.IGNORECASE)


def build_default_tables() -> PatternTables:
    return PatternTables(
        actions=_ACTION_PATTERNS,
        url=URL_PATTERN,
        client=_CLIENT_PATTERNS,
        formats=_FORMAT_PATTERNS,
        dates=_DATE_PATTERNS,
        assignee=_ASSIGNEE_PATTERNS,
    )


DEFAULT_TABLES = build_default_tables()
