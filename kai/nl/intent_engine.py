"""Intent detection: cheap local patterns first, remote classifier below a threshold.

The pattern stage never suspends. The escalation stage runs only when the
pattern result is less confident than the strategy threshold, and its
result replaces the pattern result only when strictly more confident.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from loguru import logger

from kai.actions.types import ActionType, Attachment, DetectedAction, IntentContext
from kai.nl.patterns import DEFAULT_TABLES, PatternTables
from kai.nl.remote import RemoteClassifier, build_remote_classifier
from kai.settings import KaiSettings, get_settings

ESCALATION_THRESHOLD = 0.8

FILE_CONFIDENCE = 0.9
URL_DESTINATION_CONFIDENCE = 0.85
URL_ONLY_CONFIDENCE = 0.7
PATTERN_CONFIDENCE = 0.8

# Checked in this order when the message carries a URL.
_URL_DESTINATIONS = (ActionType.UPLOAD_TO_REFERENCES, ActionType.UPLOAD_TO_LIBRARY)


def general_chat() -> DetectedAction:
    """Default answer: "no action" is itself a fully confident classification."""
    return DetectedAction(type=ActionType.GENERAL_CHAT, confidence=1.0)


class LocalClassifier(Protocol):
    def classify(self, message: str, files: Sequence[Attachment] = ()) -> DetectedAction: ...


class PatternClassifier:
    """Synchronous regex classifier over injected ``PatternTables``."""

    def __init__(self, tables: PatternTables = DEFAULT_TABLES) -> None:
        self.tables = tables

    def classify(self, message: str, files: Sequence[Attachment] = ()) -> DetectedAction:
        # File evidence outweighs text evidence.
        if any(f.is_delimited_table for f in files):
            return DetectedAction(type=ActionType.UPLOAD_METRICS, confidence=FILE_CONFIDENCE)

        url = self.tables.find_url(message)
        if url:
            for action_type in _URL_DESTINATIONS:
                if self.tables.matches(action_type, message):
                    return DetectedAction(
                        type=action_type,
                        confidence=URL_DESTINATION_CONFIDENCE,
                        params={"url": url},
                    )
            return DetectedAction(
                type=ActionType.ANALYZE_URL,
                confidence=URL_ONLY_CONFIDENCE,
                params={"url": url},
            )

        for action_type in ActionType:
            if action_type is ActionType.GENERAL_CHAT:
                continue
            if self.tables.matches(action_type, message):
                return DetectedAction(
                    type=action_type,
                    confidence=PATTERN_CONFIDENCE,
                    params=self.tables.extract_params(message),
                )

        return general_chat()


MergeRule = Callable[[DetectedAction, DetectedAction], DetectedAction]


def prefer_more_confident(primary: DetectedAction, secondary: DetectedAction) -> DetectedAction:
    return secondary if secondary.confidence > primary.confidence else primary


@dataclass(frozen=True, slots=True)
class EscalationStrategy:
    """Run ``primary``; ask ``fallback`` only below ``threshold``; ``merge`` the two."""

    primary: LocalClassifier = field(default_factory=PatternClassifier)
    fallback: RemoteClassifier | None = None
    threshold: float = ESCALATION_THRESHOLD
    merge: MergeRule = prefer_more_confident

    async def run(
        self,
        message: str,
        files: Sequence[Attachment] = (),
        context: IntentContext | None = None,
    ) -> DetectedAction:
        first = self.primary.classify(message, files)
        if first.confidence >= self.threshold or self.fallback is None:
            return first

        try:
            second = await self.fallback.classify(message, files, context)
        except Exception as e:
            logger.warning(f"Remote intent classification failed, keeping pattern result: {e}")
            return first
        return self.merge(first, second)


class IntentEngine:
    """Entry point of intent detection. Total: always returns an action."""

    def __init__(self, strategy: EscalationStrategy | None = None) -> None:
        self.strategy = strategy or EscalationStrategy()

    @classmethod
    def from_settings(cls, settings: KaiSettings | None = None, **remote_kwargs) -> IntentEngine:
        s = settings or get_settings()
        return cls(EscalationStrategy(
            primary=PatternClassifier(),
            fallback=build_remote_classifier(s, **remote_kwargs),
            threshold=s.escalation_threshold,
        ))

    async def detect_action(
        self,
        message: str,
        files: Sequence[Attachment] | None = None,
        context: IntentContext | None = None,
    ) -> DetectedAction:
        text = message if isinstance(message, str) else ""
        attachments = tuple(files or ())
        try:
            action = await self.strategy.run(text, attachments, context)
        except Exception:
            logger.exception("Intent detection failed; answering as general chat")
            return general_chat()
        logger.debug(
            f"Intent: {action.type.value} ({action.confidence:.2f}) params={dict(action.params)}"
        )
        return action
