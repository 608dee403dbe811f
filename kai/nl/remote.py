"""Remote intent classifiers used as the escalation stage.

Both implementations return a ``DetectedAction`` built from a loosely
validated reply of the shape
``{actionType, confidence, extractedParams, requiresConfirmation}``.
They raise on transport failure; the escalation strategy absorbs that.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from loguru import logger

from kai.actions.types import ActionType, Attachment, DetectedAction, IntentContext
from kai.integrations.functions.gateway import FunctionsGateway
from kai.providers.base import LLMProvider
from kai.settings import KaiSettings, get_settings

DEFAULT_REMOTE_CONFIDENCE = 0.5


class RemoteClassifier(Protocol):
    async def classify(
        self,
        message: str,
        files: Sequence[Attachment],
        context: IntentContext | None,
    ) -> DetectedAction: ...


def camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    result = []
    for i, char in enumerate(name):
        if char.isupper() and i > 0:
            result.append("_")
        result.append(char.lower())
    return "".join(result)


def parse_remote_reply(data: Mapping[str, Any]) -> DetectedAction:
    """Coerce a remote reply into a valid ``DetectedAction``.

    Unknown types become ``general_chat``; confidence defaults to 0.5 and is
    clamped to [0, 1]. The remote ``requiresConfirmation`` flag is ignored.
    """
    try:
        action_type = ActionType(data.get("actionType") or data.get("action_type"))
    except ValueError:
        action_type = ActionType.GENERAL_CHAT

    raw_confidence = data.get("confidence")
    try:
        confidence = float(raw_confidence) if raw_confidence is not None else DEFAULT_REMOTE_CONFIDENCE
    except (TypeError, ValueError):
        confidence = DEFAULT_REMOTE_CONFIDENCE
    if math.isnan(confidence):
        confidence = DEFAULT_REMOTE_CONFIDENCE
    confidence = min(max(confidence, 0.0), 1.0)

    raw_params = data.get("extractedParams") or data.get("extracted_params") or {}
    params: dict[str, str] = {}
    if isinstance(raw_params, Mapping):
        for key, value in raw_params.items():
            if isinstance(value, str) and value.strip():
                params[camel_to_snake(str(key))] = value.strip()

    return DetectedAction(type=action_type, confidence=confidence, params=params)


class FunctionsIntentClassifier:
    """Escalation through the ``analyze-kai-intention`` remote function."""

    def __init__(self, gateway: FunctionsGateway) -> None:
        self._gateway = gateway

    async def classify(
        self,
        message: str,
        files: Sequence[Attachment],
        context: IntentContext | None,
    ) -> DetectedAction:
        data = await self._gateway.classify_intent(
            message,
            [f.metadata() for f in files],
            context.to_dict() if context else {},
        )
        return parse_remote_reply(data)


_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")


def _system_prompt(files: Sequence[Attachment], context: IntentContext | None) -> str:
    types = "\n".join(f"- {t.value}" for t in ActionType)
    attached = json.dumps([f.metadata() for f in files], ensure_ascii=False) if files else "none"
    ctx = json.dumps(context.to_dict(), ensure_ascii=False) if context else "unspecified"
    return (
        "You classify messages sent to kAI, a digital-marketing assistant. "
        "Pick the single main intention and answer ONLY with JSON.\n\n"
        f"Action types:\n{types}\n\n"
        f"Attached files: {attached}\n"
        f"Context: {ctx}\n\n"
        "Answer format:\n"
        '{"actionType": "<type>", "confidence": <0..1>, "extractedParams": '
        '{"clientName": "", "format": "", "date": "", "assignee": "", "url": "", "platform": ""}}\n\n'
        "Rules:\n"
        "- An attached CSV file usually means upload_metrics.\n"
        "- A URL with 'reference' or 'save' means upload_to_references; with 'library', upload_to_library.\n"
        "- Only extract parameters that are explicitly present in the message."
    )


class LLMIntentClassifier:
    """Escalation through a chat model (via litellm)."""

    def __init__(self, provider: LLMProvider, model: str | None = None) -> None:
        self._provider = provider
        self._model = model

    async def classify(
        self,
        message: str,
        files: Sequence[Attachment],
        context: IntentContext | None,
    ) -> DetectedAction:
        response = await self._provider.chat(
            messages=[
                {"role": "system", "content": _system_prompt(files, context)},
                {"role": "user", "content": message},
            ],
            model=self._model,
            max_tokens=512,
            temperature=0.1,
        )
        if response.failed or not response.content:
            raise RuntimeError(f"intent model returned no answer ({response.model})")

        match = _FENCED_JSON.search(response.content)
        raw = match.group(1) if match else response.content
        try:
            data = json.loads(raw.strip())
        except json.JSONDecodeError:
            logger.warning(f"Unparseable intent model answer: {response.content[:200]}")
            data = {}
        if not isinstance(data, dict):
            data = {}
        return parse_remote_reply(data)


def build_remote_classifier(
    settings: KaiSettings | None = None,
    gateway: FunctionsGateway | None = None,
) -> RemoteClassifier | None:
    """Pick the escalation backend named by ``classifier_backend``."""
    s = settings or get_settings()
    backend = s.classifier_backend.strip().lower()
    if backend == "llm":
        from kai.providers.litellm_provider import LiteLLMProvider

        provider = LiteLLMProvider(
            api_key=s.classifier_api_key or None,
            api_base=s.classifier_api_base or None,
            default_model=s.classifier_model,
        )
        return LLMIntentClassifier(provider)
    if backend == "functions":
        if gateway is None and not s.functions_base_url:
            logger.debug("No functions endpoint configured; intent escalation disabled")
            return None
        return FunctionsIntentClassifier(gateway or FunctionsGateway(s))
    return None
