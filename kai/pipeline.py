"""ActionPipeline – detect an action, attach its preview, execute on confirmation.

This is the glue a chat surface sits on:

    pending = await pipeline.detect(message, files, context)
    if pending.action.requires_confirmation:
        ...show pending.preview, wait for the user...
    result = await pipeline.confirm(pending, tenant_id, workspace_id)
"""

from __future__ import annotations

from collections.abc import Sequence

from loguru import logger

from kai.actions.types import (
    ActionType,
    Attachment,
    ExecutionResult,
    IntentContext,
    PendingAction,
)
from kai.analysis.links import LinkClassifier
from kai.analysis.tabular import TabularClassifier
from kai.executor.service import ActionExecutor
from kai.integrations.functions.gateway import FunctionsGateway
from kai.nl.intent_engine import IntentEngine
from kai.settings import KaiSettings, get_settings
from kai.storage.database import get_session_factory

_LINK_ACTIONS = frozenset({
    ActionType.UPLOAD_TO_LIBRARY,
    ActionType.UPLOAD_TO_REFERENCES,
    ActionType.ANALYZE_URL,
})


class ActionPipeline:
    def __init__(
        self,
        engine: IntentEngine,
        tabular: TabularClassifier,
        links: LinkClassifier,
        executor: ActionExecutor | None = None,
        gateway: FunctionsGateway | None = None,
    ) -> None:
        self.engine = engine
        self.tabular = tabular
        self.links = links
        self.executor = executor
        self._gateway = gateway

    @classmethod
    def from_settings(cls, settings: KaiSettings | None = None) -> ActionPipeline:
        s = settings or get_settings()
        gateway = FunctionsGateway(s) if s.functions_base_url else None
        executor = ActionExecutor(get_session_factory(s), imports=gateway, generator=gateway)
        return cls(
            engine=IntentEngine.from_settings(s, gateway=gateway),
            tabular=TabularClassifier(sample_rows=s.csv_sample_rows),
            links=LinkClassifier.from_settings(s, gateway),
            executor=executor,
            gateway=gateway,
        )

    async def detect(
        self,
        message: str,
        files: Sequence[Attachment] = (),
        context: IntentContext | None = None,
    ) -> PendingAction:
        """Classify ``message`` and compute the preview the user confirms against.

        Raises ``EmptyInputError`` when a metrics upload carries an empty table.
        """
        attachments = tuple(files)
        action = await self.engine.detect_action(message, attachments, context)
        pending = PendingAction(action=action, files=attachments, message=message)

        if action.type is ActionType.UPLOAD_METRICS:
            table = next((f for f in attachments if f.is_delimited_table), None)
            if table is not None:
                pending.preview = await self.tabular.analyze_csv(table)
        elif action.type in _LINK_ACTIONS and action.params.get("url"):
            pending.preview = await self.links.analyze_url(action.params["url"])

        logger.debug(f"Pending {pending.id}: {action.type.value}, preview={type(pending.preview).__name__}")
        return pending

    async def confirm(self, pending: PendingAction, tenant_id: str, workspace_id: str) -> ExecutionResult:
        if self.executor is None:
            return ExecutionResult(success=False, message="Action execution is not configured")
        return await self.executor.execute_action(pending, tenant_id, workspace_id)

    async def aclose(self) -> None:
        if self._gateway is not None:
            await self._gateway.aclose()
