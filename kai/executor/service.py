"""Action executor: carry out a confirmed ``PendingAction``.

The only component with side effects, and so the only one allowed to fail.
Every failure is still reported as an ``ExecutionResult``: preconditions
raise ``ExecutionError`` with a user-facing message; anything else is
caught at the top of ``execute_action``.
"""

from __future__ import annotations

import hashlib
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, Protocol

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kai.actions.types import (
    CONFIRMATION_REQUIRED,
    ActionType,
    ExecutionResult,
    LinkAnalysisResult,
    PendingAction,
    TabularAnalysisResult,
)
from kai.errors import ExecutionError
from kai.integrations.functions.gateway import ImportReceipt
from kai.storage.models import (
    ContentLibraryItem,
    ImportHistory,
    PlanningItem,
    ReferenceLibraryItem,
)
from kai.storage.repository import ImportHistoryRepo, LibraryRepo, PlanningRepo

DEFAULT_CARD_TITLE = "New card"
DEFAULT_CONTENT_FORMAT = "post"
DEFAULT_CONTENT_IDEA = "Create an engaging post for my audience"
GENERIC_FAILURE = "Something went wrong while executing the action. Please try again."
REMOTE_UNAVAILABLE = "{} is not available: no functions endpoint is configured"

ProgressListener = Callable[[int], None]
Notify = Callable[[str, str], None]


class ImportValidator(Protocol):
    async def validate_import(
        self,
        platform: str,
        tenant_id: str,
        raw_content: str,
        idempotency_key: str | None = None,
    ) -> ImportReceipt: ...


class ContentGenerator(Protocol):
    async def generate_content(self, idea: str, fmt: str, tenant_id: str = "") -> str: ...


class Progress:
    """Coarse, monotonic 0-100 liveness indicator for one execution."""

    def __init__(self, listeners: Iterable[ProgressListener] = ()) -> None:
        self.value = 0
        self._listeners = list(listeners)

    def advance(self, value: int) -> None:
        value = min(max(int(value), 0), 100)
        if value <= self.value:
            return
        self.value = value
        for listener in self._listeners:
            try:
                listener(value)
            except Exception as e:
                logger.warning(f"Progress listener failed: {e}")


def import_idempotency_key(tenant_id: str, platform: str, raw: bytes) -> str:
    h = hashlib.sha256()
    h.update(tenant_id.encode())
    h.update(b"|")
    h.update(platform.encode())
    h.update(b"|")
    h.update(raw)
    return h.hexdigest()


Handler = Callable[[PendingAction, str, str, Progress], Awaitable[ExecutionResult]]


class ActionExecutor:
    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        imports: ImportValidator | None = None,
        generator: ContentGenerator | None = None,
        *,
        notify: Notify | None = None,
        progress_listeners: Iterable[ProgressListener] = (),
    ) -> None:
        self._sessions = sessions
        self._imports = imports
        self._generator = generator
        self._notify = notify
        self._listeners = tuple(progress_listeners)
        self._handlers: dict[ActionType, Handler] = {
            ActionType.UPLOAD_METRICS: self._upload_metrics,
            ActionType.CREATE_PLANNING_CARD: self._create_planning_card,
            ActionType.UPLOAD_TO_LIBRARY: self._upload_to_library,
            ActionType.UPLOAD_TO_REFERENCES: self._upload_to_references,
            ActionType.CREATE_CONTENT: self._create_content,
        }
        missing = CONFIRMATION_REQUIRED - self._handlers.keys()
        if missing:
            raise RuntimeError(f"No executor handler for: {sorted(t.value for t in missing)}")
        self.progress = Progress(self._listeners)
        self.last_result: ExecutionResult | None = None

    @property
    def supported_types(self) -> frozenset[ActionType]:
        return frozenset(self._handlers)

    async def execute_action(
        self,
        action: PendingAction,
        tenant_id: str,
        workspace_id: str,
    ) -> ExecutionResult:
        self.progress = Progress(self._listeners)
        result = await self._run(action, tenant_id, workspace_id)
        self.last_result = result
        return result

    async def _run(self, action: PendingAction, tenant_id: str, workspace_id: str) -> ExecutionResult:
        if action.consumed:
            return ExecutionResult(success=False, message="This action has already been executed")

        handler = self._handlers.get(action.type)
        if handler is None:
            return ExecutionResult(success=False, message=f'Action "{action.type.value}" is not supported')

        action.consumed = True
        progress = self.progress
        logger.info(f"Executing {action.type.value} (action={action.id}, tenant={tenant_id})")
        try:
            result = await handler(action, tenant_id, workspace_id, progress)
        except ExecutionError as e:
            logger.warning(f"{action.type.value} failed: {e}")
            action.consumed = False  # failed runs may be retried
            self._emit("error", str(e))
            return ExecutionResult(success=False, message=str(e))
        except Exception as e:
            logger.exception(f"{action.type.value} failed unexpectedly")
            action.consumed = False
            self._emit("error", GENERIC_FAILURE)
            return ExecutionResult(success=False, message=str(e) or GENERIC_FAILURE)
        finally:
            progress.advance(100)
        logger.info(f"{action.type.value} done: {result.message}")
        return result

    def _emit(self, level: str, message: str) -> None:
        if self._notify is None:
            return
        try:
            self._notify(level, message)
        except Exception as e:
            logger.warning(f"Notification callback failed: {e}")

    # ── upload_metrics ───────────────────────────────────────────────────

    async def _upload_metrics(
        self, action: PendingAction, tenant_id: str, workspace_id: str, progress: Progress,
    ) -> ExecutionResult:
        analysis = action.preview
        if not isinstance(analysis, TabularAnalysisResult):
            raise ExecutionError("No CSV analysis available for this import")
        file = next((f for f in action.files if f.is_delimited_table), None) or (
            action.files[0] if action.files else None
        )
        if file is None:
            raise ExecutionError("No file attached to import")

        progress.advance(20)
        raw = await file.read_bytes()
        progress.advance(40)

        platform = analysis.platform.value
        key = import_idempotency_key(tenant_id, platform, raw)
        async with self._sessions() as session:
            existing = await ImportHistoryRepo(session).get_by_key(key)
        if existing is not None:
            logger.info(f"Import {key[:12]} already recorded as {existing.id}; skipping")
            return _already_imported(existing)

        if self._imports is None:
            raise ExecutionError(REMOTE_UNAVAILABLE.format("Metrics import"))
        receipt = await self._imports.validate_import(
            platform, tenant_id, raw.decode("utf-8", errors="replace"), idempotency_key=key,
        )
        if not receipt.accepted:
            raise ExecutionError(receipt.message or "The import was rejected")
        progress.advance(80)

        preview = analysis.preview
        rows = receipt.rows_imported if receipt.rows_imported is not None else preview.total_rows
        metadata: dict[str, Any] = {"columns": list(preview.columns), "confidence": analysis.confidence}
        if preview.date_range is not None:
            metadata["date_range"] = {
                "start": preview.date_range.start,
                "end": preview.date_range.end,
                "sampled": preview.date_range.sampled,
            }

        async with self._sessions() as session:
            repo = ImportHistoryRepo(session)
            try:
                entry = await repo.append(ImportHistory(
                    tenant_id=tenant_id,
                    workspace_id=workspace_id,
                    platform=platform,
                    records_count=rows,
                    file_name=file.name,
                    status="completed",
                    import_metadata=metadata,
                    idempotency_key=key,
                ))
                await session.commit()
            except IntegrityError:
                # a concurrent run recorded the same key first
                await session.rollback()
                existing = await repo.get_by_key(key)
                if existing is None:
                    raise
                return _already_imported(existing)

        return ExecutionResult(
            success=True,
            message=f"{rows} records imported from {platform}",
            data={"records_imported": rows, "import_id": entry.id, "platform": platform},
        )

    # ── create_planning_card ─────────────────────────────────────────────

    async def _create_planning_card(
        self, action: PendingAction, tenant_id: str, workspace_id: str, progress: Progress,
    ) -> ExecutionResult:
        params = action.params
        async with self._sessions() as session:
            repo = PlanningRepo(session)
            column = await repo.first_column(workspace_id)
            if column is None:
                raise ExecutionError("No planning column found for this workspace")
            progress.advance(40)
            item = await repo.create_item(PlanningItem(
                tenant_id=tenant_id,
                workspace_id=workspace_id,
                column_id=column.id,
                title=params.get("title") or DEFAULT_CARD_TITLE,
                description=params.get("description") or "",
                due_date=params.get("date"),
                assigned_to=params.get("assignee"),
                status="todo",
            ))
            await session.commit()
        return ExecutionResult(
            success=True,
            message=f'Card "{item.title}" created in {column.name}',
            data={"card_id": item.id, "column_id": column.id},
        )

    # ── libraries ────────────────────────────────────────────────────────

    async def _upload_to_library(
        self, action: PendingAction, tenant_id: str, workspace_id: str, progress: Progress,
    ) -> ExecutionResult:
        return await self._save_link(action, tenant_id, workspace_id, progress, ContentLibraryItem, "library")

    async def _upload_to_references(
        self, action: PendingAction, tenant_id: str, workspace_id: str, progress: Progress,
    ) -> ExecutionResult:
        return await self._save_link(action, tenant_id, workspace_id, progress, ReferenceLibraryItem, "references")

    async def _save_link(
        self,
        action: PendingAction,
        tenant_id: str,
        workspace_id: str,
        progress: Progress,
        model: type[ContentLibraryItem] | type[ReferenceLibraryItem],
        destination: str,
    ) -> ExecutionResult:
        params = action.params
        link = action.preview if isinstance(action.preview, LinkAnalysisResult) else None
        url = params.get("url") or (link.metadata.get("url") if link else None)
        description = params.get("description")
        if not url and link is None and not description:
            raise ExecutionError(f"Nothing to save to the {destination}: no link or content")

        progress.advance(40)
        entry = model(
            tenant_id=tenant_id,
            workspace_id=workspace_id,
            title=(link.title if link else None) or params.get("title") or url or "Untitled",
            content=(link.content or link.description if link else None) or description or "",
            source_url=url,
            thumbnail_url=link.thumbnail_url if link else None,
            content_type=link.type.value if link else "article",
        )
        async with self._sessions() as session:
            await LibraryRepo(session, model).add(entry)
            await session.commit()
        return ExecutionResult(
            success=True,
            message=f'"{entry.title}" saved to the {destination}',
            data={"entry_id": entry.id, "destination": destination},
        )

    # ── create_content ───────────────────────────────────────────────────

    async def _create_content(
        self, action: PendingAction, tenant_id: str, workspace_id: str, progress: Progress,
    ) -> ExecutionResult:
        if self._generator is None:
            raise ExecutionError(REMOTE_UNAVAILABLE.format("Content generation"))
        params = action.params
        idea = (
            params.get("description")
            or params.get("idea")
            or action.message.strip()
            or DEFAULT_CONTENT_IDEA
        )
        fmt = params.get("format") or DEFAULT_CONTENT_FORMAT
        progress.advance(20)
        content = await self._generator.generate_content(idea, fmt, tenant_id)
        return ExecutionResult(
            success=True,
            message=f"{fmt} generated",
            data={"content": content, "format": fmt},
        )


def _already_imported(entry: ImportHistory) -> ExecutionResult:
    return ExecutionResult(
        success=True,
        message="This file was already imported",
        data={
            "records_imported": entry.records_count,
            "import_id": entry.id,
            "platform": entry.platform,
            "already_imported": True,
        },
    )
