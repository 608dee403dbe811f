"""Thin data-access helpers on top of SQLAlchemy async sessions.

Each repository is instantiated with a scoped AsyncSession and provides
typed access to one table.  Business logic stays in the executor.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from kai.storage.models import (
    ContentLibraryItem,
    ImportHistory,
    PlanningColumn,
    PlanningItem,
    ReferenceLibraryItem,
)

LibraryModel = type[ContentLibraryItem] | type[ReferenceLibraryItem]


# ── metrics imports ───────────────────────────────────────────────────────


class ImportHistoryRepo:
    def __init__(self, s: AsyncSession) -> None:
        self._s = s

    async def get_by_key(self, idempotency_key: str) -> ImportHistory | None:
        return await self._s.scalar(
            select(ImportHistory).where(ImportHistory.idempotency_key == idempotency_key)
        )

    async def append(self, entry: ImportHistory) -> ImportHistory:
        self._s.add(entry)
        await self._s.flush()
        return entry

    async def list_recent(self, tenant_id: str, limit: int = 50) -> list[ImportHistory]:
        stmt = (
            select(ImportHistory)
            .where(ImportHistory.tenant_id == tenant_id)
            .order_by(ImportHistory.created_at.desc())
            .limit(limit)
        )
        return list(await self._s.scalars(stmt))


# ── planning board ────────────────────────────────────────────────────────


class PlanningRepo:
    def __init__(self, s: AsyncSession) -> None:
        self._s = s

    async def first_column(self, workspace_id: str) -> PlanningColumn | None:
        return await self._s.scalar(
            select(PlanningColumn)
            .where(PlanningColumn.workspace_id == workspace_id)
            .order_by(PlanningColumn.position.asc())
            .limit(1)
        )

    async def add_column(self, workspace_id: str, name: str, position: int = 0) -> PlanningColumn:
        col = PlanningColumn(workspace_id=workspace_id, name=name, position=position)
        self._s.add(col)
        await self._s.flush()
        return col

    async def create_item(self, item: PlanningItem) -> PlanningItem:
        self._s.add(item)
        await self._s.flush()
        return item

    async def list_items(self, workspace_id: str) -> list[PlanningItem]:
        stmt = select(PlanningItem).where(PlanningItem.workspace_id == workspace_id)
        return list(await self._s.scalars(stmt))


# ── libraries ─────────────────────────────────────────────────────────────


class LibraryRepo:
    """Content library or reference library, chosen by ``model``."""

    def __init__(self, s: AsyncSession, model: LibraryModel) -> None:
        self._s = s
        self._model = model

    async def add(self, entry: ContentLibraryItem | ReferenceLibraryItem) -> ContentLibraryItem | ReferenceLibraryItem:
        self._s.add(entry)
        await self._s.flush()
        return entry

    async def list_for_tenant(self, tenant_id: str, limit: int = 100) -> list:
        stmt = (
            select(self._model)
            .where(self._model.tenant_id == tenant_id)
            .order_by(self._model.created_at.desc())
            .limit(limit)
        )
        return list(await self._s.scalars(stmt))
