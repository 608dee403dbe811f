import asyncio
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from kai.actions.types import (
    ActionType,
    Attachment,
    DetectedAction,
    LinkAnalysisResult,
    PendingAction,
    TabularAnalysisResult,
)
from kai.analysis.links import LinkClassifier
from kai.analysis.tabular import TabularClassifier
from kai.errors import EmptyInputError
from kai.executor.service import ActionExecutor
from kai.integrations.functions.gateway import ImportReceipt
from kai.nl.intent_engine import IntentEngine
from kai.pipeline import ActionPipeline
from kai.settings import KaiSettings
from kai.storage.database import create_all_tables, dispose_engine, get_session_factory
from kai.storage.models import Base
from kai.storage.repository import PlanningRepo


class _StaticExtractor:
    async def extract(self, url: str):
        return {"title": f"Page at {url}", "content": "body"}


class _AcceptAll:
    def __init__(self) -> None:
        self.calls = 0

    async def validate_import(self, platform, tenant_id, raw_content, idempotency_key=None):
        self.calls += 1
        return ImportReceipt(accepted=True, rows_imported=raw_content.count("\n") - 1)

    async def generate_content(self, idea, fmt, tenant_id=""):
        return idea


def _pipeline(executor: ActionExecutor | None = None) -> ActionPipeline:
    return ActionPipeline(
        engine=IntentEngine(),
        tabular=TabularClassifier(),
        links=LinkClassifier(_StaticExtractor(), _StaticExtractor()),
        executor=executor,
    )


def _csv(content: str, name: str = "instagram_marco.csv") -> Attachment:
    return Attachment(name=name, content_type="text/csv", data=content.encode())


def test_metrics_upload_carries_tabular_preview() -> None:
    pending = asyncio.run(_pipeline().detect(
        "importa isso", [_csv("date,reach\n2024-01-01,10\n")]
    ))

    assert pending.type is ActionType.UPLOAD_METRICS
    assert isinstance(pending.preview, TabularAnalysisResult)
    assert pending.preview.platform.value == "instagram"
    assert pending.message == "importa isso"


def test_link_actions_carry_link_preview() -> None:
    pending = asyncio.run(_pipeline().detect("salva https://example.com/a nas referências"))

    assert pending.type is ActionType.UPLOAD_TO_REFERENCES
    assert isinstance(pending.preview, LinkAnalysisResult)
    assert pending.preview.title == "Page at https://example.com/a"


def test_chat_has_no_preview() -> None:
    pending = asyncio.run(_pipeline().detect("bom dia"))

    assert pending.type is ActionType.GENERAL_CHAT
    assert pending.preview is None
    assert pending.action.requires_confirmation is False


def test_empty_table_is_reported_to_the_caller() -> None:
    with pytest.raises(EmptyInputError, match="no data rows"):
        asyncio.run(_pipeline().detect("", [_csv("date,reach\n")]))


def test_confirm_without_executor_fails_softly() -> None:
    async def scenario():
        pipeline = _pipeline()
        pending = await pipeline.detect("crie um post sobre café")
        return await pipeline.confirm(pending, "t1", "w1")

    result = asyncio.run(scenario())

    assert result.success is False


def test_detect_then_confirm_metrics_import(tmp_path: Path) -> None:
    remote = _AcceptAll()

    async def scenario():
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'kai.db'}")
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        try:
            executor = ActionExecutor(async_sessionmaker(bind=engine, expire_on_commit=False), remote, remote)
            pipeline = _pipeline(executor)
            pending = await pipeline.detect("", [_csv("date,reach\n2024-01-01,10\n2024-01-02,12\n")])
            first = await pipeline.confirm(pending, "t1", "w1")
            second = await pipeline.confirm(pending, "t1", "w1")
            return first, second
        finally:
            await engine.dispose()

    first, second = asyncio.run(scenario())

    assert first.success is True
    assert first.data["records_imported"] == 2
    assert second.success is False
    assert remote.calls == 1


def test_database_actions_run_without_functions_endpoint(tmp_path: Path) -> None:
    settings = KaiSettings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'kai.db'}",
        functions_base_url="",
        classifier_backend="none",
    )

    async def scenario():
        await dispose_engine()
        pipeline = ActionPipeline.from_settings(settings)
        try:
            await create_all_tables(settings)
            async with get_session_factory(settings)() as session:
                await PlanningRepo(session).add_column("w1", "To do")
                await session.commit()
            card = PendingAction(action=DetectedAction(
                type=ActionType.CREATE_PLANNING_CARD, confidence=0.85, params={"title": "Launch"},
            ))
            content = PendingAction(action=DetectedAction(type=ActionType.CREATE_CONTENT, confidence=0.85))
            return (
                pipeline.executor,
                await pipeline.confirm(card, "t1", "w1"),
                await pipeline.confirm(content, "t1", "w1"),
            )
        finally:
            await pipeline.aclose()
            await dispose_engine()

    executor, card_result, content_result = asyncio.run(scenario())

    assert executor is not None
    assert card_result.success is True
    assert card_result.message == 'Card "Launch" created in To do'
    assert content_result.success is False
    assert "no functions endpoint is configured" in content_result.message
