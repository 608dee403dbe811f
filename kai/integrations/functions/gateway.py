"""FunctionsGateway – async client for the remote functions kAI depends on.

One JSON POST per function, bearer-authenticated:
  - analyze-kai-intention:      remote intent classifier
  - validate-csv-import:        metrics import / validation
  - extract-youtube:            video metadata + transcript
  - fetch-reference-content:    article / newsletter / social extraction
  - generate-content-from-idea: content generation
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from kai.settings import KaiSettings, get_settings


class FunctionsError(RuntimeError):
    """Wrapper for all remote function errors."""


@dataclass(frozen=True, slots=True)
class ImportReceipt:
    accepted: bool
    rows_imported: int | None = None
    message: str = ""


class FunctionsGateway:
    def __init__(
        self,
        settings: KaiSettings | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        s = settings or get_settings()
        self._base = s.functions_base_url.rstrip("/")
        self._api_key = s.functions_api_key
        self._http = http or httpx.AsyncClient(
            base_url=self._base,
            timeout=s.functions_timeout_seconds,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    # ── low-level request ────────────────────────────────────────────────

    async def invoke(
        self,
        function: str,
        body: dict[str, Any],
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
            headers["apikey"] = self._api_key
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        try:
            resp = await self._http.post(f"/{function}", json=body, headers=headers)
        except httpx.HTTPError as e:
            raise FunctionsError(f"{function}: {e.__class__.__name__}: {e}") from e
        if resp.status_code >= 400:
            raise FunctionsError(f"{function}: HTTP {resp.status_code}: {resp.text[:500]}")
        try:
            data = resp.json()
        except ValueError as e:
            raise FunctionsError(f"{function}: response is not JSON") from e
        if not isinstance(data, dict):
            raise FunctionsError(f"{function}: unexpected response shape")
        if data.get("error"):
            raise FunctionsError(f"{function}: {data['error']}")
        return data

    # ── intent ───────────────────────────────────────────────────────────

    async def classify_intent(
        self,
        message: str,
        files: list[dict[str, str]],
        context: dict[str, str],
    ) -> dict[str, Any]:
        return await self.invoke("analyze-kai-intention", {
            "message": message, "files": files, "context": context,
        })

    # ── metrics import ───────────────────────────────────────────────────

    async def validate_import(
        self,
        platform: str,
        tenant_id: str,
        raw_content: str,
        idempotency_key: str | None = None,
    ) -> ImportReceipt:
        data = await self.invoke(
            "validate-csv-import",
            {"platform": platform, "tenantId": tenant_id, "rawFileContent": raw_content},
            idempotency_key=idempotency_key,
        )
        rows = data.get("rowsImported")
        return ImportReceipt(
            # no explicit verdict means the call went through
            accepted=bool(data.get("accepted", True)),
            rows_imported=int(rows) if isinstance(rows, (int, float)) else None,
            message=str(data.get("message") or ""),
        )

    # ── extraction ───────────────────────────────────────────────────────

    async def extract_video(self, url: str) -> dict[str, Any]:
        return await self.invoke("extract-youtube", {"url": url})

    async def extract_content(self, url: str) -> dict[str, Any]:
        data = await self.invoke("fetch-reference-content", {"url": url})
        if data.get("success") is False:
            raise FunctionsError("fetch-reference-content: extraction failed")
        return data

    # ── generation ───────────────────────────────────────────────────────

    async def generate_content(self, idea: str, fmt: str, tenant_id: str = "") -> str:
        data = await self.invoke("generate-content-from-idea", {
            "idea": idea, "format": fmt, "tenantId": tenant_id,
        })
        content = data.get("content")
        if not isinstance(content, str) or not content.strip():
            raise FunctionsError("generate-content-from-idea: empty content")
        return content
