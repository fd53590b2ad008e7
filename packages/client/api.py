from __future__ import annotations
from typing import BinaryIO, List, Optional, Tuple

import httpx

from packages.schemas.types import BoundingBox, Report, ReportDraft


class ReportsClient:
    """Async client for the report HTTP API."""

    def __init__(self, base_url: str, timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ReportsClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def fetch_reports(self, bounds: Optional[BoundingBox] = None) -> List[Report]:
        params = bounds._asdict() if bounds is not None else None
        r = await self._client.get("/reports", params=params, headers={"Accept": "application/json"})
        r.raise_for_status()
        body = r.json()
        if not isinstance(body, dict) or not isinstance(body.get("reports") or [], list):
            raise ValueError(f"Unexpected /reports payload: {type(body).__name__}")
        return [Report.model_validate(item) for item in (body.get("reports") or [])]

    async def create_report(self, draft: ReportDraft,
                            file: Optional[Tuple[str, BinaryIO]] = None) -> Report:
        data = {
            "category": draft.category,
            "description": draft.description,
            "location": draft.location,
            "latitude": repr(draft.latitude),
            "longitude": repr(draft.longitude),
        }
        files = {"file": file} if file else None
        r = await self._client.post("/reports", data=data, files=files)
        r.raise_for_status()
        return Report.model_validate(r.json()["report"])

    async def resolve_report(self, report_id: int, resolution_note: Optional[str]) -> Report:
        r = await self._client.post(f"/reports/{report_id}/resolve",
                                    json={"resolutionNote": resolution_note})
        r.raise_for_status()
        return Report.model_validate(r.json()["report"])
