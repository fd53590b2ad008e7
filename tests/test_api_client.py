import httpx
import pytest

from packages.client.api import ReportsClient
from packages.schemas.types import BoundingBox


def client_returning(payload, status=200):
    def handler(request):
        return httpx.Response(status, json=payload)
    return ReportsClient("http://testserver", transport=httpx.MockTransport(handler))


async def test_fetch_sends_bounds_as_query():
    seen = []

    def handler(request):
        seen.append(dict(request.url.params))
        return httpx.Response(200, json={"reports": [{
            "id": 5, "category": "Outage", "description": "No power",
            "latitude": -33.9, "longitude": 18.4, "createdAt": "2025-01-01T00:00:00+00:00",
        }]})

    async with ReportsClient("http://testserver", transport=httpx.MockTransport(handler)) as api:
        reports = await api.fetch_reports(BoundingBox(-34.0, 18.0, -33.0, 19.0))

    assert [r.id for r in reports] == [5]
    assert seen == [{"south": "-34.0", "west": "18.0", "north": "-33.0", "east": "19.0"}]


async def test_missing_reports_key_is_an_empty_list():
    async with client_returning({}) as api:
        assert await api.fetch_reports() == []


@pytest.mark.parametrize("payload", [
    [{"id": 1}],
    {"reports": {"id": 1}},
    "reports",
])
async def test_malformed_payload_raises_value_error(payload):
    async with client_returning(payload) as api:
        with pytest.raises(ValueError):
            await api.fetch_reports()


async def test_server_error_raises_http_error():
    async with client_returning({"detail": "boom"}, status=500) as api:
        with pytest.raises(httpx.HTTPStatusError):
            await api.fetch_reports()
