"""Tests for the HTTP asset fetcher."""

import httpx
import pytest

from asset_vault._storage.http_fetch import HttpAssetFetcher, check_status
from asset_vault.backup.exceptions import PermanentBackendError, TransientBackendError

URL = "https://cdn.example.com/uploads/plan.pdf"


def make_fetcher(handler) -> HttpAssetFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpAssetFetcher(client=client, chunk_size=4)


@pytest.mark.parametrize("status_code", [404, 410])
def test_not_found_statuses(status_code):
    with pytest.raises(PermanentBackendError) as exc_info:
        check_status(status_code, URL)
    assert exc_info.value.not_found
    assert exc_info.value.status_code == status_code


@pytest.mark.parametrize("status_code", [429, 500, 502, 503])
def test_transient_statuses(status_code):
    with pytest.raises(TransientBackendError):
        check_status(status_code, URL)


@pytest.mark.parametrize("status_code", [400, 401, 403])
def test_permanent_statuses(status_code):
    with pytest.raises(PermanentBackendError) as exc_info:
        check_status(status_code, URL)
    assert not exc_info.value.not_found


def test_success_statuses_pass():
    check_status(200, URL)
    check_status(304, URL)


@pytest.mark.asyncio
async def test_fetch_streams_body():
    def handler(request):
        assert request.url == URL
        return httpx.Response(200, content=b"%PDF-1.7 body", headers={"content-type": "application/pdf; charset=binary"})

    fetcher = make_fetcher(handler)

    async with fetcher.open(URL) as stream:
        assert stream.size == 13
        assert stream.content_type == "application/pdf"
        body = b"".join([chunk async for chunk in stream.chunks])

    assert body == b"%PDF-1.7 body"
    assert await fetcher.fetch(URL) == b"%PDF-1.7 body"


@pytest.mark.asyncio
async def test_http_errors_are_classified():
    responses = {
        "https://cdn.example.com/gone.png": 404,
        "https://cdn.example.com/busy.png": 503,
        "https://cdn.example.com/private.png": 403,
    }
    fetcher = make_fetcher(lambda request: httpx.Response(responses[str(request.url)]))

    with pytest.raises(PermanentBackendError) as exc_info:
        await fetcher.fetch("https://cdn.example.com/gone.png")
    assert exc_info.value.not_found

    with pytest.raises(TransientBackendError):
        await fetcher.fetch("https://cdn.example.com/busy.png")

    with pytest.raises(PermanentBackendError) as exc_info:
        await fetcher.fetch("https://cdn.example.com/private.png")
    assert exc_info.value.status_code == 403


@pytest.mark.asyncio
async def test_connection_errors_are_transient():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    fetcher = make_fetcher(handler)

    with pytest.raises(TransientBackendError, match="Request failed"):
        await fetcher.fetch(URL)


@pytest.mark.asyncio
async def test_close_leaves_shared_client_open():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
    fetcher = HttpAssetFetcher(client=client)

    await fetcher.close()

    assert not client.is_closed
    await client.aclose()
