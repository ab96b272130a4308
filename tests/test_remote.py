"""
Test per la sorgente CSV remota (Google Sheets).
"""
import httpx
import pytest

from ingest.errors import InvalidSheetUrl, RemoteFetchFailed
from ingest.remote import fetch_csv, sheet_export_url

SHEET = "https://docs.google.com/spreadsheets/d/1AbC-xyz_09"


class TestSheetExportUrl:

    def test_edit_with_gid(self):
        assert sheet_export_url(f"{SHEET}/edit#gid=42") == f"{SHEET}/export?format=csv&gid=42"

    def test_edit(self):
        assert sheet_export_url(f"{SHEET}/edit?usp=sharing") == f"{SHEET}/export?format=csv"

    def test_export_url_unchanged(self):
        url = f"{SHEET}/export?format=csv&gid=0"
        assert sheet_export_url(url) == url

    def test_bare_sheet_url(self):
        assert sheet_export_url(f"  {SHEET}  ") == f"{SHEET}/export?format=csv"

    def test_invalid_url(self):
        with pytest.raises(InvalidSheetUrl):
            sheet_export_url("https://example.com/lista.csv")


class TestFetchCsv:
    """Download con transport httpx finto."""

    @pytest.mark.asyncio
    async def test_fetch_ok(self):
        def handler(request):
            assert request.url.path.endswith("/export")
            return httpx.Response(200, text="Barolo,2017,Vietti\n")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            text = await fetch_csv(f"{SHEET}/export?format=csv", client=client)

        assert text == "Barolo,2017,Vietti\n"

    @pytest.mark.asyncio
    async def test_non_2xx_is_failure(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(404, text="not found"))

        async with httpx.AsyncClient(transport=transport) as client:
            with pytest.raises(RemoteFetchFailed) as exc_info:
                await fetch_csv(f"{SHEET}/export?format=csv", client=client)

        assert exc_info.value.http_status == 404
        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_network_error_is_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(RemoteFetchFailed):
                await fetch_csv(f"{SHEET}/export?format=csv", client=client)
