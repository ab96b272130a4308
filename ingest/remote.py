"""
Sorgente CSV remota (Google Sheets).

Conversione URL foglio -> URL export CSV e download con httpx.
Nessun retry automatico: un errore chiude il tentativo di import.
"""
import logging
import re
from typing import Optional

import httpx

from core.config import get_config
from ingest.errors import InvalidSheetUrl, RemoteFetchFailed

logger = logging.getLogger(__name__)

SHEET_ID_PATTERN = re.compile(r"/spreadsheets/d/([a-zA-Z0-9_-]+)")


def sheet_export_url(url: str) -> str:
    """
    Converte l'URL di un Google Sheet nell'URL di export CSV.

    - .../edit#gid=N -> .../export?format=csv&gid=N
    - .../edit       -> .../export?format=csv
    - URL già di export restano invariati
    - altrimenti ricostruisce l'URL dall'ID del foglio

    Raises:
        InvalidSheetUrl: Se l'URL non contiene un ID foglio
    """
    url = (url or "").strip()

    if "/export" in url and "format=csv" in url:
        return url
    if "/edit#gid=" in url:
        return url.replace("/edit#gid=", "/export?format=csv&gid=")
    if "/edit" in url:
        return url[:url.index("/edit")] + "/export?format=csv"

    match = SHEET_ID_PATTERN.search(url)
    if match:
        return f"https://docs.google.com/spreadsheets/d/{match.group(1)}/export?format=csv"

    logger.warning(f"[REMOTE] URL Google Sheets non valido: {url}")
    raise InvalidSheetUrl(url)


async def fetch_csv(
    url: str,
    client: Optional[httpx.AsyncClient] = None,
    timeout: Optional[float] = None
) -> str:
    """
    Scarica il testo CSV da un URL.

    Args:
        url: URL export CSV
        client: Client httpx esistente (test/riuso connessioni)
        timeout: Timeout secondi (default config, None = nessun limite)

    Returns:
        Testo CSV

    Raises:
        RemoteFetchFailed: Risposta non 2xx o errore di rete
    """
    if timeout is None:
        timeout = get_config().remote_fetch_timeout

    try:
        if client is None:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as own_client:
                response = await own_client.get(url)
        else:
            response = await client.get(url)
    except httpx.HTTPError as e:
        logger.error(f"[REMOTE] Errore di rete scaricando {url}: {e}")
        raise RemoteFetchFailed(url, reason=type(e).__name__) from e

    if not response.is_success:
        logger.error(f"[REMOTE] Download CSV fallito: HTTP {response.status_code} per {url}")
        raise RemoteFetchFailed(url, status_code=response.status_code)

    logger.info(f"[REMOTE] CSV scaricato: {len(response.content)} bytes")
    return response.text
