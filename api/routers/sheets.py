"""
Router per il link Google Sheet salvato dall'utente.

Endpoint:
- GET /import/sheet-link: link salvato (null se assente)
- PUT /import/sheet-link: salva/aggiorna link
- DELETE /import/sheet-link: rimuove link
"""
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from api.dependencies import get_session_context, get_store, http_error
from core.session import SessionContext, require_session
from ingest.errors import WineImportError
from ingest.remote import sheet_export_url

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/import", tags=["sheets"])


class SheetLinkPayload(BaseModel):
    url: str


@router.get("/sheet-link")
async def get_sheet_link(session: SessionContext = Depends(get_session_context), store=Depends(get_store)):
    try:
        user_id = await require_session(session)
    except WineImportError as e:
        raise http_error(e)
    return {"url": await store.get_sheet_link(user_id)}


@router.put("/sheet-link")
async def save_sheet_link(
    payload: SheetLinkPayload,
    session: SessionContext = Depends(get_session_context),
    store=Depends(get_store)
):
    try:
        user_id = await require_session(session)
        export_url = sheet_export_url(payload.url)
    except WineImportError as e:
        raise http_error(e)
    await store.save_sheet_link(user_id, payload.url.strip())
    logger.info(f"[SHEETS] Link Google Sheet salvato per {user_id}")
    return {"url": payload.url.strip(), "export_url": export_url}


@router.delete("/sheet-link")
async def delete_sheet_link(session: SessionContext = Depends(get_session_context), store=Depends(get_store)):
    try:
        user_id = await require_session(session)
    except WineImportError as e:
        raise http_error(e)
    await store.delete_sheet_link(user_id)
    return {"url": None}
