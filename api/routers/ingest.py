"""
Router per l'import vini.

Endpoint:
- POST /import/text/optimize: pre-pass "ottimizza" del testo incollato
- POST /import/text/analyze: analisi testo e apertura workflow di conferma
- GET  /import/workflow: stato workflow corrente
- POST /import/workflow/next | /back | /cancel | /commit: transizioni workflow
- GET  /import/options: tipologie e fornitori registrati
- POST /import/csv/preview: anteprima griglia di un file CSV/Excel
- POST /import/csv: import diretto file CSV/Excel
- POST /import/sheet: import diretto Google Sheet
"""
import dataclasses
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from pydantic import BaseModel

from api.dependencies import get_session_context, get_store, get_user_workflow, http_error
from core.session import SessionContext, require_session
from ingest.confirmation import ConfirmationWorkflow, Phase, can_advance
from ingest.errors import WineImportError
from ingest.pipeline import analyze_text, import_google_sheet, import_table_file, optimize_paste, preview_table_file
from ingest.reconcile import ImportMode, ReplaceConfirmation
from ingest.validation import WineForm

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/import", tags=["import"])

MAX_FILE_SIZE = 10 * 1024 * 1024


class TextPayload(BaseModel):
    text: str


class AnalyzePayload(BaseModel):
    text: str
    category: Optional[str] = None
    allowed_categories: Optional[List[str]] = None


class NextPayload(BaseModel):
    form: WineForm
    apply_to_all: bool = False


class CommitPayload(BaseModel):
    mode: ImportMode = ImportMode.APPEND
    category: Optional[str] = None
    confirm_replace: bool = False
    confirm_replace_final: bool = False


class SheetImportPayload(CommitPayload):
    url: str
    save_link: bool = True


def workflow_view(workflow: ConfirmationWorkflow) -> Dict[str, Any]:
    """Stato workflow serializzato per la UI."""
    state = workflow.state
    view: Dict[str, Any] = {
        "phase": state.phase.value,
        "total": state.total,
        "current_index": state.current_index,
        "last_error": state.last_error,
    }
    if state.phase == Phase.REVIEWING:
        form = workflow.form()
        missing = workflow.errors(form)
        candidate = state.candidates[state.current_index]
        view.update({
            "form": form.model_dump(),
            "missing_fields": missing,
            "can_advance": can_advance(state, form),
            "can_go_back": state.current_index > 0,
            "producer_suggested": candidate.producer_suggested,
            "similar_to": candidate.similar_to,
        })
    elif state.phase == Phase.SUMMARY:
        summary = workflow.summary()
        view["summary"] = {
            "count": summary.count,
            "total_sell_value": summary.total_sell_value,
            "producer_count": summary.producer_count,
            "records": [record.model_dump() for record in summary.records],
        }
    return view


def _confirmation(payload: CommitPayload) -> ReplaceConfirmation:
    return ReplaceConfirmation(first=payload.confirm_replace, second=payload.confirm_replace_final)


@router.post("/text/optimize")
async def optimize_endpoint(payload: TextPayload, session: SessionContext = Depends(get_session_context)):
    try:
        optimized = await optimize_paste(payload.text, session)
    except WineImportError as e:
        raise http_error(e)
    return {"text": optimized, "lines": len(optimized.splitlines())}


@router.post("/text/analyze")
async def analyze_endpoint(
    payload: AnalyzePayload,
    request: Request,
    session: SessionContext = Depends(get_session_context),
    store=Depends(get_store)
):
    workflow = await get_user_workflow(request, session)
    try:
        result = await analyze_text(payload.text, session, store=store)
    except WineImportError as e:
        raise http_error(e)

    if result.empty:
        workflow.cancel()
        return {"status": "empty", "message": result.message, "workflow": workflow_view(workflow)}

    workflow.begin(result.candidates, payload.category, payload.allowed_categories)
    return {
        "status": "reviewing",
        "message": result.message,
        "duplicates_dropped": result.duplicates_dropped,
        "workflow": workflow_view(workflow),
    }


@router.get("/workflow")
async def workflow_endpoint(request: Request, session: SessionContext = Depends(get_session_context)):
    workflow = await get_user_workflow(request, session)
    return workflow_view(workflow)


@router.post("/workflow/next")
async def next_endpoint(
    payload: NextPayload,
    request: Request,
    session: SessionContext = Depends(get_session_context)
):
    workflow = await get_user_workflow(request, session)
    try:
        workflow.save_and_next(payload.form, apply_to_all=payload.apply_to_all)
    except WineImportError as e:
        raise http_error(e)
    return workflow_view(workflow)


@router.post("/workflow/back")
async def back_endpoint(request: Request, session: SessionContext = Depends(get_session_context)):
    workflow = await get_user_workflow(request, session)
    try:
        workflow.back()
    except WineImportError as e:
        raise http_error(e)
    return workflow_view(workflow)


@router.post("/workflow/cancel")
async def cancel_endpoint(request: Request, session: SessionContext = Depends(get_session_context)):
    workflow = await get_user_workflow(request, session)
    workflow.cancel()
    return workflow_view(workflow)


@router.post("/workflow/commit")
async def commit_endpoint(
    payload: CommitPayload,
    request: Request,
    session: SessionContext = Depends(get_session_context),
    store=Depends(get_store)
):
    workflow = await get_user_workflow(request, session)
    try:
        report = await workflow.commit(
            store,
            session,
            mode=payload.mode,
            confirmation=_confirmation(payload),
            category=payload.category,
        )
    except WineImportError as e:
        raise http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "status": "committed",
        "inserted": report.inserted,
        "updated": report.updated,
        "deleted": report.deleted,
        "workflow": workflow_view(workflow),
    }


@router.get("/options")
async def options_endpoint(session: SessionContext = Depends(get_session_context), store=Depends(get_store)):
    """Tipologie e fornitori già registrati, per i menu del form di conferma."""
    try:
        user_id = await require_session(session)
    except WineImportError as e:
        raise http_error(e)
    return {
        "categories": await store.list_categories(user_id),
        "suppliers": await store.list_suppliers(user_id),
    }


@router.post("/csv/preview")
async def preview_csv_endpoint(
    file: UploadFile = File(...),
    category: Optional[str] = Form(None),
    session: SessionContext = Depends(get_session_context)
):
    file_content = await _read_upload(file)
    try:
        grid, info = await preview_table_file(file_content, file.filename or "", session, category=category)
    except WineImportError as e:
        raise http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"rows": grid, "records": info["records"], "separator": info.get("separator")}


async def _read_upload(file: UploadFile) -> bytes:
    file_content = await file.read()
    if not file_content:
        raise HTTPException(status_code=400, detail="Empty file")
    if len(file_content) > MAX_FILE_SIZE:
        raise HTTPException(status_code=413, detail="File too large (max 10MB)")
    return file_content


@router.post("/csv")
async def import_csv_endpoint(
    file: UploadFile = File(...),
    category: Optional[str] = Form(None),
    mode: ImportMode = Form(ImportMode.APPEND),
    confirm_replace: bool = Form(False),
    confirm_replace_final: bool = Form(False),
    session: SessionContext = Depends(get_session_context),
    store=Depends(get_store)
):
    file_content = await _read_upload(file)
    try:
        result = await import_table_file(
            file_content,
            file.filename or "",
            session,
            store,
            category=category,
            mode=mode,
            confirmation=ReplaceConfirmation(first=confirm_replace, second=confirm_replace_final),
        )
    except WineImportError as e:
        raise http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return dataclasses.asdict(result)


@router.post("/sheet")
async def import_sheet_endpoint(
    payload: SheetImportPayload,
    session: SessionContext = Depends(get_session_context),
    store=Depends(get_store)
):
    try:
        result = await import_google_sheet(
            payload.url,
            session,
            store,
            category=payload.category,
            mode=payload.mode,
            confirmation=_confirmation(payload),
        )
        if payload.save_link and result.success:
            await store.save_sheet_link(session.get_current_user_id(), payload.url)
    except WineImportError as e:
        raise http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return dataclasses.asdict(result)
