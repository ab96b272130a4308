"""
Pipeline Orchestratore - entry point dell'import.

- Testo incollato: ottimizza -> analizza (normalizer + extractor) -> workflow di conferma
- File CSV/Excel e Google Sheet: parser tabellare -> merge engine (senza conferma per record)

Ogni entry point riceve la sessione esplicitamente e rifiuta di lavorare
senza un utente autenticato, prima di qualsiasi parsing.
"""
import logging
import time
from typing import Any, Dict, List, Optional, Tuple

import httpx

from core.config import get_config
from core.logger import log_json, set_request_context
from core.session import SessionContext, require_session
from ingest.csv_parser import pad_grid, parse_csv, parse_csv_text
from ingest.dedup import annotate_similar, deduplicate_candidates
from ingest.errors import InputEmpty
from ingest.excel_parser import parse_excel
from ingest.extractor import extract_candidates
from ingest.gate import route_file
from ingest.normalization import normalize_text, optimize_text
from ingest.reconcile import ImportMode, MergeReport, ReplaceConfirmation, check_replace_confirmation, merge_batch
from ingest.remote import fetch_csv, sheet_export_url
from ingest.types import AnalysisResult, CandidateRecord, ImportResult
from ingest.wine_terms_dict import WineKnowledge

logger = logging.getLogger(__name__)


def _elapsed_ms(start_time: float) -> float:
    return round((time.time() - start_time) * 1000, 1)


async def optimize_paste(raw: str, session: SessionContext) -> str:
    """
    Pre-pass "ottimizza" del testo incollato.

    Returns:
        Testo pulito, una riga per vino
    """
    user_id = await require_session(session)
    set_request_context(user_id=user_id)
    optimized = optimize_text(raw)
    log_json("info", "Testo ottimizzato", stage="optimize", source="text",
             rows_valid=len(optimized.splitlines()) if optimized else 0)
    return optimized


async def analyze_text(
    raw: str,
    session: SessionContext,
    store=None,
    knowledge: Optional[WineKnowledge] = None
) -> AnalysisResult:
    """
    Analizza il testo incollato producendo i candidati per il workflow di conferma.

    Args:
        raw: Testo incollato
        session: Sessione utente
        store: Persistenza (opzionale) per suggerire vini simili già salvati
        knowledge: Knowledge base (default da config)

    Returns:
        AnalysisResult; vuoto (nessun batch) se non resta nulla da importare

    Raises:
        NotAuthenticated: prima di qualsiasi parsing
    """
    start_time = time.time()
    user_id = await require_session(session)
    set_request_context(user_id=user_id)

    lines = normalize_text(raw)
    if not lines:
        empty = InputEmpty()
        log_json("info", empty.message, stage="normalize", source="text", rows_total=0, decision="empty")
        return AnalysisResult(message=empty.message)

    candidates = extract_candidates(lines, knowledge)
    candidates, duplicates = deduplicate_candidates(candidates)

    if store is not None:
        stored = await store.list_wines(user_id)
        annotate_similar(candidates, stored, get_config().similarity_threshold)

    needs_input = sum(1 for c in candidates if c.needs_producer or c.needs_name or not c.provenance)
    log_json(
        "info",
        "Testo analizzato",
        stage="extract",
        source="text",
        rows_total=len(lines),
        rows_valid=len(candidates),
        rows_rejected=duplicates,
        elapsed_ms=_elapsed_ms(start_time),
        decision="continue",
        needs_input=needs_input,
    )
    return AnalysisResult(
        candidates=candidates,
        lines_total=len(lines),
        duplicates_dropped=duplicates,
        message=f"{len(candidates)} vini da confermare",
    )


def _result_from_report(report: MergeReport) -> ImportResult:
    success = not report.errors
    if success:
        message = f"Import completato: {report.imported} vini importati"
    else:
        message = f"Import completato con {len(report.errors)} errori: {report.imported} vini importati"
    return ImportResult(
        success=success,
        imported=report.imported,
        inserted=report.inserted,
        updated=report.updated,
        deleted=report.deleted,
        errors=list(report.errors),
        message=message,
    )


async def _import_records(
    records: List[CandidateRecord],
    source: str,
    session: SessionContext,
    store,
    category: Optional[str],
    mode: ImportMode,
    confirmation: Optional[ReplaceConfirmation],
    start_time: float
) -> ImportResult:
    if not records:
        empty = InputEmpty()
        log_json("info", empty.message, stage="csv_parse", source=source, rows_total=0, decision="empty")
        return ImportResult(success=True, message=empty.message, empty=True)

    report = await merge_batch(
        store,
        session,
        records,
        category=category,
        mode=mode,
        confirmation=confirmation,
        stop_on_error=False,
    )
    result = _result_from_report(report)
    log_json(
        "info" if result.success else "warning",
        result.message,
        stage="merge",
        source=source,
        rows_total=len(records),
        rows_valid=report.imported,
        rows_rejected=len(report.errors),
        elapsed_ms=_elapsed_ms(start_time),
        decision="save" if result.success else "partial",
        mode=ImportMode(mode).value,
        deleted=report.deleted,
    )
    return result


async def import_csv_text(
    text: str,
    session: SessionContext,
    store,
    category: Optional[str] = None,
    mode: ImportMode = ImportMode.APPEND,
    confirmation: Optional[ReplaceConfirmation] = None,
    source: str = "csv"
) -> ImportResult:
    """Import diretto di testo CSV (incollato o scaricato), senza conferma per record."""
    start_time = time.time()
    user_id = await require_session(session)
    set_request_context(user_id=user_id)

    records, _ = parse_csv_text(text, category)
    return await _import_records(records, source, session, store, category, mode, confirmation, start_time)


async def import_table_file(
    file_content: bytes,
    file_name: str,
    session: SessionContext,
    store,
    category: Optional[str] = None,
    mode: ImportMode = ImportMode.APPEND,
    confirmation: Optional[ReplaceConfirmation] = None
) -> ImportResult:
    """
    Import diretto di un file CSV/TSV/XLSX/XLS.

    Raises:
        NotAuthenticated, ValueError (formato non supportato),
        DestructiveReplaceConfirmationRequired
    """
    start_time = time.time()
    user_id = await require_session(session)
    set_request_context(user_id=user_id)

    records, info = _parse_table_file(file_content, file_name, category)
    return await _import_records(records, info['route'], session, store, category, mode, confirmation, start_time)


def _parse_table_file(
    file_content: bytes,
    file_name: str,
    category: Optional[str]
) -> Tuple[List[CandidateRecord], Dict[str, Any]]:
    route, ext = route_file(file_name)
    if route == 'excel':
        records, info = parse_excel(file_content, category)
    else:
        records, info = parse_csv(file_content, category)
    info['route'] = route
    log_json("info", "File parsato", stage="csv_parse", source=route, file_name=file_name, ext=ext,
             rows_total=info.get('rows_total'), rows_valid=len(records))
    return records, info


async def preview_table_file(
    file_content: bytes,
    file_name: str,
    session: SessionContext,
    category: Optional[str] = None
) -> Tuple[List[Dict[str, str]], Dict[str, Any]]:
    """
    Anteprima griglia di un file CSV/Excel, senza scritture.

    Returns:
        Tuple (righe griglia completate fino a grid_size, parse_info con `records`)
    """
    user_id = await require_session(session)
    set_request_context(user_id=user_id)

    records, info = _parse_table_file(file_content, file_name, category)
    info['records'] = len(records)
    return pad_grid(records), info


async def import_google_sheet(
    url: str,
    session: SessionContext,
    store,
    category: Optional[str] = None,
    mode: ImportMode = ImportMode.APPEND,
    confirmation: Optional[ReplaceConfirmation] = None,
    client: Optional[httpx.AsyncClient] = None
) -> ImportResult:
    """
    Import diretto da Google Sheet pubblico.

    Il download precede qualsiasi scrittura: un errore di rete non lascia
    import parziali.

    Raises:
        NotAuthenticated, InvalidSheetUrl, RemoteFetchFailed,
        DestructiveReplaceConfirmationRequired
    """
    start_time = time.time()
    user_id = await require_session(session)
    set_request_context(user_id=user_id)

    export_url = sheet_export_url(url)
    if mode == ImportMode.REPLACE and category:
        # Conferme verificate prima del download
        check_replace_confirmation(category, confirmation)

    text = await fetch_csv(export_url, client=client)
    records, _ = parse_csv_text(text, category)
    return await _import_records(records, "sheet", session, store, category, mode, confirmation, start_time)
