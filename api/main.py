"""
Applicazione FastAPI di winenode-importer.
"""
import logging
import uuid
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import select

from api.routers import ingest, sheets
from core.config import get_config, validate_config
from core.database import create_tables, get_db
from core.logger import CORRELATION_HEADER, set_request_context, setup_colored_logging

setup_colored_logging("importer")
logger = logging.getLogger(__name__)

app = FastAPI(title="WineNode Importer", version=get_config().importer_version)

# Workflow di conferma in corso, uno per utente (processo singolo)
app.state.workflows = {}

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ingest.router)
app.include_router(sheets.router)


@app.middleware("http")
async def correlation_id_middleware(request: Request, call_next):
    correlation_id = set_request_context(
        correlation_id=request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
    )
    response = await call_next(request)
    response.headers[CORRELATION_HEADER] = correlation_id
    return response


@app.on_event("startup")
async def startup_event():
    """Valida configurazione e crea tabelle mancanti."""
    try:
        validate_config()
    except ValueError as e:
        logger.error(f"[STARTUP] Configurazione non valida: {e}")
        raise

    try:
        await create_tables()
        logger.info("[STARTUP] Tabelle database pronte")
    except Exception as e:
        # Il servizio parte comunque: /health riporta lo stato database
        logger.warning(f"[STARTUP] Database non raggiungibile: {e}", exc_info=True)


@app.get("/health")
async def health_check():
    config = get_config()

    db_status = "unknown"
    try:
        async for db in get_db():
            await db.execute(select(1))
            db_status = "connected"
            break
    except Exception as db_error:
        db_status = f"error: {str(db_error)}"

    return {
        "status": "healthy",
        "service": "winenode-importer",
        "version": config.importer_version,
        "timestamp": datetime.utcnow().isoformat(),
        "database": db_status,
        "active_workflows": len(app.state.workflows),
    }
