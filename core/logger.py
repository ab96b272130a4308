"""
Logging per winenode-importer.

- Console colorata (colorlog) per tutti i moduli
- Contesto richiesta (utente, correlation id) in una contextvar, impostato
  dal middleware HTTP e completato dagli entry point della pipeline
- Eventi pipeline come righe JSON (`log_json`)
"""
import contextvars
import json
import logging
import sys
import uuid
from dataclasses import asdict, dataclass, replace
from datetime import datetime
from typing import Any, Dict, Optional

import colorlog

CORRELATION_HEADER = "X-Correlation-ID"

LOG_COLORS = {
    'DEBUG': 'white',
    'INFO': 'blue',
    'WARNING': 'yellow',
    'ERROR': 'red',
    'CRITICAL': 'red,bg_white',
}

# Librerie troppo verbose a livello INFO
QUIET_LOGGERS = ('httpx', 'httpcore', 'sqlalchemy.engine', 'asyncio')


@dataclass(frozen=True)
class RequestContext:
    user_id: Optional[str] = None
    correlation_id: Optional[str] = None


_request_context: contextvars.ContextVar[RequestContext] = contextvars.ContextVar(
    'importer_request_context', default=RequestContext()
)

_events_logger = logging.getLogger("importer.events")


def setup_colored_logging(service_name: str = "importer", level: int = logging.INFO) -> logging.Logger:
    """
    Configura il root logger con output colorato su stdout.

    Args:
        service_name: Nome servizio mostrato in ogni riga
        level: Livello root logger

    Returns:
        Root logger configurato
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(colorlog.ColoredFormatter(
        f'%(log_color)s[%(levelname)s]%(reset)s %(cyan)s{service_name}%(reset)s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        log_colors=LOG_COLORS,
    ))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger


def set_request_context(user_id: Optional[str] = None, correlation_id: Optional[str] = None) -> str:
    """
    Aggiorna il contesto della richiesta corrente.

    I valori non passati restano quelli già impostati (es. correlation id
    dal middleware); un correlation id mancante viene generato.

    Returns:
        Correlation id attivo
    """
    current = _request_context.get()
    context = replace(
        current,
        user_id=user_id if user_id is not None else current.user_id,
        correlation_id=correlation_id or current.correlation_id or str(uuid.uuid4()),
    )
    _request_context.set(context)
    return context.correlation_id


def get_request_context() -> RequestContext:
    return _request_context.get()


def log_json(level: str, message: str, **fields: Any):
    """
    Evento pipeline come riga JSON.

    Contiene timestamp, livello, messaggio, contesto richiesta e i campi
    passati non None (stage, source, rows_total, rows_valid, rows_rejected,
    elapsed_ms, decision, ...).

    Args:
        level: 'debug', 'info', 'warning', 'error'
        message: Messaggio leggibile
        **fields: Metriche e attributi dell'evento
    """
    event: Dict[str, Any] = {
        "timestamp": datetime.utcnow().isoformat(),
        "level": level.upper(),
        "message": message,
    }
    event.update({k: v for k, v in asdict(get_request_context()).items() if v is not None})
    event.update({k: v for k, v in fields.items() if v is not None})

    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO
    _events_logger.log(numeric_level, json.dumps(event, ensure_ascii=False, default=str))
