"""
Eccezioni della pipeline di import.

Solo i fallimenti "di confine" (sessione, rete, persistenza, conferme
distruttive) diventano eccezioni: le euristiche di parsing degradano a
None/placeholder e non sollevano mai.
"""
from typing import Any, Dict, List, Optional


class WineImportError(Exception):
    """
    Base per tutti gli errori dell'import.

    Attributes:
        code: Codice errore (es. "NOT_AUTHENTICATED")
        message: Messaggio leggibile dall'operatore
        status_code: HTTP status suggerito per l'API
        details: Contesto aggiuntivo
    """

    code = "IMPORT_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": {"code": self.code, "message": self.message, "details": self.details}}


class InputEmpty(WineImportError):
    """Nessun dato dopo la normalizzazione. Usata come esito, non sollevata dalla pipeline."""

    code = "INPUT_EMPTY"
    status_code = 200

    def __init__(self, message: str = "Nessun vino da importare"):
        super().__init__(message)


class ValidationIncomplete(WineImportError):
    """Form di conferma con campi obbligatori mancanti."""

    code = "VALIDATION_INCOMPLETE"
    status_code = 422

    def __init__(self, missing_fields: List[str]):
        self.missing_fields = list(missing_fields)
        super().__init__(
            f"Campi obbligatori mancanti: {', '.join(self.missing_fields)}",
            details={"missing_fields": self.missing_fields}
        )


class NotAuthenticated(WineImportError):
    code = "NOT_AUTHENTICATED"
    status_code = 401

    def __init__(self, message: str = "Utente non autenticato"):
        super().__init__(message)


class RemoteFetchFailed(WineImportError):
    """Download CSV remoto fallito (risposta non 2xx o errore di rete)."""

    code = "REMOTE_FETCH_FAILED"
    status_code = 502

    def __init__(self, url: str, status_code: Optional[int] = None, reason: str = ""):
        self.url = url
        self.http_status = status_code
        message = f"Impossibile scaricare il CSV ({status_code or reason or 'errore di rete'})"
        super().__init__(message, details={"url": url, "http_status": status_code})


class InvalidSheetUrl(WineImportError):
    code = "INVALID_SHEET_URL"
    status_code = 400

    def __init__(self, url: str):
        self.url = url
        super().__init__("URL Google Sheets non valido", details={"url": url})


class PersistenceFailed(WineImportError):
    """Scrittura su storage fallita; identifica il record quando possibile."""

    code = "PERSISTENCE_FAILED"
    status_code = 500

    def __init__(self, record_name: Optional[str] = None, index: Optional[int] = None, reason: str = ""):
        self.record_name = record_name
        self.index = index
        if record_name is not None and index is not None:
            message = f"Riga {index + 1}: salvataggio di {record_name} fallito"
        elif record_name is not None:
            message = f"Salvataggio di {record_name} fallito"
        else:
            message = "Salvataggio fallito"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, details={"record": record_name, "index": index})


class DestructiveReplaceConfirmationRequired(WineImportError):
    """La sostituzione lista richiede due conferme esplicite distinte."""

    code = "REPLACE_CONFIRMATION_REQUIRED"
    status_code = 409

    def __init__(self, pending_prompt: str, step: int):
        self.pending_prompt = pending_prompt
        self.step = step
        super().__init__(pending_prompt, details={"step": step, "prompt": pending_prompt})


class InvalidTransition(WineImportError):
    """Transizione non ammessa dallo stato corrente del workflow di conferma."""

    code = "INVALID_TRANSITION"
    status_code = 409
