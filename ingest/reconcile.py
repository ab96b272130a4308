"""
Reconciliation/Merge Engine.

Confronta ogni record importato con le giacenze salvate dell'utente (chiave:
nome trimmed case-insensitive) e decide insert o update. Un update non tocca
mai la giacenza esistente. Le scritture sono sequenziali: ogni chiamata allo
store è attesa prima del record successivo, così la lettura "giacenza
esistente" e la scrittura non si sovrappongono per lo stesso nome.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union

from core.config import get_config
from core.session import SessionContext, require_session
from ingest.dedup import match_key
from ingest.errors import DestructiveReplaceConfirmationRequired, PersistenceFailed
from ingest.types import CandidateRecord, PRODUCER_PLACEHOLDER, StoredWine
from ingest.validation import ConfirmedRecord
from ingest.wine_terms_dict import WineKnowledge, default_knowledge

logger = logging.getLogger(__name__)

ImportRecord = Union[CandidateRecord, ConfirmedRecord]

REPLACE_FIRST_PROMPT = (
    "ATTENZIONE\n⚠️ Tutti i vini della categoria {category} saranno sostituiti.\nVuoi continuare?"
)
REPLACE_SECOND_PROMPT = "⚠️ Azione definitiva.\nContinuare?"


class ImportMode(str, Enum):
    APPEND = "append"
    REPLACE = "replace"


@dataclass
class ReplaceConfirmation:
    """Le due conferme distinte richieste per sostituire la lista."""
    first: bool = False
    second: bool = False

    @property
    def granted(self) -> bool:
        return self.first and self.second


@dataclass
class MergeOutcome:
    action: str  # "insert" | "update"
    wine: StoredWine
    index: int


@dataclass
class MergeReport:
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    outcomes: List[MergeOutcome] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def imported(self) -> int:
        return self.inserted + self.updated


def check_replace_confirmation(category: str, confirmation: Optional[ReplaceConfirmation]):
    """
    Verifica le due conferme per la sostituzione lista.

    Raises:
        DestructiveReplaceConfirmationRequired: con il testo della conferma mancante
    """
    confirmation = confirmation or ReplaceConfirmation()
    if not confirmation.first:
        raise DestructiveReplaceConfirmationRequired(REPLACE_FIRST_PROMPT.format(category=category), step=1)
    if not confirmation.second:
        raise DestructiveReplaceConfirmationRequired(REPLACE_SECOND_PROMPT, step=2)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def record_values(record: ImportRecord, wine_type: Optional[str]) -> Dict[str, Any]:
    """Campi descrittivi da scrivere (None = non fornito)."""
    producer = _clean(record.producer)
    if producer == PRODUCER_PLACEHOLDER:
        producer = None
    return {
        "name": _clean(record.name),
        "type": wine_type,
        "producer": producer,
        "region": _clean(record.provenance),
        "vintage": _clean(record.vintage),
        "supplier": _clean(record.supplier),
        "price": record.sell_price or 0.0,
        "cost_price": record.cost_price or 0.0,
    }


def pick_match(
    matches: Sequence[StoredWine],
    record: ImportRecord,
    by_producer: bool = False
) -> Optional[StoredWine]:
    """
    Sceglie il vino salvato da aggiornare tra gli omonimi.

    Con `by_producer` preferisce lo stesso produttore; altrimenti (o se
    nessuno coincide) il primo per id.
    """
    if not matches:
        return None
    if by_producer and record.producer:
        producer_key = match_key(record.producer)
        for wine in matches:
            if match_key(wine.producer) == producer_key:
                return wine
    return matches[0]


async def reconcile_record(
    store,
    user_id: str,
    record: ImportRecord,
    index: int = 0,
    category: Optional[str] = None,
    knowledge: Optional[WineKnowledge] = None,
    force_insert: bool = False
) -> MergeOutcome:
    """
    Inserisce o aggiorna un singolo record.

    Args:
        store: Persistenza (SqlWineStore o compatibile)
        user_id: Utente corrente
        record: Record da importare
        index: Posizione nel batch (per i messaggi di errore)
        category: Categoria batch usata se il record non ne ha una
        knowledge: Knowledge base per categoria -> tipo
        force_insert: Inserisce sempre, senza cercare vini omonimi (REPLACE)

    Returns:
        MergeOutcome con azione e vino risultante

    Raises:
        PersistenceFailed: Se lo store fallisce su questo record
    """
    config = get_config()
    knowledge = knowledge or default_knowledge()
    wine_type = knowledge.category_to_type(record.category or category)
    values = record_values(record, wine_type)

    try:
        existing = None
        if not force_insert:
            matches = await store.find_wines_by_name(user_id, record.name)
            existing = pick_match(matches, record, by_producer=config.merge_by_producer)

        if existing is not None:
            # Solo campi forniti; prezzi solo se valorizzati; giacenza mai
            updates = {k: v for k, v in values.items() if v is not None and k not in ("price", "cost_price")}
            updates.pop("name", None)
            if values["price"] > 0:
                updates["price"] = values["price"]
            if values["cost_price"] > 0:
                updates["cost_price"] = values["cost_price"]
            wine = await store.update_wine(user_id, existing.id, updates)
            logger.debug(f"[RECONCILE] Aggiornato {record.name} (id={existing.id}), giacenza {existing.stock_quantity} preservata")
            return MergeOutcome(action="update", wine=wine, index=index)

        stock = record.stock_quantity if record.stock_quantity is not None else 0
        insert_values = dict(values, stock_quantity=stock, min_stock=config.default_min_stock)
        wine = await store.insert_wine(user_id, insert_values)
        logger.debug(f"[RECONCILE] Inserito {record.name} con giacenza {stock}")
        return MergeOutcome(action="insert", wine=wine, index=index)

    except PersistenceFailed:
        raise
    except Exception as e:
        logger.error(f"[RECONCILE] Errore salvataggio riga {index + 1} ({record.name}): {e}", exc_info=True)
        raise PersistenceFailed(record.name, index, reason=str(e)) from e


async def merge_batch(
    store,
    session: SessionContext,
    records: Sequence[ImportRecord],
    category: Optional[str] = None,
    mode: ImportMode = ImportMode.APPEND,
    confirmation: Optional[ReplaceConfirmation] = None,
    knowledge: Optional[WineKnowledge] = None,
    register_metadata: bool = True,
    stop_on_error: bool = True
) -> MergeReport:
    """
    Importa un batch in sequenza.

    In modalità REPLACE, dopo le due conferme, elimina prima tutti i vini
    dell'utente del tipo corrispondente a `category` e poi inserisce ogni
    record come nuovo: i vini omonimi di altre categorie non vengono toccati.

    Args:
        store: Persistenza
        session: Sessione utente (validata prima di qualsiasi scrittura)
        records: Record da importare, in ordine
        category: Categoria del batch (obbligatoria per REPLACE)
        mode: APPEND o REPLACE
        confirmation: Conferme per REPLACE
        knowledge: Knowledge base
        register_metadata: Registra tipologie e fornitori nuovi
        stop_on_error: Se False, un record fallito finisce in report.errors ("Riga N: ...")
            e il batch prosegue

    Returns:
        MergeReport

    Raises:
        NotAuthenticated, DestructiveReplaceConfirmationRequired, PersistenceFailed
    """
    user_id = await require_session(session)
    knowledge = knowledge or default_knowledge()
    mode = ImportMode(mode)
    report = MergeReport()

    if mode == ImportMode.REPLACE:
        if not category:
            raise ValueError("Categoria obbligatoria per sostituire la lista")
        check_replace_confirmation(category, confirmation)
        wine_type = knowledge.category_to_type(category)
        try:
            report.deleted = await store.delete_wines_by_type(user_id, wine_type)
        except Exception as e:
            logger.error(f"[RECONCILE] Errore eliminazione vini tipo {wine_type}: {e}", exc_info=True)
            raise PersistenceFailed(reason=str(e)) from e
        logger.warning(f"[RECONCILE] Sostituzione lista: eliminati {report.deleted} vini tipo '{wine_type}'")

    for index, record in enumerate(records):
        try:
            outcome = await reconcile_record(
                store, user_id, record, index, category, knowledge,
                force_insert=(mode == ImportMode.REPLACE)
            )
        except PersistenceFailed as e:
            if stop_on_error:
                raise
            report.errors.append(e.message)
            continue
        report.outcomes.append(outcome)
        if outcome.action == "insert":
            report.inserted += 1
        else:
            report.updated += 1

    if register_metadata:
        await _register_metadata(store, user_id, records, category)

    logger.info(
        f"[RECONCILE] Batch completato: {report.inserted} inseriti, {report.updated} aggiornati, "
        f"{report.deleted} eliminati"
    )
    return report


async def _register_metadata(store, user_id: str, records: Sequence[ImportRecord], category: Optional[str]):
    categories = []
    suppliers = []
    for record in records:
        record_category = _clean(record.category or category)
        if record_category and record_category not in categories:
            categories.append(record_category)
        supplier = _clean(record.supplier)
        if supplier and supplier not in suppliers:
            suppliers.append(supplier)

    try:
        for name in categories:
            await store.ensure_category(user_id, name)
        for name in suppliers:
            await store.ensure_supplier(user_id, name)
    except Exception as e:
        logger.error(f"[RECONCILE] Errore registrazione tipologie/fornitori: {e}", exc_info=True)
        raise PersistenceFailed(reason=str(e)) from e
