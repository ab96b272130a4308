"""
Confirmation Workflow: revisione record per record prima del salvataggio.

Stati: IDLE -> REVIEWING(i) -> ... -> SUMMARY -> (commit | cancel) -> IDLE.

Le transizioni sono funzioni pure su `WorkflowState` (immutabile): ogni
funzione ritorna un nuovo stato e lascia invariato quello ricevuto, anche
quando solleva. `ConfirmationWorkflow` conserva lo stato corrente e notifica
i listener a ogni transizione.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from core.session import SessionContext
from ingest.errors import InvalidTransition, PersistenceFailed
from ingest.reconcile import ImportMode, MergeReport, ReplaceConfirmation, merge_batch
from ingest.types import CandidateRecord
from ingest.validation import ConfirmedRecord, WineForm, confirm_form, form_errors

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    IDLE = "idle"
    REVIEWING = "reviewing"
    SUMMARY = "summary"


@dataclass(frozen=True)
class WorkflowState:
    phase: Phase = Phase.IDLE
    candidates: Tuple[CandidateRecord, ...] = ()
    confirmed: Tuple[Optional[ConfirmedRecord], ...] = ()
    category_defaults: Tuple[Optional[str], ...] = ()
    current_index: int = 0
    apply_to_all: bool = False
    allowed_categories: Optional[Tuple[str, ...]] = None
    last_error: Optional[str] = None

    @property
    def total(self) -> int:
        return len(self.candidates)

    @property
    def is_last(self) -> bool:
        return self.current_index == self.total - 1


@dataclass(frozen=True)
class BatchSummary:
    count: int
    total_sell_value: float
    producer_count: int
    records: Tuple[ConfirmedRecord, ...]


def begin_review(
    candidates: Sequence[CandidateRecord],
    default_category: Optional[str] = None,
    allowed_categories: Optional[Iterable[str]] = None
) -> WorkflowState:
    """
    Apre la revisione sul primo candidato.

    Un batch vuoto non apre il workflow (resta IDLE).
    """
    if not candidates:
        return WorkflowState()
    defaults = tuple(candidate.category or default_category for candidate in candidates)
    return WorkflowState(
        phase=Phase.REVIEWING,
        candidates=tuple(candidates),
        confirmed=(None,) * len(candidates),
        category_defaults=defaults,
        current_index=0,
        allowed_categories=tuple(allowed_categories) if allowed_categories is not None else None,
    )


def _require(state: WorkflowState, *phases: Phase):
    if state.phase not in phases:
        raise InvalidTransition(f"Operazione non disponibile nello stato {state.phase.value}")


def current_form(state: WorkflowState) -> WineForm:
    """Form precompilato per il record corrente (valori confermati se già salvato)."""
    _require(state, Phase.REVIEWING)
    index = state.current_index
    saved = state.confirmed[index]
    if saved is not None:
        return WineForm(**saved.model_dump(exclude={"stock_quantity", "source_line_index"}))
    return WineForm.from_candidate(state.candidates[index], category=state.category_defaults[index])


def can_advance(state: WorkflowState, form: WineForm) -> bool:
    return state.phase == Phase.REVIEWING and not form_errors(form, state.allowed_categories)


def save_and_next(state: WorkflowState, form: WineForm, apply_to_all: bool = False) -> WorkflowState:
    """
    Salva il form nel record corrente e avanza (o passa al riepilogo sull'ultimo).

    Con `apply_to_all` la categoria scelta diventa il default di tutti i record
    non ancora confermati; quelli già confermati restano invariati.

    Raises:
        ValidationIncomplete: campi obbligatori mancanti (stato invariato)
        InvalidTransition: workflow non in revisione
    """
    _require(state, Phase.REVIEWING)
    index = state.current_index
    record = confirm_form(form, state.candidates[index], state.allowed_categories)

    confirmed = list(state.confirmed)
    confirmed[index] = record

    defaults = list(state.category_defaults)
    defaults[index] = record.category
    if apply_to_all:
        for position, saved in enumerate(confirmed):
            if saved is None:
                defaults[position] = record.category

    next_phase = Phase.SUMMARY if state.is_last else Phase.REVIEWING
    next_index = index if state.is_last else index + 1
    logger.debug(f"[WORKFLOW] Record {index + 1}/{state.total} confermato, stato -> {next_phase.value}")
    return replace(
        state,
        phase=next_phase,
        confirmed=tuple(confirmed),
        category_defaults=tuple(defaults),
        current_index=next_index,
        apply_to_all=apply_to_all,
        last_error=None,
    )


def go_back(state: WorkflowState) -> WorkflowState:
    """
    Torna al record precedente (dal riepilogo: all'ultimo record).

    Le modifiche già confermate restano salvate.
    """
    if state.phase == Phase.SUMMARY:
        return replace(state, phase=Phase.REVIEWING, current_index=state.total - 1)
    _require(state, Phase.REVIEWING)
    if state.current_index == 0:
        raise InvalidTransition("Sei già al primo vino")
    return replace(state, current_index=state.current_index - 1)


def cancel(state: WorkflowState) -> WorkflowState:
    """Annulla l'import: nessun effetto sulla persistenza."""
    if state.phase != Phase.IDLE:
        logger.info(f"[WORKFLOW] Import annullato ({state.total} record scartati)")
    return WorkflowState()


def summary(state: WorkflowState) -> BatchSummary:
    _require(state, Phase.SUMMARY)
    records = tuple(r for r in state.confirmed if r is not None)
    return BatchSummary(
        count=len(records),
        total_sell_value=round(sum(r.sell_price for r in records), 2),
        producer_count=len({r.producer for r in records}),
        records=records,
    )


async def commit(
    state: WorkflowState,
    store,
    session: SessionContext,
    mode: ImportMode = ImportMode.APPEND,
    confirmation: Optional[ReplaceConfirmation] = None,
    category: Optional[str] = None
) -> Tuple[WorkflowState, MergeReport]:
    """
    Salva tutti i record confermati tramite il merge engine.

    Returns:
        Tuple (stato IDLE, MergeReport)

    Raises:
        PersistenceFailed: lo stato ricevuto (SUMMARY) resta valido per riprovare
    """
    _require(state, Phase.SUMMARY)
    records = summary(state).records
    if mode == ImportMode.REPLACE and category is None:
        categories = {r.category for r in records}
        category = categories.pop() if len(categories) == 1 else None
    report = await merge_batch(store, session, records, category=category, mode=mode, confirmation=confirmation)
    logger.info(f"[WORKFLOW] Commit completato: {report.imported} vini salvati")
    return WorkflowState(), report


Listener = Callable[[WorkflowState], None]


class ConfirmationWorkflow:
    """Stato corrente del workflow con notifica dei listener (per la UI)."""

    def __init__(self, state: Optional[WorkflowState] = None):
        self.state = state or WorkflowState()
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set(self, state: WorkflowState) -> WorkflowState:
        self.state = state
        for listener in list(self._listeners):
            listener(state)
        return state

    def begin(self, candidates, default_category=None, allowed_categories=None) -> WorkflowState:
        return self._set(begin_review(candidates, default_category, allowed_categories))

    def form(self) -> WineForm:
        return current_form(self.state)

    def errors(self, form: WineForm) -> List[str]:
        return form_errors(form, self.state.allowed_categories)

    def save_and_next(self, form: WineForm, apply_to_all: bool = False) -> WorkflowState:
        return self._set(save_and_next(self.state, form, apply_to_all))

    def back(self) -> WorkflowState:
        return self._set(go_back(self.state))

    def cancel(self) -> WorkflowState:
        return self._set(cancel(self.state))

    def summary(self) -> BatchSummary:
        return summary(self.state)

    async def commit(
        self,
        store,
        session: SessionContext,
        mode: ImportMode = ImportMode.APPEND,
        confirmation: Optional[ReplaceConfirmation] = None,
        category: Optional[str] = None
    ) -> MergeReport:
        try:
            new_state, report = await commit(self.state, store, session, mode, confirmation, category)
        except PersistenceFailed as e:
            logger.error(f"[WORKFLOW] Commit fallito, riepilogo conservato: {e.message}")
            self._set(replace(self.state, last_error=e.message))
            raise
        self._set(new_state)
        return report
