"""
Validation (Pydantic models) per il workflow di conferma.

Definisce il form di revisione (`WineForm`) e il record confermato
(`ConfirmedRecord`), costruibile solo quando tutti i campi obbligatori
sono compilati.
"""
import logging
from typing import Any, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ingest.errors import ValidationIncomplete
from ingest.normalization import normalize_price, normalize_vintage
from ingest.types import CandidateRecord, NAME_PLACEHOLDER, PRODUCER_PLACEHOLDER

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("name", "producer", "provenance", "category")


def _clean_upper(value: Any) -> str:
    if value is None:
        return ""
    return " ".join(str(value).split()).upper()


class WineForm(BaseModel):
    """Valori del form di revisione (possono essere incompleti)."""

    name: str = ""
    vintage: Optional[str] = None
    producer: str = ""
    provenance: str = ""
    category: str = ""
    supplier: Optional[str] = None
    cost_price: float = 0.0
    sell_price: float = 0.0

    @field_validator("name", "producer", "provenance", "category", mode="before")
    @classmethod
    def _upper(cls, v: Any) -> str:
        return _clean_upper(v)

    @field_validator("supplier", mode="before")
    @classmethod
    def _supplier(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        return str(v).strip() or None

    @field_validator("vintage", mode="before")
    @classmethod
    def _vintage(cls, v: Any) -> Optional[str]:
        return normalize_vintage(v)

    @field_validator("cost_price", "sell_price", mode="before")
    @classmethod
    def _price(cls, v: Any) -> float:
        # Prezzo non numerico = 0
        return normalize_price(v)

    @classmethod
    def from_candidate(cls, candidate: CandidateRecord, category: Optional[str] = None) -> "WineForm":
        return cls(
            name=candidate.name,
            vintage=candidate.vintage,
            producer=candidate.producer,
            provenance=candidate.provenance,
            category=category if category is not None else candidate.category,
            supplier=candidate.supplier,
            cost_price=candidate.cost_price,
            sell_price=candidate.sell_price,
        )


class ConfirmedRecord(BaseModel):
    """
    Record confermato dall'operatore.

    Nome, produttore, provenienza e categoria obbligatori; i placeholder
    dell'estrazione non sono valori validi.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Nome vino (maiuscolo)")
    vintage: Optional[str] = Field(None, description="Annata 4 cifre o null")
    producer: str = Field(..., min_length=1, description="Produttore")
    provenance: str = Field(..., min_length=1, description="Provenienza / regione")
    category: str = Field(..., min_length=1, description="Tipologia (es. ROSSI)")
    supplier: Optional[str] = None
    cost_price: float = Field(default=0.0, ge=0.0)
    sell_price: float = Field(default=0.0, ge=0.0)
    stock_quantity: Optional[int] = Field(default=None, ge=0)
    source_line_index: int = 0

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if v == NAME_PLACEHOLDER:
            raise ValueError("name è ancora il placeholder")
        return v

    @field_validator("producer")
    @classmethod
    def validate_producer(cls, v: str) -> str:
        if v == PRODUCER_PLACEHOLDER:
            raise ValueError("producer è ancora il placeholder")
        return v


def form_errors(form: WineForm, allowed_categories: Optional[Iterable[str]] = None) -> List[str]:
    """
    Campi obbligatori mancanti o non validi nel form.

    Args:
        form: Valori correnti del form
        allowed_categories: Tipologie ammesse (None = qualsiasi non vuota)

    Returns:
        Lista nomi campo (vuota se il form può avanzare)
    """
    missing = []
    if not form.name or form.name == NAME_PLACEHOLDER:
        missing.append("name")
    if not form.producer or form.producer == PRODUCER_PLACEHOLDER:
        missing.append("producer")
    if not form.provenance:
        missing.append("provenance")
    if not form.category:
        missing.append("category")
    elif allowed_categories is not None:
        allowed = {_clean_upper(c) for c in allowed_categories}
        if form.category not in allowed:
            missing.append("category")
    return missing


def confirm_form(
    form: WineForm,
    candidate: CandidateRecord,
    allowed_categories: Optional[Iterable[str]] = None
) -> ConfirmedRecord:
    """
    Costruisce il ConfirmedRecord dal form.

    Raises:
        ValidationIncomplete: Se mancano campi obbligatori
    """
    missing = form_errors(form, allowed_categories)
    if missing:
        logger.debug(f"[VALIDATION] Riga {candidate.source_line_index}: campi mancanti {missing}")
        raise ValidationIncomplete(missing)

    return ConfirmedRecord(
        name=form.name,
        vintage=form.vintage,
        producer=form.producer,
        provenance=form.provenance,
        category=form.category,
        supplier=form.supplier,
        cost_price=form.cost_price,
        sell_price=form.sell_price,
        stock_quantity=candidate.stock_quantity,
        source_line_index=candidate.source_line_index,
    )
