from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

NAME_PLACEHOLDER = "INSERISCI IL NOME DEL VINO"
PRODUCER_PLACEHOLDER = "INSERISCI IL NOME DEL PRODUTTORE"


@dataclass
class NormalizedLine:
    index: int
    text: str
    raw: str = ""
    price: Optional[float] = None


@dataclass
class CandidateRecord:
    name: str
    vintage: Optional[str] = None
    producer: Optional[str] = None
    provenance: Optional[str] = None
    category: Optional[str] = None
    supplier: Optional[str] = None
    cost_price: float = 0.0
    sell_price: float = 0.0
    stock_quantity: Optional[int] = None
    source_line_index: int = 0
    producer_suggested: bool = False
    similar_to: Optional[str] = None

    @property
    def needs_name(self) -> bool:
        return not self.name or self.name == NAME_PLACEHOLDER

    @property
    def needs_producer(self) -> bool:
        return not self.producer or self.producer == PRODUCER_PLACEHOLDER


@dataclass
class StoredWine:
    id: int
    user_id: str
    name: str
    type: Optional[str] = None
    supplier: Optional[str] = None
    producer: Optional[str] = None
    stock_quantity: int = 0
    min_stock: int = 0
    price: float = 0.0
    cost_price: float = 0.0
    vintage: Optional[str] = None
    region: Optional[str] = None
    description: Optional[str] = None


@dataclass
class ImportResult:
    success: bool
    imported: int = 0
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    errors: List[str] = field(default_factory=list)
    message: str = ""
    empty: bool = False


@dataclass
class AnalysisResult:
    candidates: List[CandidateRecord] = field(default_factory=list)
    lines_total: int = 0
    duplicates_dropped: int = 0
    message: str = ""

    @property
    def empty(self) -> bool:
        return not self.candidates
