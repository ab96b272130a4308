from __future__ import annotations

import re
import unicodedata
from typing import Iterable, List, Optional, Tuple

from rapidfuzz import fuzz

from ingest.types import CandidateRecord, NAME_PLACEHOLDER, StoredWine


def match_key(name: Optional[str]) -> str:
    """Chiave di merge: nome trimmed, case-insensitive."""
    return (name or "").strip().lower()


def _normalize_token(value: str) -> str:
    normalized = unicodedata.normalize("NFD", value.lower())
    normalized = "".join(ch for ch in normalized if unicodedata.category(ch) != "Mn")
    normalized = re.sub(r"\b(docg?|igt|aoc|d\.?o\.?c\.?)\b", "", normalized)
    normalized = re.sub(r"[^a-z0-9 ]", " ", normalized)
    return " ".join(normalized.split())


def deduplicate_candidates(records: List[CandidateRecord]) -> Tuple[List[CandidateRecord], int]:
    """
    Elimina righe ripetute nello stesso incollato (stesso nome e annata).

    I placeholder non vengono mai fusi: ognuno va corretto a mano.

    Returns:
        Tuple (record unici in ordine, numero duplicati scartati)
    """
    seen = set()
    unique: List[CandidateRecord] = []
    for record in records:
        key = (match_key(record.name), record.vintage)
        if record.name != NAME_PLACEHOLDER and key in seen:
            continue
        seen.add(key)
        unique.append(record)
    return unique, len(records) - len(unique)


def find_similar(name: str, stored: Iterable[StoredWine], threshold: int = 90) -> Optional[str]:
    """
    Nome del vino salvato più simile (token set ratio), se sopra soglia.

    Un match esatto sulla chiave di merge non è un "simile": verrà aggiornato.
    """
    key = match_key(name)
    target = _normalize_token(name)
    if not target:
        return None

    best_name = None
    best_score = 0.0
    for wine in stored:
        if match_key(wine.name) == key:
            return None
        score = fuzz.token_set_ratio(target, _normalize_token(wine.name))
        if score >= threshold and score > best_score:
            best_name, best_score = wine.name, score
    return best_name


def annotate_similar(records: List[CandidateRecord], stored: List[StoredWine], threshold: int = 90) -> int:
    """Imposta `similar_to` sui candidati; ritorna quanti suggerimenti sono stati trovati."""
    found = 0
    for record in records:
        if record.name == NAME_PLACEHOLDER:
            continue
        record.similar_to = find_similar(record.name, stored, threshold)
        if record.similar_to:
            found += 1
    return found
