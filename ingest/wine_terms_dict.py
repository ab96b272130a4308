"""
Knowledge base statica per l'import liste vini.

Regioni, parole escluse come produttore, produttori noti per frammento di nome,
titoli di sezione e parole di intestazione. I dati vivono in
`ingest/data/wine_knowledge.yml` e vengono iniettati in extractor e parser
tabellare, così da poterli estendere o sostituire nei test.

Usato da:
- extractor.py - separazione nome/produttore/provenienza
- csv_parser.py - riconoscimento righe banner/intestazione
- reconcile.py - mappatura categoria -> tipo vino salvato
"""
import logging
import pathlib
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, FrozenSet, List, Optional, Tuple

import yaml

logger = logging.getLogger(__name__)

DEFAULT_KNOWLEDGE_FILE = pathlib.Path(__file__).resolve().parent / "data" / "wine_knowledge.yml"


def _upper_set(values) -> FrozenSet[str]:
    return frozenset(str(v).strip().upper() for v in values or [] if str(v).strip())


@dataclass(frozen=True)
class WineKnowledge:
    regions: FrozenSet[str] = frozenset()
    producer_exclusions: FrozenSet[str] = frozenset()
    known_producers: Dict[str, str] = field(default_factory=dict)
    category_titles: FrozenSet[str] = frozenset()
    category_keywords: FrozenSet[str] = frozenset()
    header_words: FrozenSet[str] = frozenset()
    header_first_cells: FrozenSet[str] = frozenset()
    category_types: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "WineKnowledge":
        return cls(
            regions=_upper_set(data.get("regions")),
            producer_exclusions=_upper_set(data.get("producer_exclusions")),
            known_producers={
                str(k).strip().upper(): str(v).strip().upper()
                for k, v in (data.get("known_producers") or {}).items()
            },
            category_titles=_upper_set(data.get("category_titles")),
            category_keywords=_upper_set(data.get("category_keywords")),
            header_words=_upper_set(data.get("header_words")),
            header_first_cells=_upper_set(data.get("header_first_cells")),
            category_types={
                str(k).strip().upper(): str(v).strip().lower()
                for k, v in (data.get("category_types") or {}).items()
            },
        )

    @property
    def region_patterns(self) -> List[Tuple[str, "re.Pattern[str]"]]:
        return _compile_regions(self.regions)

    def is_region(self, text: Optional[str]) -> bool:
        return bool(text) and text.strip().upper() in self.regions

    def is_excluded_producer(self, text: Optional[str]) -> bool:
        return bool(text) and text.strip().upper() in self.producer_exclusions

    def find_region(self, text: str) -> Optional[Tuple[str, int, int]]:
        """
        Cerca una regione nota come parola intera (case-insensitive).

        Le regioni più lunghe hanno precedenza ("EMILIA ROMAGNA" prima di "EMILIA").

        Returns:
            Tuple (regione, start, end) della prima occorrenza, None se assente
        """
        for region, pattern in self.region_patterns:
            match = pattern.search(text)
            if match:
                return region, match.start(), match.end()
        return None

    def suggest_producer(self, name: str, words: int = 2) -> Optional[str]:
        """Produttore suggerito dai primi `words` termini del nome, se noti."""
        head = " ".join(name.upper().split()[:words])
        for fragment, producer in self.known_producers.items():
            if fragment in head:
                return producer
        return None

    def category_to_type(self, category: Optional[str]) -> Optional[str]:
        """Tipologia (es. "ROSSI") -> valore `type` salvato (es. "rosso")."""
        if not category or not category.strip():
            return None
        key = category.strip().upper()
        if key in self.category_types:
            return self.category_types[key]
        if "BOLLICINE" in key:
            return self.category_types.get("BOLLICINE", "bollicine")
        return category.strip().lower()


@lru_cache(maxsize=16)
def _compile_regions(regions: FrozenSet[str]) -> List[Tuple[str, "re.Pattern[str]"]]:
    ordered = sorted(regions, key=lambda r: (-len(r), r))
    return [
        (region, re.compile(r"(?<!\w)" + re.escape(region) + r"(?!\w)", re.IGNORECASE))
        for region in ordered
    ]


@lru_cache(maxsize=4)
def load_knowledge(path: Optional[str] = None) -> WineKnowledge:
    """
    Carica la knowledge base da YAML (cache per path).

    Args:
        path: File YAML alternativo; None usa quello incluso nel pacchetto

    Returns:
        WineKnowledge immutabile
    """
    file_path = pathlib.Path(path) if path else DEFAULT_KNOWLEDGE_FILE
    with file_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    knowledge = WineKnowledge.from_dict(data)
    logger.debug(
        f"[KNOWLEDGE] Caricati {len(knowledge.regions)} regioni, "
        f"{len(knowledge.producer_exclusions)} esclusioni, "
        f"{len(knowledge.known_producers)} produttori noti da {file_path.name}"
    )
    return knowledge


def default_knowledge() -> WineKnowledge:
    """Knowledge base configurata (KNOWLEDGE_FILE) o quella di default."""
    from core.config import get_config

    return load_knowledge(get_config().knowledge_file or None)
