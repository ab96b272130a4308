"""
Field Extractor: riga pulita -> nome, annata, produttore, provenienza.

Le euristiche sono una lista ordinata di regole (`ExtractionRule`): la prima
la cui condizione è vera decide lo split della riga. Le regole non sollevano
mai eccezioni: quando non trovano un campo lo lasciano a None e il workflow
di conferma chiede all'operatore di completarlo.
"""
import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Tuple

from ingest.normalization import FOUR_DIGIT_VINTAGE, GAP_MARKER
from ingest.types import CandidateRecord, NormalizedLine, NAME_PLACEHOLDER, PRODUCER_PLACEHOLDER
from ingest.wine_terms_dict import WineKnowledge, default_knowledge

logger = logging.getLogger(__name__)

# Nome, produttore, provenienza
Fields = Tuple[str, Optional[str], Optional[str]]

_EDGE_PUNCTUATION = " \t,;:-/|"


@dataclass(frozen=True)
class ExtractionRule:
    name: str
    applies: Callable[[str], bool]
    split: Callable[[str, WineKnowledge], Fields]


def _tidy(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    cleaned = " ".join(text.replace(GAP_MARKER, " ").split()).strip(_EDGE_PUNCTUATION)
    cleaned = " ".join(cleaned.split())
    return cleaned.upper() or None


def extract_vintage(text: str) -> Tuple[Optional[str], str]:
    """
    Estrae la prima annata 4 cifre (1900-2099) e la rimuove dal testo.

    I gap tra colonne non vengono toccati.

    Returns:
        Tuple (annata o None, testo residuo)
    """
    match = FOUR_DIGIT_VINTAGE.search(text)
    if not match:
        return None, text
    residual = text[:match.start()] + text[match.end():]
    # Rimuovi solo lo spazio rimasto doppio, non i tab
    residual = re.sub(r" {2,}", " ", residual)
    residual = re.sub(r" *\t *", GAP_MARKER, residual)
    return match.group(1), residual.strip(" ")


def split_producer_region(
    segments: List[str],
    knowledge: WineKnowledge,
    positional: bool = False
) -> Tuple[Optional[str], Optional[str]]:
    """
    Separa produttore e provenienza dai segmenti che seguono il nome.

    - Più segmenti, `positional=True` (a destra di un gap): primo = produttore,
      resto = provenienza.
    - Più segmenti altrimenti: un segmento che è una regione nota diventa
      provenienza, gli altri il produttore; senza regioni, come sopra.
    - Un solo segmento: se contiene una regione (parola intera) questa è la
      provenienza e il resto il produttore; altrimenti tutto è produttore.
    """
    segments = [s for s in (_tidy(s) for s in segments) if s]
    if not segments:
        return None, None

    if len(segments) > 1:
        if not positional:
            regions = [s for s in segments if knowledge.is_region(s)]
            if regions:
                others = [s for s in segments if s not in regions]
                return (", ".join(others) or None), regions[0]
        return segments[0], ", ".join(segments[1:])

    segment = segments[0]
    found = knowledge.find_region(segment)
    if found:
        region, start, end = found
        producer = _tidy(segment[:start] + " " + segment[end:])
        return producer, region
    return segment, None


def _split_wide_gap(text: str, knowledge: WineKnowledge) -> Fields:
    left, _, right = text.partition(GAP_MARKER)
    producer, provenance = split_producer_region(right.split(","), knowledge, positional=True)
    return left, producer, provenance


def _split_comma(text: str, knowledge: WineKnowledge) -> Fields:
    first, _, rest = text.partition(",")
    producer, provenance = split_producer_region(rest.split(","), knowledge)
    return first, producer, provenance


def _whole_line(text: str, knowledge: WineKnowledge) -> Fields:
    return text, None, None


DEFAULT_RULES: Tuple[ExtractionRule, ...] = (
    ExtractionRule("wide_gap", lambda text: GAP_MARKER in text.strip(GAP_MARKER + " "), _split_wide_gap),
    ExtractionRule("comma", lambda text: "," in text, _split_comma),
    ExtractionRule("whole_line", lambda text: True, _whole_line),
)


class FieldExtractor:
    """Applica le regole in ordine di priorità e arricchisce il risultato con la knowledge base."""

    def __init__(self, knowledge: Optional[WineKnowledge] = None, rules: Iterable[ExtractionRule] = DEFAULT_RULES):
        self.knowledge = knowledge or default_knowledge()
        self.rules = tuple(rules)

    def select_rule(self, text: str) -> ExtractionRule:
        for rule in self.rules:
            if rule.applies(text):
                return rule
        return self.rules[-1]

    def extract(self, line: NormalizedLine) -> CandidateRecord:
        """
        Estrae i campi da una riga normalizzata.

        Args:
            line: Riga pulita (prezzi già rimossi)

        Returns:
            CandidateRecord con nome sempre valorizzato (eventuale placeholder)
        """
        vintage, residual = extract_vintage(line.text)
        rule = self.select_rule(residual)
        name, producer, provenance = rule.split(residual, self.knowledge)

        name = _tidy(name)
        producer = _tidy(producer)
        provenance = _tidy(provenance)

        if producer and self.knowledge.is_excluded_producer(producer):
            logger.debug(f"[EXTRACTOR] Produttore scartato (termine escluso): {producer}")
            producer = None
        if provenance and self.knowledge.is_excluded_producer(provenance) and not self.knowledge.is_region(provenance):
            provenance = None

        suggested = False
        if not producer and name:
            producer = self.knowledge.suggest_producer(name)
            suggested = producer is not None

        record = CandidateRecord(
            name=name or NAME_PLACEHOLDER,
            vintage=vintage,
            producer=producer or PRODUCER_PLACEHOLDER,
            provenance=provenance,
            sell_price=line.price or 0.0,
            source_line_index=line.index,
            producer_suggested=suggested,
        )
        logger.debug(
            f"[EXTRACTOR] Riga {line.index} ({rule.name}): name={record.name}, vintage={record.vintage}, "
            f"producer={record.producer}, provenance={record.provenance}"
        )
        return record


def extract_candidates(
    lines: Iterable[NormalizedLine],
    knowledge: Optional[WineKnowledge] = None
) -> List[CandidateRecord]:
    extractor = FieldExtractor(knowledge)
    return [extractor.extract(line) for line in lines]
