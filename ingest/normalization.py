"""
Normalizzazione testo e valori per l'import.

- Text Normalizer: pulizia testo incollato (caratteri invisibili, prezzi,
  punteggiatura decorativa) e split in righe candidate.
- Normalizzazione valori: annata, quantità, prezzo.
"""
import math
import re
import logging
from typing import Any, List, Optional, Tuple

from core.config import get_config
from ingest.types import NormalizedLine

logger = logging.getLogger(__name__)

# Annata abbreviata con apostrofo: '99, ’08
APOSTROPHE_VINTAGE = re.compile(r"(?<![A-Za-z0-9])['‘’`](\d{2})(?!\d)")
FOUR_DIGIT_VINTAGE = re.compile(r"(?<!\d)((?:19|20)\d{2})(?!\d)")

INVISIBLE_CHARS = re.compile("[\u200B\u200C\u200D\uFEFF\u00A0]")
CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
LINE_BREAKS = re.compile("\r\n|\r|\u2028|\u2029")

# Tab o 2+ spazi: confine di colonna nelle liste esportate
WIDE_GAP = re.compile(r" *\t[ \t]*| {2,}")
GAP_MARKER = "\t"

PRICE_TOKEN = re.compile(
    r"\s*[-–]?\s*(\d{1,4}(?:[.,]\d{1,2})?)\s*(?:€|euro(?![a-z]))",
    re.IGNORECASE
)
DECORATIVE_CHARS = re.compile("[€–“”‘’…•·]")


def is_na(value: Any) -> bool:
    """
    Verifica se valore è null/NaN/stringa vuota.

    Args:
        value: Valore da verificare

    Returns:
        True se valore è None, NaN, o stringa vuota
    """
    if value is None:
        return True
    if isinstance(value, float):
        return math.isnan(value)
    if isinstance(value, str):
        return value.strip() == '' or value.strip().lower() in ['nan', 'none', 'null', 'n/a', 'na']
    return False


def expand_short_year(two_digits: str, cutoff: Optional[int] = None) -> str:
    """'08 -> 2008, '99 -> 1999 (anni <= cutoff nel 2000)."""
    if cutoff is None:
        cutoff = get_config().vintage_century_cutoff
    year = int(two_digits)
    return f"20{two_digits}" if year <= cutoff else f"19{two_digits}"


def expand_apostrophe_vintages(text: str, cutoff: Optional[int] = None) -> str:
    return APOSTROPHE_VINTAGE.sub(lambda m: expand_short_year(m.group(1), cutoff), text)


def normalize_vintage(value: Any, cutoff: Optional[int] = None) -> Optional[str]:
    """
    Normalizza annata a 4 cifre.

    Regole:
    - Anno 4 cifre (1900-2099) non parte di un numero più lungo
    - Abbreviazione con apostrofo ('99, '08) espansa con cutoff secolo
    - Altro (S.A., NV, vuoto) = None

    Args:
        value: Valore originale (string, int, float da Excel)
        cutoff: Cutoff secolo (default da config)

    Returns:
        Annata come stringa 4 cifre o None
    """
    if is_na(value):
        return None

    if isinstance(value, float) and value.is_integer():
        value = int(value)

    value_str = str(value).strip()

    match = FOUR_DIGIT_VINTAGE.search(value_str)
    if match:
        return match.group(1)

    match = APOSTROPHE_VINTAGE.search(value_str)
    if match:
        return expand_short_year(match.group(1), cutoff)

    return None


def normalize_qty(value: Any) -> Optional[int]:
    """
    Normalizza quantità (giacenza).

    Returns:
        Quantità >= 0, None se il valore non è indicato
    """
    if is_na(value):
        return None

    if isinstance(value, (int, float)):
        return max(0, int(value))

    match = re.search(r'\d+', str(value))
    if match:
        return int(match.group())
    return None


def normalize_price(value: Any) -> float:
    """
    Normalizza prezzo (virgola europea: "8,50" -> 8.5).

    Returns:
        Prezzo >= 0.0, default 0.0 se vuoto o non numerico
    """
    if is_na(value):
        return 0.0

    if isinstance(value, (int, float)):
        return max(0.0, float(value))

    value_str = re.sub(r'[€$£\s]', '', str(value)).replace(',', '.')
    match = re.search(r'\d+(?:\.\d+)?', value_str)
    if match:
        return float(match.group())
    return 0.0


def _parse_price(token: str) -> float:
    return float(token.replace(',', '.'))


def clean_line(raw: str, preserve_gaps: bool = True) -> Tuple[str, Optional[float]]:
    """
    Pulisce una singola riga di testo incollato.

    Args:
        raw: Riga originale (annate abbreviate già espanse)
        preserve_gaps: Se True, tab e spazi multipli restano come un solo tab

    Returns:
        Tuple (testo pulito, primo prezzo trovato o None)
    """
    text = INVISIBLE_CHARS.sub(" ", raw)
    text = CONTROL_CHARS.sub(" ", text)

    # I gap vanno marcati prima che le rimozioni creino spazi doppi
    text = WIDE_GAP.sub(GAP_MARKER, text)

    price = None
    match = PRICE_TOKEN.search(text)
    if match:
        price = _parse_price(match.group(1))
    text = PRICE_TOKEN.sub(" ", text)
    text = DECORATIVE_CHARS.sub("", text)
    # Rimozione decorazioni può avvicinare cifre e "euro"
    text = PRICE_TOKEN.sub(" ", text)

    text = re.sub(r" {2,}", " ", text)
    text = re.sub(r" *\t[ \t]*", GAP_MARKER, text)
    text = text.strip(" \t")

    if not preserve_gaps:
        text = text.replace(GAP_MARKER, " ")
        text = re.sub(r" {2,}", " ", text).strip()

    return text, price


def _visible_length(text: str) -> int:
    return len(text.replace(GAP_MARKER, " "))


def split_on_prices(raw: str) -> List[str]:
    """
    Divide una riga gigante usando i prezzi come confine di record.

    Ogni segmento termina con il suo prezzo; l'eventuale coda senza prezzo
    resta come ultimo segmento.
    """
    segments = []
    start = 0
    for match in PRICE_TOKEN.finditer(raw):
        segments.append(raw[start:match.end()])
        start = match.end()
    tail = raw[start:]
    if segments and tail.strip():
        segments.append(tail)
    return segments


def normalize_text(
    raw: str,
    min_length: Optional[int] = None,
    giant_line_length: Optional[int] = None,
    preserve_gaps: bool = True,
    cutoff: Optional[int] = None
) -> List[NormalizedLine]:
    """
    Text Normalizer: testo incollato -> righe candidate pulite.

    Args:
        raw: Testo multi-riga originale
        min_length: Lunghezza minima riga (default config, 10)
        giant_line_length: Soglia riga unica gigante (default config, 200)
        preserve_gaps: Mantiene i gap larghi come tab per l'estrazione campi
        cutoff: Cutoff secolo per annate abbreviate

    Returns:
        Lista NormalizedLine (vuota se nulla da importare)
    """
    config = get_config()
    if min_length is None:
        min_length = config.min_line_length
    if giant_line_length is None:
        giant_line_length = config.giant_line_length

    if not raw:
        return []

    text = expand_apostrophe_vintages(LINE_BREAKS.sub("\n", raw), cutoff)
    raw_lines = text.split("\n")

    lines: List[NormalizedLine] = []
    discarded = 0
    for index, raw_line in enumerate(raw_lines):
        cleaned, price = clean_line(raw_line, preserve_gaps=preserve_gaps)
        if _visible_length(cleaned) < min_length:
            if cleaned:
                discarded += 1
            continue
        lines.append(NormalizedLine(index=index, text=cleaned, raw=raw_line, price=price))

    if len(lines) == 1 and _visible_length(lines[0].text) > giant_line_length:
        giant = lines[0]
        resplit = []
        for segment in split_on_prices(giant.raw):
            cleaned, price = clean_line(segment, preserve_gaps=preserve_gaps)
            if _visible_length(cleaned) >= min_length:
                resplit.append(NormalizedLine(index=giant.index, text=cleaned, raw=segment, price=price))
        if len(resplit) > 1:
            logger.info(f"[NORMALIZER] Riga unica di {len(giant.text)} caratteri divisa in {len(resplit)} record sui prezzi")
            lines = resplit

    logger.debug(f"[NORMALIZER] {len(raw_lines)} righe in input, {len(lines)} valide, {discarded} scartate come rumore")
    return lines


def optimize_text(raw: str) -> str:
    """
    Pre-pass "ottimizza": testo pulito una riga per vino, senza gap.

    Args:
        raw: Testo incollato

    Returns:
        Righe pulite unite da newline ("" se nulla resta)
    """
    return "\n".join(line.text for line in normalize_text(raw, preserve_gaps=False))
