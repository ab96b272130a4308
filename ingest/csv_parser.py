"""
CSV Table Parser.

Encoding detection, delimiter sniff, lettura righe e mappatura colonne fisse
(0 nome, 1 annata, 2 produttore, 3 provenienza, 4 fornitore, 5 giacenza).
Le righe titolo di sezione ("ROSSI", "BOLLICINE ITALIANE") e le righe di
intestazione ("NOME VINO", "PRODUTTORE", ...) non sono mai dati.
"""
import csv
import io
import logging
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

import chardet
import pandas as pd

from core.config import get_config
from ingest.normalization import normalize_qty, normalize_vintage
from ingest.types import CandidateRecord
from ingest.wine_terms_dict import WineKnowledge, default_knowledge

logger = logging.getLogger(__name__)

SUPPORTED_DELIMITERS = ",;\t|"

GRID_COLUMNS = ["name", "vintage", "producer", "provenance", "supplier"]


def detect_encoding(file_content: bytes) -> Tuple[str, float]:
    """
    Rileva encoding file provando: utf-8-sig → utf-8 → cp1252 → latin-1.

    Args:
        file_content: Contenuto file (bytes)

    Returns:
        Tuple (encoding, confidence)
    """
    encoding_result = chardet.detect(file_content[:10000])  # Prime 10KB
    detected_encoding = encoding_result.get('encoding') or 'utf-8'
    confidence = encoding_result.get('confidence') or 0.0

    candidates = ['utf-8-sig', 'utf-8']
    if detected_encoding.lower() not in ('ascii', 'utf-8', 'utf-8-sig'):
        candidates.append(detected_encoding)
    candidates += ['cp1252', 'latin-1']

    for enc in candidates:
        try:
            file_content.decode(enc)
            logger.debug(f"[CSV_PARSER] Encoding detection: {enc} (confidence={confidence:.2f})")
            return enc, confidence
        except (UnicodeDecodeError, LookupError):
            continue

    logger.warning("[CSV_PARSER] Encoding detection failed, using utf-8 with errors='ignore'")
    return 'utf-8', 0.0


def detect_delimiter(text: str, sample_lines: int = 10) -> str:
    """
    Rileva separatore usando csv.Sniffer + fallback a punteggio.

    Args:
        text: Testo delimitato
        sample_lines: Numero righe da analizzare

    Returns:
        Separatore (',', ';', '\\t', '|')
    """
    non_empty_lines = [l for l in text.splitlines()[:sample_lines] if l.strip()]
    if not non_empty_lines:
        return ','

    try:
        sample = '\n'.join(non_empty_lines)
        delimiter = csv.Sniffer().sniff(sample, delimiters=SUPPORTED_DELIMITERS).delimiter
        logger.debug(f"[CSV_PARSER] CSV Sniffer detected delimiter: '{delimiter}'")
        return delimiter
    except csv.Error:
        pass

    # Fallback: separatore con più colonne, bonus se costante tra le righe
    separator_scores = {}
    for sep in SUPPORTED_DELIMITERS:
        counts = [len(line.split(sep)) for line in non_empty_lines]
        score = sum(c for c in counts if c >= 2)
        multi = [c for c in counts if c >= 2]
        if multi and len(set(multi)) == 1:
            score *= 2
        separator_scores[sep] = score

    best_sep = max(separator_scores.items(), key=lambda x: x[1])[0]
    if separator_scores[best_sep] == 0:
        best_sep = ','
    logger.debug(f"[CSV_PARSER] Fallback delimiter detection: '{best_sep}'")
    return best_sep


def decode_content(file_content: bytes) -> Tuple[str, Dict[str, Any]]:
    encoding, confidence = detect_encoding(file_content)
    text = file_content.decode(encoding, errors='ignore')
    return text, {'encoding': encoding, 'encoding_confidence': confidence}


def read_rows(text: str, delimiter: Optional[str] = None) -> List[List[str]]:
    """
    Testo delimitato -> righe (celle stripped, celle vuote finali rimosse).

    Le righe hanno lunghezze diverse (banner su una sola colonna, righe
    corte): le colonne sono dichiarate fino alla riga più larga, così
    nessuna riga viene scartata. Le righe vuote restano come [].
    """
    if not text or not text.strip():
        return []
    if delimiter is None:
        delimiter = detect_delimiter(text)

    width = max(line.count(delimiter) for line in text.splitlines()) + 1
    df = pd.read_csv(
        io.StringIO(text),
        sep=delimiter,
        header=None,
        names=list(range(width)),
        engine='python',
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=False,
    )

    rows = []
    for row in df.fillna("").values.tolist():
        cells = [str(cell).strip() for cell in row]
        while cells and not cells[-1]:
            cells.pop()
        rows.append(cells)
    logger.debug(f"[CSV_PARSER] CSV read: {len(rows)} rows, {width} columns, separator='{delimiter}'")
    return rows


def _first_cell(row: Sequence[Any]) -> str:
    return str(row[0]).strip().upper() if row and row[0] is not None else ""


def _contains_word(text: str, word: str) -> bool:
    return re.search(r"(?<!\w)" + re.escape(word) + r"(?!\w)", text) is not None


def is_banner_row(row: Sequence[Any], knowledge: WineKnowledge) -> bool:
    first = _first_cell(row)
    return bool(first) and (first in knowledge.category_titles or "BOLLICINE" in first)


def is_header_row(row: Sequence[Any], knowledge: WineKnowledge) -> bool:
    first = _first_cell(row)
    if first in knowledge.header_first_cells:
        return True
    joined = " ".join(str(cell) for cell in row if cell).upper()
    return any(_contains_word(joined, word) for word in knowledge.header_words)


def is_data_row(row: Sequence[Any], knowledge: WineKnowledge) -> bool:
    first = _first_cell(row)
    if len(first) <= 3:
        return False
    return not any(_contains_word(first, keyword) for keyword in knowledge.category_keywords)


def find_data_start(rows: List[List[str]], knowledge: Optional[WineKnowledge] = None) -> int:
    """
    Trova l'indice della prima riga dati.

    Salta banner di categoria e intestazioni; dopo un'intestazione i dati
    partono dalla riga successiva. Senza intestazione esplicita usa la prima
    riga il cui primo campo sembra un nome.

    Returns:
        Indice riga (len(rows) se non ci sono dati)
    """
    knowledge = knowledge or default_knowledge()

    for index, row in enumerate(rows):
        if is_banner_row(row, knowledge):
            continue
        if is_header_row(row, knowledge):
            logger.debug(f"[CSV_PARSER] Header trovato alla riga {index}")
            return index + 1
        if is_data_row(row, knowledge):
            return index

    for index, row in enumerate(rows):
        if len(_first_cell(row)) > 3 and not is_banner_row(row, knowledge) and not is_header_row(row, knowledge):
            return index

    return len(rows)


def _cell(row: Sequence[Any], position: int) -> Optional[str]:
    if position >= len(row) or row[position] is None:
        return None
    value = str(row[position]).strip()
    return value or None


def row_to_candidate(row: Sequence[Any], index: int, category: Optional[str] = None) -> CandidateRecord:
    name = _cell(row, 0) or ""
    producer = _cell(row, 2)
    provenance = _cell(row, 3)
    return CandidateRecord(
        name=" ".join(name.upper().split()),
        vintage=normalize_vintage(_cell(row, 1)),
        producer=producer.upper() if producer else None,
        provenance=provenance.upper() if provenance else None,
        category=category,
        supplier=_cell(row, 4),
        stock_quantity=normalize_qty(_cell(row, 5)),
        source_line_index=index,
    )


def parse_table(
    rows: List[List[str]],
    category: Optional[str] = None,
    knowledge: Optional[WineKnowledge] = None
) -> Tuple[List[CandidateRecord], Dict[str, Any]]:
    """
    Righe tabellari -> CandidateRecord con mappatura colonne fissa.

    Args:
        rows: Righe già lette (CSV o Excel)
        category: Categoria di destinazione (es. "ROSSI")
        knowledge: Knowledge base (default da config)

    Returns:
        Tuple (records, parse_info) - records vuoto se nessun dato
    """
    knowledge = knowledge or default_knowledge()
    start = find_data_start(rows, knowledge)

    records: List[CandidateRecord] = []
    skipped = 0
    for index in range(start, len(rows)):
        row = rows[index]
        if not _cell(row, 0):
            continue
        if is_banner_row(row, knowledge) or is_header_row(row, knowledge):
            skipped += 1
            continue
        records.append(row_to_candidate(row, index, category))

    parse_info = {
        'rows_total': len(rows),
        'data_start': start,
        'rows_valid': len(records),
        'rows_skipped': skipped,
    }
    logger.info(
        f"[CSV_PARSER] Table parsed: {len(rows)} rows, data start={start}, "
        f"{len(records)} records, {skipped} banner/header rows skipped"
    )
    return records, parse_info


def parse_csv_text(
    text: str,
    category: Optional[str] = None,
    delimiter: Optional[str] = None,
    knowledge: Optional[WineKnowledge] = None
) -> Tuple[List[CandidateRecord], Dict[str, Any]]:
    if delimiter is None and text and text.strip():
        delimiter = detect_delimiter(text)
    records, parse_info = parse_table(read_rows(text, delimiter), category, knowledge)
    parse_info['separator'] = delimiter
    return records, parse_info


def parse_csv(
    file_content: bytes,
    category: Optional[str] = None,
    knowledge: Optional[WineKnowledge] = None
) -> Tuple[List[CandidateRecord], Dict[str, Any]]:
    """
    Parse file CSV (bytes) con encoding e separatore auto-rilevati.

    Returns:
        Tuple (records, detection_info) con encoding, separator e conteggi
    """
    text, detection_info = decode_content(file_content)
    records, parse_info = parse_csv_text(text, category, knowledge=knowledge)
    detection_info.update(parse_info)
    return records, detection_info


def pad_grid(records: List[CandidateRecord], size: Optional[int] = None) -> List[Dict[str, str]]:
    """
    Righe per la griglia UI, completate con righe vuote fino a `size` (default 100).

    Solo visualizzazione: import e merge lavorano sui record non vuoti.
    """
    if size is None:
        size = get_config().grid_size

    grid = [
        {
            "name": record.name,
            "vintage": record.vintage or "",
            "producer": record.producer or "",
            "provenance": record.provenance or "",
            "supplier": record.supplier or "",
        }
        for record in records
    ]
    while len(grid) < size:
        grid.append({column: "" for column in GRID_COLUMNS})
    return grid
