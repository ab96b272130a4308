"""
Excel Parser.

Seleziona lo sheet con più righe non vuote e lo passa al parser tabellare.
"""
import pandas as pd
import io
import logging
from typing import Any, Dict, List, Optional, Tuple

from ingest.csv_parser import parse_table
from ingest.types import CandidateRecord
from ingest.wine_terms_dict import WineKnowledge

logger = logging.getLogger(__name__)


def read_excel_rows(file_content: bytes) -> Tuple[List[List[str]], Dict[str, Any]]:
    """
    Legge lo sheet con più righe non vuote come griglia di stringhe.

    Args:
        file_content: Contenuto file (bytes)

    Returns:
        Tuple (rows, sheet_info)

    Raises:
        ValueError: Se il file non è leggibile o non ha sheet validi
    """
    try:
        excel_file = pd.ExcelFile(io.BytesIO(file_content))
    except Exception as e:
        logger.error(f"[EXCEL_PARSER] Error opening Excel: {e}")
        raise ValueError(f"Errore parsing Excel: {str(e)}")

    sheet_names = excel_file.sheet_names
    logger.info(f"[EXCEL_PARSER] Excel file has {len(sheet_names)} sheets: {sheet_names}")

    best_df = None
    best_sheet_name = None
    max_rows = 0

    for sheet_name in sheet_names:
        # header=None: banner e intestazioni restano righe da classificare
        df = pd.read_excel(excel_file, sheet_name=sheet_name, header=None, dtype=str)
        non_empty_rows = df.dropna(how='all').shape[0]
        logger.debug(f"[EXCEL_PARSER] Sheet '{sheet_name}' has {non_empty_rows} non-empty rows")
        if best_df is None or non_empty_rows > max_rows:
            best_df = df
            best_sheet_name = sheet_name
            max_rows = non_empty_rows

    if best_df is None:
        raise ValueError("Nessun sheet valido trovato nel file Excel")

    rows = best_df.fillna("").astype(str).values.tolist()
    sheet_info = {
        'sheet_name': best_sheet_name,
        'total_sheets': len(sheet_names),
        'non_empty_rows': max_rows,
    }
    return [[cell.strip() for cell in row] for row in rows], sheet_info


def parse_excel(
    file_content: bytes,
    category: Optional[str] = None,
    knowledge: Optional[WineKnowledge] = None
) -> Tuple[List[CandidateRecord], Dict[str, Any]]:
    rows, sheet_info = read_excel_rows(file_content)
    records, parse_info = parse_table(rows, category, knowledge)
    sheet_info.update(parse_info)
    logger.info(f"[EXCEL_PARSER] Excel parsed: sheet='{sheet_info['sheet_name']}', {len(records)} records")
    return records, sheet_info
