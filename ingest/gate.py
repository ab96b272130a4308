"""
Gate - Routing file per tipo.

Determina quale parser tabellare usare in base all'estensione del file.
"""
import logging
from typing import Tuple, Optional

logger = logging.getLogger(__name__)

TEXT_EXTENSIONS = ['csv', 'tsv', 'txt']
EXCEL_EXTENSIONS = ['xlsx', 'xls']


def route_file(file_name: str, ext: Optional[str] = None) -> Tuple[str, str]:
    """
    Route file in base all'estensione.

    Args:
        file_name: Nome file
        ext: Estensione file (se None, estrae da file_name)

    Returns:
        Tuple (route, ext):
        - route: 'csv' per testo delimitato, 'excel' per fogli Excel
        - ext: Estensione normalizzata (lowercase, senza punto)

    Raises:
        ValueError: Se formato file non supportato
    """
    if ext is None:
        if '.' in file_name:
            ext = file_name.rsplit('.', 1)[-1].lower()
        else:
            raise ValueError(f"Impossibile determinare estensione file: {file_name}")

    ext = ext.lower().strip().lstrip('.')

    if ext in TEXT_EXTENSIONS:
        logger.info(f"[GATE] File {file_name} routed to CSV parser")
        return 'csv', ext

    if ext in EXCEL_EXTENSIONS:
        logger.info(f"[GATE] File {file_name} routed to Excel parser")
        return 'excel', ext

    error_msg = f"Formato file non supportato: .{ext}. Supportati: CSV, TSV, TXT, XLSX, XLS"
    logger.error(f"[GATE] {error_msg}")
    raise ValueError(error_msg)
