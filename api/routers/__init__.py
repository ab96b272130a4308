"""
Routers per API winenode-importer.

Moduli:
- ingest: import testo incollato (workflow di conferma), file CSV/Excel, Google Sheet
- sheets: link Google Sheet salvato dall'utente
"""
from . import ingest, sheets

__all__ = ["ingest", "sheets"]
