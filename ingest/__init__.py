"""
Pipeline di import liste vini.

- Text Normalizer (normalization.py) e Field Extractor (extractor.py) per testo incollato
- CSV Table Parser (csv_parser.py, excel_parser.py, remote.py) per fogli e file
- Merge engine (reconcile.py) e workflow di conferma (confirmation.py)
- Orchestrazione (pipeline.py)
"""
