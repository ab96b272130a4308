"""
Core functionality per winenode-importer.

Questo modulo contiene:
- Configurazione (config.py)
- Database e store giacenze (database.py)
- Logging (logger.py)
- Sessione utente (session.py)
"""
