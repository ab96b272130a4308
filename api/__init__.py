"""
API HTTP per winenode-importer.
"""
