"""
Configurazione pytest e fixture comuni.
"""
import pytest

from core.session import SessionContext
from ingest.wine_terms_dict import load_knowledge
from tests.mocks import InMemoryWineStore


@pytest.fixture
def session():
    """Sessione fidata lato server per un utente di test."""
    return SessionContext(user_id="user-1")


@pytest.fixture
def anonymous_session():
    return SessionContext()


@pytest.fixture
def store():
    return InMemoryWineStore()


@pytest.fixture
def knowledge():
    """Knowledge base inclusa nel pacchetto."""
    return load_knowledge()


@pytest.fixture
def sample_paste():
    """Testo incollato di esempio (due vini con prezzo)."""
    return "Barolo DOCG Brunate 2017 – 85€\nSoave Classico DOC 2022 – 18€"


@pytest.fixture
def sample_csv_text():
    """Export foglio con banner di categoria e intestazione."""
    return (
        "ROSSI,,,,\n"
        "NOME VINO,ANNO,PRODUTTORE,PROVENIENZA,FORNITORE\n"
        "Barolo Brunate,2017,Vietti,Piemonte,Enoteca Rossi\n"
        "Chianti Classico,2020,Castello di Ama,Toscana,Enoteca Rossi\n"
    )
