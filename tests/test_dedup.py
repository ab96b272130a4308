from __future__ import annotations

from ingest.dedup import annotate_similar, deduplicate_candidates, find_similar, match_key
from ingest.types import CandidateRecord, NAME_PLACEHOLDER, StoredWine


def _stored(name, wine_id=1):
    return StoredWine(id=wine_id, user_id="user-1", name=name)


def test_match_key_trims_and_lowercases():
    assert match_key("  Barolo Brunate ") == "barolo brunate"
    assert match_key(None) == ""


def test_deduplicate_drops_repeated_lines():
    records = [
        CandidateRecord(name="BAROLO BRUNATE", vintage="2017"),
        CandidateRecord(name="Barolo Brunate ", vintage="2017"),
        CandidateRecord(name="BAROLO BRUNATE", vintage="2018"),
    ]

    unique, dropped = deduplicate_candidates(records)

    assert dropped == 1
    assert [r.vintage for r in unique] == ["2017", "2018"]


def test_deduplicate_keeps_placeholders():
    records = [CandidateRecord(name=NAME_PLACEHOLDER), CandidateRecord(name=NAME_PLACEHOLDER)]

    unique, dropped = deduplicate_candidates(records)

    assert len(unique) == 2
    assert dropped == 0


def test_find_similar_ignores_denomination():
    stored = [_stored("Barolo Brunate"), _stored("Soave Classico", 2)]
    assert find_similar("BAROLO DOCG BRUNATE", stored) == "Barolo Brunate"


def test_find_similar_exact_match_is_not_a_hint():
    """Il nome identico verrà aggiornato, non è un suggerimento."""
    assert find_similar("barolo brunate", [_stored("Barolo Brunate")]) is None


def test_find_similar_below_threshold():
    assert find_similar("AMARONE CLASSICO", [_stored("Barolo Brunate")]) is None


def test_annotate_similar():
    records = [
        CandidateRecord(name="BAROLO DOCG BRUNATE"),
        CandidateRecord(name="AMARONE CLASSICO"),
        CandidateRecord(name=NAME_PLACEHOLDER),
    ]

    found = annotate_similar(records, [_stored("Barolo Brunate")])

    assert found == 1
    assert records[0].similar_to == "Barolo Brunate"
    assert records[1].similar_to is None
